from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from marglik.config import load_app_config
from marglik.driver import run_from_config
from marglik.reporting import print_summary
from marglik.utils import setup_logging

app = typer.Typer(add_completion=False)
console = Console()


@app.command()
def main(
    config: Path = typer.Option(Path("configs/mixture.yaml"), help="Path to run config"),
    chains: int = typer.Option(0, help="Override the number of chains (0 keeps the config value)"),
    no_write: bool = typer.Option(False, help="Skip writing results to disk"),
) -> None:
    cfg = load_app_config(config)
    if chains > 0:
        cfg.sampler.chains = chains
    setup_logging(cfg.logging.level, cfg.logging.rich_tracebacks)

    out = run_from_config(cfg, write=not no_write)
    print_summary(out.summary, title=f"{cfg.model.name} ({out.run_id})", console=console)
    diag = out.draws.diagnostics
    console.print(
        f"divergences={diag['divergences']}  max R-hat={diag['rhat_max']:.3f}  min ESS={diag['ess_min']:.0f}"
    )


if __name__ == "__main__":
    app()
