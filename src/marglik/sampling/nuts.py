"""NUTS driver for the latent-state models.

The models only provide a log-density on the unconstrained space; this
module hands it to :mod:`blackjax`:

* every chain starts from a jittered copy of the model defaults and is checked
  for a finite log-density and gradient before any sampling happens;
* Stan-style window adaptation tunes the step size and the mass matrix;
* posterior draws are collected with :func:`jax.lax.scan`;
* draws are mapped back to the constrained space and the model's generated
  quantities are evaluated once per draw.

Chains are independent and can be dispatched to a thread pool through
``SamplerConfig.parallel_chains``.  The models are pure, so chains never
share mutable state.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import blackjax
import jax
import jax.numpy as jnp
import numpy as np

from ..config import SamplerConfig
from ..models.base import LatentStateModel
from ..typing import PRNGKey, PyTree
from ..utils.jax_setup import nan_guard, vjit, vmap
from ..utils.logging import WorkUnitLogger
from .diagnostics import chain_diagnostics, ebfmi

logger = logging.getLogger(__name__)


@dataclass
class ChainResult:
    """Raw output of a single chain on the unconstrained space."""

    positions: PyTree
    logdensity: np.ndarray
    acceptance_rate: np.ndarray
    diverging: np.ndarray
    tree_depth: np.ndarray
    n_steps: np.ndarray
    energy: np.ndarray
    step_size: float
    inverse_mass_matrix: np.ndarray
    warmup_accept_rate: float
    warmup_seconds: float = 0.0
    sampling_seconds: float = 0.0
    work: WorkUnitLogger = field(default_factory=WorkUnitLogger)

    @property
    def timings(self) -> Dict[str, float]:
        return {"warmup": self.warmup_seconds, "sampling": self.sampling_seconds}


@dataclass
class PosteriorDraws:
    """Constrained draws, generated quantities and sampler statistics.

    Arrays in ``params``, ``generated`` and ``sample_stats`` have leading
    ``(chain, draw)`` axes.
    """

    model_name: str
    params: Dict[str, np.ndarray]
    generated: Dict[str, np.ndarray]
    sample_stats: Dict[str, np.ndarray]
    diagnostics: Dict[str, Any]

    @property
    def num_chains(self) -> int:
        return int(next(iter(self.sample_stats.values())).shape[0])

    @property
    def num_draws(self) -> int:
        return int(next(iter(self.sample_stats.values())).shape[1])


def run_chain(
    model: LatentStateModel,
    key: PRNGKey,
    cfg: SamplerConfig,
    init_position: Optional[PyTree] = None,
) -> ChainResult:
    """Adapt and sample a single NUTS chain."""

    init_key, warmup_key, sample_key = jax.random.split(key, 3)
    if init_position is None:
        init_position = model.initial_position(init_key, cfg.init_radius)

    value, grad = jax.jit(model.value_and_grad)(init_position)
    nan_guard("initial log-density", value)
    nan_guard("initial gradient", grad)

    work = WorkUnitLogger()
    num_warmup = max(int(cfg.num_warmup), 1)

    warmup = blackjax.window_adaptation(
        blackjax.nuts,
        model.log_density,
        is_mass_matrix_diagonal=not cfg.dense_mass,
        initial_step_size=float(cfg.init_step_size),
        target_acceptance_rate=float(cfg.target_accept),
        max_num_doublings=int(cfg.max_treedepth),
    )
    start = time.perf_counter()
    adapt_res, adapt_info = warmup.run(warmup_key, init_position, num_steps=num_warmup)
    jax.block_until_ready(adapt_res.state.position)
    warmup_seconds = time.perf_counter() - start
    params = adapt_res.parameters
    warmup_accept = float(jnp.mean(jnp.asarray(adapt_info.info.acceptance_rate)))
    work.incr(
        warmup_steps=num_warmup,
        grad_evals=int(jnp.sum(jnp.asarray(adapt_info.info.num_integration_steps))),
    )

    kernel = blackjax.nuts(
        model.log_density,
        step_size=params["step_size"],
        inverse_mass_matrix=params["inverse_mass_matrix"],
        max_num_doublings=params.get("max_num_doublings", int(cfg.max_treedepth)),
    )

    def one_step(state, step_key):
        state, info = kernel.step(step_key, state)
        trace = (
            state.position,
            state.logdensity,
            info.acceptance_rate,
            info.is_divergent,
            info.num_trajectory_expansions,
            info.num_integration_steps,
            info.energy,
        )
        return state, trace

    keys = jax.random.split(sample_key, int(cfg.num_samples))
    start = time.perf_counter()
    _, trace = jax.lax.scan(one_step, adapt_res.state, keys)
    trace = jax.block_until_ready(trace)
    sampling_seconds = time.perf_counter() - start
    positions, logdensity, accept, diverging, depth, n_steps, energy = trace
    work.incr(draws=int(cfg.num_samples), grad_evals=int(jnp.sum(n_steps)))

    return ChainResult(
        positions=positions,
        logdensity=np.asarray(logdensity),
        acceptance_rate=np.asarray(accept),
        diverging=np.asarray(diverging),
        tree_depth=np.asarray(depth),
        n_steps=np.asarray(n_steps),
        energy=np.asarray(energy),
        step_size=float(params["step_size"]),
        inverse_mass_matrix=np.asarray(params["inverse_mass_matrix"]),
        warmup_accept_rate=warmup_accept,
        warmup_seconds=warmup_seconds,
        sampling_seconds=sampling_seconds,
        work=work,
    )


def _stack_chains(trees: List[PyTree]) -> PyTree:
    return jax.tree_util.tree_map(lambda *xs: jnp.stack(xs, axis=0), *trees)


def _per_draw(fn, tree: PyTree, num_chains: int, num_draws: int) -> Dict[str, np.ndarray]:
    """Apply ``fn`` to every draw of a ``(chain, draw, ...)`` pytree."""

    flat = jax.tree_util.tree_map(lambda x: jnp.reshape(x, (num_chains * num_draws,) + x.shape[2:]), tree)
    out = vjit(vmap(fn))(flat)
    return {
        name: np.asarray(jnp.reshape(value, (num_chains, num_draws) + value.shape[1:]))
        for name, value in out.items()
    }


def run_chains(
    model: LatentStateModel,
    cfg: SamplerConfig,
    seed: int = 0,
    init_positions: Optional[List[PyTree]] = None,
) -> PosteriorDraws:
    """Run ``cfg.chains`` independent chains and post-process their draws."""

    num_chains = int(cfg.chains)
    if num_chains < 1:
        raise ValueError("At least one chain is required.")
    if init_positions is not None and len(init_positions) != num_chains:
        raise ValueError(f"Expected {num_chains} initial positions, received {len(init_positions)}.")

    keys = jax.random.split(jax.random.PRNGKey(seed), num_chains)
    inits = init_positions or [None] * num_chains
    logger.info(
        "Sampling %s: %d chains x (%d warmup + %d draws).",
        model.name,
        num_chains,
        cfg.num_warmup,
        cfg.num_samples,
    )

    def _run(idx: int) -> ChainResult:
        result = run_chain(model, keys[idx], cfg, inits[idx])
        logger.info(
            "Chain %d: step size %.3g, accept %.2f, %d divergences, %.1fs.",
            idx,
            result.step_size,
            float(np.mean(result.acceptance_rate)),
            int(np.sum(result.diverging)),
            result.warmup_seconds + result.sampling_seconds,
        )
        return result

    workers = max(1, min(int(cfg.parallel_chains), num_chains))
    if workers > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            chains = list(pool.map(_run, range(num_chains)))
    else:
        chains = [_run(idx) for idx in range(num_chains)]

    num_draws = int(cfg.num_samples)
    positions = _stack_chains([chain.positions for chain in chains])

    def _constrain(u: PyTree) -> Dict[str, Any]:
        return model.constrain(u)[0]

    params = _per_draw(_constrain, positions, num_chains, num_draws)
    generated = _per_draw(model.generated_quantities, params, num_chains, num_draws)

    sample_stats = {
        "lp": np.stack([chain.logdensity for chain in chains]),
        "acceptance_rate": np.stack([chain.acceptance_rate for chain in chains]),
        "diverging": np.stack([chain.diverging for chain in chains]),
        "tree_depth": np.stack([chain.tree_depth for chain in chains]),
        "n_steps": np.stack([chain.n_steps for chain in chains]),
        "energy": np.stack([chain.energy for chain in chains]),
    }

    work = WorkUnitLogger()
    for chain in chains:
        work.incr(**chain.work.as_dict())

    diagnostics: Dict[str, Any] = {
        "step_size": [chain.step_size for chain in chains],
        "warmup_accept_rate": [chain.warmup_accept_rate for chain in chains],
        "ebfmi": [ebfmi(chain.energy) for chain in chains],
        "divergences": int(np.sum(sample_stats["diverging"])),
        "work_units": work.as_dict(),
        "timings": [chain.timings for chain in chains],
    }
    diagnostics.update(chain_diagnostics(params))

    rhat_max = diagnostics["rhat_max"]
    if num_chains > 1 and rhat_max > cfg.rhat_threshold:
        logger.warning("Max R-hat %.3f exceeds %.3f; chains may not have mixed.", rhat_max, cfg.rhat_threshold)
    if diagnostics["divergences"]:
        logger.warning("%d divergent transitions after warm-up.", diagnostics["divergences"])

    return PosteriorDraws(
        model_name=model.name,
        params=params,
        generated=generated,
        sample_stats=sample_stats,
        diagnostics=diagnostics,
    )


__all__ = ["ChainResult", "PosteriorDraws", "run_chain", "run_chains"]
