"""
===========================================================
experiments.py
Last Updated: 2026-10-18
===========================================================

Description:
    Parameter sweeps for any ModelDefinition: integrate a grid
    of parameter values in one batch and tidy the epidemic
    summaries into a DataFrame.

Example Usage:
    from epitraj.experiments import grid_sweep
    df = grid_sweep(closed_sir(), base, {"Beta": betas, "gamma": gammas},
                    t0=0.0, times=np.arange(1, 201))
    df.pivot(index="gamma", columns="Beta", values="attack_fraction")

Notes:
    - One row per combination, sorted by the swept parameters.
    - A combination whose integration fails keeps its row,
      with NaN metrics and the message in the "error" column.
-----------------------------------------------------------
License: MIT
===========================================================
"""
from __future__ import annotations
import itertools
from typing import Callable, Dict, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from .batch import integrate_batch
from .integrator import SolverOptions
from .model import ModelDefinition
from .sir import basic_reproduction_number, epidemic_summary

_METRICS = ("peak_time", "peak_infected", "peak_prevalence", "final_susceptible", "attack_fraction")


def parameter_grid(base_params: Mapping[str, float], grid: Mapping[str, Sequence[float]]):
    """Cartesian product of the grid values laid over base_params"""
    names = list(grid)
    combos = []
    for values in itertools.product(*(grid[nm] for nm in names)):
        p = dict(base_params)
        p.update({nm: float(v) for nm, v in zip(names, values)})
        combos.append(p)
    return combos


def grid_sweep(
        model: ModelDefinition,
        base_params: Mapping[str, float],
        grid: Mapping[str, Sequence[float]],
        t0: float,
        times: Sequence[float],
        covariates=None,
        options: Optional[SolverOptions] = None,
        summarize: Callable[..., Dict[str, float]] = epidemic_summary,
        max_workers: Optional[int] = None) -> pd.DataFrame:
    """
    Evaluate the model across a grid of parameter values. Returns a
    tidy DataFrame with the swept values, R0 and one column per
    summary statistic.
    """
    if not grid:
        raise ValueError("grid must name at least one parameter")
    unknown = sorted(set(grid) - model.param_names)
    if unknown:
        raise ValueError(f"grid names parameters the model does not have: {unknown}")

    combos = parameter_grid(base_params, grid)
    result = integrate_batch(model, combos, t0, times, covariates=covariates,
                             options=options, max_workers=max_workers)

    summaries = [summarize(m.trajectory) if m.ok else None for m in result]
    metrics = list(dict.fromkeys(k for s in summaries if s is not None for k in s))
    if not metrics and summarize is epidemic_summary:
        metrics = list(_METRICS)

    records = []
    for p, member, summary in zip(combos, result, summaries):
        rec = {nm: p[nm] for nm in grid}
        rec["R0"] = basic_reproduction_number(p) if {"Beta", "gamma"} <= set(p) else np.nan
        if member.ok:
            rec.update(summary)
            rec["error"] = None
        else:
            # failed rows carry NaN for every metric the successful rows report
            rec.update({m: np.nan for m in metrics})
            rec["error"] = str(member.error)
        records.append(rec)

    df = pd.DataFrame.from_records(records)
    return df.sort_values(list(grid)).reset_index(drop=True)
