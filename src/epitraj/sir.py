"""
===========================================================
sir.py
Last Updated: 2026-10-18
===========================================================

Description:
    The compartmental models used throughout the lessons, as
    ModelDefinitions, plus the summary quantities the lessons
    compute from their trajectories.

    Models:
        - closed_sir(): S -> I -> R, no births or deaths
        - sir_with_demography(): births into S, deaths from
                                 every compartment at rate mu
        - seir(): adds a latent class E
        - covariate_sir(): transmission modulated by an
                           interpolated covariate x(t),
                           Beta * exp(kappa * x(t))

    Summaries:
        - basic_reproduction_number(params)
        - final_size(R0), r0_from_final_size(f)
        - epidemic_summary(trajectory)

Example Usage:
    from epitraj.sir import closed_sir, epidemic_summary
    params = dict(Beta=1.0, gamma=1/13, N=763, S_0=762, I_0=1, R_0=0)
    traj = integrate(closed_sir(), params, 0.0, np.arange(1, 101))
    epidemic_summary(traj)

Notes:
    - Transmission is frequency dependent: Beta * S * I / N.
    - Rates are per unit of the time axis (days in the lessons).
    - Initial conditions are the S_0, I_0, R_0 (E_0) parameters,
      as counts.
-----------------------------------------------------------
License: MIT
===========================================================
"""
from __future__ import annotations
from typing import Dict, Mapping

import numpy as np
from scipy.optimize import brentq

from .model import ModelDefinition, define_model


# ---- closed SIR -------------------------------------------------------------

def _closed_sir_rhs(t, y, p, cov):
    S, I, R = y
    inf = p["Beta"] * S * I / p["N"]
    return [-inf, inf - p["gamma"] * I, p["gamma"] * I]


def _sir_init(p):
    return [p["S_0"], p["I_0"], p["R_0"]]


def closed_sir() -> ModelDefinition:
    """SIR in a closed population; S + I + R is conserved"""
    return define_model(
        _closed_sir_rhs, _sir_init,
        state_names=("S", "I", "R"),
        param_names=("Beta", "gamma", "N", "S_0", "I_0", "R_0"),
        name="closed_sir",
    )


# ---- SIR with births and deaths ---------------------------------------------

def _demography_rhs(t, y, p, cov):
    S, I, R = y
    mu = p["mu"]
    inf = p["Beta"] * S * I / p["N"]
    dS = mu * p["N"] - inf - mu * S
    dI = inf - p["gamma"] * I - mu * I
    dR = p["gamma"] * I - mu * R
    return [dS, dI, dR]


def sir_with_demography() -> ModelDefinition:
    """SIR with per-capita birth and death rate mu (births balance deaths)"""
    return define_model(
        _demography_rhs, _sir_init,
        state_names=("S", "I", "R"),
        param_names=("Beta", "gamma", "mu", "N", "S_0", "I_0", "R_0"),
        name="sir_with_demography",
    )


def endemic_equilibrium(params: Mapping[str, float]) -> Dict[str, float]:
    """
    Equilibrium of sir_with_demography().

    Disease-free (S=N) when R0 <= 1, otherwise
    S* = N/R0, I* = mu N (R0 - 1) / Beta, R* = N - S* - I*.
    """
    N, mu = params["N"], params["mu"]
    r0 = basic_reproduction_number(params)
    if r0 <= 1:
        return {"S": float(N), "I": 0.0, "R": 0.0}
    S = N / r0
    I = mu * N * (r0 - 1) / params["Beta"]
    return {"S": float(S), "I": float(I), "R": float(N - S - I)}


# ---- SEIR -------------------------------------------------------------------

def _seir_rhs(t, y, p, cov):
    S, E, I, R = y
    inf = p["Beta"] * S * I / p["N"]
    dS = -inf
    dE = inf - p["sigma"] * E
    dI = p["sigma"] * E - p["gamma"] * I
    dR = p["gamma"] * I
    return [dS, dE, dI, dR]


def _seir_init(p):
    return [p["S_0"], p["E_0"], p["I_0"], p["R_0"]]


def seir() -> ModelDefinition:
    """Closed SEIR; sigma = 1/latent period"""
    return define_model(
        _seir_rhs, _seir_init,
        state_names=("S", "E", "I", "R"),
        param_names=("Beta", "sigma", "gamma", "N", "S_0", "E_0", "I_0", "R_0"),
        name="seir",
    )


# ---- covariate-driven SIR ---------------------------------------------------

def covariate_sir(covariate: str = "rainfall") -> ModelDefinition:
    """
    Closed SIR whose transmission rate follows a covariate:

        beta(t) = Beta * exp(kappa * x(t))

    kappa = 0 recovers closed_sir().
    """
    def rhs(t, y, p, cov):
        S, I, R = y
        beta_t = p["Beta"] * np.exp(p["kappa"] * cov[covariate])
        inf = beta_t * S * I / p["N"]
        return [-inf, inf - p["gamma"] * I, p["gamma"] * I]

    return define_model(
        rhs, _sir_init,
        state_names=("S", "I", "R"),
        param_names=("Beta", "kappa", "gamma", "N", "S_0", "I_0", "R_0"),
        covariate_names=(covariate,),
        name=f"covariate_sir[{covariate}]",
    )


# ---- summaries --------------------------------------------------------------

def basic_reproduction_number(params: Mapping[str, float]) -> float:
    """Beta / gamma, or Beta / (gamma + mu) when params include mu"""
    removal = params["gamma"] + params.get("mu", 0.0)
    return params["Beta"] / removal if removal > 0 else np.inf


def final_size(R0: float) -> float:
    """
    Fraction f of a closed population eventually infected: the
    positive root of f = 1 - exp(-R0 f); 0 when R0 <= 1.
    """
    if R0 <= 1:
        return 0.0
    g = lambda f: f + np.expm1(-R0 * f)
    # g < 0 just above 0 when R0 > 1, g(1) = exp(-R0) > 0
    lo = min(1e-12, 0.5 * (1 - 1 / R0))
    return float(brentq(g, lo, 1.0, xtol=1e-15, rtol=1e-14))


def r0_from_final_size(f: float) -> float:
    """Invert the final-size relation: R0 = -ln(1 - f) / f"""
    if not (0 < f < 1):
        raise ValueError(f"final size must lie in (0, 1), got {f}")
    return float(-np.log1p(-f) / f)


def epidemic_summary(trajectory, infected: str = "I", susceptible: str = "S") -> Dict[str, float]:
    """
    Peak and final-size statistics of a trajectory.

    Returns:
    --------
    dict with peak_time, peak_infected, peak_prevalence,
    final_susceptible, attack_fraction (1 - S_end/S_start, the
    final size f for an initially fully-susceptible population)

    S_start and the population used for peak_prevalence are taken
    at t0, not at the first output time.
    """
    t = trajectory.times
    I = trajectory[infected]
    S = trajectory[susceptible]
    start = trajectory.states[0] if trajectory.initial_state is None else trajectory.initial_state
    N0 = float(np.sum(start))
    S0 = float(start[trajectory.state_names.index(susceptible)])
    peak_idx = int(np.argmax(I))
    return {
        "peak_time": float(t[peak_idx]),
        "peak_infected": float(I[peak_idx]),
        "peak_prevalence": float(I[peak_idx] / N0) if N0 > 0 else np.nan,
        "final_susceptible": float(S[-1]),
        "attack_fraction": float(1 - S[-1] / S0) if S0 > 0 else np.nan,
    }
