"""
===========================================================
integrator.py
Last Updated: 2026-10-18
===========================================================

Description:
    Deterministic trajectories of a ModelDefinition.

    Defines:
        - SolverOptions: tolerances, step bounds and budgets
        - Trajectory: states at the requested output times
        - integrate(): solve one model / parameter vector

    Methods:
        "dopri5"  Dormand–Prince 5(4) embedded Runge–Kutta pair
                  with adaptive step control and 4th order
                  dense output at the requested times (default)
        "rk4"     classic fixed-step 4th order Runge–Kutta, step
                  shortened to land on every output time

Example Usage:
    from epitraj import integrate, closed_sir
    traj = integrate(closed_sir(), params, t0=0.0, times=np.arange(1, 31))
    traj["I"]          # prevalence at t = 1..30
    traj.to_dataframe()

Notes:
    - Every call is a pure function of its arguments; nothing
      is cached on the model or in module state.
    - Fails with IntegrationError rather than returning a
      partial trajectory.
-----------------------------------------------------------
License: MIT
===========================================================
"""
from __future__ import annotations
import logging
import math
import time
import warnings
from dataclasses import dataclass
from typing import Dict, Iterator, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .errors import IntegrationError, InvalidInputError
from .model import ModelDefinition, check_params

logger = logging.getLogger(__name__)

METHODS = ("dopri5", "rk4")

# Dormand–Prince 5(4) tableau
_C = np.array([0.0, 1/5, 3/10, 4/5, 8/9, 1.0])
_A = [
    np.array([]),
    np.array([1/5]),
    np.array([3/40, 9/40]),
    np.array([44/45, -56/15, 32/9]),
    np.array([19372/6561, -25360/2187, 64448/6561, -212/729]),
    np.array([9017/3168, -355/33, 46732/5247, 49/176, -5103/18656]),
]
_B5 = np.array([35/384, 0.0, 500/1113, 125/192, -2187/6784, 11/84, 0.0])
_B4 = np.array([5179/57600, 0.0, 7571/16695, 393/640, -92097/339200, 187/2100, 1/40])
_E = _B5 - _B4
# dense output: y(t + theta*h) = y + h * (K.T @ _P) @ [theta, theta**2, theta**3, theta**4]
_P = np.array([
    [1, -8048581381/2820520608, 8663915743/2820520608, -12715105075/11282082432],
    [0, 0, 0, 0],
    [0, 131558114200/32700410799, -68118460800/10900136933, 87487479700/32700410799],
    [0, -1754552775/470086768, 14199869525/1410260304, -10690763975/1880347072],
    [0, 127303824393/49829197408, -318862633887/49829197408, 701980252875/199316789632],
    [0, -282668133/205662961, 2019193451/616988883, -1453857185/822651844],
    [0, 40617522/29380423, -110615467/29380423, 69997945/29380423],
])
_ERROR_EXPONENT = -1.0 / 5.0


@dataclass(frozen=True)
class SolverOptions:
    """
    Numerical settings for integrate().

    Attributes:
    -----------
    method: str
        "dopri5" (adaptive) or "rk4" (fixed step)
    rtol, atol: float
        Relative and absolute error tolerance per component (dopri5)
    first_step: float, optional
        Initial step; chosen automatically when None (dopri5)
    min_step: float
        Rejected steps may not shrink below this (dopri5)
    max_step: float
        Upper bound on any step (dopri5)
    max_steps: int
        Budget of steps (accepted + rejected) per trajectory
    max_wall_time: float, optional
        Budget of wall-clock seconds per trajectory
    fixed_step: float
        Nominal step for rk4
    safety, min_factor, max_factor: float
        Step-size controller constants (dopri5)
    """
    method: str = "dopri5"
    rtol: float = 1e-6
    atol: float = 1e-9
    first_step: Optional[float] = None
    min_step: float = 1e-12
    max_step: float = np.inf
    max_steps: int = 100_000
    max_wall_time: Optional[float] = None
    fixed_step: float = 0.1
    safety: float = 0.9
    min_factor: float = 0.2
    max_factor: float = 10.0

    def __post_init__(self):
        if self.method not in METHODS:
            raise ValueError(f"method must be one of {METHODS}, got {self.method!r}")
        if self.rtol <= 0 or self.atol < 0:
            raise ValueError("rtol must be positive and atol non-negative")
        if self.min_step <= 0:
            raise ValueError("min_step must be positive")
        if self.max_step < self.min_step:
            raise ValueError("max_step must be >= min_step")
        if self.first_step is not None and not (self.min_step <= self.first_step <= self.max_step):
            raise ValueError("first_step must lie between min_step and max_step")
        if self.max_steps < 1:
            raise ValueError("max_steps must be at least 1")
        if self.max_wall_time is not None and self.max_wall_time <= 0:
            raise ValueError("max_wall_time must be positive")
        if not (np.isfinite(self.fixed_step) and self.fixed_step > 0):
            raise ValueError("fixed_step must be a positive number")
        if not (0 < self.safety < 1):
            raise ValueError("safety must be in (0, 1)")
        if not (0 < self.min_factor < 1 < self.max_factor):
            raise ValueError("need 0 < min_factor < 1 < max_factor")


DEFAULT_OPTIONS = SolverOptions()


@dataclass(frozen=True, eq=False)
class Trajectory:
    """
    Solution of a model at the requested output times.

    Attributes:
    -----------
    times: np.ndarray, shape (k,)
        Output times (read-only)
    states: np.ndarray, shape (k, n)
        Row j is the state at times[j], columns ordered as state_names (read-only)
    state_names: tuple of str
    nfev, n_steps, n_rejected: int
        Vector-field evaluations, accepted steps, rejected steps
    t0: float
        Time at which the integration started
    initial_state: np.ndarray, shape (n,)
        State at t0 (read-only)
    """
    times: np.ndarray
    states: np.ndarray
    state_names: Tuple[str, ...]
    nfev: int = 0
    n_steps: int = 0
    n_rejected: int = 0
    t0: Optional[float] = None
    initial_state: Optional[np.ndarray] = None

    def __len__(self) -> int:
        return len(self.times)

    def __iter__(self) -> Iterator[Tuple[float, np.ndarray]]:
        for t, row in zip(self.times, self.states):
            yield float(t), row

    def __getitem__(self, name: str) -> np.ndarray:
        try:
            j = self.state_names.index(name)
        except ValueError:
            raise KeyError(f"no state named {name!r}; have {list(self.state_names)}") from None
        return self.states[:, j]

    @property
    def final_state(self) -> Dict[str, float]:
        return dict(zip(self.state_names, map(float, self.states[-1])))

    def as_dict(self) -> Dict[str, np.ndarray]:
        """{"t": times, <state>: column, ...}"""
        out = {"t": self.times}
        out.update({nm: self.states[:, j] for j, nm in enumerate(self.state_names)})
        return out

    def to_dataframe(self) -> pd.DataFrame:
        df = pd.DataFrame(self.states, columns=list(self.state_names))
        df.insert(0, "time", self.times)
        return df

    def __repr__(self) -> str:
        if len(self) == 0:
            return f"Trajectory(states={list(self.state_names)}, empty)"
        return (f"Trajectory(states={list(self.state_names)}, k={len(self)}, "
                f"t=[{self.times[0]:g}, {self.times[-1]:g}], nfev={self.nfev})")


# -----------------------------------------------------------
# input checks
# -----------------------------------------------------------

def check_times(t0: float, times: Sequence[float]) -> Tuple[float, np.ndarray]:
    """Validate t0 and output times; returns (t0, times as float array)"""
    try:
        t0 = float(t0)
        t_out = np.atleast_1d(np.array(times, dtype=float))
    except (TypeError, ValueError) as e:
        raise InvalidInputError(f"times must be real numbers: {e}") from e
    if not np.isfinite(t0):
        raise InvalidInputError(f"t0 must be finite, got {t0}")
    if t_out.ndim != 1 or len(t_out) == 0:
        raise InvalidInputError("times must be a non-empty one-dimensional sequence")
    if not np.all(np.isfinite(t_out)):
        raise InvalidInputError("times must be finite")
    if np.any(np.diff(t_out) <= 0):
        raise InvalidInputError("times must be strictly increasing")
    if t_out[0] < t0:
        raise InvalidInputError(f"first output time {t_out[0]:g} is before t0={t0:g}")
    return t0, t_out


def check_covariates(model: ModelDefinition, covariates) -> None:
    if not model.covariate_names:
        if covariates is not None:
            raise InvalidInputError(f"{model.name or 'model'} declares no covariates but covariates were supplied")
        return
    if covariates is None:
        raise InvalidInputError(f"model needs covariates {list(model.covariate_names)}")
    missing = sorted(set(model.covariate_names) - set(getattr(covariates, "names", ())))
    if missing:
        raise InvalidInputError(f"covariates {missing} not provided by {covariates!r}")


def check_initial_state(model: ModelDefinition, params: Mapping[str, float], initial_state=None) -> np.ndarray:
    """Initial state from the override or the model's initializer"""
    if initial_state is None:
        y0 = model.initial_state(params)
    else:
        try:
            y0 = np.array(initial_state, dtype=float)
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"initial_state must be numeric: {e}") from e
        if y0.shape != (model.num_states,):
            raise InvalidInputError(
                f"initial_state has shape {y0.shape}, expected ({model.num_states},)"
            )
        if not np.all(np.isfinite(y0)):
            raise InvalidInputError(f"initial_state must be finite, got {y0}")
    if np.any(y0 < 0):
        warnings.warn(
            f"initial state has negative entries: "
            f"{dict(zip(model.state_names, y0))}"
        )
    return y0


# -----------------------------------------------------------
# solvers
# -----------------------------------------------------------

class _Rhs:
    """Vector field bound to one parameter vector, with evaluation count and finiteness check"""
    def __init__(self, model: ModelDefinition, params: Mapping[str, float], covariates):
        self.model = model
        self.params = params
        self.covariates = covariates
        self.nfev = 0

    def __call__(self, t: float, y: np.ndarray) -> np.ndarray:
        cov = self.covariates.lookup(t) if self.covariates is not None else {}
        self.nfev += 1
        try:
            dy = self.model.derivative(t, y.copy(), self.params, cov)
        except IntegrationError:
            raise
        except Exception as e:
            raise IntegrationError(f"vector field failed: {e}", t=t, state=y) from e
        if not np.all(np.isfinite(dy)):
            raise IntegrationError("vector field returned a non-finite derivative", t=t, state=y)
        return dy


class _Budget:
    def __init__(self, options: SolverOptions):
        self.max_steps = options.max_steps
        self.deadline = None if options.max_wall_time is None else time.monotonic() + options.max_wall_time
        self.steps = 0

    def tick(self, t: float, y: np.ndarray):
        self.steps += 1
        if self.steps > self.max_steps:
            raise IntegrationError(f"step budget of {self.max_steps} exceeded", t=t, state=y)
        if self.deadline is not None and time.monotonic() > self.deadline:
            raise IntegrationError("wall-clock budget exceeded", t=t, state=y)


def _rms(x: np.ndarray) -> float:
    return float(np.sqrt(np.mean(x * x)))


def _initial_step(rhs: _Rhs, t0: float, y0: np.ndarray, f0: np.ndarray, options: SolverOptions) -> float:
    """Starting step from the size of y0, f0 and a trial Euler step (Hairer, Nørsett & Wanner)"""
    scale = options.atol + np.abs(y0) * options.rtol
    d0 = _rms(y0 / scale)
    d1 = _rms(f0 / scale)
    h0 = 1e-6 if d0 < 1e-5 or d1 < 1e-5 else 0.01 * d0 / d1
    f1 = rhs(t0 + h0, y0 + h0 * f0)
    d2 = _rms((f1 - f0) / scale) / h0
    if d1 <= 1e-15 and d2 <= 1e-15:
        h1 = max(1e-6, h0 * 1e-3)
    else:
        h1 = (0.01 / max(d1, d2)) ** (1.0 / 5.0)
    return min(100 * h0, h1)


def _dense(theta: float, h: float, y0: np.ndarray, K: np.ndarray) -> np.ndarray:
    """4th order continuous extension of the accepted step at t + theta*h"""
    powers = np.cumprod(np.full(_P.shape[1], theta))
    return y0 + h * ((K.T @ _P) @ powers)


def _dopri5(rhs: _Rhs, t0: float, y0: np.ndarray, t_out: np.ndarray, options: SolverOptions):
    n_out = len(t_out)
    out = np.empty((n_out, len(y0)))
    idx = 0
    while idx < n_out and t_out[idx] <= t0:
        out[idx] = y0
        idx += 1

    t, y = t0, y0
    t_end = float(t_out[-1])
    budget = _Budget(options)
    n_accepted = n_rejected = 0
    if idx == n_out:
        return out, n_accepted, n_rejected

    f = rhs(t, y)
    h = options.first_step if options.first_step is not None else _initial_step(rhs, t, y, f, options)
    h = min(max(h, options.min_step), options.max_step)
    K = np.empty((7, len(y0)))
    just_rejected = False

    while idx < n_out:
        budget.tick(t, y)
        min_step = max(options.min_step, 10 * np.spacing(abs(t)))
        h = min(h, options.max_step)
        if t + h >= t_end:
            h = t_end - t
            t_new = t_end
        else:
            t_new = t + h

        K[0] = f
        for s in range(1, 6):
            dy = _A[s] @ K[:s]
            K[s] = rhs(t + _C[s] * h, y + h * dy)
        y_new = y + h * (_B5[:6] @ K[:6])
        if not np.all(np.isfinite(y_new)):
            raise IntegrationError("state became non-finite", t=t_new, state=y)
        K[6] = rhs(t_new, y_new)

        scale = options.atol + np.maximum(np.abs(y), np.abs(y_new)) * options.rtol
        err = _rms(h * (_E @ K) / scale)

        if err <= 1.0:
            # fill every output time inside (t, t_new]
            while idx < n_out and t_out[idx] <= t_new:
                if t_out[idx] == t_new:
                    out[idx] = y_new
                else:
                    out[idx] = _dense((t_out[idx] - t) / h, h, y, K)
                idx += 1

            if err == 0.0:
                factor = options.max_factor
            else:
                factor = min(options.max_factor, options.safety * err ** _ERROR_EXPONENT)
            if just_rejected:
                factor = min(1.0, factor)
            t, y, f = t_new, y_new, K[6].copy()
            h *= factor
            n_accepted += 1
            just_rejected = False
        else:
            factor = max(options.min_factor, options.safety * err ** _ERROR_EXPONENT)
            h *= factor
            n_rejected += 1
            just_rejected = True
            if h < min_step:
                raise IntegrationError(
                    f"step size {h:.3g} fell below the minimum {min_step:.3g} "
                    f"without meeting tolerance (stiff or singular system?)",
                    t=t, state=y,
                )

    return out, n_accepted, n_rejected


def _rk4_step(rhs: _Rhs, t: float, y: np.ndarray, h: float) -> np.ndarray:
    k1 = rhs(t, y)
    k2 = rhs(t + 0.5*h, y + 0.5*h*k1)
    k3 = rhs(t + 0.5*h, y + 0.5*h*k2)
    k4 = rhs(t + h, y + h*k3)
    return y + (h/6.0)*(k1 + 2*k2 + 2*k3 + k4)


def _rk4(rhs: _Rhs, t0: float, y0: np.ndarray, t_out: np.ndarray, options: SolverOptions):
    out = np.empty((len(t_out), len(y0)))
    budget = _Budget(options)
    t, y = t0, y0
    n_steps = 0
    for j, tk in enumerate(t_out):
        span = tk - t
        # equal substeps no longer than fixed_step, ending exactly on tk
        n_sub = int(math.ceil(span / options.fixed_step * (1 - 1e-12))) if span > 0 else 0
        for i in range(n_sub):
            budget.tick(t, y)
            t_next = tk if i == n_sub - 1 else t + span / n_sub
            y = _rk4_step(rhs, t, y, t_next - t)
            if not np.all(np.isfinite(y)):
                raise IntegrationError("state became non-finite", t=t_next, state=y)
            t = t_next
            n_steps += 1
        t = tk
        out[j] = y
    return out, n_steps, 0


_SOLVERS = {"dopri5": _dopri5, "rk4": _rk4}


def solve(model: ModelDefinition, params: Mapping[str, float], t0: float, t_out: np.ndarray,
          y0: np.ndarray, covariates=None, options: SolverOptions = DEFAULT_OPTIONS) -> Trajectory:
    """Integrate already-validated inputs; see integrate()"""
    rhs = _Rhs(model, params, covariates)
    y_init = np.array(y0, dtype=float)
    states, n_steps, n_rejected = _SOLVERS[options.method](rhs, t0, y_init.copy(), t_out, options)

    times = np.array(t_out, dtype=float)
    times.setflags(write=False)
    y_init.setflags(write=False)
    states.setflags(write=False)
    logger.debug(
        "%s: %s integrated to t=%g in %d steps (%d rejected, %d evaluations)",
        model.name or "model", options.method, times[-1], n_steps, n_rejected, rhs.nfev,
    )
    return Trajectory(
        times=times,
        states=states,
        state_names=model.state_names,
        nfev=rhs.nfev,
        n_steps=n_steps,
        n_rejected=n_rejected,
        t0=t0,
        initial_state=y_init,
    )


def integrate(
        model: ModelDefinition,
        params: Mapping[str, float],
        t0: float,
        times: Sequence[float],
        covariates=None,
        initial_state=None,
        options: Optional[SolverOptions] = None) -> Trajectory:
    """
    Deterministic trajectory of a model at the requested times.

    Parameters:
    -----------
    model: ModelDefinition
    params: mapping
        Parameter vector; must hold exactly model.param_names
    t0: float
        Time at which the initial state applies
    times: sequence of float
        Output times, strictly increasing, all >= t0
    covariates: CovariateInterpolator, optional
        Required iff the model declares covariate_names
    initial_state: array-like, optional
        Overrides model.initializer(params)
    options: SolverOptions, optional

    Returns:
    --------
    Trajectory

    Raises:
    -------
    InvalidInputError
        Malformed inputs; raised before any integration work
    IntegrationError
        Step-size underflow, non-finite derivative or state,
        an exception from the vector field, step or wall-clock
        budget exhausted
    """
    options = DEFAULT_OPTIONS if options is None else options
    p = check_params(model, params)
    t0, t_out = check_times(t0, times)
    check_covariates(model, covariates)
    y0 = check_initial_state(model, p, initial_state)
    return solve(model, p, t0, t_out, y0, covariates, options)
