"""
===========================================================
model.py
Last Updated: 2026-10-18
===========================================================

Description:
    Model definitions for deterministic compartmental models.

    A model is a vector field, an initializer and the names
    that tie them together:

        vector_field(t, state, params, covariates) -> dstate/dt
        initializer(params) -> state at t0

    Defines:
        - ModelDefinition: frozen container for the above
        - define_model(): validating factory; calls both functions
                          once with dummy inputs so dimension
                          mismatches fail at construction time
        - check_params(): validates a parameter vector against a model

Example Usage:
    def rhs(t, y, p, cov):
        S, I, R = y
        inf = p["Beta"] * S * I / p["N"]
        return [-inf, inf - p["gamma"] * I, p["gamma"] * I]

    model = define_model(rhs, lambda p: [p["N"] - 1, 1, 0],
                         state_names=["S", "I", "R"],
                         param_names=["Beta", "gamma", "N"])

Notes:
    - state is handed to the vector field as a float ndarray in
      state_names order; params and covariates as name -> float
      mappings.
-----------------------------------------------------------
License: MIT
===========================================================
"""
from __future__ import annotations
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Iterable, Mapping, Optional, Tuple, FrozenSet

import numpy as np

from .errors import InvalidInputError, ModelDefinitionError

VectorField = Callable[[float, np.ndarray, Mapping[str, float], Mapping[str, float]], Iterable[float]]
Initializer = Callable[[Mapping[str, float]], Iterable[float]]

_DUMMY_PARAM_VALUE = 1.0
_DUMMY_COVARIATE_VALUE = 0.0


@dataclass(frozen=True)
class ModelDefinition:
    """
    Immutable description of an ODE model.

    Attributes:
    -----------
    vector_field: callable
        (t, state, params, covariates) -> derivative, same length as state_names
    initializer: callable
        params -> initial state, same length as state_names
    state_names: tuple of str
        Ordered names of the state variables
    param_names: frozenset of str
        Names a parameter vector must contain, exactly
    covariate_names: tuple of str
        Covariates the vector field reads (may be empty)
    name: str, optional
        Label used in messages and reprs
    """
    vector_field: VectorField
    initializer: Initializer
    state_names: Tuple[str, ...]
    param_names: FrozenSet[str]
    covariate_names: Tuple[str, ...] = ()
    name: Optional[str] = field(default=None, compare=False)

    @property
    def num_states(self) -> int:
        return len(self.state_names)

    def initial_state(self, params: Mapping[str, float]) -> np.ndarray:
        """Evaluate the initializer and check its shape"""
        y0 = _as_state(self.initializer(params), self.num_states, "initializer")
        if not np.all(np.isfinite(y0)):
            raise InvalidInputError(f"initializer returned non-finite state {y0}")
        return y0

    def derivative(self, t: float, state: np.ndarray, params: Mapping[str, float],
                   covariates: Mapping[str, float]) -> np.ndarray:
        """Evaluate the vector field and check its shape"""
        return _as_state(self.vector_field(t, state, params, covariates), self.num_states, "vector_field")

    def __repr__(self) -> str:
        label = self.name or "ModelDefinition"
        cov = f", covariates={list(self.covariate_names)}" if self.covariate_names else ""
        return f"{label}(states={list(self.state_names)}, params={sorted(self.param_names)}{cov})"


def _as_state(values, n: int, source: str) -> np.ndarray:
    try:
        arr = np.asarray(values, dtype=float)
    except (TypeError, ValueError) as e:
        raise ModelDefinitionError(f"{source} returned a value that is not numeric: {e}") from e
    if arr.shape != (n,):
        raise ModelDefinitionError(
            f"{source} returned shape {arr.shape}, expected ({n},) to match state_names"
        )
    return arr


def _names(values, what: str) -> Tuple[str, ...]:
    if isinstance(values, str):
        values = (values,)
    names = tuple(values)
    for nm in names:
        if not isinstance(nm, str) or not nm:
            raise ModelDefinitionError(f"{what} must be non-empty strings, got {nm!r}")
    dupes = sorted({nm for nm in names if names.count(nm) > 1})
    if dupes:
        raise ModelDefinitionError(f"duplicate {what}: {dupes}")
    return names


def define_model(
        vector_field: VectorField,
        initializer: Initializer,
        state_names: Iterable[str],
        param_names: Iterable[str],
        covariate_names: Iterable[str] = (),
        name: Optional[str] = None) -> ModelDefinition:
    """
    Build a ModelDefinition, failing fast on inconsistent definitions.

    The initializer is called once with every parameter set to 1.0 and
    the vector field once at t=0 on the resulting state, with every
    covariate set to 0.0. Both must return one value per state name.

    Raises:
    -------
    ModelDefinitionError
        Empty, duplicated or overlapping names, non-callables, wrong
        output dimension, or an exception raised by the dummy calls.
    """
    if not callable(vector_field):
        raise ModelDefinitionError("vector_field must be callable")
    if not callable(initializer):
        raise ModelDefinitionError("initializer must be callable")

    states = _names(state_names, "state_names")
    params = _names(param_names, "param_names")
    covs = _names(covariate_names, "covariate_names")
    if not states:
        raise ModelDefinitionError("state_names must not be empty")
    if not params:
        raise ModelDefinitionError("param_names must not be empty")
    overlap = (set(states) & set(params)) | (set(states) & set(covs)) | (set(params) & set(covs))
    if overlap:
        raise ModelDefinitionError(f"names used more than once across states/params/covariates: {sorted(overlap)}")

    model = ModelDefinition(
        vector_field=vector_field,
        initializer=initializer,
        state_names=states,
        param_names=frozenset(params),
        covariate_names=covs,
        name=name,
    )

    dummy_params = MappingProxyType({p: _DUMMY_PARAM_VALUE for p in params})
    dummy_covs = MappingProxyType({c: _DUMMY_COVARIATE_VALUE for c in covs})
    try:
        y0 = _as_state(initializer(dummy_params), len(states), "initializer")
        _as_state(vector_field(0.0, y0, dummy_params, dummy_covs), len(states), "vector_field")
    except ModelDefinitionError:
        raise
    except Exception as e:
        raise ModelDefinitionError(f"{name or 'model'} failed its trial evaluation: {e!r}") from e

    return model


def check_params(model: ModelDefinition, params: Mapping[str, float]) -> Mapping[str, float]:
    """
    Validate a parameter vector against a model.

    Returns a read-only name -> float mapping holding exactly the
    model's parameters.

    Raises:
    -------
    InvalidInputError
        Missing or unexpected names, or values that are not finite reals.
    """
    if not isinstance(params, Mapping):
        raise InvalidInputError(f"params must be a mapping of name -> value, got {type(params).__name__}")
    given = set(params)
    missing = sorted(model.param_names - given)
    extra = sorted(given - model.param_names)
    if missing or extra:
        parts = []
        if missing:
            parts.append(f"missing {missing}")
        if extra:
            parts.append(f"unexpected {extra}")
        raise InvalidInputError("parameter vector does not match the model: " + ", ".join(parts))

    clean = {}
    for k in sorted(given):
        try:
            v = float(params[k])
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"parameter {k!r} is not a real number: {params[k]!r}") from e
        if not np.isfinite(v):
            raise InvalidInputError(f"parameter {k!r} is not finite: {v}")
        clean[k] = v
    return MappingProxyType(clean)
