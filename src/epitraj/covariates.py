"""
===========================================================
covariates.py
Last Updated: 2026-10-18
===========================================================

Description:
    Interpolation of sparse exogenous time series (rainfall,
    temperature, school terms, ...) so a vector field can read
    them at any time the solver asks for.

API:
    CovariateInterpolator(times, values, names=None, order="linear")
      - value(t)  -> float (one covariate) or ndarray (several)
      - lookup(t) -> dict name -> float
      - from_dataframe(df, time_col, value_cols, order="linear")

Notes:
    - Interval found by binary search (np.searchsorted), O(log n).
    - Outside the observed range the boundary value is held
      constant; adaptive steps can probe slightly past the
      integration window.
    - order="constant" holds the latest sample at or before t
      (step function), the same convention as a piecewise β(t).
-----------------------------------------------------------
License: MIT
===========================================================
"""
from __future__ import annotations
from typing import Dict, Optional, Sequence, Union

import numpy as np
import pandas as pd

_ORDERS = ("linear", "constant")


class CovariateInterpolator:
    """
    Piecewise interpolation of one or more covariates on a shared time axis.

    Parameters:
    -----------
    times: array-like, shape (n,)
        Strictly increasing sample times, n >= 2
    values: array-like, shape (n,) or (n, k)
        Sample values; one column per covariate
    names: str or sequence of str, optional
        Covariate names; defaults to "x" for one column, "x0".."x{k-1}" otherwise
    order: {"linear", "constant"}
        Interpolation between samples
    """
    def __init__(self,
                 times: Sequence[float],
                 values,
                 names: Optional[Union[str, Sequence[str]]] = None,
                 order: str = "linear"):
        t = np.array(times, dtype=float)
        v = np.array(values, dtype=float)
        if t.ndim != 1:
            raise ValueError("times must be one-dimensional")
        if len(t) < 2:
            raise ValueError("a covariate series needs at least two points")
        if not np.all(np.isfinite(t)):
            raise ValueError("covariate times must be finite")
        if np.any(np.diff(t) <= 0):
            raise ValueError("covariate times must be strictly increasing")
        if order not in _ORDERS:
            raise ValueError(f"order must be one of {_ORDERS}, got {order!r}")

        self._scalar = v.ndim == 1
        if self._scalar:
            v = v[:, None]
        if v.ndim != 2 or v.shape[0] != len(t):
            raise ValueError(f"values shape {v.shape} does not match {len(t)} time points")
        if not np.all(np.isfinite(v)):
            raise ValueError("covariate values must be finite")

        k = v.shape[1]
        if names is None:
            names = ("x",) if k == 1 else tuple(f"x{j}" for j in range(k))
        elif isinstance(names, str):
            names = (names,)
        names = tuple(names)
        if len(names) != k:
            raise ValueError(f"got {len(names)} names for {k} covariate columns")
        if len(set(names)) != k:
            raise ValueError(f"covariate names must be unique: {names}")

        t.setflags(write=False)
        v.setflags(write=False)
        self._t = t
        self._v = v
        # slopes per interval, shape (n-1, k)
        slopes = np.diff(v, axis=0) / np.diff(t)[:, None]
        slopes.setflags(write=False)
        self._slopes = slopes
        self.names = names
        self.order = order

    @property
    def times(self) -> np.ndarray:
        return self._t

    @property
    def values(self) -> np.ndarray:
        return self._v[:, 0] if self._scalar else self._v

    @property
    def span(self):
        return float(self._t[0]), float(self._t[-1])

    def __len__(self) -> int:
        return len(self._t)

    def _row(self, t: float) -> np.ndarray:
        t = float(t)
        if not np.isfinite(t):
            raise ValueError(f"cannot interpolate covariates at t={t}")
        if t <= self._t[0]:
            return self._v[0]
        if t >= self._t[-1]:
            return self._v[-1]
        # index of the last sample <= t
        i = int(np.searchsorted(self._t, t, side="right")) - 1
        if self.order == "constant" or t == self._t[i]:
            return self._v[i]
        return self._v[i] + self._slopes[i] * (t - self._t[i])

    def value(self, t: float):
        """Covariate value(s) at time t"""
        row = self._row(t)
        return float(row[0]) if self._scalar else row.copy()

    def lookup(self, t: float) -> Dict[str, float]:
        """Covariate values at time t keyed by name"""
        row = self._row(t)
        return {nm: float(x) for nm, x in zip(self.names, row)}

    __call__ = value

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame, time_col: str, value_cols, order: str = "linear"):
        """Build from columns of an already-loaded, time-sorted table"""
        if isinstance(value_cols, str):
            value_cols = [value_cols]
        value_cols = list(value_cols)
        missing = [c for c in [time_col, *value_cols] if c not in df.columns]
        if missing:
            raise KeyError(f"columns not found in DataFrame: {missing}")
        t = df[time_col].to_numpy(dtype=float)
        v = df[value_cols].to_numpy(dtype=float)
        if len(value_cols) == 1:
            v = v[:, 0]
        return cls(t, v, names=value_cols, order=order)

    def __repr__(self) -> str:
        lo, hi = self.span
        return (f"CovariateInterpolator(names={list(self.names)}, n={len(self)}, "
                f"span=({lo:g}, {hi:g}), order={self.order!r})")
