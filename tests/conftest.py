"""Shared fixtures for the epitraj test suite."""

from __future__ import annotations

import numpy as np
import pytest

from epitraj import closed_sir, define_model


@pytest.fixture
def boarding_school_params():
    # 1978 English boarding school influenza outbreak, 763 boys at risk
    return {"Beta": 1.0, "gamma": 1 / 13, "N": 763.0, "S_0": 762.0, "I_0": 1.0, "R_0": 0.0}


@pytest.fixture
def sir_model():
    return closed_sir()


@pytest.fixture
def decay_model():
    """dy/dt = -k y, y(0) = y0; exact solution y0 * exp(-k t)"""
    return define_model(
        lambda t, y, p, cov: [-p["k"] * y[0]],
        lambda p: [p["y0"]],
        state_names=["y"],
        param_names=["k", "y0"],
        name="decay",
    )


@pytest.fixture
def fragile_model():
    """Vector field turns non-finite once t passes the parameter t_fail"""
    def rhs(t, y, p, cov):
        if t > p["t_fail"]:
            return [np.nan]
        return [-0.1 * y[0]]

    return define_model(rhs, lambda p: [1.0], state_names=["y"], param_names=["t_fail"], name="fragile")
