"""
===========================================================
errors.py
Last Updated: 2026-10-18
===========================================================

Description:
    Exception types raised by epitraj.

        - ModelDefinitionError: a model fails its construction checks
        - InvalidInputError: bad output times, parameters or
                             initial state, caught before integrating
        - IntegrationError: the numerical solution broke down

-----------------------------------------------------------
License: MIT
===========================================================
"""
from __future__ import annotations
from typing import Optional

import numpy as np


class EpitrajError(Exception):
    """Base class for all epitraj errors"""


class ModelDefinitionError(EpitrajError, ValueError):
    """Raised when a model's names or output dimensions are inconsistent"""


class InvalidInputError(EpitrajError, ValueError):
    """Raised when the inputs to an integration call are malformed"""


class IntegrationError(EpitrajError, RuntimeError):
    """
    Raised when integration cannot continue.

    Parameters:
    -----------
    message: str
        What went wrong
    t: float, optional
        Time at which the failure was detected
    state: array-like, optional
        State at that time
    """
    def __init__(self, message: str, t: Optional[float] = None, state=None):
        self.t = None if t is None else float(t)
        self.state = None if state is None else np.array(state, dtype=float)
        detail = message
        if self.t is not None:
            detail += f" (t={self.t:.6g}"
            if self.state is not None:
                detail += f", state={np.array2string(self.state, precision=6)}"
            detail += ")"
        super().__init__(detail)
        self.message = message

    def __reduce__(self):
        return (type(self), (self.message, self.t, self.state))
