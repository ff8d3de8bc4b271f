"""
epitraj: deterministic trajectories of compartmental (SIR-type) ODE models.
"""
from .errors import EpitrajError, IntegrationError, InvalidInputError, ModelDefinitionError
from .model import ModelDefinition, check_params, define_model
from .covariates import CovariateInterpolator
from .integrator import SolverOptions, Trajectory, integrate
from .batch import BatchMember, BatchResult, integrate_batch
from .sir import (
    basic_reproduction_number,
    closed_sir,
    covariate_sir,
    endemic_equilibrium,
    epidemic_summary,
    final_size,
    r0_from_final_size,
    seir,
    sir_with_demography,
)
from .experiments import grid_sweep, parameter_grid

__version__ = "0.1.0"

__all__ = [
    "EpitrajError",
    "IntegrationError",
    "InvalidInputError",
    "ModelDefinitionError",
    "ModelDefinition",
    "check_params",
    "define_model",
    "CovariateInterpolator",
    "SolverOptions",
    "Trajectory",
    "integrate",
    "BatchMember",
    "BatchResult",
    "integrate_batch",
    "basic_reproduction_number",
    "closed_sir",
    "covariate_sir",
    "endemic_equilibrium",
    "epidemic_summary",
    "final_size",
    "r0_from_final_size",
    "seir",
    "sir_with_demography",
    "grid_sweep",
    "parameter_grid",
]
