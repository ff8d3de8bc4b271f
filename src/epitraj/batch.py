"""
===========================================================
batch.py
Last Updated: 2026-10-18
===========================================================

Description:
    Integrate one model over many parameter vectors and/or
    initial states. Members are independent, so they run in a
    thread pool; results come back in input order.

API:
    integrate_batch(model, params, t0, times, covariates=None,
                    initial_states=None, options=None,
                    fail_fast=False, max_workers=None) -> BatchResult

Notes:
    - Combinations are enumerated params-major: for P params
      and Q initial states, member i*Q + j uses params[i] and
      initial_states[j].
    - Every member's inputs are validated before any member
      is integrated.
    - By default a member's IntegrationError is recorded and
      its siblings carry on; fail_fast=True re-raises the
      first failure (in input order) instead.
-----------------------------------------------------------
License: MIT
===========================================================
"""
from __future__ import annotations
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterator, List, Mapping, Optional, Sequence, Union

import numpy as np

from .errors import IntegrationError, InvalidInputError
from .integrator import (
    DEFAULT_OPTIONS,
    SolverOptions,
    Trajectory,
    check_covariates,
    check_initial_state,
    check_times,
    solve,
)
from .model import ModelDefinition, check_params

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class BatchMember:
    """Outcome of one batch member: a trajectory or the error that stopped it"""
    index: int
    params: Mapping[str, float]
    initial_state: np.ndarray
    trajectory: Optional[Trajectory] = None
    error: Optional[IntegrationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class BatchResult:
    members: List[BatchMember]

    def __len__(self) -> int:
        return len(self.members)

    def __iter__(self) -> Iterator[BatchMember]:
        return iter(self.members)

    def __getitem__(self, i: int) -> BatchMember:
        return self.members[i]

    @property
    def ok(self) -> bool:
        return all(m.ok for m in self.members)

    @property
    def trajectories(self) -> List[Optional[Trajectory]]:
        """Trajectories in input order; None where the member failed"""
        return [m.trajectory for m in self.members]

    @property
    def failures(self) -> List[BatchMember]:
        return [m for m in self.members if not m.ok]

    def raise_for_failures(self) -> None:
        """Raise the first member failure, if any"""
        for m in self.members:
            if m.error is not None:
                raise m.error


def _as_param_list(params) -> List[Mapping[str, float]]:
    if isinstance(params, Mapping):
        return [params]
    params = list(params)
    if not params:
        raise InvalidInputError("params must contain at least one parameter vector")
    return params


def integrate_batch(
        model: ModelDefinition,
        params: Union[Mapping[str, float], Sequence[Mapping[str, float]]],
        t0: float,
        times: Sequence[float],
        covariates=None,
        initial_states: Optional[Sequence] = None,
        options: Optional[SolverOptions] = None,
        fail_fast: bool = False,
        max_workers: Optional[int] = None) -> BatchResult:
    """
    Integrate every (parameter vector, initial state) combination.

    Parameters:
    -----------
    model: ModelDefinition
    params: mapping or sequence of mappings
    t0, times: as for integrate()
    covariates: CovariateInterpolator, optional
        Shared read-only by all members
    initial_states: sequence of array-like, optional
        When None each member starts from model.initializer(params)
    options: SolverOptions, optional
    fail_fast: bool
        Raise the first IntegrationError instead of recording it
    max_workers: int, optional
        Thread pool size; 1 runs every member in the calling thread

    Returns:
    --------
    BatchResult with one member per combination, in input order

    Raises:
    -------
    InvalidInputError
        Any member's inputs are malformed (before integrating anything)
    IntegrationError
        Only with fail_fast=True
    """
    options = DEFAULT_OPTIONS if options is None else options
    if max_workers is not None and max_workers < 1:
        raise ValueError("max_workers must be at least 1")

    t0, t_out = check_times(t0, times)
    check_covariates(model, covariates)
    param_list = [check_params(model, p) for p in _as_param_list(params)]
    if initial_states is not None:
        initial_states = list(initial_states)
        if not initial_states:
            raise InvalidInputError("initial_states must not be empty when given")

    jobs = []
    for p in param_list:
        starts = [None] if initial_states is None else initial_states
        for s in starts:
            jobs.append((p, check_initial_state(model, p, s)))

    def run(job):
        p, y0 = job
        return solve(model, p, t0, t_out, y0, covariates, options)

    outcomes = [None] * len(jobs)
    if max_workers == 1 or len(jobs) == 1:
        for i, job in enumerate(jobs):
            try:
                outcomes[i] = run(job)
            except IntegrationError as e:
                if fail_fast:
                    raise
                outcomes[i] = e
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as ex:
            futures = [ex.submit(run, job) for job in jobs]
            try:
                for i, fut in enumerate(futures):
                    try:
                        outcomes[i] = fut.result()
                    except IntegrationError as e:
                        if fail_fast:
                            raise
                        outcomes[i] = e
            finally:
                for fut in futures:
                    fut.cancel()

    members = []
    for i, ((p, y0), res) in enumerate(zip(jobs, outcomes)):
        if isinstance(res, IntegrationError):
            logger.warning("batch member %d failed: %s", i, res)
            members.append(BatchMember(index=i, params=p, initial_state=y0, error=res))
        else:
            members.append(BatchMember(index=i, params=p, initial_state=y0, trajectory=res))

    n_failed = sum(not m.ok for m in members)
    logger.info("batch of %d finished: %d succeeded, %d failed", len(members), len(members) - n_failed, n_failed)
    return BatchResult(members=members)
