#!/usr/bin/env python

"""
uniadmin_tools/allocation_solver.py

===============================================================================

    Copyright (C) 2019 Rudolf Cardinal (rudolf@pobox.com).

    This file is part of uniadmin_tools.

    This is free software: you can redistribute it and/or modify
    it under the terms of the GNU General Public License as published by
    the Free Software Foundation, either version 3 of the License, or
    (at your option) any later version.

    This software is distributed in the hope that it will be useful,
    but WITHOUT ANY WARRANTY; without even the implied warranty of
    MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
    GNU General Public License for more details.

    You should have received a copy of the GNU General Public License
    along with this software. If not, see <https://www.gnu.org/licenses/>.

===============================================================================

Drives the MIP solver over an :class:`AllocationModel`, under a time limit.

If the overall objective is affine in happiness and load, a single MIP solve
does the job. Otherwise we run a spatial branch-and-bound over the
(happiness, load) plane:

- each node is a box of (happiness, load) values;
- the integer model, restricted to the box, is solved to find a feasible
  allocation (maximizing the objective's local gradient, to find a good one);
- the objective's true value at that allocation may improve the incumbent;
- interval arithmetic on the objective formula bounds what the box could
  possibly offer, and the box is discarded if that can't beat the incumbent;
- otherwise the box is halved along its wider side, and the (happiness,
  load) point just found is cut out of whichever half holds it.

Achievable totals form a finite set, and every node either proves its box
empty or cuts out a point that no descendant can find again, so the search
always ends. Totals within ``TOTAL_RESOLUTION`` of each other count as the
same point.

The wall-clock limit applies across all solves. On time-out, or if the MIP
solver fails on some box, we return the incumbent, flagged as not proven
optimal.

"""

import heapq
import logging
import time
from typing import List, Optional, Tuple

from mip import OptimizationStatus

from uniadmin_tools.config import AllocationConfig
from uniadmin_tools.constants import (
    OBJECTIVE_RELATIVE_TOLERANCE,
    OBJECTIVE_TOLERANCE,
    SolveStatus,
    TOTAL_RELATIVE_RESOLUTION,
    TOTAL_RESOLUTION,
)
from uniadmin_tools.allocation_model import AllocationModel
from uniadmin_tools.errors import ExpressionEvaluationError, SolverError
from uniadmin_tools.expression import Interval
from uniadmin_tools.solution import Solution

log = logging.getLogger(__name__)

HAS_SOLUTION_STATUSES = (
    OptimizationStatus.OPTIMAL,
    OptimizationStatus.FEASIBLE,
)
INFEASIBLE_STATUSES = (
    OptimizationStatus.INFEASIBLE,
    OptimizationStatus.INT_INFEASIBLE,
)
TIME_LIMIT_MESSAGE = "Time limit reached"


# =============================================================================
# AllocationResult
# =============================================================================


class AllocationResult(object):
    """
    What the solver produced, and how it finished.
    """

    def __init__(
        self,
        status: SolveStatus,
        solution: Solution = None,
        solver_objective_value: float = None,
        n_solves: int = 0,
        elapsed_s: float = 0.0,
        message: str = "",
    ) -> None:
        """
        Args:
            status:
                How the solve finished.
            solution:
                The best allocation found, if any.
            solver_objective_value:
                The objective, as evaluated on the solver's own totals.
            n_solves:
                Number of MIP solves (branch-and-bound nodes) used.
            elapsed_s:
                Wall-clock time taken.
            message:
                Explanation, for failures and for unproven allocations.
        """
        self.status = status
        self.solution = solution
        self.solver_objective_value = solver_objective_value
        self.n_solves = n_solves
        self.elapsed_s = elapsed_s
        self.message = message

    def __str__(self) -> str:
        return (
            f"AllocationResult(status={self.status.name}, "
            f"objective={self.objective_value}, "
            f"n_solves={self.n_solves}, elapsed_s={self.elapsed_s:.3f})"
        )

    @property
    def succeeded(self) -> bool:
        return self.status in (
            SolveStatus.OPTIMAL,
            SolveStatus.TIME_LIMIT_FEASIBLE,
        )

    @property
    def objective_value(self) -> Optional[float]:
        """
        The objective, recomputed from the allocation.
        """
        if self.solution is None:
            return None
        return self.solution.objective_value()

    def raise_for_status(self) -> None:
        """
        Raises :exc:`SolverError` for the terminal failure statuses.
        """
        if not self.succeeded:
            raise SolverError(
                self.message or self.status.value, status=self.status
            )


# =============================================================================
# Solving
# =============================================================================


def solve_allocation(
    model: AllocationModel, config: AllocationConfig
) -> AllocationResult:
    """
    Solves the allocation problem within ``config.optimizer_time_limit_s``.
    Never raises for infeasibility or solver failure; the result's status
    says what happened (see :meth:`AllocationResult.raise_for_status`).
    """
    model.set_verbose(not config.silent)
    if config.debug_model:
        model.report()
    start = time.monotonic()
    deadline = start + config.optimizer_time_limit_s
    if model.overall_objective.is_affine():
        log.info("Overall objective is linear; solving directly")
        result = _solve_linear(model, deadline)
        if config.debug_model and model.has_solution():
            model.report(solution_only=True)
    else:
        log.info(
            "Overall objective is nonlinear; solving by branch-and-bound "
            "over total happiness and load"
        )
        result = _solve_branch_and_bound(model, deadline)
        # The MIP model holds the last node's solution, not the incumbent.
        if config.debug_model and result.solution is not None:
            log.info(f"Best allocation found:\n{result.solution}")
    result.elapsed_s = time.monotonic() - start
    if result.status == SolveStatus.TIME_LIMIT_FEASIBLE:
        if result.message == TIME_LIMIT_MESSAGE:
            advice = "consider increasing the time limit"
        else:
            advice = "the search was incomplete"
        log.warning(
            f"{result.message}. The allocation is the best found so far but "
            f"is NOT proven optimal; {advice} (limit "
            f"{config.optimizer_time_limit_s} s)."
        )
    log.info(str(result))
    return result


def _seconds_left(deadline: float) -> float:
    return deadline - time.monotonic()


def _make_solution(model: AllocationModel, status: SolveStatus) -> Solution:
    return Solution(
        problem=model.problem,
        allocation=model.extract_assignment(),
        rank_to_happiness=model.rank_to_happiness,
        assignments_to_load=model.assignments_to_load,
        overall_objective=model.overall_objective,
        status=status,
    )


def _solve_linear(model: AllocationModel, deadline: float) -> AllocationResult:
    """
    One MIP solve, maximizing ``b * happiness + c * load``.
    """
    objective = model.overall_objective
    h = model.happiness_bounds().midpoint
    l_ = model.load_bounds().midpoint
    grad = objective.gradient(happiness=h, load=l_)
    log.debug(f"Linear objective weights: {grad}")
    mip_status = model.optimize(
        happiness_weight=grad["happiness"],
        load_weight=grad["load"],
        max_seconds=max(_seconds_left(deadline), 0.0),
    )
    log.debug(f"MIP status: {mip_status}")
    if mip_status in HAS_SOLUTION_STATUSES and model.has_solution():
        if mip_status == OptimizationStatus.OPTIMAL:
            status = SolveStatus.OPTIMAL
            message = ""
        else:
            status = SolveStatus.TIME_LIMIT_FEASIBLE
            message = TIME_LIMIT_MESSAGE
        try:
            solution = _make_solution(model, status)
        except SolverError as e:
            return AllocationResult(
                status=SolveStatus.SOLVER_ERROR, n_solves=1, message=str(e)
            )
        happiness, load = model.solved_totals()
        return AllocationResult(
            status=status,
            solution=solution,
            solver_objective_value=objective(happiness=happiness, load=load),
            n_solves=1,
            message=message,
        )
    if mip_status in INFEASIBLE_STATUSES:
        return AllocationResult(
            status=SolveStatus.INFEASIBLE,
            n_solves=1,
            message="No allocation satisfies all the constraints",
        )
    if mip_status == OptimizationStatus.NO_SOLUTION_FOUND:
        return AllocationResult(
            status=SolveStatus.SOLVER_ERROR,
            n_solves=1,
            message="No allocation found within the time limit",
        )
    return AllocationResult(
        status=SolveStatus.SOLVER_ERROR,
        n_solves=1,
        message=f"MIP solver returned status {mip_status.name}",
    )


# -----------------------------------------------------------------------------
# Branch-and-bound
# -----------------------------------------------------------------------------


def _resolution(interval: Interval) -> float:
    """
    How close two totals within this range must be to count as equal.
    """
    return max(
        TOTAL_RESOLUTION,
        TOTAL_RELATIVE_RESOLUTION * max(abs(interval.lo), abs(interval.hi)),
    )


def _below(interval: Interval, x: float, eps: float) -> Optional[Interval]:
    hi = min(interval.hi, x - eps)
    return Interval(interval.lo, hi) if interval.lo <= hi else None


def _above(interval: Interval, x: float, eps: float) -> Optional[Interval]:
    lo = max(interval.lo, x + eps)
    return Interval(lo, interval.hi) if lo <= interval.hi else None


def _around(interval: Interval, x: float, eps: float) -> Optional[Interval]:
    lo = max(interval.lo, x - eps)
    hi = min(interval.hi, x + eps)
    return Interval(lo, hi) if lo <= hi else None


def _padded(interval: Interval, pad: float) -> Interval:
    return Interval(interval.lo - pad, interval.hi + pad)


class _Box(object):
    """
    A branch-and-bound node: a box of (happiness, load) values, with an upper
    bound on the objective within it.
    """

    def __init__(
        self, happiness: Interval, load: Interval, upper_bound: float
    ) -> None:
        self.happiness = happiness
        self.load = load
        self.upper_bound = upper_bound

    def __str__(self) -> str:
        return (
            f"box(happiness={self.happiness}, load={self.load}, "
            f"upper_bound={self.upper_bound})"
        )


class _Splitter(object):
    """
    Divides boxes, knowing the root box and the resolution of each total.
    """

    def __init__(self, happiness: Interval, load: Interval) -> None:
        self.root_happiness = happiness
        self.root_load = load
        self.h_eps = _resolution(happiness)
        self.l_eps = _resolution(load)

    def mip_box(self, box: _Box) -> Tuple[Interval, Interval]:
        """
        The box as given to the MIP solver: slightly widened, so it is never
        narrower than the solver's own tolerances.
        """
        return (
            _padded(box.happiness, self.h_eps / 100),
            _padded(box.load, self.l_eps / 100),
        )

    def bisect(
        self, happiness: Interval, load: Interval
    ) -> List[Tuple[Interval, Interval]]:
        """
        Halves a box along the side that is wider, relative to the root.
        Sides at the resolution limit are not halved.
        """
        h_rel = happiness.width / max(self.root_happiness.width, self.h_eps)
        l_rel = load.width / max(self.root_load.width, self.l_eps)
        can_split_h = happiness.width > 4 * self.h_eps
        can_split_l = load.width > 4 * self.l_eps
        if can_split_h and (h_rel >= l_rel or not can_split_l):
            mid = happiness.midpoint
            return [
                (Interval(happiness.lo, mid), load),
                (Interval(mid, happiness.hi), load),
            ]
        if can_split_l:
            mid = load.midpoint
            return [
                (happiness, Interval(load.lo, mid)),
                (happiness, Interval(mid, load.hi)),
            ]
        return [(happiness, load)]

    def exclude(
        self, happiness: Interval, load: Interval, h: float, l_: float
    ) -> List[Tuple[Interval, Interval]]:
        """
        Covers a box, less the small square around the point ``(h, l_)``,
        with up to four boxes: those below and above ``h``, and the strip
        around ``h`` below and above ``l_``.
        """
        pieces = []  # type: List[Tuple[Interval, Interval]]
        for part in (
            _below(happiness, h, self.h_eps),
            _above(happiness, h, self.h_eps),
        ):
            if part is not None:
                pieces.append((part, load))
        strip = _around(happiness, h, self.h_eps)
        if strip is not None:
            for part in (
                _below(load, l_, self.l_eps),
                _above(load, l_, self.l_eps),
            ):
                if part is not None:
                    pieces.append((strip, part))
        return pieces

    def split(
        self, box: _Box, h: float, l_: float
    ) -> List[Tuple[Interval, Interval]]:
        """
        Divides a box in which the point ``(h, l_)`` has been found. The
        children never contain that point.
        """
        children = []  # type: List[Tuple[Interval, Interval]]
        for happiness, load in self.bisect(box.happiness, box.load):
            holds_point = (
                happiness.lo - self.h_eps <= h <= happiness.hi + self.h_eps
                and load.lo - self.l_eps <= l_ <= load.hi + self.l_eps
            )
            if holds_point:
                children.extend(self.exclude(happiness, load, h, l_))
            else:
                children.append((happiness, load))
        return children


def _solve_branch_and_bound(
    model: AllocationModel, deadline: float
) -> AllocationResult:
    objective = model.overall_objective

    def upper_bound(happiness: Interval, load: Interval) -> float:
        return objective.bounds(happiness=happiness, load=load).hi

    def weights(box: _Box) -> Tuple[float, float]:
        try:
            grad = objective.gradient(
                happiness=box.happiness.midpoint, load=box.load.midpoint
            )
            return grad["happiness"], grad["load"]
        except ExpressionEvaluationError:
            # Any feasible point will do.
            return 0.0, 0.0

    def can_improve(bound: float) -> bool:
        if best_value is None:
            return True
        gap = max(
            OBJECTIVE_TOLERANCE,
            OBJECTIVE_RELATIVE_TOLERANCE * abs(best_value),
        )
        return bound > best_value + gap

    h_root = model.happiness_bounds()
    l_root = model.load_bounds()
    splitter = _Splitter(h_root, l_root)
    root = _Box(h_root, l_root, upper_bound(h_root, l_root))
    counter = 0  # tie-breaker, so boxes themselves are never compared
    heap = [
        (-root.upper_bound, counter, root)
    ]  # type: List[Tuple[float, int, _Box]]
    best_value = None  # type: Optional[float]
    best_solution = None  # type: Optional[Solution]
    best_solver_value = None  # type: Optional[float]
    last_evaluation_error = None  # type: Optional[ExpressionEvaluationError]
    timed_out = False
    failure = ""  # the most recent MIP failure, if any
    n_solves = 0

    while heap:
        _, _, box = heapq.heappop(heap)
        if not can_improve(box.upper_bound):
            # The heap is ordered by upper bound; nothing left can do better.
            break
        remaining = _seconds_left(deadline)
        if remaining <= 0:
            timed_out = True
            break
        happiness_weight, load_weight = weights(box)
        happiness_box, load_box = splitter.mip_box(box)
        n_solves += 1
        mip_status = model.optimize(
            happiness_weight=happiness_weight,
            load_weight=load_weight,
            max_seconds=remaining,
            happiness_box=happiness_box,
            load_box=load_box,
        )
        log.debug(f"Node {n_solves}: {box}: MIP status {mip_status.name}")
        if mip_status in INFEASIBLE_STATUSES:
            continue
        if mip_status == OptimizationStatus.NO_SOLUTION_FOUND:
            # Out of time within this node.
            timed_out = True
            break
        if mip_status not in HAS_SOLUTION_STATUSES or not model.has_solution():
            failure = f"MIP solver returned status {mip_status.name}"
            log.warning(f"{failure} for {box}; skipping that box")
            continue
        try:
            solution = _make_solution(model, SolveStatus.OPTIMAL)
        except SolverError as e:
            failure = str(e)
            log.warning(f"{failure}; skipping {box}")
            continue
        happiness = solution.total_happiness()
        load = solution.total_load()
        try:
            value = solution.objective_value()
        except ExpressionEvaluationError as e:
            log.debug(f"Objective undefined here: {e}")
            last_evaluation_error = e
            value = None
        if value is not None and (best_value is None or value > best_value):
            log.info(
                f"New best allocation: objective {value} "
                f"(happiness {happiness}, load {load})"
            )
            best_value = value
            best_solution = solution
            solver_happiness, solver_load = model.solved_totals()
            try:
                best_solver_value = objective(
                    happiness=solver_happiness, load=solver_load
                )
            except ExpressionEvaluationError:
                best_solver_value = None
        for child_happiness, child_load in splitter.split(
            box, happiness, load
        ):
            child = _Box(
                child_happiness,
                child_load,
                upper_bound(child_happiness, child_load),
            )
            if can_improve(child.upper_bound):
                counter += 1
                heapq.heappush(heap, (-child.upper_bound, counter, child))

    if best_solution is None:
        if failure:
            return AllocationResult(
                status=SolveStatus.SOLVER_ERROR,
                n_solves=n_solves,
                message=failure,
            )
        if timed_out:
            return AllocationResult(
                status=SolveStatus.SOLVER_ERROR,
                n_solves=n_solves,
                message="No allocation found within the time limit",
            )
        if last_evaluation_error is not None:
            # Feasible allocations exist, but the objective is undefined at
            # all of those we found.
            raise last_evaluation_error
        return AllocationResult(
            status=SolveStatus.INFEASIBLE,
            n_solves=n_solves,
            message="No allocation satisfies all the constraints",
        )
    if timed_out:
        status = SolveStatus.TIME_LIMIT_FEASIBLE
        message = TIME_LIMIT_MESSAGE
    elif failure:
        status = SolveStatus.TIME_LIMIT_FEASIBLE
        message = f"MIP solver failed on part of the search ({failure})"
    else:
        status = SolveStatus.OPTIMAL
        message = ""
    best_solution.status = status
    return AllocationResult(
        status=status,
        solution=best_solution,
        solver_objective_value=best_solver_value,
        n_solves=n_solves,
        message=message,
    )
