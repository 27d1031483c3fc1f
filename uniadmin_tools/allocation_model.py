#!/usr/bin/env python

"""
uniadmin_tools/allocation_model.py

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

Builds the integer programming model for allocating students to projects.

The user's three formulas are applied as follows.

- ``rank_to_happiness`` is evaluated for every rank a student actually gave,
  so total happiness is linear in the binary allocation variables ``x[s,p]``.
- ``assignments_to_load`` is evaluated for every achievable number of
  students on each project, ``k = 0..cap``. Binary indicators ``y[p,k]``
  (exactly one per project) select the count actually used, with
  ``sum_k k * y[p,k] == sum_s x[s,p]``. That makes total load linear too,
  exactly, whatever the formula (e.g. ``num_assigned^2``).
- ``overall_objective(happiness, load)`` is generally nonlinear. The model
  carries two continuous variables, ``happiness`` and ``load``, tied to their
  linear expressions; the solver (see :mod:`uniadmin_tools.allocation_solver`)
  optimizes over them, restricting their bounds as it branches.

"""

import logging
from typing import Dict, List, Tuple

from mip import (
    BINARY,
    CONTINUOUS,
    LinExpr,
    maximize,
    Model,
    OptimizationStatus,
    Var,
    xsum,
)

from uniadmin_tools.constants import (
    ALMOST_ONE,
    ExpressionContext,
    SolveStatus,
)
from uniadmin_tools.errors import CapacityInfeasibleError, SolverError
from uniadmin_tools.expression import ExpressionFunction, Interval
from uniadmin_tools.helperfunc import report_on_model
from uniadmin_tools.problem import Problem
from uniadmin_tools.project import Project
from uniadmin_tools.student import Student

log = logging.getLogger(__name__)


# =============================================================================
# AllocationModel
# =============================================================================


class AllocationModel(object):
    """
    The allocation problem expressed as a MIP model, plus everything needed
    to interpret it.
    """

    def __init__(
        self,
        problem: Problem,
        rank_to_happiness: ExpressionFunction,
        assignments_to_load: ExpressionFunction,
        overall_objective: ExpressionFunction,
        max_students_per_project: int,
        max_students_per_teacher: int,
    ) -> None:
        """
        Args:
            problem:
                The students, projects and teachers.
            rank_to_happiness:
                Compiled formula: rank (1 = top) to a student's happiness.
            assignments_to_load:
                Compiled formula: number of students on a project to that
                project's load.
            overall_objective:
                Compiled formula: total happiness and total load to the
                quantity to be maximized.
            max_students_per_project:
                Capacity of every project.
            max_students_per_teacher:
                Capacity of every teacher, across their projects.

        Raises:
            :exc:`CapacityInfeasibleError` if the problem obviously cannot be
            solved; :exc:`ExpressionEvaluationError` if a formula is
            undefined for a rank or student count that the model needs.
        """
        assert rank_to_happiness.context == (
            ExpressionContext.RANK_TO_HAPPINESS
        ), "Wrong formula for rank_to_happiness"
        assert assignments_to_load.context == (
            ExpressionContext.ASSIGNMENTS_TO_LOAD
        ), "Wrong formula for assignments_to_load"
        assert overall_objective.context == (
            ExpressionContext.OVERALL_OBJECTIVE
        ), "Wrong formula for overall_objective"
        self.problem = problem
        self.rank_to_happiness = rank_to_happiness
        self.assignments_to_load = assignments_to_load
        self.overall_objective = overall_objective
        self.max_students_per_project = max_students_per_project
        self.max_students_per_teacher = max_students_per_teacher

        self.students = problem.students  # type: List[Student]
        self.projects = problem.projects  # type: List[Project]

        self.project_capacity = {}  # type: Dict[Project, int]
        self.check_feasibility()

        self.happiness_of = {}  # type: Dict[Tuple[int, int], float]
        self.load_table = {}  # type: Dict[int, List[float]]
        self._precompute()

        self.m = None  # type: Model
        self.x = {}  # type: Dict[Tuple[int, int], Var]
        self.y = {}  # type: Dict[int, List[Var]]
        self.happiness_var = None  # type: Var
        self.load_var = None  # type: Var
        self._build()

    def __str__(self) -> str:
        return (
            f"AllocationModel: {len(self.students)} students, "
            f"{len(self.projects)} projects, "
            f"{len(self.x)} allocation variables, "
            f"happiness in {self.happiness_bounds()}, "
            f"load in {self.load_bounds()}"
        )

    # -------------------------------------------------------------------------
    # Checks
    # -------------------------------------------------------------------------

    def check_feasibility(self) -> None:
        """
        Fails fast on problems that cannot have a solution, before any solver
        time is spent. Also sets ``self.project_capacity``, the maximum number
        of students each project could take.

        Raises:
            :exc:`CapacityInfeasibleError`
        """
        n_students = len(self.students)
        if self.max_students_per_project < 1:
            raise CapacityInfeasibleError(
                f"max_students_per_project is {self.max_students_per_project}"
                f"; no student can be allocated"
            )
        if self.max_students_per_teacher < 1:
            raise CapacityInfeasibleError(
                f"max_students_per_teacher is {self.max_students_per_teacher}"
                f"; no student can be allocated"
            )
        no_choices = [s for s in self.students if not s.ranked_projects()]
        if no_choices:
            raise CapacityInfeasibleError(
                f"Students must be allocated a project they ranked, but "
                f"these students ranked none: "
                f"{', '.join(s.name for s in no_choices)}"
            )
        for p in self.projects:
            self.project_capacity[p] = min(
                self.max_students_per_project,
                self.max_students_per_teacher,
                len(self.problem.students_who_chose(p)),
            )
        total_project_capacity = sum(self.project_capacity.values())
        if total_project_capacity < n_students:
            raise CapacityInfeasibleError(
                f"Project capacity constraint cannot be met: at most "
                f"{self.max_students_per_project} students per project, "
                f"counting only students who ranked each project, gives room "
                f"for {total_project_capacity} students, but there are "
                f"{n_students}"
            )
        total_teacher_capacity = sum(
            min(
                self.max_students_per_teacher,
                sum(
                    self.project_capacity[p]
                    for p in self.problem.projects_of(t)
                ),
            )
            for t in self.problem.teachers
        )
        if total_teacher_capacity < n_students:
            raise CapacityInfeasibleError(
                f"Teacher capacity constraint cannot be met: at most "
                f"{self.max_students_per_teacher} students per teacher gives "
                f"room for {total_teacher_capacity} students, but there are "
                f"{n_students}"
            )

    # -------------------------------------------------------------------------
    # Building
    # -------------------------------------------------------------------------

    def _precompute(self) -> None:
        """
        Evaluates the per-student and per-project formulas at every point the
        model needs. Any evaluation failure is raised now.
        """
        happiness_by_rank = {}  # type: Dict[int, float]
        for s, student in enumerate(self.students):
            for rank, project in enumerate(
                student.ranked_projects(), start=1
            ):
                if rank not in happiness_by_rank:
                    happiness_by_rank[rank] = self.rank_to_happiness(
                        ranking=rank
                    )
                p = self.projects.index(project)
                self.happiness_of[s, p] = happiness_by_rank[rank]
        load_by_count = {}  # type: Dict[int, float]
        for p, project in enumerate(self.projects):
            table = []  # type: List[float]
            for k in range(self.project_capacity[project] + 1):
                if k not in load_by_count:
                    load_by_count[k] = self.assignments_to_load(
                        num_assigned=k
                    )
                table.append(load_by_count[k])
            self.load_table[p] = table
        log.debug(f"Happiness by rank: {happiness_by_rank}")
        log.debug(f"Load by number of students: {load_by_count}")

    def _build(self) -> None:
        n_students = len(self.students)
        n_projects = len(self.projects)
        m = Model("Student project allocation")

        # ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
        # Variables
        # ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
        # Binary variables, each linking a student to a project they ranked.
        # There are none for unranked projects.
        for s, p in sorted(self.happiness_of.keys()):
            self.x[s, p] = m.add_var(f"x[s={s},p={p}]", var_type=BINARY)
        # Count indicators: y[p][k] == 1 iff k students are on project p.
        for p in range(n_projects):
            if len(self.load_table[p]) > 1:
                self.y[p] = [
                    m.add_var(f"y[p={p},k={k}]", var_type=BINARY)
                    for k in range(len(self.load_table[p]))
                ]
        h_bounds = self.happiness_bounds()
        l_bounds = self.load_bounds()
        self.happiness_var = m.add_var(
            "happiness", var_type=CONTINUOUS, lb=h_bounds.lo, ub=h_bounds.hi
        )
        self.load_var = m.add_var(
            "load", var_type=CONTINUOUS, lb=l_bounds.lo, ub=l_bounds.hi
        )

        # ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
        # Constraint: For each student, exactly one (ranked) project.
        # ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
        for s in range(n_students):
            student_vars = self._student_vars(s)
            m += xsum(student_vars) == 1, f"student_{s}_one_project"
            if len(student_vars) > 1:
                m.add_sos(
                    sos=[
                        (self.x[s, p], p)
                        for p in range(n_projects)
                        if (s, p) in self.x
                    ],
                    sos_type=1,  # Type 1: only one variable can receive 1.
                )

        # ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
        # Constraint: For each project, up to the maximum number of students,
        # and the count indicators agree with the allocation.
        # ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
        for p in range(n_projects):
            project_vars = self._project_vars(p)
            if not project_vars:
                continue
            m += (
                xsum(project_vars) <= self.max_students_per_project,
                f"project_{p}_max_{self.max_students_per_project}_students",
            )
            m += xsum(self.y[p]) == 1, f"project_{p}_one_count"
            m += (
                xsum(k * y_pk for k, y_pk in enumerate(self.y[p]))
                == xsum(project_vars),
                f"project_{p}_count",
            )

        # ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
        # Constraint: For each teacher, up to the maximum number of students.
        # ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
        for t, teacher in enumerate(self.problem.teachers):
            teacher_vars = [
                var
                for p, project in enumerate(self.projects)
                if project.is_owned_by(teacher)
                for var in self._project_vars(p)
            ]
            if not teacher_vars:
                continue
            m += (
                xsum(teacher_vars) <= self.max_students_per_teacher,
                f"teacher_{t}_max_{self.max_students_per_teacher}_students",
            )

        # ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
        # Totals
        # ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
        m += self.happiness_var == self.happiness_expr(), "total_happiness"
        m += self.load_var == self.load_expr(), "total_load"

        self.m = m
        log.info(str(self))

    def _student_vars(self, s: int) -> List[Var]:
        return [
            self.x[s, p] for p in range(len(self.projects)) if (s, p) in self.x
        ]

    def _project_vars(self, p: int) -> List[Var]:
        return [
            self.x[s, p] for s in range(len(self.students)) if (s, p) in self.x
        ]

    def happiness_expr(self) -> LinExpr:
        """
        Total happiness, as a linear expression in the allocation variables.
        """
        return xsum(
            self.happiness_of[s, p] * var for (s, p), var in self.x.items()
        )

    def load_expr(self) -> LinExpr:
        """
        Total load, as a linear expression in the count indicators (plus a
        constant for projects nobody ranked).
        """
        constant = sum(
            table[0]
            for p, table in self.load_table.items()
            if p not in self.y
        )
        return constant + xsum(
            self.load_table[p][k] * y_pk
            for p, y_p in self.y.items()
            for k, y_pk in enumerate(y_p)
        )

    # -------------------------------------------------------------------------
    # Bounds
    # -------------------------------------------------------------------------

    def happiness_bounds(self) -> Interval:
        """
        Bounds on total happiness: every student at their least/most happy.
        """
        lo = 0.0
        hi = 0.0
        for s in range(len(self.students)):
            values = [
                h for (s2, _), h in self.happiness_of.items() if s2 == s
            ]
            lo += min(values)
            hi += max(values)
        return Interval(lo, hi)

    def load_bounds(self) -> Interval:
        """
        Bounds on total load: every project at its least/most loaded.
        """
        return Interval(
            sum(min(table) for table in self.load_table.values()),
            sum(max(table) for table in self.load_table.values()),
        )

    # -------------------------------------------------------------------------
    # Solving
    # -------------------------------------------------------------------------

    def set_verbose(self, verbose: bool) -> None:
        """
        Should the underlying solver print its progress?
        """
        self.m.verbose = 1 if verbose else 0

    def optimize(
        self,
        happiness_weight: float,
        load_weight: float,
        max_seconds: float,
        happiness_box: Interval = None,
        load_box: Interval = None,
    ) -> OptimizationStatus:
        """
        Maximizes ``happiness_weight * happiness + load_weight * load``,
        optionally with happiness and load restricted to a box.
        """
        happiness_box = happiness_box or self.happiness_bounds()
        load_box = load_box or self.load_bounds()
        self.happiness_var.lb = happiness_box.lo
        self.happiness_var.ub = happiness_box.hi
        self.load_var.lb = load_box.lo
        self.load_var.ub = load_box.hi
        self.m.objective = maximize(
            happiness_weight * self.happiness_var
            + load_weight * self.load_var
        )
        return self.m.optimize(max_seconds=max_seconds)

    def has_solution(self) -> bool:
        return self.m.num_solutions > 0

    def solved_totals(self) -> Tuple[float, float]:
        """
        The solver's values of total happiness and total load.
        """
        return self.happiness_var.x, self.load_var.x

    def extract_assignment(self) -> Dict[Student, Project]:
        """
        After a successful solve: which project did each student get?

        Raises:
            :exc:`SolverError` if the solver's values do not allocate every
            student to a project
        """
        assignment = {}  # type: Dict[Student, Project]
        for s, student in enumerate(self.students):
            p = next(
                (
                    p
                    for p in range(len(self.projects))
                    if (s, p) in self.x
                    and self.x[s, p].x is not None
                    and self.x[s, p].x >= ALMOST_ONE
                ),
                None,
            )
            if p is None:
                raise SolverError(
                    f"Solver reported a solution but allocated no project to "
                    f"student {student.name!r}",
                    status=SolveStatus.SOLVER_ERROR,
                )
            assignment[student] = self.projects[p]
        return assignment

    def report(self, solution_only: bool = False) -> None:
        """
        Dumps the model to the log.
        """
        report_on_model(self.m, solution_only=solution_only)
