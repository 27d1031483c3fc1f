#!/usr/bin/env python

"""
uniadmin_tools/tests/allocation_tests.py

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

Tests building and solving allocation models.

"""

import itertools
import logging
import math
import os
import random
import tempfile
import unittest
from typing import Dict, List, Sequence
from unittest import mock

from mip import OptimizationStatus

from uniadmin_tools.allocation_model import AllocationModel
from uniadmin_tools.allocation_solver import AllocationResult, solve_allocation
from uniadmin_tools.config import AllocationConfig
from uniadmin_tools.constants import (
    DEFAULT_ASSIGNMENTS_TO_LOAD,
    DEFAULT_OVERALL_OBJECTIVE,
    DEFAULT_RANK_TO_HAPPINESS,
    ExpressionContext,
    SolveStatus,
)
from uniadmin_tools.errors import (
    CapacityInfeasibleError,
    ExpressionEvaluationError,
    SolverError,
)
from uniadmin_tools.expression import compile_expression
from uniadmin_tools.problem import Problem
from uniadmin_tools.projalloc import allocate
from uniadmin_tools.project import Project
from uniadmin_tools.student import Student
from uniadmin_tools.teacher import Teacher


# =============================================================================
# Helpers
# =============================================================================


def make_problem(
    project_teachers: Sequence[str], choices: Sequence[Sequence[int]]
) -> Problem:
    """
    Args:
        project_teachers:
            Teacher name for each project (project numbers start at 1).
        choices:
            Project numbers chosen by each student, best first.
    """
    teachers = []  # type: List[Teacher]
    name_to_teacher = {}  # type: Dict[str, Teacher]
    projects = []  # type: List[Project]
    for i, name in enumerate(project_teachers, start=1):
        if name not in name_to_teacher:
            name_to_teacher[name] = Teacher(name, len(teachers) + 1)
            teachers.append(name_to_teacher[name])
        projects.append(Project(f"Project {i}", i, name_to_teacher[name]))
    students = [
        Student(f"Student {i}", i, [projects[c - 1] for c in chosen])
        for i, chosen in enumerate(choices, start=1)
    ]
    return Problem(teachers, projects, students, AllocationConfig())


def make_model(
    problem: Problem,
    overall_objective: str = DEFAULT_OVERALL_OBJECTIVE,
    rank_to_happiness: str = DEFAULT_RANK_TO_HAPPINESS,
    assignments_to_load: str = DEFAULT_ASSIGNMENTS_TO_LOAD,
    max_students_per_project: int = 4,
    max_students_per_teacher: int = 12,
) -> AllocationModel:
    return AllocationModel(
        problem=problem,
        rank_to_happiness=compile_expression(
            rank_to_happiness, ExpressionContext.RANK_TO_HAPPINESS
        ),
        assignments_to_load=compile_expression(
            assignments_to_load, ExpressionContext.ASSIGNMENTS_TO_LOAD
        ),
        overall_objective=compile_expression(
            overall_objective, ExpressionContext.OVERALL_OBJECTIVE
        ),
        max_students_per_project=max_students_per_project,
        max_students_per_teacher=max_students_per_teacher,
    )


def solve(model: AllocationModel, time_limit: float = 60) -> AllocationResult:
    config = AllocationConfig(optimizer_time_limit_s=time_limit, silent=True)
    return solve_allocation(model, config)


def brute_force_best(model: AllocationModel) -> float:
    """
    Best objective over all allocations of students to projects they ranked,
    by enumeration. For small problems only.
    """
    students = model.problem.students
    best = -math.inf
    for combo in itertools.product(*(s.choices for s in students)):
        per_project = {}  # type: Dict[Project, int]
        per_teacher = {}  # type: Dict[Teacher, int]
        for p in combo:
            per_project[p] = per_project.get(p, 0) + 1
            per_teacher[p.teacher] = per_teacher.get(p.teacher, 0) + 1
        if max(per_project.values()) > model.max_students_per_project:
            continue
        if max(per_teacher.values()) > model.max_students_per_teacher:
            continue
        happiness = sum(
            model.rank_to_happiness(ranking=s.rank_of(p))
            for s, p in zip(students, combo)
        )
        load = sum(
            model.assignments_to_load(num_assigned=per_project.get(p, 0))
            for p in model.problem.projects
        )
        value = model.overall_objective(happiness=happiness, load=load)
        best = max(best, value)
    return best


def random_problem(
    rng: random.Random, n_students: int, n_projects: int
) -> Problem:
    """
    Each student ranks between 2 and 4 projects; projects belong to one of
    three teachers.
    """
    teachers = [f"Dr {rng.choice('ABC')}" for _ in range(n_projects)]
    choices = [
        rng.sample(range(1, n_projects + 1), rng.randint(2, 4))
        for _ in range(n_students)
    ]
    return make_problem(teachers, choices)


SMALL_TEACHERS = ["Dr A", "Dr A", "Dr B", "Dr C"]
SMALL_CHOICES = [
    [1, 2, 3],
    [1, 3],
    [2, 1, 4],
    [1, 4],
    [3, 1],
    [4, 3, 2],
]


# =============================================================================
# Model building
# =============================================================================


class FeasibilityTests(unittest.TestCase):
    def test_too_little_project_capacity(self) -> None:
        # 10 students, 2 projects, at most 2 students per project.
        problem = make_problem(
            ["Dr A", "Dr B"], [[1, 2]] * 5 + [[2, 1]] * 5
        )
        with self.assertRaises(CapacityInfeasibleError):
            make_model(problem, max_students_per_project=2)

    def test_too_little_teacher_capacity(self) -> None:
        problem = make_problem(
            ["Dr A", "Dr A", "Dr B"], [[1, 2]] * 3 + [[3]]
        )
        with self.assertRaises(CapacityInfeasibleError):
            make_model(problem, max_students_per_teacher=2)

    def test_unranked_projects_do_not_count(self) -> None:
        # Lots of capacity, but three students all want only project 1.
        problem = make_problem(["Dr A", "Dr B"], [[1], [1], [1]])
        with self.assertRaises(CapacityInfeasibleError):
            make_model(problem, max_students_per_project=2)

    def test_student_with_no_choices(self) -> None:
        problem = make_problem(["Dr A", "Dr B"], [[1], []])
        with self.assertRaises(CapacityInfeasibleError):
            make_model(problem)

    def test_bad_caps(self) -> None:
        problem = make_problem(["Dr A"], [[1]])
        with self.assertRaises(CapacityInfeasibleError):
            make_model(problem, max_students_per_project=0)
        with self.assertRaises(CapacityInfeasibleError):
            make_model(problem, max_students_per_teacher=0)

    def test_formula_undefined_for_needed_input(self) -> None:
        # load is needed for zero students on a project.
        problem = make_problem(["Dr A", "Dr B"], [[1], [2, 1]])
        with self.assertRaises(ExpressionEvaluationError):
            make_model(problem, assignments_to_load="1 / num_assigned")

    def test_bounds(self) -> None:
        model = make_model(make_problem(SMALL_TEACHERS, SMALL_CHOICES))
        h = model.happiness_bounds()
        ld = model.load_bounds()
        self.assertTrue(h.is_bounded)
        self.assertTrue(ld.is_bounded)
        # Everyone getting their first choice is the most happiness possible.
        self.assertLessEqual(h.hi, 10 * len(SMALL_CHOICES))
        self.assertGreaterEqual(ld.lo, 0)


# =============================================================================
# Solving
# =============================================================================


class SolvingTests(unittest.TestCase):
    def check_valid(self, model: AllocationModel, result: AllocationResult):
        self.assertTrue(result.succeeded, str(result))
        solution = result.solution
        solution.check_constraints(
            max_students_per_project=model.max_students_per_project,
            max_students_per_teacher=model.max_students_per_teacher,
        )
        for student in model.problem.students:
            project = solution.allocated_project(student)
            self.assertIn(project, student.choices)
            self.assertEqual(
                solution.rank(student), student.rank_of(project)
            )

    def test_trivial(self) -> None:
        problem = make_problem(["Dr A", "Dr B", "Dr C"], [[1], [2], [3]])
        model = make_model(problem)
        result = solve(model)
        self.assertEqual(result.status, SolveStatus.OPTIMAL)
        self.check_valid(model, result)
        self.assertEqual(result.solution.ranks(), [1, 1, 1])

    def test_linear_objective_is_optimal(self) -> None:
        model = make_model(make_problem(SMALL_TEACHERS, SMALL_CHOICES))
        result = solve(model)
        self.assertEqual(result.status, SolveStatus.OPTIMAL)
        self.check_valid(model, result)
        self.assertAlmostEqual(
            result.objective_value, brute_force_best(model), places=6
        )
        # The reported objective is consistent with the allocation.
        solution = result.solution
        self.assertAlmostEqual(
            result.objective_value,
            model.overall_objective(
                happiness=solution.total_happiness(),
                load=solution.total_load(),
            ),
        )
        self.assertAlmostEqual(
            result.objective_value, result.solver_objective_value, places=4
        )

    def test_capacity_respected(self) -> None:
        # Everybody's favourite is project 1.
        choices = [[1, 2, 3]] * 4 + [[1, 3, 2]] * 2
        model = make_model(
            make_problem(["Dr A", "Dr B", "Dr C"], choices),
            max_students_per_project=2,
        )
        result = solve(model)
        self.check_valid(model, result)
        for project in model.problem.projects:
            self.assertEqual(
                result.solution.n_students_allocated_to_project(project), 2
            )

    def test_teacher_capacity_respected(self) -> None:
        choices = [[1, 2, 3]] * 3 + [[2, 1, 3]] * 2
        model = make_model(
            make_problem(["Dr A", "Dr A", "Dr B"], choices),
            max_students_per_project=3,
            max_students_per_teacher=3,
        )
        result = solve(model)
        self.check_valid(model, result)
        teacher_a = model.problem.teachers[0]
        self.assertLessEqual(
            result.solution.n_students_allocated_to_teacher(teacher_a), 3
        )

    def test_idempotent(self) -> None:
        problem = make_problem(SMALL_TEACHERS, SMALL_CHOICES)
        first = solve(make_model(problem))
        second = solve(make_model(problem))
        self.assertEqual(first.status, second.status)
        self.assertAlmostEqual(first.objective_value, second.objective_value)

    def test_nonlinear_objective(self) -> None:
        model = make_model(
            make_problem(SMALL_TEACHERS, SMALL_CHOICES),
            overall_objective="happiness - 2 * sqrt(load)",
            assignments_to_load="num_assigned",
        )
        self.assertFalse(model.overall_objective.is_affine())
        result = solve(model)
        self.assertEqual(result.status, SolveStatus.OPTIMAL, str(result))
        self.check_valid(model, result)
        self.assertAlmostEqual(
            result.objective_value, brute_force_best(model), places=4
        )

    def test_nonlinear_objectives_match_enumeration(self) -> None:
        objectives = [
            "happiness - 0.05 * load^2",
            "happiness * exp(-load / 20)",
            "min(happiness, 40) - load",
            "happiness - 2 * sqrt(load)",
        ]
        rng = random.Random(1234)
        for trial in range(4):
            problem = random_problem(rng, n_students=6, n_projects=5)
            for objective in objectives:
                with self.subTest(trial=trial, objective=objective):
                    model = make_model(
                        problem,
                        overall_objective=objective,
                        max_students_per_project=3,
                    )
                    result = solve(model)
                    self.assertEqual(
                        result.status, SolveStatus.OPTIMAL, str(result)
                    )
                    self.check_valid(model, result)
                    self.assertAlmostEqual(
                        result.objective_value,
                        brute_force_best(model),
                        places=4,
                    )

    def test_time_limit_gives_unproven_allocation(self) -> None:
        # 30 students; every project is somebody's first choice three times.
        choices = [
            [i % 10 + 1, (i + 3) % 10 + 1, (i + 7) % 10 + 1]
            for i in range(30)
        ]
        model = make_model(
            make_problem(["Dr A", "Dr B", "Dr C"] * 3 + ["Dr A"], choices),
            overall_objective="happiness - 0.05 * load^2",
        )
        calls = []  # type: List[float]

        def seconds_left(deadline: float) -> float:
            # Time enough for one node, then none.
            calls.append(deadline)
            return 60.0 if len(calls) == 1 else 0.0

        with mock.patch(
            "uniadmin_tools.allocation_solver._seconds_left",
            side_effect=seconds_left,
        ):
            result = solve(model)
        self.assertEqual(result.n_solves, 1)
        self.assertEqual(result.status, SolveStatus.TIME_LIMIT_FEASIBLE)
        self.assertEqual(
            result.solution.status, SolveStatus.TIME_LIMIT_FEASIBLE
        )
        self.check_valid(model, result)
        result.raise_for_status()

    def test_node_failure_keeps_incumbent(self) -> None:
        model = make_model(
            make_problem(SMALL_TEACHERS, SMALL_CHOICES),
            overall_objective="happiness - 2 * sqrt(load)",
            assignments_to_load="num_assigned",
        )
        real_optimize = model.optimize
        n_calls = [0]

        def fail_after_first(*args, **kwargs) -> OptimizationStatus:
            n_calls[0] += 1
            if n_calls[0] == 1:
                return real_optimize(*args, **kwargs)
            return OptimizationStatus.ERROR

        with mock.patch.object(
            model, "optimize", side_effect=fail_after_first
        ):
            result = solve(model)
        self.assertGreater(result.n_solves, 1)
        self.assertEqual(result.status, SolveStatus.TIME_LIMIT_FEASIBLE)
        self.assertIn("ERROR", result.message)
        self.check_valid(model, result)

    def test_debug_report_after_branch_and_bound(self) -> None:
        model = make_model(
            make_problem(SMALL_TEACHERS, SMALL_CHOICES),
            overall_objective="happiness - 2 * sqrt(load)",
            assignments_to_load="num_assigned",
        )
        config = AllocationConfig(
            optimizer_time_limit_s=60, silent=True, debug_model=True
        )
        with mock.patch.object(model, "report") as report:
            with self.assertLogs(
                "uniadmin_tools.allocation_solver", level=logging.INFO
            ) as logs:
                result = solve_allocation(model, config)
        # The model is dumped before solving; its final solution is that of
        # the last node, so the incumbent is logged instead.
        report.assert_called_once_with()
        expected = f"Best allocation found:\n{result.solution}"
        self.assertTrue(any(expected in line for line in logs.output))

    def test_unreadable_solution_is_solver_error(self) -> None:
        model = make_model(make_problem(SMALL_TEACHERS, SMALL_CHOICES))
        self.assertEqual(solve(model).status, SolveStatus.OPTIMAL)
        # No variable can reach the threshold for "allocated".
        with mock.patch("uniadmin_tools.allocation_model.ALMOST_ONE", 2.0):
            with self.assertRaises(SolverError) as cm:
                model.extract_assignment()
            self.assertEqual(cm.exception.status, SolveStatus.SOLVER_ERROR)
            for objective in [
                DEFAULT_OVERALL_OBJECTIVE,
                "happiness - 2 * sqrt(load)",
            ]:
                with self.subTest(objective=objective):
                    result = solve(
                        make_model(
                            make_problem(SMALL_TEACHERS, SMALL_CHOICES),
                            overall_objective=objective,
                        )
                    )
                    self.assertEqual(result.status, SolveStatus.SOLVER_ERROR)
                    self.assertIsNone(result.solution)

    def test_load_matters(self) -> None:
        # Two students both prefer project 1 but a steep load makes splitting
        # them better.
        model = make_model(
            make_problem(["Dr A", "Dr B"], [[1, 2], [1, 2]]),
            rank_to_happiness="3 - ranking",
            assignments_to_load="10 * num_assigned^2",
            overall_objective="happiness - load",
        )
        result = solve(model)
        self.assertEqual(result.status, SolveStatus.OPTIMAL)
        self.assertEqual(sorted(result.solution.ranks()), [1, 2])

    def test_raise_for_status(self) -> None:
        AllocationResult(status=SolveStatus.OPTIMAL).raise_for_status()
        with self.assertRaises(SolverError) as cm:
            AllocationResult(status=SolveStatus.INFEASIBLE).raise_for_status()
        self.assertEqual(cm.exception.status, SolveStatus.INFEASIBLE)
        self.assertRaises(
            SolverError,
            AllocationResult(status=SolveStatus.SOLVER_ERROR).raise_for_status,
        )


# =============================================================================
# Output
# =============================================================================


class OutputTests(unittest.TestCase):
    def test_write_csv_and_xlsx(self) -> None:
        model = make_model(make_problem(SMALL_TEACHERS, SMALL_CHOICES))
        solution = solve(model).solution
        with tempfile.TemporaryDirectory() as tmpdir:
            csv_filename = os.path.join(tmpdir, "out.csv")
            solution.write_data(csv_filename)
            with open(csv_filename) as f:
                lines = f.read().splitlines()
            self.assertEqual(len(lines), 1 + len(SMALL_CHOICES))
            self.assertTrue(lines[0].startswith("Student_name,"))

            xlsx_filename = os.path.join(tmpdir, "out.xlsx")
            solution.write_data(xlsx_filename)
            self.assertTrue(os.path.getsize(xlsx_filename) > 0)

            with self.assertRaises(ValueError):
                solution.write_data(os.path.join(tmpdir, "out.txt"))

    def test_allocate_from_files(self) -> None:
        testdata = os.path.join(
            os.path.dirname(os.path.dirname(os.path.realpath(__file__))),
            "testdata",
        )
        with tempfile.TemporaryDirectory() as tmpdir:
            output = os.path.join(tmpdir, "project_allocations.csv")
            config = AllocationConfig(
                choices_filename=os.path.join(testdata, "test1_choices.csv"),
                projects_filename=os.path.join(
                    testdata, "test1_projects.csv"
                ),
                output_filename=output,
                optimizer_time_limit_s=60,
                silent=True,
            )
            solution = allocate(config)
            self.assertEqual(len(solution.allocation), 8)
            self.assertTrue(os.path.exists(output))

    def test_allocate_infeasible(self) -> None:
        testdata = os.path.join(
            os.path.dirname(os.path.dirname(os.path.realpath(__file__))),
            "testdata",
        )
        config = AllocationConfig(
            choices_filename=os.path.join(
                testdata, "test3_infeasible_choices.csv"
            ),
            projects_filename=os.path.join(
                testdata, "test3_infeasible_projects.csv"
            ),
            output_filename=None,
            max_students_per_project=2,
            silent=True,
        )
        self.assertRaises(CapacityInfeasibleError, allocate, config)
