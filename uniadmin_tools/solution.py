#!/usr/bin/env python

"""
uniadmin_tools/solution.py

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

Solution class: an allocation of students to projects, and everything that
can be worked out from it alone.

"""

from collections import Counter
import csv
import datetime
import logging
import os
from statistics import mean, median
import sys
from typing import Dict, Generator, List, Tuple, TYPE_CHECKING

from cardinal_pythonlib.cmdline import cmdline_quote
from openpyxl.workbook.workbook import Workbook

from uniadmin_tools.constants import (
    CsvHeadings,
    EXT_CSV,
    EXT_XLSX,
    SheetHeadings,
    SheetNames,
    SolveStatus,
)
from uniadmin_tools.expression import ExpressionFunction
from uniadmin_tools.helperfunc import (
    autosize_openpyxl_column,
    autosize_openpyxl_worksheet_columns,
    bold_cell,
    bold_first_row,
)
from uniadmin_tools.project import Project
from uniadmin_tools.project_popularity import ProjectPopularity
from uniadmin_tools.student import Student
from uniadmin_tools.teacher import Teacher
from uniadmin_tools.version import VERSION, VERSION_DATE

if TYPE_CHECKING:
    from uniadmin_tools.problem import Problem

log = logging.getLogger(__name__)


# =============================================================================
# Solution
# =============================================================================


class Solution:
    """
    Represents a potential solution. All scores are recomputed from the
    allocation itself (never taken from the solver).
    """

    def __init__(
        self,
        problem: "Problem",
        allocation: Dict[Student, Project],
        rank_to_happiness: ExpressionFunction,
        assignments_to_load: ExpressionFunction,
        overall_objective: ExpressionFunction,
        status: SolveStatus = None,
    ) -> None:
        """
        Args:
            problem:
                The :class:`Problem`, defining projects and students.
            allocation:
                The mapping of students to projects.
            rank_to_happiness:
                Compiled formula, as used to solve.
            assignments_to_load:
                Compiled formula, as used to solve.
            overall_objective:
                Compiled formula, as used to solve.
            status:
                How the solver finished, if known.
        """
        self.problem = problem
        self.allocation = allocation
        self.rank_to_happiness = rank_to_happiness
        self.assignments_to_load = assignments_to_load
        self.overall_objective = overall_objective
        self.status = status

    # -------------------------------------------------------------------------
    # Representations
    # -------------------------------------------------------------------------

    def __str__(self) -> str:
        """
        String representation.
        """
        lines = ["Solution:"]
        for student, project in self._gen_student_project_pairs():
            lines.append(
                f"{student} -> {project} "
                f"(rank {self.rank(student)}; "
                f"happiness {self.happiness(student)})"
            )
        lines.append(
            f"Total happiness {self.total_happiness()}; "
            f"total load {self.total_load()}; "
            f"objective {self.objective_value()}"
        )
        return "\n".join(lines)

    def shortdesc(self) -> str:
        """
        Very short description. Ordered by student number.
        """
        students = sorted(self.allocation.keys(), key=lambda s: s.number)
        parts = [f"{s.number}: {self.allocation[s].number}" for s in students]
        return "{" + ", ".join(parts) + "}" + f", ranks {self.ranks()}"

    # -------------------------------------------------------------------------
    # Allocations
    # -------------------------------------------------------------------------

    def allocated_project(self, student: Student) -> Project:
        """
        Which project was allocated to this student?
        """
        return self.allocation[student]

    def allocated_students(self, project: Project) -> List[Student]:
        """
        Which students were allocated to this project?
        """
        return sorted(k for k, v in self.allocation.items() if v == project)

    def _gen_student_project_pairs(
        self,
    ) -> Generator[Tuple[Student, Project], None, None]:
        """
        Generates ``student, project`` pairs in student order.
        """
        students = sorted(self.allocation.keys(), key=lambda s: s.number)
        for student in students:
            project = self.allocation[student]
            yield student, project

    def n_students_allocated_to_project(self, project: Project) -> int:
        """
        How many students is this project allocated?
        """
        return sum(1 for p in self.allocation.values() if p is project)

    def n_students_allocated_to_teacher(self, teacher: Teacher) -> int:
        """
        How many students is this teacher allocated?
        """
        return sum(
            self.n_students_allocated_to_project(project)
            for project in self.problem.projects_of(teacher)
        )

    def check_constraints(
        self, max_students_per_project: int, max_students_per_teacher: int
    ) -> None:
        """
        Checks that every student is allocated exactly once, to a project they
        ranked, and that no project or teacher is over capacity.

        Raises:
            :exc:`AssertionError` on failure (which would be a bug).
        """
        assert sorted(self.allocation.keys(), key=lambda s: s.number) == (
            self.problem.sorted_students()
        ), "Students missing from, or duplicated in, the allocation"
        for student, project in self.allocation.items():
            assert student.explicitly_ranked_project(project), (
                f"{student} allocated to unranked project {project}"
            )
        for project in self.problem.projects:
            n = self.n_students_allocated_to_project(project)
            assert n <= max_students_per_project, (
                f"{project} has {n} students; maximum is "
                f"{max_students_per_project}"
            )
        for teacher in self.problem.teachers:
            n = self.n_students_allocated_to_teacher(teacher)
            assert n <= max_students_per_teacher, (
                f"{teacher} has {n} students; maximum is "
                f"{max_students_per_teacher}"
            )

    # -------------------------------------------------------------------------
    # Scores
    # -------------------------------------------------------------------------

    def rank(self, student: Student) -> int:
        """
        The student's rank of the project they were allocated.
        """
        rank = student.rank_of(self.allocation[student])
        assert rank is not None, f"{student} allocated to an unranked project"
        return rank

    def ranks(self) -> List[int]:
        """
        All ranks, in student order.
        """
        return [self.rank(s) for s in self.problem.sorted_students()]

    def happiness_for_rank(self, rank: int) -> float:
        return self.rank_to_happiness(ranking=rank)

    def happiness(self, student: Student) -> float:
        """
        How happy is this student with their allocation?
        """
        return self.happiness_for_rank(self.rank(student))

    def total_happiness(self) -> float:
        return sum(self.happiness(s) for s in self.problem.students)

    def load(self, project: Project) -> float:
        """
        How loaded is this project?
        """
        return self.assignments_to_load(
            num_assigned=self.n_students_allocated_to_project(project)
        )

    def total_load(self) -> float:
        return sum(self.load(p) for p in self.problem.projects)

    def objective_value(self) -> float:
        """
        The overall objective (the thing that was maximized), recomputed from
        the allocation.
        """
        return self.overall_objective(
            happiness=self.total_happiness(), load=self.total_load()
        )

    def rank_counts(self) -> Dict[int, int]:
        """
        Number of students getting their first choice, second choice, etc.
        """
        return dict(sorted(Counter(self.ranks()).items()))

    def rank_mean(self) -> float:
        return mean(self.ranks())

    def rank_median(self) -> float:
        return median(self.ranks())

    def rank_min(self) -> int:
        return min(self.ranks())

    def rank_max(self) -> int:
        return max(self.ranks())

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------

    def write_data(self, filename: str) -> None:
        """
        Autodetects the file type from the extension and writes data to that
        file.
        """
        _, ext = os.path.splitext(filename)
        ext = ext.lower()
        if ext == EXT_CSV:
            self.write_student_csv(filename)
        elif ext == EXT_XLSX:
            self.write_xlsx(filename)
        else:
            raise ValueError(
                f"Don't know how to write file type {ext!r} for {filename!r}"
            )

    def write_student_csv(self, filename: str) -> None:
        """
        Writes the "per student" mapping to a CSV file.
        """
        log.info(f"Writing student allocation data to: {filename}")
        with open(filename, "w", newline="") as file:
            writer = csv.writer(file)
            writer.writerow(
                [
                    CsvHeadings.STUDENT_NAME,
                    CsvHeadings.PROJECT_NUMBER,
                    CsvHeadings.PROJECT_NAME,
                    CsvHeadings.TEACHER_NAME,
                    CsvHeadings.RANK,
                    CsvHeadings.HAPPINESS,
                ]
            )
            for student, project in self._gen_student_project_pairs():
                writer.writerow(
                    [
                        student.name,
                        project.number,
                        project.title,
                        project.teacher.name,
                        self.rank(student),
                        self.happiness(student),
                    ]
                )

    def write_xlsx(self, filename: str) -> None:
        """
        Writes the solution to an Excel XLSX file.

        Args:
            filename:
                Name of file to write.
        """
        log.info(f"Writing output to: {filename}")
        problem = self.problem
        wb = Workbook()
        wb.remove(wb.worksheets[0])

        # ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
        # Allocations, by student
        # ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
        ss = wb.create_sheet(SheetNames.STUDENT_ALLOCATIONS)
        ss.append(
            [
                SheetHeadings.STUDENT,
                SheetHeadings.PROJECT_NUMBER,
                SheetHeadings.PROJECT,
                SheetHeadings.TEACHER,
                SheetHeadings.STUDENT_RANK,
                SheetHeadings.HAPPINESS,
            ]
        )
        for student, project in self._gen_student_project_pairs():
            ss.append(
                [
                    student.name,
                    project.number,
                    project.title,
                    project.teacher.name,
                    self.rank(student),
                    self.happiness(student),
                ]
            )
        autosize_openpyxl_worksheet_columns(ss)
        bold_first_row(ss)

        # ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
        # Allocations, by project
        # ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
        ps = wb.create_sheet(SheetNames.PROJECT_ALLOCATIONS)
        ps.append(
            [
                SheetHeadings.PROJECT_NUMBER,
                SheetHeadings.PROJECT,
                SheetHeadings.TEACHER,
                SheetHeadings.N_STUDENTS_ALLOCATED,
                SheetHeadings.LOAD,
                SheetHeadings.STUDENTS,
                "Students' rank(s) of allocated project",
            ]
        )
        for project in problem.sorted_projects():
            students = self.allocated_students(project)
            ps.append(
                [
                    project.number,
                    project.title,
                    project.teacher.name,
                    len(students),
                    self.load(project),
                    ", ".join(s.name for s in students),
                    ", ".join(str(self.rank(s)) for s in students),
                ]
            )
        autosize_openpyxl_worksheet_columns(ps)
        bold_first_row(ps)

        # ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
        # Allocations, by teacher
        # ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
        ts = wb.create_sheet(SheetNames.TEACHER_ALLOCATIONS)
        ts.append(
            [
                SheetHeadings.TEACHER,
                SheetHeadings.N_STUDENTS_ALLOCATED,
                SheetHeadings.STUDENTS,
            ]
        )
        for teacher in problem.sorted_teachers():
            students = [
                s
                for p in problem.projects_of(teacher)
                for s in self.allocated_students(p)
            ]
            ts.append(
                [
                    teacher.name,
                    self.n_students_allocated_to_teacher(teacher),
                    ", ".join(s.name for s in students),
                ]
            )
        autosize_openpyxl_worksheet_columns(ts)
        bold_first_row(ts)

        # ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
        # Popularity of projects
        # ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
        pp = wb.create_sheet(SheetNames.PROJECT_POPULARITY)
        pp.append(ProjectPopularity.headings())
        popularities = [
            ProjectPopularity(project, self) for project in problem.projects
        ]
        ProjectPopularity.sort_and_assign_ranks(popularities)
        for projpop in popularities:
            pp.append(projpop.values())
        autosize_openpyxl_column(pp, 1)  # the teacher column
        autosize_openpyxl_column(pp, 7)  # the student column
        bold_first_row(pp)

        # ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
        # Software, settings, and summary information
        # ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
        zs = wb.create_sheet(SheetNames.INFORMATION)
        status = self.status.value if self.status else "(unknown)"
        zs_rows = [
            ["SOFTWARE DETAILS"],
            [],
            ["Software", "uniadmin_tools"],
            ["Version", VERSION],
            ["Version date", VERSION_DATE],
            [],
            ["RUN INFORMATION"],
            [],
            ["Date/time", datetime.datetime.now()],
            ["Command-line parameters", cmdline_quote(sys.argv)],
            ["Config", str(problem.config)],
            ["Rank to happiness", self.rank_to_happiness.formula],
            ["Assignments to load", self.assignments_to_load.formula],
            ["Overall objective", self.overall_objective.formula],
            ["Solver status", status],
            [],
            ["SUMMARY STATISTICS"],
            [],
            ["Total happiness", self.total_happiness()],
            ["Total load", self.total_load()],
            ["Overall objective value", self.objective_value()],
            ["Student rank median", self.rank_median()],
            ["Student rank mean", self.rank_mean()],
            ["Student rank minimum", self.rank_min()],
            ["Student rank maximum", self.rank_max()],
        ]
        for rank, count in self.rank_counts().items():
            zs_rows.append([f"Number of students given choice {rank}", count])
        for row in zs_rows:
            zs.append(row)
        autosize_openpyxl_column(zs, 0)
        zs.column_dimensions["B"].width = 20
        bold_first_row(zs)
        bold_cell(zs["A7"])
        bold_cell(zs["A17"])

        wb.save(filename)
        wb.close()
