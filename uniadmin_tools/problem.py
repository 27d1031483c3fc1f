#!/usr/bin/env python

"""
uniadmin_tools/problem.py

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

Problem class: the students, their choices, the projects and the teachers.

"""

import logging
import os
from typing import Any, Dict, Generator, List, Tuple

from uniadmin_tools.config import AllocationConfig
from uniadmin_tools.constants import EXT_CSV, EXT_XLSX
from uniadmin_tools.helperfunc import (
    is_missing,
    read_csv_rows,
    read_xlsx_rows,
)
from uniadmin_tools.project import Project
from uniadmin_tools.student import Student
from uniadmin_tools.teacher import Teacher

log = logging.getLogger(__name__)


# =============================================================================
# Reading helpers
# =============================================================================


def read_rows(filename: str) -> List[List[Any]]:
    """
    Reads a headerless table from a CSV or XLSX file, autodetecting its
    format.
    """
    _, ext = os.path.splitext(filename)
    ext = ext.lower()
    if ext == EXT_CSV:
        return read_csv_rows(filename)
    elif ext == EXT_XLSX:
        return read_xlsx_rows(filename)
    else:
        raise ValueError(
            f"Don't know how to read file type {ext!r} for {filename!r}"
        )


def cell_to_str(x: Any) -> str:
    """
    Text content of a cell, stripped; empty string for a missing cell.
    """
    if is_missing(x):
        return ""
    return str(x).strip()


def cell_to_project_number(x: Any) -> int:
    """
    Converts a cell to a project number. Raises :exc:`ValueError` if it isn't
    a whole number.
    """
    if isinstance(x, bool):
        raise ValueError(f"Not a project number: {x!r}")
    if isinstance(x, int):
        return x
    if isinstance(x, float):
        if x.is_integer():
            return int(x)
        raise ValueError(f"Not a project number: {x!r}")
    text = str(x).strip()
    try:
        return int(text)
    except ValueError:
        value = float(text)  # may raise ValueError
        if not value.is_integer():
            raise ValueError(f"Not a project number: {x!r}")
        return int(value)


# =============================================================================
# Problem
# =============================================================================


class Problem(object):
    """
    Represents the problem: teachers, their projects, and students with their
    ranked project choices.
    """

    def __init__(
        self,
        teachers: List[Teacher],
        projects: List[Project],
        students: List[Student],
        config: AllocationConfig,
    ) -> None:
        """
        Args:
            teachers:
                List of teachers.
            projects:
                List of projects, in project-number order.
            students:
                List of students (with their project choices).
            config:
                Master config object.
        """
        assert teachers, "No teachers defined!"
        assert projects, "No projects defined!"
        assert students, "No students defined!"
        self.teachers = teachers
        self.projects = projects
        self.students = students
        self.config = config

    # -------------------------------------------------------------------------
    # Representations
    # -------------------------------------------------------------------------

    def __str__(self) -> str:
        """
        We re-sort the output for display purposes.
        """
        teachers = "\n".join(
            f"{t}: {', '.join(str(p) for p in self.projects_of(t))}"
            for t in self.sorted_teachers()
        )
        projects = "\n".join(p.description() for p in self.sorted_projects())
        students = "\n".join(s.description() for s in self.sorted_students())
        return (
            f"Problem:\n"
            f"\n"
            f"- Teachers:\n\n{teachers}\n"
            f"\n"
            f"- Projects:\n\n{projects}\n"
            f"\n"
            f"- Students:\n\n{students}\n"
        )

    # -------------------------------------------------------------------------
    # Information
    # -------------------------------------------------------------------------

    def sorted_teachers(self) -> List[Teacher]:
        """
        Teachers, sorted by number.
        """
        return sorted(self.teachers, key=lambda t: t.number)

    def sorted_students(self) -> List[Student]:
        """
        Students, sorted by number.
        """
        return sorted(self.students, key=lambda s: s.number)

    def sorted_projects(self) -> List[Project]:
        """
        Projects, sorted by number.
        """
        return sorted(self.projects, key=lambda p: p.number)

    def n_teachers(self) -> int:
        """
        Number of teachers.
        """
        return len(self.teachers)

    def n_students(self) -> int:
        """
        Number of students.
        """
        return len(self.students)

    def n_projects(self) -> int:
        """
        Number of projects.
        """
        return len(self.projects)

    def projects_of(self, teacher: Teacher) -> List[Project]:
        """
        All projects owned by this teacher.
        """
        return [p for p in self.projects if p.is_owned_by(teacher)]

    def students_who_chose(self, project: Project) -> List[Student]:
        """
        All students who ranked this project.
        """
        return [
            s for s in self.students if s.explicitly_ranked_project(project)
        ]

    def gen_student_project_pairs_where_student_chose_project(
        self,
    ) -> Generator[Tuple[Student, Project], None, None]:
        """
        Generate ``student, project`` tuples where the student ranked the
        project.
        """
        for s in self.students:
            for p in s.ranked_projects():
                yield s, p

    # -------------------------------------------------------------------------
    # Read data
    # -------------------------------------------------------------------------

    @classmethod
    def read_data(cls, config: AllocationConfig) -> "Problem":
        """
        Reads the projects and choices files (CSV or XLSX, autodetected), and
        returns the :class:`Problem`.
        """
        teachers, projects = cls.read_projects(config.projects_filename)
        students = cls.read_choices(config.choices_filename, projects)
        log.info("... finished reading")
        return Problem(
            teachers=teachers,
            projects=projects,
            students=students,
            config=config,
        )

    @staticmethod
    def read_projects(filename: str) -> Tuple[List[Teacher], List[Project]]:
        """
        Reads a headerless projects table: column 0 is the teacher's name,
        column 1 the project's name. The (1-based) row number is the project
        number.
        """
        log.info(f"Reading projects from: {filename}")
        teachers = []  # type: List[Teacher]
        name_to_teacher = {}  # type: Dict[str, Teacher]
        projects = []  # type: List[Project]
        for row_number, row in enumerate(read_rows(filename), start=1):
            if len(row) < 2:
                raise ValueError(
                    f"Row {row_number} of projects file {filename!r} should "
                    f"have two columns (teacher name, project name); "
                    f"got {row!r}"
                )
            teacher_name = cell_to_str(row[0])
            project_name = cell_to_str(row[1])
            if not teacher_name:
                raise ValueError(
                    f"Missing teacher name in projects file {filename!r}, "
                    f"row {row_number}"
                )
            if not project_name:
                raise ValueError(
                    f"Missing project name in projects file {filename!r}, "
                    f"row {row_number}"
                )
            teacher = name_to_teacher.get(teacher_name)
            if teacher is None:
                teacher = Teacher(name=teacher_name, number=len(teachers) + 1)
                name_to_teacher[teacher_name] = teacher
                teachers.append(teacher)
            projects.append(
                Project(title=project_name, number=row_number, teacher=teacher)
            )
        if not projects:
            raise ValueError(f"No projects defined in {filename!r}")
        log.info(
            f"Number of projects: {len(projects)}; "
            f"number of teachers: {len(teachers)}"
        )
        return teachers, projects

    @staticmethod
    def read_choices(
        filename: str, projects: List[Project]
    ) -> List[Student]:
        """
        Reads a headerless choices table: column 0 is the student's name,
        and subsequent columns are project numbers in order of preference.
        Blank cells are skipped, so a student may rank fewer projects than
        there are columns.
        """
        log.info(f"Reading student choices from: {filename}")
        n_projects = len(projects)
        students = []  # type: List[Student]
        student_names = set()
        for row_number, row in enumerate(read_rows(filename), start=1):
            student_name = cell_to_str(row[0]) if row else ""
            if not student_name:
                raise ValueError(
                    f"Missing student name in choices file {filename!r}, "
                    f"row {row_number}"
                )
            if student_name in student_names:
                raise ValueError(
                    f"Duplicate student name in choices file {filename!r}, "
                    f"row {row_number}: {student_name!r}"
                )
            choices = []  # type: List[Project]
            for cell in row[1:]:
                if is_missing(cell):
                    continue
                try:
                    project_number = cell_to_project_number(cell)
                except ValueError:
                    raise ValueError(
                        f"Bad project number for student {student_name!r} in "
                        f"choices file {filename!r}, row {row_number}: "
                        f"{cell!r}"
                    )
                if not 1 <= project_number <= n_projects:
                    raise ValueError(
                        f"Unknown project number for student "
                        f"{student_name!r} in choices file {filename!r}, "
                        f"row {row_number}: {project_number} (projects are "
                        f"numbered 1 to {n_projects})"
                    )
                project = projects[project_number - 1]
                if project in choices:
                    raise ValueError(
                        f"Student {student_name!r} (choices file "
                        f"{filename!r}, row {row_number}) has chosen project "
                        f"{project_number} more than once"
                    )
                choices.append(project)
            student_names.add(student_name)
            students.append(
                Student(name=student_name, number=row_number, choices=choices)
            )
        if not students:
            raise ValueError(f"No students defined in {filename!r}")
        log.info(f"Number of students: {len(students)}")
        return students
