#!/usr/bin/env python

"""
uniadmin_tools/student.py

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

Student class.

"""

from typing import List, Optional, Sequence, Tuple, TYPE_CHECKING

from cardinal_pythonlib.reprfunc import auto_repr

if TYPE_CHECKING:
    from uniadmin_tools.project import Project


# =============================================================================
# Student
# =============================================================================


class Student(object):
    """
    Represents a single student, with their ranked project choices.
    """

    def __init__(
        self, name: str, number: int, choices: Sequence["Project"]
    ) -> None:
        """
        Args:
            name:
                Student's name.
            number:
                Row number of student (cosmetic only).
            choices:
                Projects in order of preference, most preferred first. May
                be shorter than the number of projects (or even empty).
        """
        assert name, "Missing student name"
        assert len(set(choices)) == len(choices), (
            f"Student {name!r} has chosen the same project more than once"
        )
        self.name = name
        self.number = number
        self.choices = tuple(choices)  # type: Tuple[Project, ...]

    def __str__(self) -> str:
        """
        String representation.
        """
        return f"{self.name} (St#{self.number})"

    def __repr__(self) -> str:
        return auto_repr(self)

    def description(self) -> str:
        """
        Verbose description.
        """
        choices = ", ".join(
            f"{rank}: {p}" for rank, p in enumerate(self.choices, start=1)
        )
        return f"{self}: {{{choices}}}"

    def __lt__(self, other: "Student") -> bool:
        """
        Comparison for sorting, used for console display.
        Default sort is by case-insensitive name.
        """
        return self.name.lower() < other.name.lower()

    def ranked_projects(self) -> List["Project"]:
        """
        The projects the student ranked, most preferred first.
        """
        return list(self.choices)

    def rank_of(self, project: "Project") -> Optional[int]:
        """
        The student's rank for this project (1 = most preferred), or ``None``
        if they didn't rank it.
        """
        try:
            return self.choices.index(project) + 1
        except ValueError:
            return None

    def explicitly_ranked_project(self, project: "Project") -> bool:
        """
        Did the student explicitly rank this project?
        """
        return project in self.choices
