#!/usr/bin/env python

"""
uniadmin_tools/project.py

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

Project class.

"""

from cardinal_pythonlib.reprfunc import auto_repr

from uniadmin_tools.teacher import Teacher


# =============================================================================
# Project
# =============================================================================


class Project(object):
    """
    Simple representation of a project.
    """

    def __init__(self, title: str, number: int, teacher: Teacher) -> None:
        """
        Args:
            title:
                Project name.
            number:
                Project number: its (1-based) row in the projects file, which
                is how students refer to it.
            teacher:
                The project's owner.
        """
        assert title, "Missing project name"
        assert number >= 1, "Bad project number"
        self.title = title
        self.number = number
        self.teacher = teacher

    def __str__(self) -> str:
        """
        String representation.
        """
        return f"{self.title} (P#{self.number})"

    def __repr__(self) -> str:
        return auto_repr(self)

    def __lt__(self, other: "Project") -> bool:
        """
        Comparison for sorting, used for console display.
        Default sort is by case-insensitive name.
        """
        return self.title.lower() < other.title.lower()

    def description(self) -> str:
        """
        Describes the project.
        """
        return f"{self} [teacher: {self.teacher}]"

    def is_owned_by(self, teacher: Teacher) -> bool:
        """
        Is this project run by this particular teacher?
        """
        return self.teacher is teacher
