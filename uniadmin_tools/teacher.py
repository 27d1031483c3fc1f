#!/usr/bin/env python

"""
uniadmin_tools/teacher.py

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

Teacher class.

"""

from cardinal_pythonlib.reprfunc import auto_repr


# =============================================================================
# Teacher
# =============================================================================


class Teacher:
    """
    Simple representation of a teacher, who owns one or more projects.
    """

    def __init__(self, name: str, number: int) -> None:
        """
        Args:
            name:
                Teacher name.
            number:
                Teacher number (cosmetic only: order of first appearance in
                the projects file).
        """
        assert name, "Missing teacher name"
        assert number >= 1, "Bad teacher number"
        self.name = name
        self.number = number

    def __str__(self) -> str:
        """
        String representation.
        """
        return f"{self.name} (T#{self.number})"

    def __repr__(self) -> str:
        return auto_repr(self)

    def __lt__(self, other: "Teacher") -> bool:
        """
        Comparison for sorting, used for console display.
        Default sort is by case-insensitive name.
        """
        return self.name.lower() < other.name.lower()
