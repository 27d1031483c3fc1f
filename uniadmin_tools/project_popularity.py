#!/usr/bin/env python

"""
uniadmin_tools/project_popularity.py

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

Project popularity class.

"""

import logging
import operator
from typing import Any, List, Optional, Tuple, TYPE_CHECKING

from scipy.stats import rankdata

from uniadmin_tools.project import Project
from uniadmin_tools.student import Student

if TYPE_CHECKING:
    from uniadmin_tools.solution import Solution

log = logging.getLogger(__name__)


# =============================================================================
# ProjectPopularity
# =============================================================================


class ProjectPopularity:
    """
    Represents a project and its popularity information.
    """

    def __init__(self, project: Project, solution: "Solution") -> None:
        self.project = project
        self.solution = solution

        # Popularity: the happiness this project could bring, summed over all
        # students who ranked it.
        problem = solution.problem
        self.choosers = []  # type: List[Tuple[Student, int]]
        self.popularity = 0.0
        for student in problem.students_who_chose(project):
            rank = student.rank_of(project)
            self.choosers.append((student, rank))
            self.popularity += solution.happiness_for_rank(rank)

        self.popularity_rank = None  # type: Optional[float]

    @classmethod
    def headings(cls) -> List[str]:
        return [
            "Project",
            "Teacher",
            "Total happiness score from all students ranking it",
            "Popularity rank",
            "Number of allocated student(s)",
            "Allocated student(s)",
            "Number of students ranking it",
            "Students ranking it (rank)",
        ]

    @classmethod
    def sort_and_assign_ranks(
        cls, popularities: List["ProjectPopularity"]
    ) -> None:
        """
        Modifies a list in place: most popular first, ranked from 1, with
        ties given their average rank.
        """
        popularities.sort(key=lambda x: -x.popularity)
        ranks = rankdata(
            [-x.popularity for x in popularities], method="average"
        )
        for i in range(len(popularities)):
            popularities[i].popularity_rank = float(ranks[i])

    def values(self) -> List[Any]:
        allocated_students = self.solution.allocated_students(self.project)
        student_details = [
            f"{student.name} ({rank})"
            for student, rank in sorted(
                self.choosers, key=operator.itemgetter(1, 0)
            )
        ]
        return [
            self.project.title,
            self.project.teacher.name,
            self.popularity,
            self.popularity_rank,
            len(allocated_students),
            ", ".join(student.name for student in allocated_students),
            len(student_details),
            ", ".join(student_details),
        ]
