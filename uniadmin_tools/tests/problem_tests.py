#!/usr/bin/env python

"""
uniadmin_tools/tests/problem_tests.py

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

Tests reading allocation problems from files.

"""

import os
import tempfile
import unittest
from typing import Any, List

from openpyxl import Workbook

from uniadmin_tools.config import AllocationConfig
from uniadmin_tools.problem import cell_to_project_number, Problem

THISDIR = os.path.dirname(os.path.realpath(__file__))
TESTDATA = os.path.join(os.path.dirname(THISDIR), "testdata")

PROJECTS_CSV = """Dr Smith,Proteins in yeast
Dr Smith,Proteins in mice
Dr Jones,Neurons in culture
"""


class ProblemReadingTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.tmpdir = self._tmpdir.name

    def tearDown(self) -> None:
        self._tmpdir.cleanup()

    def write(self, name: str, content: str) -> str:
        filename = os.path.join(self.tmpdir, name)
        with open(filename, "w") as f:
            f.write(content)
        return filename

    def write_xlsx(self, name: str, rows: List[List[Any]]) -> str:
        filename = os.path.join(self.tmpdir, name)
        wb = Workbook()
        ws = wb.active
        for row in rows:
            ws.append(row)
        wb.save(filename)
        return filename

    def read(self, choices_csv: str) -> Problem:
        return Problem.read_data(
            AllocationConfig(
                choices_filename=self.write("choices.csv", choices_csv),
                projects_filename=self.write("projects.csv", PROJECTS_CSV),
            )
        )

    def test_read_csv(self) -> None:
        problem = self.read("Alice,3,1\nBob,2,,1\nCharlie,1\n")
        self.assertEqual(problem.n_projects(), 3)
        self.assertEqual(problem.n_teachers(), 2)
        self.assertEqual(problem.n_students(), 3)
        smith, jones = problem.teachers
        self.assertEqual(smith.name, "Dr Smith")
        self.assertEqual(
            [p.number for p in problem.projects_of(smith)], [1, 2]
        )
        self.assertEqual(problem.projects[2].teacher, jones)
        alice, bob, charlie = problem.students
        self.assertEqual([p.number for p in alice.choices], [3, 1])
        # Blank cells are skipped.
        self.assertEqual([p.number for p in bob.choices], [2, 1])
        self.assertEqual(charlie.rank_of(problem.projects[0]), 1)
        self.assertIsNone(charlie.rank_of(problem.projects[1]))
        self.assertEqual(
            len(problem.students_who_chose(problem.projects[0])), 3
        )

    def test_read_xlsx(self) -> None:
        config = AllocationConfig(
            choices_filename=self.write_xlsx(
                "choices.xlsx", [["Alice", 2, 1], ["Bob", 1.0]]
            ),
            projects_filename=self.write_xlsx(
                "projects.xlsx", [["Dr A", "P1"], ["Dr B", "P2"]]
            ),
        )
        problem = Problem.read_data(config)
        self.assertEqual(problem.n_students(), 2)
        self.assertEqual(
            [p.title for p in problem.students[0].choices], ["P2", "P1"]
        )
        self.assertEqual(problem.students[1].choices[0].number, 1)

    def test_testdata(self) -> None:
        problem = Problem.read_data(
            AllocationConfig(
                choices_filename=os.path.join(TESTDATA, "test1_choices.csv"),
                projects_filename=os.path.join(
                    TESTDATA, "test1_projects.csv"
                ),
            )
        )
        self.assertEqual(problem.n_projects(), 5)
        self.assertEqual(problem.n_students(), 8)

    def test_bad_choices(self) -> None:
        for choices in (
            "Alice,4\n",  # no such project
            "Alice,0\n",  # no such project
            "Alice,one\n",  # not a number
            "Alice,1.5\n",  # not a whole number
            "Alice,1,1\n",  # duplicate choice
            "Alice,1\nAlice,2\n",  # duplicate student
            ",1\n",  # no name
        ):
            with self.assertRaises(ValueError, msg=choices):
                self.read(choices)

    def test_bad_projects(self) -> None:
        choices = self.write("choices.csv", "Alice,1\n")
        for projects in (
            "Dr Smith\n",  # too few columns
            ",Project\n",  # no teacher
            "Dr Smith,\n",  # no project name
            "",  # no projects
        ):
            config = AllocationConfig(
                choices_filename=choices,
                projects_filename=self.write("projects.csv", projects),
            )
            with self.assertRaises(ValueError, msg=projects):
                Problem.read_data(config)

    def test_bad_extension(self) -> None:
        config = AllocationConfig(
            choices_filename=self.write("choices.txt", "Alice,1\n"),
            projects_filename=self.write("projects.csv", PROJECTS_CSV),
        )
        with self.assertRaises(ValueError):
            Problem.read_data(config)

    def test_cell_to_project_number(self) -> None:
        self.assertEqual(cell_to_project_number(3), 3)
        self.assertEqual(cell_to_project_number(3.0), 3)
        self.assertEqual(cell_to_project_number(" 7 "), 7)
        self.assertEqual(cell_to_project_number("2.0"), 2)
        for bad in (True, 2.5, "x", "2.5"):
            self.assertRaises(ValueError, cell_to_project_number, bad)
