#!/usr/bin/env python

"""
uniadmin_tools/projalloc.py

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

Command-line entry point for project allocation.

"""

import argparse
import logging
import sys
import traceback

from cardinal_pythonlib.argparse_func import (
    RawDescriptionArgumentDefaultsHelpFormatter,
)
from cardinal_pythonlib.logs import main_only_quicksetup_rootlogger
from cardinal_pythonlib.cmdline import cmdline_quote

from uniadmin_tools.allocation_model import AllocationModel
from uniadmin_tools.allocation_solver import solve_allocation
from uniadmin_tools.config import AllocationConfig
from uniadmin_tools.constants import (
    DEFAULT_ALLOCATION_OUTPUT,
    DEFAULT_ASSIGNMENTS_TO_LOAD,
    DEFAULT_MAX_STUDENTS_PER_PROJECT,
    DEFAULT_MAX_STUDENTS_PER_TEACHER,
    DEFAULT_OPTIMIZER_TIME_LIMIT_S,
    DEFAULT_OVERALL_OBJECTIVE,
    DEFAULT_RANK_TO_HAPPINESS,
    EXIT_FAILURE,
    ExpressionContext,
    INPUT_TYPES_SUPPORTED,
    OUTPUT_TYPES_SUPPORTED,
)
from uniadmin_tools.errors import UniAdminError
from uniadmin_tools.expression import compile_expression
from uniadmin_tools.problem import Problem
from uniadmin_tools.solution import Solution

log = logging.getLogger(__name__)


# =============================================================================
# Allocation
# =============================================================================


def allocate(config: AllocationConfig) -> Solution:
    """
    Reads the problem, compiles the formulas, solves, and writes the output.

    Raises:
        :exc:`UniAdminError` or :exc:`ValueError` on failure
    """
    # Compile all formulas before reading data, so a typo fails fast.
    rank_to_happiness = compile_expression(
        config.rank_to_happiness, ExpressionContext.RANK_TO_HAPPINESS
    )
    assignments_to_load = compile_expression(
        config.assignments_to_load, ExpressionContext.ASSIGNMENTS_TO_LOAD
    )
    overall_objective = compile_expression(
        config.overall_objective, ExpressionContext.OVERALL_OBJECTIVE
    )

    problem = Problem.read_data(config)
    if config.output_filename:
        log.debug(problem)
    else:
        log.info(problem)

    model = AllocationModel(
        problem=problem,
        rank_to_happiness=rank_to_happiness,
        assignments_to_load=assignments_to_load,
        overall_objective=overall_objective,
        max_students_per_project=config.max_students_per_project,
        max_students_per_teacher=config.max_students_per_teacher,
    )
    log.info(str(model))
    result = solve_allocation(model, config)
    result.raise_for_status()

    solution = result.solution
    solution.check_constraints(
        max_students_per_project=config.max_students_per_project,
        max_students_per_teacher=config.max_students_per_teacher,
    )
    if config.output_filename:
        log.debug(solution)
        solution.write_data(config.output_filename)
    else:
        log.info(solution)
        log.warning("Output not saved. Specify the --output option for that.")
    return solution


# =============================================================================
# main
# =============================================================================


def main() -> None:
    """
    Command-line entry point.
    """
    # noinspection PyTypeChecker
    parser = argparse.ArgumentParser(
        formatter_class=RawDescriptionArgumentDefaultsHelpFormatter,
        description=f"""
Allocate students to projects, maximizing an objective built from formulas
that you supply.

Both input files have NO header row.

    --projects:
        One project per row. Column 1: teacher's name. Column 2: project
        name. The row number (starting at 1) is the project number.
    Format:
        Dr Smith        Proteins in yeast
        Dr Smith        Proteins in mice
        Dr Jones        Neurons in culture
        ...             ...

    --choices:
        One student per row. Column 1: student's name. Subsequent columns:
        project numbers, most preferred first. Students may list fewer
        projects than others. Students are only ever allocated to a
        project they have listed.
    Format:
        Miss Smith      3       1       2
        Mr Jones        1       3
        ...             ...     ...     ...

Formulas may use numbers, + - * / ^ (or **), parentheses, the constants pi
and e, and the functions exp, log, log2, log10, sqrt, abs, min, max, pow,
floor, ceil. Variables:

    --rank_to_happiness:    {', '.join(ExpressionContext.RANK_TO_HAPPINESS.value)}
    --assignments_to_load:  {', '.join(ExpressionContext.ASSIGNMENTS_TO_LOAD.value)}
    --overall_objective:    {', '.join(ExpressionContext.OVERALL_OBJECTIVE.value)}

"happiness" is the total of all students' happiness; "load" is the total of
all projects' load. The overall objective is maximized.

""",  # noqa
    )
    parser.add_argument("--verbose", action="store_true", help="Be verbose")

    file_group = parser.add_argument_group("Files")
    file_group.add_argument(
        "--choices",
        type=str,
        required=True,
        help="Student choices file. "
        "Input file types supported: " + str(INPUT_TYPES_SUPPORTED),
    )
    file_group.add_argument(
        "--projects",
        type=str,
        required=True,
        help="Projects file. "
        "Input file types supported: " + str(INPUT_TYPES_SUPPORTED),
    )
    file_group.add_argument(
        "--output",
        type=str,
        default=DEFAULT_ALLOCATION_OUTPUT,
        help="Filename to write output to. "
        "Output types supported: " + str(OUTPUT_TYPES_SUPPORTED),
    )

    method_group = parser.add_argument_group("Method")
    method_group.add_argument(
        "--overall_objective",
        type=str,
        default=DEFAULT_OVERALL_OBJECTIVE,
        help="Formula to maximize, in terms of 'happiness' and 'load'",
    )
    method_group.add_argument(
        "--rank_to_happiness",
        type=str,
        default=DEFAULT_RANK_TO_HAPPINESS,
        help="Formula for a student's happiness, in terms of 'ranking' "
        "(1 = top choice)",
    )
    method_group.add_argument(
        "--assignments_to_load",
        type=str,
        default=DEFAULT_ASSIGNMENTS_TO_LOAD,
        help="Formula for a project's load, in terms of 'num_assigned'",
    )
    method_group.add_argument(
        "--max_students_per_project",
        type=int,
        default=DEFAULT_MAX_STUDENTS_PER_PROJECT,
        help="Maximum number of students allocated to any one project",
    )
    method_group.add_argument(
        "--max_students_per_teacher",
        type=int,
        default=DEFAULT_MAX_STUDENTS_PER_TEACHER,
        help="Maximum number of students allocated to any one teacher, "
        "across all their projects",
    )

    technical_group = parser.add_argument_group("Technicalities")
    technical_group.add_argument(
        "--optimizer_time_limit",
        type=float,
        default=DEFAULT_OPTIMIZER_TIME_LIMIT_S,
        help="Maximum time (in seconds) to run the optimizer for",
    )
    technical_group.add_argument(
        "--silent",
        action="store_true",
        help="Suppress the optimizer's progress output",
    )
    technical_group.add_argument(
        "--debug_model",
        action="store_true",
        help="Report the details of the MIP model before solving.",
    )

    args = parser.parse_args()
    main_only_quicksetup_rootlogger(
        level=logging.DEBUG if args.verbose else logging.INFO
    )

    config = AllocationConfig(
        choices_filename=args.choices,
        projects_filename=args.projects,
        output_filename=args.output,
        overall_objective=args.overall_objective,
        rank_to_happiness=args.rank_to_happiness,
        assignments_to_load=args.assignments_to_load,
        optimizer_time_limit_s=args.optimizer_time_limit,
        max_students_per_project=args.max_students_per_project,
        max_students_per_teacher=args.max_students_per_teacher,
        silent=args.silent,
        debug_model=args.debug_model,
        cmd_args=vars(args),
    )
    log.info(f"Command: {cmdline_quote(sys.argv)}")
    log.info(f"Config: {config}")
    try:
        allocate(config)
    except (UniAdminError, ValueError) as e:
        log.critical(str(e))
        sys.exit(EXIT_FAILURE)


if __name__ == "__main__":
    try:
        main()
    except Exception as _top_level_exception:
        log.critical(str(_top_level_exception))
        log.critical(traceback.format_exc())
        sys.exit(EXIT_FAILURE)
