#!/usr/bin/env python

"""
uniadmin_tools/run_tests.py

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

Run end-to-end tests of the uniadmin_tools command-line programs.
"""

import logging
import os
import sys
import subprocess
from typing import List

from cardinal_pythonlib.cmdline import cmdline_quote
from cardinal_pythonlib.logs import main_only_quicksetup_rootlogger

from uniadmin_tools.constants import EXIT_FAILURE, EXIT_SUCCESS

log = logging.getLogger(__name__)

EXEC = sys.executable
THISDIR = os.path.dirname(os.path.realpath(__file__))
PROJALLOC = os.path.join(THISDIR, "projalloc.py")
SCORERECON = os.path.join(THISDIR, "scorerecon.py")
INPUTDIR = os.path.join(THISDIR, "testdata")
OUTPUTDIR = os.path.join(os.getcwd(), "testoutput")


# =============================================================================
# Tests
# =============================================================================


def run(cmdargs: List[str], expected_exit_code: int = EXIT_SUCCESS) -> None:
    log.warning(cmdline_quote(cmdargs))
    exit_code = subprocess.call(cmdargs)
    if exit_code != expected_exit_code:
        raise RuntimeError(
            f"Exit code was {exit_code}, not {expected_exit_code}, for: "
            f"{cmdline_quote(cmdargs)}"
        )


def allocate(
    stem: str,
    outfile: str,
    other_options: List[str] = None,
    expected_exit_code: int = EXIT_SUCCESS,
) -> None:
    cmdargs = [
        EXEC,
        PROJALLOC,
        "--choices",
        os.path.join(INPUTDIR, f"{stem}_choices.csv"),
        "--projects",
        os.path.join(INPUTDIR, f"{stem}_projects.csv"),
        "--output",
        os.path.join(OUTPUTDIR, outfile),
        "--verbose",
        "--silent",
    ]
    if other_options:
        cmdargs += other_options
    run(cmdargs, expected_exit_code)


def reconcile(
    infile: str,
    stem: str,
    other_options: List[str] = None,
    expected_exit_code: int = EXIT_SUCCESS,
) -> None:
    cmdargs = [
        EXEC,
        SCORERECON,
        os.path.join(INPUTDIR, infile),
        "--output",
        os.path.join(OUTPUTDIR, f"{stem}_candidates.csv"),
        "--scorer_output",
        os.path.join(OUTPUTDIR, f"{stem}_scorers.csv"),
        "--n_chains",
        "4",
        "--n_samples",
        "500",
        "--n_warmup",
        "500",
        "--silent",
    ]
    if other_options:
        cmdargs += other_options
    run(cmdargs, expected_exit_code)


# =============================================================================
# Command-line entry point
# =============================================================================


def main() -> None:
    main_only_quicksetup_rootlogger()
    os.makedirs(OUTPUTDIR, exist_ok=True)
    allocate("test1", "test_out1.csv")
    allocate("test1", "test_out1.xlsx", ["--debug_model"])
    allocate(
        "test1",
        "test_out1_nonlinear.csv",
        [
            "--overall_objective",
            "happiness - 2 * sqrt(load)",
            "--optimizer_time_limit",
            "20",
        ],
    )
    allocate("test2_trivial", "test_out2.csv")
    allocate(
        "test3_infeasible",
        "test_out3.csv",
        ["--max_students_per_project", "2"],
        expected_exit_code=EXIT_FAILURE,
    )
    allocate(
        "test1",
        "test_out_bad_formula.csv",
        ["--rank_to_happiness", "foo + 1"],
        expected_exit_code=EXIT_FAILURE,
    )
    reconcile("test4_scores.csv", "test_out4")
    reconcile("test5_sparse_scores.csv", "test_out5", ["--bias_sd", "0"])
    reconcile(
        "test4_scores.csv",
        "test_out_bad_chains",
        ["--n_chains", "0"],  # overrides the default above
        expected_exit_code=EXIT_FAILURE,
    )


if __name__ == "__main__":
    main()
