#!/usr/bin/env python

"""
uniadmin_tools/constants.py

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

Constants and enums.

"""

from enum import Enum

from cardinal_pythonlib.enumlike import CaseInsensitiveEnumMeta


# =============================================================================
# Constants
# =============================================================================

RNG_SEED = 1234  # fixed

EXT_CSV = ".csv"
EXT_XLSX = ".xlsx"
EXIT_FAILURE = 1
EXIT_SUCCESS = 0

INPUT_TYPES_SUPPORTED = [EXT_CSV, EXT_XLSX]
OUTPUT_TYPES_SUPPORTED = INPUT_TYPES_SUPPORTED

MISSING_VALUES = ["", None]

# -----------------------------------------------------------------------------
# Project allocation
# -----------------------------------------------------------------------------

DEFAULT_ALLOCATION_OUTPUT = "project_allocations.csv"
DEFAULT_OVERALL_OBJECTIVE = "happiness - 0.5 * load"
DEFAULT_RANK_TO_HAPPINESS = "10 - 2^(ranking - 1) + 1"
DEFAULT_ASSIGNMENTS_TO_LOAD = "num_assigned^2"
DEFAULT_OPTIMIZER_TIME_LIMIT_S = 5.0
DEFAULT_MAX_STUDENTS_PER_PROJECT = 4
DEFAULT_MAX_STUDENTS_PER_TEACHER = 12

ALMOST_ONE = 0.99
OBJECTIVE_TOLERANCE = 1e-6  # absolute gap at which a branch is closed
OBJECTIVE_RELATIVE_TOLERANCE = 1e-6  # ... or relative to the incumbent
# Totals of happiness (or load) closer than this are treated as equal; must
# stay well above the MIP solver's feasibility tolerance.
TOTAL_RESOLUTION = 1e-4
TOTAL_RELATIVE_RESOLUTION = 1e-7  # ... scaled up for large totals

# -----------------------------------------------------------------------------
# Score reconciliation
# -----------------------------------------------------------------------------

DEFAULT_CANDIDATE_OUTPUT = "candidate_info.csv"
DEFAULT_SCORER_OUTPUT = "scorer_info.csv"
DEFAULT_N_CHAINS = 6
DEFAULT_N_SAMPLES = 2000
DEFAULT_N_WARMUP = 500
DEFAULT_MIN_SCORE = 1.0
DEFAULT_MAX_SCORE = 10.0
DEFAULT_TRUE_SCORE_LOWER = 1.0
DEFAULT_TRUE_SCORE_UPPER = 10.0
DEFAULT_BIAS_MEAN = 0.0
DEFAULT_BIAS_SD = 1.0
DEFAULT_SCALE_MEAN = 1.0
DEFAULT_SCALE_SD = 0.25
DEFAULT_NOISE_SD = 1.0
DEFAULT_RHAT_WARNING = 1.05
DEFAULT_RHAT_FAILURE = 1.5


class SheetNames:
    """
    Sheet names within the output spreadsheet file.
    """

    INFORMATION = "Information"
    PROJECT_ALLOCATIONS = "Project_allocations"
    PROJECT_POPULARITY = "Project_popularity"
    STUDENT_ALLOCATIONS = "Student_allocations"
    TEACHER_ALLOCATIONS = "Teacher_allocations"


class SheetHeadings:
    """
    Column headings within the output spreadsheets.
    """

    HAPPINESS = "Happiness"
    LOAD = "Load"
    N_STUDENTS_ALLOCATED = "N_students_allocated"
    PROJECT = "Project"
    PROJECT_NUMBER = "Project_number"
    STUDENT = "Student"
    STUDENT_RANK = "Student_rank_of_allocated_project"
    STUDENTS = "Student(s)"
    TEACHER = "Teacher"


class CsvHeadings:
    """
    Equivalently for simple CSV output.
    """

    # Allocation:
    HAPPINESS = "Happiness"
    PROJECT_NAME = "Project_name"
    PROJECT_NUMBER = "Project_number"
    RANK = "Rank"
    STUDENT_NAME = "Student_name"
    TEACHER_NAME = "Teacher_name"

    # Reconciliation:
    BIAS_MEAN = "Bias_mean"
    BIAS_SD = "Bias_sd"
    CANDIDATE = "Candidate"
    N_RATINGS = "N_ratings"
    RAW_MEAN_SCORE = "Raw_mean_score"
    SCALE_MEAN = "Scale_mean"
    SCALE_SD = "Scale_sd"
    SCORER = "Scorer"
    TRUE_SCORE_MEAN = "True_score_mean"
    TRUE_SCORE_SD = "True_score_sd"


# =============================================================================
# Enum classes
# =============================================================================


class ExpressionContext(Enum, metaclass=CaseInsensitiveEnumMeta):
    """
    Places in which a user-supplied formula is used. The value is the tuple of
    variable names that the formula may refer to.
    """

    RANK_TO_HAPPINESS = ("ranking",)
    ASSIGNMENTS_TO_LOAD = ("num_assigned",)
    OVERALL_OBJECTIVE = ("happiness", "load")


class SolveStatus(Enum, metaclass=CaseInsensitiveEnumMeta):
    """
    Outcomes of an allocation solve.
    """

    OPTIMAL = "Optimal solution found"
    TIME_LIMIT_FEASIBLE = (
        "Time limit reached; best solution found so far, NOT proven optimal"
    )
    INFEASIBLE = "Problem is infeasible"
    SOLVER_ERROR = "Solver failed to produce a solution"


class SamplerAlgorithm(Enum, metaclass=CaseInsensitiveEnumMeta):
    """
    Markov chain Monte Carlo step methods available for score
    reconciliation.
    """

    NUTS = "No-U-Turn Sampler (adaptive Hamiltonian Monte Carlo)"
    HMC = "Hamiltonian Monte Carlo"
    METROPOLIS = "Metropolis-Hastings random walk"
    SLICE = "Slice sampler"


DEFAULT_SAMPLER_ALGORITHM = SamplerAlgorithm.NUTS
