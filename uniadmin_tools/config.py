#!/usr/bin/env python

"""
uniadmin_tools/config.py

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

Master config classes.

"""

from typing import Any, Dict

from uniadmin_tools.constants import (
    DEFAULT_ALLOCATION_OUTPUT,
    DEFAULT_ASSIGNMENTS_TO_LOAD,
    DEFAULT_BIAS_MEAN,
    DEFAULT_BIAS_SD,
    DEFAULT_CANDIDATE_OUTPUT,
    DEFAULT_MAX_SCORE,
    DEFAULT_MAX_STUDENTS_PER_PROJECT,
    DEFAULT_MAX_STUDENTS_PER_TEACHER,
    DEFAULT_MIN_SCORE,
    DEFAULT_N_CHAINS,
    DEFAULT_N_SAMPLES,
    DEFAULT_N_WARMUP,
    DEFAULT_NOISE_SD,
    DEFAULT_OPTIMIZER_TIME_LIMIT_S,
    DEFAULT_OVERALL_OBJECTIVE,
    DEFAULT_RANK_TO_HAPPINESS,
    DEFAULT_RHAT_FAILURE,
    DEFAULT_RHAT_WARNING,
    DEFAULT_SAMPLER_ALGORITHM,
    DEFAULT_SCALE_MEAN,
    DEFAULT_SCALE_SD,
    DEFAULT_SCORER_OUTPUT,
    DEFAULT_TRUE_SCORE_LOWER,
    DEFAULT_TRUE_SCORE_UPPER,
    RNG_SEED,
    SamplerAlgorithm,
)


# =============================================================================
# Project allocation
# =============================================================================


class AllocationConfig(object):
    """
    Master config object for project allocation.
    """

    def __init__(
        self,
        choices_filename: str = None,
        projects_filename: str = None,
        output_filename: str = DEFAULT_ALLOCATION_OUTPUT,
        overall_objective: str = DEFAULT_OVERALL_OBJECTIVE,
        rank_to_happiness: str = DEFAULT_RANK_TO_HAPPINESS,
        assignments_to_load: str = DEFAULT_ASSIGNMENTS_TO_LOAD,
        optimizer_time_limit_s: float = DEFAULT_OPTIMIZER_TIME_LIMIT_S,
        max_students_per_project: int = DEFAULT_MAX_STUDENTS_PER_PROJECT,
        max_students_per_teacher: int = DEFAULT_MAX_STUDENTS_PER_TEACHER,
        silent: bool = False,
        debug_model: bool = False,
        cmd_args: Dict[str, Any] = None,
    ) -> None:
        """
        Args:
            choices_filename:
                File of student choices (one student per row: name, then
                project numbers in order of preference).
            projects_filename:
                File of projects (one per row: teacher name, project name).
            output_filename:
                File to write allocations to.
            overall_objective:
                Formula in ``happiness`` and ``load`` to be maximized.
            rank_to_happiness:
                Formula in ``ranking``, giving a student's happiness.
            assignments_to_load:
                Formula in ``num_assigned``, giving a project's load.
            optimizer_time_limit_s:
                Time limit for the optimizer (s).
            max_students_per_project:
                Capacity of each project.
            max_students_per_teacher:
                Capacity of each teacher, across all their projects.
            silent:
                Suppress the solver's own progress output?
            debug_model:
                Report the MIP model before and after solving it?
            cmd_args:
                Copy of command-line arguments.
        """
        self.choices_filename = choices_filename
        self.projects_filename = projects_filename
        self.output_filename = output_filename

        self.overall_objective = overall_objective
        self.rank_to_happiness = rank_to_happiness
        self.assignments_to_load = assignments_to_load

        self.optimizer_time_limit_s = optimizer_time_limit_s
        self.max_students_per_project = max_students_per_project
        self.max_students_per_teacher = max_students_per_teacher
        self.silent = silent
        self.debug_model = debug_model

        self.cmd_args = cmd_args

    def __str__(self) -> str:
        if self.cmd_args is not None:
            return str(self.cmd_args)
        return str(vars(self))


# =============================================================================
# Score reconciliation
# =============================================================================


class ReconciliationConfig(object):
    """
    Master config object for score reconciliation.
    """

    def __init__(
        self,
        filename: str = None,
        candidate_output_filename: str = DEFAULT_CANDIDATE_OUTPUT,
        scorer_output_filename: str = DEFAULT_SCORER_OUTPUT,
        sheet: str = None,
        scorer_names_range: str = None,
        candidate_names_range: str = None,
        data_range: str = None,
        min_score: float = DEFAULT_MIN_SCORE,
        max_score: float = DEFAULT_MAX_SCORE,
        true_score_lower: float = DEFAULT_TRUE_SCORE_LOWER,
        true_score_upper: float = DEFAULT_TRUE_SCORE_UPPER,
        bias_mean: float = DEFAULT_BIAS_MEAN,
        bias_sd: float = DEFAULT_BIAS_SD,
        scale_mean: float = DEFAULT_SCALE_MEAN,
        scale_sd: float = DEFAULT_SCALE_SD,
        noise_sd: float = DEFAULT_NOISE_SD,
        n_chains: int = DEFAULT_N_CHAINS,
        n_samples: int = DEFAULT_N_SAMPLES,
        n_warmup: int = DEFAULT_N_WARMUP,
        algorithm: SamplerAlgorithm = DEFAULT_SAMPLER_ALGORITHM,
        cores: int = None,
        seed: int = RNG_SEED,
        rhat_warning: float = DEFAULT_RHAT_WARNING,
        rhat_failure: float = DEFAULT_RHAT_FAILURE,
        silent: bool = False,
        cmd_args: Dict[str, Any] = None,
    ) -> None:
        """
        Args:
            filename:
                Source data file (CSV or XLSX) of scores: candidates in rows,
                scorers in columns.
            candidate_output_filename:
                File to write per-candidate estimates to.
            scorer_output_filename:
                File to write per-scorer estimates to.
            sheet:
                For XLSX input: worksheet name (default: the active sheet).
            scorer_names_range:
                For XLSX input: cell range holding scorer names, e.g.
                ``B1:F1``.
            candidate_names_range:
                For XLSX input: cell range holding candidate names, e.g.
                ``A2:A30``.
            data_range:
                For XLSX input: cell range holding the scores, e.g.
                ``B2:F30``.
            min_score:
                Lowest valid raw score.
            max_score:
                Highest valid raw score.
            true_score_lower:
                Lower bound of the (uniform) prior for true scores.
            true_score_upper:
                Upper bound of the (uniform) prior for true scores.
            bias_mean:
                Prior mean of each scorer's additive bias.
            bias_sd:
                Prior standard deviation of each scorer's bias (0 to fix
                the bias at its mean).
            scale_mean:
                Prior mean of each scorer's multiplicative scale.
            scale_sd:
                Prior standard deviation of each scorer's scale (0 to fix
                the scale at its mean).
            noise_sd:
                Scale of the half-normal prior on observation noise.
            n_chains:
                Number of independent Markov chains.
            n_samples:
                Number of retained samples per chain.
            n_warmup:
                Number of warm-up (tuning) samples per chain, discarded.
            algorithm:
                Step method.
            cores:
                Number of chains to run in parallel (default: decided by
                the sampler).
            seed:
                Seed for the sampler's random number generator.
            rhat_warning:
                Warn if any R-hat (cross-chain agreement) exceeds this.
            rhat_failure:
                Fail if any R-hat exceeds this.
            silent:
                Suppress the sampler's progress output?
            cmd_args:
                Copy of command-line arguments.
        """
        self.filename = filename
        self.candidate_output_filename = candidate_output_filename
        self.scorer_output_filename = scorer_output_filename

        self.sheet = sheet
        self.scorer_names_range = scorer_names_range
        self.candidate_names_range = candidate_names_range
        self.data_range = data_range
        self.min_score = min_score
        self.max_score = max_score

        self.true_score_lower = true_score_lower
        self.true_score_upper = true_score_upper
        self.bias_mean = bias_mean
        self.bias_sd = bias_sd
        self.scale_mean = scale_mean
        self.scale_sd = scale_sd
        self.noise_sd = noise_sd

        self.n_chains = n_chains
        self.n_samples = n_samples
        self.n_warmup = n_warmup
        self.algorithm = algorithm
        self.cores = cores
        self.seed = seed
        self.rhat_warning = rhat_warning
        self.rhat_failure = rhat_failure
        self.silent = silent

        self.cmd_args = cmd_args

    def __str__(self) -> str:
        if self.cmd_args is not None:
            return str(self.cmd_args)
        return str(vars(self))

    def check_sampler_settings(self) -> None:
        """
        Raises :exc:`ValueError` if the sampler settings cannot work.
        """
        if self.n_chains < 1:
            raise ValueError(
                f"Need at least one chain; got --n_chains {self.n_chains}"
            )
        if self.n_samples < 2:
            raise ValueError(
                f"Need at least two samples per chain; got --n_samples "
                f"{self.n_samples}"
            )
        if self.n_warmup < 0:
            raise ValueError(
                f"Warm-up cannot be negative; got --n_warmup {self.n_warmup}"
            )
        if self.cores is not None and self.cores < 1:
            raise ValueError(
                f"Need at least one core; got --cores {self.cores}"
            )
        if not self.rhat_warning <= self.rhat_failure:
            raise ValueError(
                f"R-hat warning threshold {self.rhat_warning} exceeds the "
                f"failure threshold {self.rhat_failure}"
            )
