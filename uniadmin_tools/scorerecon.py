#!/usr/bin/env python

"""
uniadmin_tools/scorerecon.py

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

Command-line entry point for score reconciliation.

"""

import argparse
import logging
import sys
import traceback

from cardinal_pythonlib.argparse_func import (
    RawDescriptionArgumentDefaultsHelpFormatter,
)
from cardinal_pythonlib.enumlike import keys_descriptions_from_enum
from cardinal_pythonlib.logs import main_only_quicksetup_rootlogger
from cardinal_pythonlib.cmdline import cmdline_quote

from uniadmin_tools.config import ReconciliationConfig
from uniadmin_tools.constants import (
    DEFAULT_BIAS_MEAN,
    DEFAULT_BIAS_SD,
    DEFAULT_CANDIDATE_OUTPUT,
    DEFAULT_MAX_SCORE,
    DEFAULT_MIN_SCORE,
    DEFAULT_N_CHAINS,
    DEFAULT_N_SAMPLES,
    DEFAULT_N_WARMUP,
    DEFAULT_NOISE_SD,
    DEFAULT_SAMPLER_ALGORITHM,
    DEFAULT_SCALE_MEAN,
    DEFAULT_SCALE_SD,
    DEFAULT_SCORER_OUTPUT,
    DEFAULT_TRUE_SCORE_LOWER,
    DEFAULT_TRUE_SCORE_UPPER,
    EXIT_FAILURE,
    INPUT_TYPES_SUPPORTED,
    RNG_SEED,
    SamplerAlgorithm,
)
from uniadmin_tools.errors import UniAdminError
from uniadmin_tools.posterior_sampler import PosteriorSummary, sample_posterior
from uniadmin_tools.reconciliation_model import (
    build_reconciliation_model,
    ReconciliationPriors,
)
from uniadmin_tools.score_matrix import ScoreMatrix

log = logging.getLogger(__name__)


# =============================================================================
# Reconciliation
# =============================================================================


def reconcile(config: ReconciliationConfig) -> PosteriorSummary:
    """
    Reads the scores, builds and samples the model, and writes the
    per-candidate and per-scorer estimates.

    Raises:
        :exc:`UniAdminError` or :exc:`ValueError` on failure
    """
    if not config.min_score < config.max_score:
        raise ValueError(
            f"Need --min_score < --max_score; got {config.min_score}, "
            f"{config.max_score}"
        )
    config.check_sampler_settings()
    priors = ReconciliationPriors.from_config(config)
    matrix = ScoreMatrix.read_data(config)
    model = build_reconciliation_model(matrix, priors)
    summary = sample_posterior(model, config)
    log.info(summary)
    if config.candidate_output_filename:
        summary.write_candidate_csv(config.candidate_output_filename)
    if config.scorer_output_filename:
        summary.write_scorer_csv(config.scorer_output_filename)
    return summary


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
        description="""
Reconcile scores given by a committee. Each scorer is assumed to have their
own bias (added to every score they give) and scale (multiplying the
candidate's true score); the true score of each candidate is estimated by
Markov chain Monte Carlo sampling.

The input has one row per candidate and one column per scorer. Blank cells
mean "not scored by this scorer".

    Format (CSV, or spreadsheet without cell ranges):
        <ignored>       Dr Smith        Dr Jones        Dr Lucas    ...
        Miss Smith      7               8                           ...
        Mr Jones        5                               6           ...
        ...             ...             ...             ...         ...

For a spreadsheet, you can instead give cell ranges for the scorer names
(e.g. B1:F1), the candidate names (e.g. A2:A30) and the scores (e.g.
B2:F30); specify all three or none.

""",  # noqa
    )
    parser.add_argument("--verbose", action="store_true", help="Be verbose")

    file_group = parser.add_argument_group("Files")
    file_group.add_argument(
        "filename",
        type=str,
        help="Scores file to read. "
        "Input file types supported: " + str(INPUT_TYPES_SUPPORTED),
    )
    file_group.add_argument(
        "--output",
        type=str,
        default=DEFAULT_CANDIDATE_OUTPUT,
        help="CSV file to write per-candidate estimates to",
    )
    file_group.add_argument(
        "--scorer_output",
        type=str,
        default=DEFAULT_SCORER_OUTPUT,
        help="CSV file to write per-scorer bias/scale estimates to",
    )

    data_group = parser.add_argument_group("Data (spreadsheets)")
    data_group.add_argument(
        "--sheet", type=str, help="Worksheet name (default: the active one)"
    )
    data_group.add_argument(
        "--scorer_names_range", type=str, help="Cells holding scorer names"
    )
    data_group.add_argument(
        "--candidate_names_range",
        type=str,
        help="Cells holding candidate names",
    )
    data_group.add_argument(
        "--data_range", type=str, help="Cells holding the scores"
    )
    data_group.add_argument(
        "--min_score",
        type=float,
        default=DEFAULT_MIN_SCORE,
        help="Lowest valid score",
    )
    data_group.add_argument(
        "--max_score",
        type=float,
        default=DEFAULT_MAX_SCORE,
        help="Highest valid score",
    )

    prior_group = parser.add_argument_group("Priors")
    prior_group.add_argument(
        "--true_score_lower",
        type=float,
        default=DEFAULT_TRUE_SCORE_LOWER,
        help="Lower bound of the (uniform) prior on true scores",
    )
    prior_group.add_argument(
        "--true_score_upper",
        type=float,
        default=DEFAULT_TRUE_SCORE_UPPER,
        help="Upper bound of the (uniform) prior on true scores",
    )
    prior_group.add_argument(
        "--bias_mean",
        type=float,
        default=DEFAULT_BIAS_MEAN,
        help="Prior mean of each scorer's bias",
    )
    prior_group.add_argument(
        "--bias_sd",
        type=float,
        default=DEFAULT_BIAS_SD,
        help="Prior SD of each scorer's bias (0 to fix it at the mean)",
    )
    prior_group.add_argument(
        "--scale_mean",
        type=float,
        default=DEFAULT_SCALE_MEAN,
        help="Prior mean of each scorer's scale",
    )
    prior_group.add_argument(
        "--scale_sd",
        type=float,
        default=DEFAULT_SCALE_SD,
        help="Prior SD of each scorer's scale (0 to fix it at the mean)",
    )
    prior_group.add_argument(
        "--noise_sd",
        type=float,
        default=DEFAULT_NOISE_SD,
        help="Scale of the half-normal prior on scoring noise",
    )

    sampler_group = parser.add_argument_group("Sampler")
    algorithm_k, algorithm_desc = keys_descriptions_from_enum(
        SamplerAlgorithm, keys_to_lower=True
    )
    sampler_group.add_argument(
        "--algorithm",
        type=str,
        choices=algorithm_k,
        default=DEFAULT_SAMPLER_ALGORITHM.name.lower(),
        help=f"Sampling algorithm. -- {algorithm_desc} --",
    )
    sampler_group.add_argument(
        "--n_chains",
        type=int,
        default=DEFAULT_N_CHAINS,
        help="Number of independent chains",
    )
    sampler_group.add_argument(
        "--n_samples",
        type=int,
        default=DEFAULT_N_SAMPLES,
        help="Number of samples kept per chain",
    )
    sampler_group.add_argument(
        "--n_warmup",
        type=int,
        default=DEFAULT_N_WARMUP,
        help="Number of warm-up (discarded) samples per chain",
    )
    sampler_group.add_argument(
        "--cores",
        type=int,
        default=None,
        help="Number of chains to run in parallel (default: decided by the "
        "sampler)",
    )
    sampler_group.add_argument(
        "--seed",
        type=int,
        default=RNG_SEED,
        help="Seed for the sampler's random number generator",
    )
    sampler_group.add_argument(
        "--silent",
        action="store_true",
        help="Suppress the sampler's progress bar",
    )

    args = parser.parse_args()
    main_only_quicksetup_rootlogger(
        level=logging.DEBUG if args.verbose else logging.INFO
    )

    config = ReconciliationConfig(
        filename=args.filename,
        candidate_output_filename=args.output,
        scorer_output_filename=args.scorer_output,
        sheet=args.sheet,
        scorer_names_range=args.scorer_names_range,
        candidate_names_range=args.candidate_names_range,
        data_range=args.data_range,
        min_score=args.min_score,
        max_score=args.max_score,
        true_score_lower=args.true_score_lower,
        true_score_upper=args.true_score_upper,
        bias_mean=args.bias_mean,
        bias_sd=args.bias_sd,
        scale_mean=args.scale_mean,
        scale_sd=args.scale_sd,
        noise_sd=args.noise_sd,
        n_chains=args.n_chains,
        n_samples=args.n_samples,
        n_warmup=args.n_warmup,
        algorithm=SamplerAlgorithm[args.algorithm],
        cores=args.cores,
        seed=args.seed,
        silent=args.silent,
        cmd_args=vars(args),
    )
    log.info(f"Command: {cmdline_quote(sys.argv)}")
    log.info(f"Config: {config}")
    try:
        reconcile(config)
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
