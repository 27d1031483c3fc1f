#!/usr/bin/env python

"""
uniadmin_tools/posterior_sampler.py

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

Markov chain Monte Carlo sampling of a reconciliation model, with
convergence checks and summaries.

"""

import csv
import logging
import math
from typing import Dict, List

import arviz as az
from cardinal_pythonlib.reprfunc import auto_repr
import numpy as np
import pymc as pm

from uniadmin_tools.config import ReconciliationConfig
from uniadmin_tools.constants import CsvHeadings, SamplerAlgorithm
from uniadmin_tools.errors import SamplingError
from uniadmin_tools.reconciliation_model import ModelVars, ReconciliationModel

log = logging.getLogger(__name__)


# =============================================================================
# Estimates
# =============================================================================

class CandidateEstimate(object):
    """
    Posterior estimate for one candidate.
    """

    def __init__(
        self,
        name: str,
        true_score_mean: float,
        true_score_sd: float,
        n_ratings: int,
        raw_mean_score: float,
    ) -> None:
        self.name = name
        self.true_score_mean = true_score_mean
        self.true_score_sd = true_score_sd
        self.n_ratings = n_ratings
        self.raw_mean_score = raw_mean_score

    def __repr__(self) -> str:
        return auto_repr(self)

    @staticmethod
    def headings() -> List[str]:
        return [
            CsvHeadings.CANDIDATE,
            CsvHeadings.TRUE_SCORE_MEAN,
            CsvHeadings.TRUE_SCORE_SD,
            CsvHeadings.N_RATINGS,
            CsvHeadings.RAW_MEAN_SCORE,
        ]

    def values(self) -> List:
        return [
            self.name,
            self.true_score_mean,
            self.true_score_sd,
            self.n_ratings,
            "" if math.isnan(self.raw_mean_score) else self.raw_mean_score,
        ]


class ScorerEstimate(object):
    """
    Posterior estimate for one scorer.
    """

    def __init__(
        self,
        name: str,
        bias_mean: float,
        bias_sd: float,
        scale_mean: float,
        scale_sd: float,
        n_ratings: int,
    ) -> None:
        self.name = name
        self.bias_mean = bias_mean
        self.bias_sd = bias_sd
        self.scale_mean = scale_mean
        self.scale_sd = scale_sd
        self.n_ratings = n_ratings

    def __repr__(self) -> str:
        return auto_repr(self)

    @staticmethod
    def headings() -> List[str]:
        return [
            CsvHeadings.SCORER,
            CsvHeadings.BIAS_MEAN,
            CsvHeadings.BIAS_SD,
            CsvHeadings.SCALE_MEAN,
            CsvHeadings.SCALE_SD,
            CsvHeadings.N_RATINGS,
        ]

    def values(self) -> List:
        return [
            self.name,
            self.bias_mean,
            self.bias_sd,
            self.scale_mean,
            self.scale_sd,
            self.n_ratings,
        ]


# =============================================================================
# PosteriorSummary
# =============================================================================

class PosteriorSummary(object):
    """
    Posterior means and standard deviations of the latent variables, plus
    diagnostics.
    """

    def __init__(
        self,
        candidates: List[CandidateEstimate],
        scorers: List[ScorerEstimate],
        noise_mean: float,
        max_rhat: float,
        n_divergences: int = 0,
    ) -> None:
        self.candidates = candidates
        self.scorers = scorers
        self.noise_mean = noise_mean
        self.max_rhat = max_rhat
        self.n_divergences = n_divergences

    def __str__(self) -> str:
        lines = [
            f"Posterior summary: noise (mean) = {self.noise_mean:.4g}; "
            f"max R-hat = {self.max_rhat:.4g}; "
            f"divergences = {self.n_divergences}",
            "Candidates:",
        ]
        for c in self.candidates:
            lines.append(
                f"    {c.name}: {c.true_score_mean:.3f} "
                f"(SD {c.true_score_sd:.3f}; {c.n_ratings} ratings)"
            )
        lines.append("Scorers:")
        for s in self.scorers:
            lines.append(
                f"    {s.name}: bias {s.bias_mean:.3f} (SD {s.bias_sd:.3f}), "
                f"scale {s.scale_mean:.3f} (SD {s.scale_sd:.3f}); "
                f"{s.n_ratings} ratings"
            )
        return "\n".join(lines)

    def candidate(self, name: str) -> CandidateEstimate:
        for c in self.candidates:
            if c.name == name:
                return c
        raise KeyError(f"No such candidate: {name!r}")

    def scorer(self, name: str) -> ScorerEstimate:
        for s in self.scorers:
            if s.name == name:
                return s
        raise KeyError(f"No such scorer: {name!r}")

    def write_candidate_csv(self, filename: str) -> None:
        """
        Writes per-candidate estimates to a CSV file.
        """
        log.info(f"Writing candidate estimates to: {filename}")
        with open(filename, "w", newline="") as file:
            writer = csv.writer(file)
            writer.writerow(CandidateEstimate.headings())
            for c in self.candidates:
                writer.writerow(c.values())

    def write_scorer_csv(self, filename: str) -> None:
        """
        Writes per-scorer estimates to a CSV file.
        """
        log.info(f"Writing scorer estimates to: {filename}")
        with open(filename, "w", newline="") as file:
            writer = csv.writer(file)
            writer.writerow(ScorerEstimate.headings())
            for s in self.scorers:
                writer.writerow(s.values())


# =============================================================================
# Sampling
# =============================================================================

def _make_step(algorithm: SamplerAlgorithm):
    """
    Creates a step method. Must be called inside a model context.
    """
    if algorithm == SamplerAlgorithm.NUTS:
        return pm.NUTS()
    elif algorithm == SamplerAlgorithm.HMC:
        return pm.HamiltonianMC()
    elif algorithm == SamplerAlgorithm.METROPOLIS:
        return pm.Metropolis()
    elif algorithm == SamplerAlgorithm.SLICE:
        return pm.Slice()
    else:
        raise ValueError(f"Unknown sampler algorithm: {algorithm!r}")


def _draws(idata: az.InferenceData, varname: str) -> np.ndarray:
    """
    All draws of a variable as an array of shape (chain, draw, ...).
    """
    return np.asarray(idata.posterior[varname].values, dtype=float)


def _check_draws(
    idata: az.InferenceData, model: ReconciliationModel
) -> Dict[str, np.ndarray]:
    """
    Fetches draws of the free variables, checking they are usable.

    Raises:
        :exc:`SamplingError` for non-finite or constant draws.
    """
    draws = {}  # type: Dict[str, np.ndarray]
    for varname in model.free_variables():
        values = _draws(idata, varname)
        if not np.all(np.isfinite(values)):
            raise SamplingError(f"Non-finite draws for {varname!r}")
        flat = values.reshape(values.shape[0] * values.shape[1], -1)
        if np.any(np.std(flat, axis=0) == 0):
            raise SamplingError(
                f"Zero-variance draws for {varname!r}; the sampler did not "
                f"move"
            )
        draws[varname] = values
    return draws


def _max_rhat(
    idata: az.InferenceData, model: ReconciliationModel, n_chains: int
) -> float:
    """
    Largest R-hat (potential scale reduction) across all free latent
    variables. NaN if there is only one chain.
    """
    if n_chains < 2:
        log.warning("Only one chain; cannot assess convergence via R-hat")
        return float("nan")
    rhat = az.rhat(idata, var_names=model.free_variables())
    return max(float(rhat[varname].max()) for varname in rhat.data_vars)


def _n_divergences(idata: az.InferenceData) -> int:
    stats = idata.sample_stats
    if "diverging" not in stats:
        return 0
    return int(stats["diverging"].sum())


def sample_posterior(
    model: ReconciliationModel, config: ReconciliationConfig
) -> PosteriorSummary:
    """
    Runs the Markov chains and summarizes the posterior.

    Args:
        model:
            a :class:`ReconciliationModel`
        config:
            a :class:`ReconciliationConfig` with the sampler settings

    Returns:
        a :class:`PosteriorSummary`

    Raises:
        :exc:`ValueError` for unworkable sampler settings;
        :exc:`SamplingError` if the sampler fails or fails to converge
    """
    config.check_sampler_settings()
    log.info(
        f"Sampling: {config.algorithm.name}, {config.n_chains} chains, "
        f"{config.n_warmup} warm-up + {config.n_samples} samples per chain"
    )
    try:
        with model.pymc_model:
            idata = pm.sample(
                draws=config.n_samples,
                tune=config.n_warmup,
                chains=config.n_chains,
                cores=config.cores,
                step=_make_step(config.algorithm),
                random_seed=config.seed,
                progressbar=not config.silent,
                compute_convergence_checks=False,
                return_inferencedata=True,
            )
    except Exception as e:
        raise SamplingError(f"Sampler failed: {e}") from e

    draws = _check_draws(idata, model)

    max_rhat = _max_rhat(idata, model, config.n_chains)
    if max_rhat > config.rhat_failure:
        raise SamplingError(
            f"Chains disagree: maximum R-hat {max_rhat:.3f} exceeds "
            f"{config.rhat_failure}"
        )
    if max_rhat > config.rhat_warning:
        log.warning(
            f"Chains may not have converged: maximum R-hat {max_rhat:.3f} "
            f"exceeds {config.rhat_warning}"
        )
    n_divergences = _n_divergences(idata)
    if n_divergences:
        log.warning(f"{n_divergences} divergent transitions during sampling")

    summary = _summarize(model, draws, max_rhat, n_divergences)
    log.info(f"Maximum R-hat: {max_rhat:.4g}")
    return summary


def _summarize(
    model: ReconciliationModel,
    draws: Dict[str, np.ndarray],
    max_rhat: float,
    n_divergences: int,
) -> PosteriorSummary:
    """
    Posterior means/SDs per candidate and scorer. Fixed latents report their
    fixed value with SD 0.
    """
    matrix = model.matrix
    priors = model.priors

    def mean_sd(varname: str, n: int, fixed_value: float):
        if varname not in draws:
            return [fixed_value] * n, [0.0] * n
        values = draws[varname].reshape(-1, n)
        return (
            [float(x) for x in values.mean(axis=0)],
            [float(x) for x in values.std(axis=0)],
        )

    ts_mean, ts_sd = mean_sd(
        ModelVars.TRUE_SCORE, matrix.n_candidates, float("nan")
    )
    bias_mean, bias_sd = mean_sd(
        ModelVars.BIAS, matrix.n_scorers, priors.bias_mean
    )
    scale_mean, scale_sd = mean_sd(
        ModelVars.SCALE, matrix.n_scorers, priors.scale_mean
    )
    candidate_counts = matrix.n_ratings_of_candidate()
    raw_means = matrix.raw_mean_of_candidate()
    scorer_counts = matrix.n_ratings_by_scorer()
    candidates = [
        CandidateEstimate(
            name=name,
            true_score_mean=ts_mean[i],
            true_score_sd=ts_sd[i],
            n_ratings=candidate_counts[i],
            raw_mean_score=raw_means[i],
        )
        for i, name in enumerate(matrix.candidate_names)
    ]
    scorers = [
        ScorerEstimate(
            name=name,
            bias_mean=bias_mean[j],
            bias_sd=bias_sd[j],
            scale_mean=scale_mean[j],
            scale_sd=scale_sd[j],
            n_ratings=scorer_counts[j],
        )
        for j, name in enumerate(matrix.scorer_names)
    ]
    return PosteriorSummary(
        candidates=candidates,
        scorers=scorers,
        noise_mean=float(draws[ModelVars.NOISE].mean()),
        max_rhat=max_rhat,
        n_divergences=n_divergences,
    )
