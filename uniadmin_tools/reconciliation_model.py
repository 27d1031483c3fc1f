#!/usr/bin/env python

"""
uniadmin_tools/reconciliation_model.py

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

Hierarchical Bayesian model of committee scoring.

Each candidate has a true score; each scorer has an additive bias and a
multiplicative scale. An observed score is

.. code-block:: none

    value ~ Normal(scale[scorer] * true_score[candidate] + bias[scorer], noise)

Only scores actually given contribute to the likelihood.

"""

import logging
from typing import List

from cardinal_pythonlib.reprfunc import auto_repr
import numpy as np
import pymc as pm
import pytensor.tensor as pt

from uniadmin_tools.config import ReconciliationConfig
from uniadmin_tools.score_matrix import ScoreMatrix

log = logging.getLogger(__name__)


# =============================================================================
# Variable names
# =============================================================================

class ModelVars(object):
    TRUE_SCORE = "true_score"
    BIAS = "bias"
    SCALE = "scale"
    NOISE = "noise"
    OBSERVED = "observed"


# =============================================================================
# ReconciliationPriors
# =============================================================================

class ReconciliationPriors(object):
    """
    Prior distributions for the latent variables.
    """

    def __init__(
        self,
        true_score_lower: float,
        true_score_upper: float,
        bias_mean: float,
        bias_sd: float,
        scale_mean: float,
        scale_sd: float,
        noise_sd: float,
    ) -> None:
        """
        Args:
            true_score_lower:
                Lower bound of the uniform prior on each true score.
            true_score_upper:
                Upper bound of the uniform prior on each true score.
            bias_mean:
                Mean of the normal prior on each scorer's bias.
            bias_sd:
                SD of the normal prior on each scorer's bias; 0 fixes every
                bias at ``bias_mean``.
            scale_mean:
                Mean of the normal prior on each scorer's scale.
            scale_sd:
                SD of the normal prior on each scorer's scale; 0 fixes every
                scale at ``scale_mean``.
            noise_sd:
                Scale of the half-normal prior on the observation noise.

        Raises:
            :exc:`ValueError` for impossible priors.
        """
        if not true_score_lower < true_score_upper:
            raise ValueError(
                f"True score bounds must satisfy lower < upper; got "
                f"[{true_score_lower}, {true_score_upper}]"
            )
        if bias_sd < 0 or scale_sd < 0:
            raise ValueError("Prior standard deviations cannot be negative")
        if noise_sd <= 0:
            raise ValueError(f"Noise prior scale must be positive: {noise_sd}")
        self.true_score_lower = true_score_lower
        self.true_score_upper = true_score_upper
        self.bias_mean = bias_mean
        self.bias_sd = bias_sd
        self.scale_mean = scale_mean
        self.scale_sd = scale_sd
        self.noise_sd = noise_sd

    def __repr__(self) -> str:
        return auto_repr(self)

    @classmethod
    def from_config(
        cls, config: ReconciliationConfig
    ) -> "ReconciliationPriors":
        return cls(
            true_score_lower=config.true_score_lower,
            true_score_upper=config.true_score_upper,
            bias_mean=config.bias_mean,
            bias_sd=config.bias_sd,
            scale_mean=config.scale_mean,
            scale_sd=config.scale_sd,
            noise_sd=config.noise_sd,
        )

    @property
    def bias_fixed(self) -> bool:
        return self.bias_sd == 0

    @property
    def scale_fixed(self) -> bool:
        return self.scale_sd == 0

    @property
    def true_score_prior_mean(self) -> float:
        return (self.true_score_lower + self.true_score_upper) / 2

    @property
    def true_score_prior_sd(self) -> float:
        return (self.true_score_upper - self.true_score_lower) / np.sqrt(12)


# =============================================================================
# ReconciliationModel
# =============================================================================

class ReconciliationModel(object):
    """
    A built (but not yet sampled) reconciliation model.
    """

    def __init__(
        self,
        matrix: ScoreMatrix,
        priors: ReconciliationPriors,
        pymc_model: pm.Model,
    ) -> None:
        self.matrix = matrix
        self.priors = priors
        self.pymc_model = pymc_model

    def __str__(self) -> str:
        return (
            f"ReconciliationModel: {self.matrix}; free variables "
            f"{self.free_variables()}"
        )

    def free_variables(self) -> List[str]:
        """
        Names of the latent variables that are sampled (rather than fixed).
        """
        names = [ModelVars.TRUE_SCORE]
        if not self.priors.bias_fixed:
            names.append(ModelVars.BIAS)
        if not self.priors.scale_fixed:
            names.append(ModelVars.SCALE)
        names.append(ModelVars.NOISE)
        return names


def build_reconciliation_model(
    matrix: ScoreMatrix, priors: ReconciliationPriors
) -> ReconciliationModel:
    """
    Builds the PyMC model for a score matrix. Performs no inference.

    Candidates and scorers with no scores are kept; their posteriors will
    simply be their priors.
    """
    for name in matrix.unscored_candidates():
        log.warning(f"Candidate {name!r} has no scores; estimate = prior")
    for name in matrix.idle_scorers():
        log.warning(f"Scorer {name!r} gave no scores; estimate = prior")

    arrays = matrix.as_arrays()
    scorer_idx = np.array(arrays["scorer"], dtype=int)
    candidate_idx = np.array(arrays["candidate"], dtype=int)
    values = np.array(arrays["value"], dtype=float)
    coords = {
        "candidate": matrix.candidate_names,
        "scorer": matrix.scorer_names,
    }

    with pm.Model(coords=coords) as model:
        true_score = pm.Uniform(
            ModelVars.TRUE_SCORE,
            lower=priors.true_score_lower,
            upper=priors.true_score_upper,
            dims="candidate",
        )
        if priors.bias_fixed:
            bias = pt.constant(np.full(matrix.n_scorers, priors.bias_mean))
        else:
            bias = pm.Normal(
                ModelVars.BIAS,
                mu=priors.bias_mean,
                sigma=priors.bias_sd,
                dims="scorer",
            )
        if priors.scale_fixed:
            scale = pt.constant(np.full(matrix.n_scorers, priors.scale_mean))
        else:
            scale = pm.Normal(
                ModelVars.SCALE,
                mu=priors.scale_mean,
                sigma=priors.scale_sd,
                dims="scorer",
            )
        noise = pm.HalfNormal(ModelVars.NOISE, sigma=priors.noise_sd)
        mu = scale[scorer_idx] * true_score[candidate_idx] + bias[scorer_idx]
        pm.Normal(ModelVars.OBSERVED, mu=mu, sigma=noise, observed=values)

    result = ReconciliationModel(
        matrix=matrix, priors=priors, pymc_model=model
    )
    log.debug(str(result))
    return result
