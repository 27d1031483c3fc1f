#!/usr/bin/env python

"""
uniadmin_tools/tests/reconciliation_tests.py

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

Tests the score reconciliation model and its sampler.

"""

import csv
import math
import os
import tempfile
import unittest
from typing import Any, List
from unittest import mock

from uniadmin_tools.config import ReconciliationConfig
from uniadmin_tools.constants import SamplerAlgorithm
from uniadmin_tools.errors import SamplingError
from uniadmin_tools.posterior_sampler import sample_posterior
from uniadmin_tools.reconciliation_model import (
    build_reconciliation_model,
    ModelVars,
    ReconciliationPriors,
)
from uniadmin_tools.score_matrix import ScoreMatrix
from uniadmin_tools.scorerecon import reconcile

# Candidates in rows, scorers in columns. Nobody asked "Dr Idle".
ROWS = [
    ["", "Dr A", "Dr B", "Dr C", "Dr D", "Dr Idle"],
    ["Steady", 8, 8, 8, 8, None],
    ["Weak", 4, 5, 3, None, None],
    ["Middling", 6, 7, None, 6, None],
    ["Good", None, 7, 8, 9, None],
]  # type: List[List[Any]]


def make_matrix() -> ScoreMatrix:
    return ScoreMatrix.from_rows(ROWS, min_score=1, max_score=10)


def fast_config(**kwargs: Any) -> ReconciliationConfig:
    settings = dict(
        n_chains=2,
        n_samples=500,
        n_warmup=500,
        cores=1,
        silent=True,
    )
    settings.update(kwargs)
    return ReconciliationConfig(**settings)


class SamplerSettingsTests(unittest.TestCase):
    BAD_SETTINGS = (
        dict(n_chains=0),
        dict(n_samples=0),
        dict(n_samples=1),
        dict(n_warmup=-1),
        dict(cores=0),
        dict(rhat_warning=1.2, rhat_failure=1.1),
    )

    def test_good_settings(self) -> None:
        fast_config().check_sampler_settings()
        ReconciliationConfig().check_sampler_settings()

    def test_bad_settings(self) -> None:
        model = build_reconciliation_model(
            make_matrix(),
            ReconciliationPriors.from_config(ReconciliationConfig()),
        )
        for change in self.BAD_SETTINGS:
            with self.subTest(change=change):
                config = fast_config(**change)
                self.assertRaises(ValueError, config.check_sampler_settings)
                with mock.patch(
                    "uniadmin_tools.posterior_sampler.pm.sample"
                ) as sample:
                    self.assertRaises(
                        ValueError, sample_posterior, model, config
                    )
                sample.assert_not_called()

    def test_reconcile_rejects_bad_settings_before_reading(self) -> None:
        config = fast_config(filename="nonexistent.csv", n_chains=0)
        with self.assertRaises(ValueError) as cm:
            reconcile(config)
        self.assertIn("--n_chains", str(cm.exception))


class PriorsTests(unittest.TestCase):
    def test_validation(self) -> None:
        ok = dict(
            true_score_lower=1,
            true_score_upper=10,
            bias_mean=0,
            bias_sd=1,
            scale_mean=1,
            scale_sd=0.25,
            noise_sd=1,
        )
        ReconciliationPriors(**ok)
        for change in (
            dict(true_score_lower=10),
            dict(bias_sd=-1),
            dict(scale_sd=-0.1),
            dict(noise_sd=0),
        ):
            args = dict(ok)
            args.update(change)
            with self.assertRaises(ValueError, msg=str(change)):
                ReconciliationPriors(**args)

    def test_from_config(self) -> None:
        priors = ReconciliationPriors.from_config(
            ReconciliationConfig(bias_sd=0)
        )
        self.assertTrue(priors.bias_fixed)
        self.assertFalse(priors.scale_fixed)


class ModelBuildingTests(unittest.TestCase):
    def test_free_variables(self) -> None:
        matrix = make_matrix()
        model = build_reconciliation_model(
            matrix, ReconciliationPriors.from_config(ReconciliationConfig())
        )
        self.assertEqual(
            model.free_variables(),
            [
                ModelVars.TRUE_SCORE,
                ModelVars.BIAS,
                ModelVars.SCALE,
                ModelVars.NOISE,
            ],
        )
        names = [rv.name for rv in model.pymc_model.free_RVs]
        self.assertEqual(sorted(names), sorted(model.free_variables()))
        # One likelihood term per score actually given.
        observed = model.pymc_model.observed_RVs[0]
        self.assertEqual(
            tuple(observed.shape.eval()), (len(matrix.observations),)
        )

    def test_fixed_latents(self) -> None:
        model = build_reconciliation_model(
            make_matrix(),
            ReconciliationPriors.from_config(
                ReconciliationConfig(bias_sd=0, scale_sd=0)
            ),
        )
        self.assertEqual(
            model.free_variables(), [ModelVars.TRUE_SCORE, ModelVars.NOISE]
        )
        names = [rv.name for rv in model.pymc_model.free_RVs]
        self.assertNotIn(ModelVars.BIAS, names)
        self.assertNotIn(ModelVars.SCALE, names)


class SamplingTests(unittest.TestCase):
    def test_consistent_candidate(self) -> None:
        config = fast_config(bias_sd=0, scale_sd=0)
        model = build_reconciliation_model(
            make_matrix(), ReconciliationPriors.from_config(config)
        )
        summary = sample_posterior(model, config)
        steady = summary.candidate("Steady")
        self.assertAlmostEqual(steady.true_score_mean, 8, delta=0.5)
        self.assertEqual(steady.n_ratings, 4)
        self.assertEqual(steady.raw_mean_score, 8)
        self.assertLess(
            summary.candidate("Weak").true_score_mean,
            summary.candidate("Good").true_score_mean,
        )
        # Fixed latents report their fixed values.
        scorer = summary.scorer("Dr A")
        self.assertEqual(scorer.bias_mean, 0)
        self.assertEqual(scorer.bias_sd, 0)
        self.assertEqual(scorer.scale_mean, 1)

    def test_idle_scorer_keeps_prior(self) -> None:
        config = fast_config()
        model = build_reconciliation_model(
            make_matrix(), ReconciliationPriors.from_config(config)
        )
        summary = sample_posterior(model, config)
        idle = summary.scorer("Dr Idle")
        self.assertEqual(idle.n_ratings, 0)
        self.assertAlmostEqual(idle.bias_mean, config.bias_mean, delta=0.3)
        self.assertAlmostEqual(idle.bias_sd, config.bias_sd, delta=0.3)
        self.assertAlmostEqual(idle.scale_mean, config.scale_mean, delta=0.1)
        self.assertAlmostEqual(idle.scale_sd, config.scale_sd, delta=0.1)
        self.assertLess(summary.max_rhat, config.rhat_failure)

    def test_unscored_candidate_keeps_prior(self) -> None:
        rows = ROWS + [["Absent", None, None, None, None, None]]
        matrix = ScoreMatrix.from_rows(rows, min_score=1, max_score=10)
        self.assertEqual(matrix.unscored_candidates(), ["Absent"])
        config = fast_config(bias_sd=0, scale_sd=0)
        model = build_reconciliation_model(
            matrix, ReconciliationPriors.from_config(config)
        )
        summary = sample_posterior(model, config)
        absent = summary.candidate("Absent")
        self.assertEqual(absent.n_ratings, 0)
        # Uniform on [1, 10]: mean 5.5, standard deviation 9 / sqrt(12).
        self.assertAlmostEqual(absent.true_score_mean, 5.5, delta=0.6)
        self.assertAlmostEqual(
            absent.true_score_sd, 9 / math.sqrt(12), delta=0.5
        )

    def test_chains_disagreeing_is_failure(self) -> None:
        # R-hat never falls this far below 1.
        config = fast_config(
            bias_sd=0,
            scale_sd=0,
            n_samples=200,
            rhat_warning=0.5,
            rhat_failure=0.5,
        )
        model = build_reconciliation_model(
            make_matrix(), ReconciliationPriors.from_config(config)
        )
        with self.assertRaises(SamplingError) as cm:
            sample_posterior(model, config)
        self.assertIn("R-hat", str(cm.exception))

    def test_metropolis(self) -> None:
        config = fast_config(
            algorithm=SamplerAlgorithm.METROPOLIS,
            bias_sd=0,
            scale_sd=0,
            n_samples=2000,
            n_warmup=1000,
        )
        model = build_reconciliation_model(
            make_matrix(), ReconciliationPriors.from_config(config)
        )
        summary = sample_posterior(model, config)
        self.assertAlmostEqual(
            summary.candidate("Steady").true_score_mean, 8, delta=0.75
        )

    def test_sampler_failure(self) -> None:
        config = fast_config()
        model = build_reconciliation_model(
            make_matrix(), ReconciliationPriors.from_config(config)
        )
        with mock.patch(
            "uniadmin_tools.posterior_sampler.pm.sample",
            side_effect=RuntimeError("boom"),
        ):
            with self.assertRaises(SamplingError):
                sample_posterior(model, config)

    def test_write_csv(self) -> None:
        config = fast_config(bias_sd=0, scale_sd=0, n_samples=200)
        model = build_reconciliation_model(
            make_matrix(), ReconciliationPriors.from_config(config)
        )
        summary = sample_posterior(model, config)
        with tempfile.TemporaryDirectory() as tmpdir:
            candidates = os.path.join(tmpdir, "candidate_info.csv")
            scorers = os.path.join(tmpdir, "scorer_info.csv")
            summary.write_candidate_csv(candidates)
            summary.write_scorer_csv(scorers)
            with open(candidates, newline="") as f:
                rows = list(csv.reader(f))
            self.assertEqual(rows[0][0], "Candidate")
            self.assertEqual(
                [row[0] for row in rows[1:]],
                ["Steady", "Weak", "Middling", "Good"],
            )
            with open(scorers, newline="") as f:
                rows = list(csv.reader(f))
            self.assertEqual(rows[0][0], "Scorer")
            self.assertEqual(len(rows), 1 + 5)
