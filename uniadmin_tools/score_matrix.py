#!/usr/bin/env python

"""
uniadmin_tools/score_matrix.py

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

Score matrix: sparse scores given by scorers (committee members) to
candidates.

Each score is held as an explicit :class:`Observation`; a cell left blank
simply has no observation.

"""

import logging
import os
from typing import Any, Dict, List, Sequence

from openpyxl.reader.excel import load_workbook

from uniadmin_tools.config import ReconciliationConfig
from uniadmin_tools.constants import EXT_CSV, EXT_XLSX
from uniadmin_tools.helperfunc import (
    flatten_range,
    is_missing,
    read_csv_rows,
    read_until_empty_row,
    read_xlsx_range,
)

log = logging.getLogger(__name__)


# =============================================================================
# Observation
# =============================================================================


class Observation(object):
    """
    One score: scorer number ``scorer`` gave candidate number ``candidate`` the
    score ``value`` (both numbers being zero-based indexes).
    """

    __slots__ = ("scorer", "candidate", "value")

    def __init__(self, scorer: int, candidate: int, value: float) -> None:
        self.scorer = scorer
        self.candidate = candidate
        self.value = value

    def __repr__(self) -> str:
        return (
            f"Observation(scorer={self.scorer}, candidate={self.candidate}, "
            f"value={self.value})"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Observation):
            return NotImplemented
        return (self.scorer, self.candidate, self.value) == (
            other.scorer,
            other.candidate,
            other.value,
        )


# =============================================================================
# ScoreMatrix
# =============================================================================


class ScoreMatrix(object):
    """
    Scorer names, candidate names, and the scores actually given.
    """

    def __init__(
        self,
        scorer_names: Sequence[str],
        candidate_names: Sequence[str],
        observations: Sequence[Observation],
    ) -> None:
        """
        Args:
            scorer_names:
                Names of scorers (unique).
            candidate_names:
                Names of candidates (unique).
            observations:
                The scores given.
        """
        assert scorer_names, "No scorers"
        assert candidate_names, "No candidates"
        assert len(set(scorer_names)) == len(scorer_names), (
            "Duplicate scorer names"
        )
        assert len(set(candidate_names)) == len(candidate_names), (
            "Duplicate candidate names"
        )
        for obs in observations:
            assert 0 <= obs.scorer < len(scorer_names), f"Bad {obs!r}"
            assert 0 <= obs.candidate < len(candidate_names), f"Bad {obs!r}"
        self.scorer_names = list(scorer_names)
        self.candidate_names = list(candidate_names)
        self.observations = list(observations)

    def __str__(self) -> str:
        return (
            f"ScoreMatrix: {self.n_scorers} scorers, "
            f"{self.n_candidates} candidates, "
            f"{len(self.observations)} scores"
        )

    @property
    def n_scorers(self) -> int:
        return len(self.scorer_names)

    @property
    def n_candidates(self) -> int:
        return len(self.candidate_names)

    def n_ratings_by_scorer(self) -> List[int]:
        counts = [0] * self.n_scorers
        for obs in self.observations:
            counts[obs.scorer] += 1
        return counts

    def n_ratings_of_candidate(self) -> List[int]:
        counts = [0] * self.n_candidates
        for obs in self.observations:
            counts[obs.candidate] += 1
        return counts

    def raw_mean_of_candidate(self) -> List[float]:
        """
        Plain mean score of each candidate (NaN if never scored).
        """
        totals = [0.0] * self.n_candidates
        counts = self.n_ratings_of_candidate()
        for obs in self.observations:
            totals[obs.candidate] += obs.value
        return [
            t / n if n else float("nan") for t, n in zip(totals, counts)
        ]

    def unscored_candidates(self) -> List[str]:
        counts = self.n_ratings_of_candidate()
        return [
            name for name, n in zip(self.candidate_names, counts) if n == 0
        ]

    def idle_scorers(self) -> List[str]:
        counts = self.n_ratings_by_scorer()
        return [
            name for name, n in zip(self.scorer_names, counts) if n == 0
        ]

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def from_table(
        cls,
        scorer_names: Sequence[Any],
        candidate_names: Sequence[Any],
        data: Sequence[Sequence[Any]],
        min_score: float,
        max_score: float,
        source: str = "input",
    ) -> "ScoreMatrix":
        """
        Builds a matrix from a block of cells: one row per candidate, one
        column per scorer. Blank cells are "not scored".

        Raises:
            :exc:`ValueError` for bad names or scores.
        """
        scorers = [
            cls._name(x, "scorer", i, source)
            for i, x in enumerate(scorer_names, start=1)
        ]
        candidates = [
            cls._name(x, "candidate", i, source)
            for i, x in enumerate(candidate_names, start=1)
        ]
        for kind, names in (("scorer", scorers), ("candidate", candidates)):
            seen = set()
            for name in names:
                if name in seen:
                    raise ValueError(
                        f"Duplicate {kind} name in {source}: {name!r}"
                    )
                seen.add(name)
        if len(data) != len(candidates):
            raise ValueError(
                f"In {source}: {len(candidates)} candidate names but "
                f"{len(data)} rows of scores"
            )
        observations = []  # type: List[Observation]
        for c, row in enumerate(data):
            if len(row) > len(scorers) and not all(
                is_missing(x) for x in row[len(scorers):]
            ):
                raise ValueError(
                    f"In {source}: scores for candidate {candidates[c]!r} "
                    f"extend beyond the {len(scorers)} named scorers"
                )
            for j, cell in enumerate(row[: len(scorers)]):
                if is_missing(cell):
                    continue
                value = cls._score(cell, candidates[c], scorers[j], source)
                if not min_score <= value <= max_score:
                    raise ValueError(
                        f"In {source}: score {value} given by {scorers[j]!r} "
                        f"to {candidates[c]!r} is outside the permitted range "
                        f"[{min_score}, {max_score}]"
                    )
                observations.append(
                    Observation(scorer=j, candidate=c, value=value)
                )
        if not observations:
            raise ValueError(f"No scores found in {source}")
        return cls(scorers, candidates, observations)

    @staticmethod
    def _name(x: Any, kind: str, index: int, source: str) -> str:
        if is_missing(x):
            raise ValueError(f"Missing name for {kind} #{index} in {source}")
        return str(x).strip()

    @staticmethod
    def _score(x: Any, candidate: str, scorer: str, source: str) -> float:
        if isinstance(x, bool):
            raise ValueError(f"Bad score in {source}: {x!r}")
        try:
            return float(x)
        except (TypeError, ValueError):
            raise ValueError(
                f"In {source}: bad score given by {scorer!r} to "
                f"{candidate!r}: {x!r}"
            )

    @classmethod
    def from_rows(
        cls,
        rows: List[List[Any]],
        min_score: float,
        max_score: float,
        source: str = "input",
    ) -> "ScoreMatrix":
        """
        From a whole table: the first row holds scorer names (after an
        ignored top-left cell), the first column holds candidate names.
        """
        if len(rows) < 2:
            raise ValueError(
                f"{source} needs a header row of scorer names and at least "
                f"one row of scores"
            )
        header = list(rows[0][1:])
        # Trailing blank header cells are not scorers.
        while header and is_missing(header[-1]):
            header.pop()
        return cls.from_table(
            scorer_names=header,
            candidate_names=[row[0] if row else None for row in rows[1:]],
            data=[row[1:] for row in rows[1:]],
            min_score=min_score,
            max_score=max_score,
            source=source,
        )

    @classmethod
    def read_data(cls, config: ReconciliationConfig) -> "ScoreMatrix":
        """
        Reads a file, autodetecting its format.
        """
        filename = config.filename
        _, ext = os.path.splitext(filename)
        ext = ext.lower()
        if ext == EXT_CSV:
            log.info(f"Reading CSV file: {filename}")
            matrix = cls.from_rows(
                read_csv_rows(filename),
                min_score=config.min_score,
                max_score=config.max_score,
                source=repr(filename),
            )
        elif ext == EXT_XLSX:
            matrix = cls.read_xlsx(config)
        else:
            raise ValueError(
                f"Don't know how to read file type {ext!r} for {filename!r}"
            )
        log.info(str(matrix))
        return matrix

    @classmethod
    def read_xlsx(cls, config: ReconciliationConfig) -> "ScoreMatrix":
        """
        Reads from a spreadsheet, optionally using named cell ranges for the
        scorer names, candidate names and scores.
        """
        filename = config.filename
        log.info(f"Reading XLSX file: {filename}")
        ranges = (
            config.scorer_names_range,
            config.candidate_names_range,
            config.data_range,
        )
        if any(ranges) and not all(ranges):
            raise ValueError(
                "Specify all of the scorer names range, candidate names "
                "range and data range, or none of them"
            )
        wb = load_workbook(filename, data_only=True, keep_links=False)
        try:
            if config.sheet:
                if config.sheet not in wb.sheetnames:
                    raise ValueError(
                        f"No sheet named {config.sheet!r} in {filename!r}; "
                        f"sheets are {wb.sheetnames}"
                    )
                ws = wb[config.sheet]
            else:
                ws = wb.active
            source = f"{filename!r}, sheet {ws.title!r}"
            if not all(ranges):
                return cls.from_rows(
                    read_until_empty_row(ws),
                    min_score=config.min_score,
                    max_score=config.max_score,
                    source=source,
                )
            scorer_names = flatten_range(
                read_xlsx_range(ws, config.scorer_names_range)
            )
            candidate_names = flatten_range(
                read_xlsx_range(ws, config.candidate_names_range)
            )
            data = read_xlsx_range(ws, config.data_range)
            if data and len(data[0]) != len(scorer_names):
                raise ValueError(
                    f"In {source}: data range {config.data_range} has "
                    f"{len(data[0])} columns but scorer names range "
                    f"{config.scorer_names_range} has {len(scorer_names)} "
                    f"cells"
                )
            return cls.from_table(
                scorer_names=scorer_names,
                candidate_names=candidate_names,
                data=data,
                min_score=config.min_score,
                max_score=config.max_score,
                source=source,
            )
        finally:
            wb.close()

    def as_arrays(self) -> Dict[str, List[Any]]:
        """
        Observations as parallel lists: ``scorer``, ``candidate``, ``value``.
        """
        return {
            "scorer": [obs.scorer for obs in self.observations],
            "candidate": [obs.candidate for obs in self.observations],
            "value": [obs.value for obs in self.observations],
        }
