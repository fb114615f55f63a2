"""
ProbeTuner - choose the number of multi-probe LSH probes from training data.

Given training queries whose true nearest neighbor is known, the tuner
looks for the smallest number of probes at which the fraction of queries
whose answer shows up among the candidates ("probe precision") reaches a
target. It doubles the probe count until the target is met, then bisects
between the last two counts.
"""

import logging
from collections.abc import Sequence
from typing import Any, Optional

import numpy as np

from lshsearch.errors import TuningError, ValidationError
from lshsearch.index import NearestNeighborIndex

logger = logging.getLogger(__name__)

# Doubling steps allowed before giving up: up to 2**19 times the initial probe count
DEFAULT_MAX_ITERATIONS = 20


class ProbeTuner:
    """
    Finds the smallest probe count reaching a target probe precision.

    The tuner holds only its settings and can be reused across indexes.
    While tuning it changes the index's probe count to take measurements,
    so the index must not be queried from other threads until tune()
    returns. The original probe count is restored on exit.

    Example:
        >>> tuner = ProbeTuner(target_precision=0.9)
        >>> num_probes = tuner.tune(index, train_queries, train_answers)
        >>> index.set_num_probes(num_probes)
    """

    def __init__(
        self,
        target_precision: float,
        init_num_probes: int = 1,
        max_iterations: Optional[int] = DEFAULT_MAX_ITERATIONS,
    ):
        """
        Initialize the tuner.

        Args:
            target_precision: Minimal fraction of training queries, in [0, 1],
                whose answer must be among the candidates.
            init_num_probes: Probe count the doubling phase starts from.
            max_iterations: Maximum number of doubling steps. None removes
                the limit, in which case an unreachable target never returns.

        Raises:
            ValidationError: If a setting is out of range.
        """
        if not 0.0 <= target_precision <= 1.0:
            raise ValidationError(f"Target precision must be in [0, 1], got {target_precision}")
        if init_num_probes <= 0:
            raise ValidationError(f"Initial number of probes must be positive, got {init_num_probes}")
        if max_iterations is not None and max_iterations <= 0:
            raise ValidationError(f"Maximum iterations must be positive, got {max_iterations}")

        self.target_precision = target_precision
        self.init_num_probes = init_num_probes
        self.max_iterations = max_iterations

    def _validate(
        self,
        index: NearestNeighborIndex,
        queries: Any,
        answers: Sequence[int],
    ) -> tuple[np.ndarray, list[int]]:
        queries = np.asarray(queries, dtype=np.float64)
        if queries.ndim != 2:
            raise ValidationError(f"Queries must be 2D array, got shape {queries.shape}")
        if queries.shape[1] != index.dimension:
            raise ValidationError(
                f"Query dimension {queries.shape[1]} does not match index dimension {index.dimension}"
            )
        answers = [int(answer) for answer in answers]
        if len(answers) != queries.shape[0]:
            raise ValidationError(
                f"Number of queries ({queries.shape[0]}) must match "
                f"number of answers ({len(answers)})"
            )
        if not answers:
            raise ValidationError("At least one training query is required")
        out_of_range = [answer for answer in answers if not 0 <= answer < index.size]
        if out_of_range:
            raise ValidationError(
                f"Answers must be point indices in [0, {index.size}), got {out_of_range[:5]}"
            )
        return queries, answers

    def _measure(
        self,
        index: NearestNeighborIndex,
        queries: np.ndarray,
        answers: list[int],
        num_probes: int,
    ) -> float:
        index.set_num_probes(num_probes)
        num_matches = 0
        for query, answer in zip(queries, answers):
            if answer in index.get_candidates(query):
                num_matches += 1
        precision = num_matches / len(answers)
        logger.debug("Probe precision %.4f at %d probes", precision, num_probes)
        return precision

    def probe_precision(
        self,
        index: NearestNeighborIndex,
        queries: Any,
        answers: Sequence[int],
        num_probes: int,
    ) -> float:
        """
        Fraction of queries whose answer is among their candidates at num_probes.

        Leaves the index's probe count set to num_probes.

        Args:
            index: Index to measure.
            queries: 2D array-like of shape (n_queries, dimension).
            answers: Index of the true nearest point for each query.
            num_probes: Probe count to measure at.

        Returns:
            Probe precision in [0, 1].
        """
        queries, answers = self._validate(index, queries, answers)
        return self._measure(index, queries, answers, num_probes)

    def tune(self, index: NearestNeighborIndex, queries: Any, answers: Sequence[int]) -> int:
        """
        Find the number of probes that reaches the target precision.

        Args:
            index: Index to tune. Its probe count is the same on return.
            queries: 2D array-like of shape (n_queries, dimension).
            answers: Index of the true nearest point for each query.

        Returns:
            The smallest probe count found to reach the target precision.

        Raises:
            ValidationError: If queries and answers do not fit the index
                or each other. The index is not touched.
            TuningError: If the doubling phase runs out of iterations.
        """
        queries, answers = self._validate(index, queries, answers)
        original_num_probes = index.get_num_probes()

        try:
            num_probes = self._grow(index, queries, answers)
            num_probes = self._bisect(index, queries, answers, num_probes)
        finally:
            index.set_num_probes(original_num_probes)

        logger.info(
            "Tuned number of probes to %d for target precision %.4f",
            num_probes,
            self.target_precision,
        )
        return num_probes

    def _grow(self, index: NearestNeighborIndex, queries: np.ndarray, answers: list[int]) -> int:
        num_probes = self.init_num_probes
        iteration = 0
        while self.max_iterations is None or iteration < self.max_iterations:
            if self._measure(index, queries, answers, num_probes) >= self.target_precision:
                return num_probes
            num_probes *= 2
            iteration += 1

        raise TuningError(
            f"Maximum iterations ({self.max_iterations}) exceeded while tuning number of probes"
        )

    def _bisect(
        self,
        index: NearestNeighborIndex,
        queries: np.ndarray,
        answers: list[int],
        num_probes: int,
    ) -> int:
        # num_probes reaches the target; find the smallest count in (lo, num_probes] that does
        lo = num_probes // 2
        while num_probes - lo > 1:
            mid = (num_probes + lo) // 2
            if self._measure(index, queries, answers, mid) >= self.target_precision:
                num_probes = mid
            else:
                lo = mid
        return num_probes


def tune_num_probes(
    index: NearestNeighborIndex,
    queries: Any,
    answers: Sequence[int],
    target_precision: float,
    init_num_probes: int = 1,
    max_iterations: Optional[int] = DEFAULT_MAX_ITERATIONS,
) -> int:
    """Shortcut for ProbeTuner(...).tune(index, queries, answers)."""
    tuner = ProbeTuner(target_precision, init_num_probes, max_iterations)
    return tuner.tune(index, queries, answers)
