"""
Tests for ProbeTuner.
"""

import logging

import numpy as np
import pytest

from lshsearch import (
    NearestNeighborIndex,
    ParameterSet,
    ProbeTuner,
    TuningError,
    ValidationError,
    tune_num_probes,
)


@pytest.fixture
def sample_points():
    """1000 random points in 10 dimensions."""
    rng = np.random.default_rng(42)
    return rng.standard_normal(size=(1000, 10))


@pytest.fixture
def index(sample_points):
    """Index over sample_points with default parameters."""
    return NearestNeighborIndex(sample_points, ParameterSet(1000, 10))


@pytest.fixture
def training_data(sample_points):
    """Slightly perturbed copies of stored points, labeled with the point they came from."""
    rng = np.random.default_rng(3)
    answers = rng.choice(len(sample_points), size=40, replace=False)
    queries = sample_points[answers] + 0.15 * rng.standard_normal(size=(40, 10))
    return queries, answers


class TestProbePrecision:
    """Test the precision measurement."""

    def test_precision_in_range(self, index, training_data):
        """Test that precision is a fraction."""
        queries, answers = training_data
        precision = ProbeTuner(0.9).probe_precision(index, queries, answers, 10)

        assert 0.0 <= precision <= 1.0

    def test_exact_queries_found(self, sample_points, index):
        """Test that stored points are always among their own candidates."""
        answers = [0, 1, 2, 3]
        precision = ProbeTuner(1.0).probe_precision(index, sample_points[answers], answers, 1)

        assert precision == 1.0

    def test_precision_monotone(self, index, training_data):
        """Test that precision never drops as probes increase."""
        queries, answers = training_data
        tuner = ProbeTuner(0.9)
        precisions = [
            tuner.probe_precision(index, queries, answers, num_probes)
            for num_probes in (1, 2, 4, 8, 16, 32, 64, 128, 256)
        ]

        assert precisions == sorted(precisions)
        assert precisions[-1] > precisions[0]

    def test_precision_sets_num_probes(self, index, training_data):
        """Test that measuring leaves the measured probe count installed."""
        queries, answers = training_data
        ProbeTuner(0.9).probe_precision(index, queries, answers, 33)

        assert index.get_num_probes() == 33


class TestProbeTuning:
    """Test the tuning search."""

    @pytest.mark.parametrize("target", [0.5, 0.8, 0.95, 1.0])
    def test_reaches_target(self, index, training_data, target):
        """Test that the returned probe count meets the target."""
        queries, answers = training_data
        tuner = ProbeTuner(target, max_iterations=30)

        num_probes = tuner.tune(index, queries, answers)

        assert num_probes >= 1
        assert tuner.probe_precision(index, queries, answers, num_probes) >= target

    def test_result_is_minimal_within_bracket(self, index, training_data):
        """Test that one probe fewer misses the target."""
        queries, answers = training_data
        tuner = ProbeTuner(0.9, max_iterations=30)

        num_probes = tuner.tune(index, queries, answers)

        if num_probes > 1:
            assert tuner.probe_precision(index, queries, answers, num_probes - 1) < 0.9

    def test_restores_num_probes(self, index, training_data):
        """Test that tuning leaves the probe count as it found it."""
        queries, answers = training_data
        index.set_num_probes(17)

        ProbeTuner(0.9).tune(index, queries, answers)

        assert index.get_num_probes() == 17

    def test_zero_target(self, index, training_data):
        """Test that a zero target is met by the initial probe count."""
        queries, answers = training_data
        assert ProbeTuner(0.0, init_num_probes=1).tune(index, queries, answers) == 1

    def test_index_shortcut(self, index, training_data):
        """Test tuning through the index."""
        queries, answers = training_data
        expected = ProbeTuner(0.9).tune(index, queries, answers)

        assert index.tune_num_probes(queries, answers, 0.9) == expected
        assert tune_num_probes(index, queries, answers, 0.9) == expected

    def test_installing_result(self, index, training_data):
        """Test that installing the result gives the tuned precision on queries."""
        queries, answers = training_data
        num_probes = index.tune_num_probes(queries, answers, 0.9)
        index.set_num_probes(num_probes)

        found = sum(answer in index.get_candidates(query) for query, answer in zip(queries, answers))
        assert found / len(answers) >= 0.9

    def test_logs_result(self, index, training_data, caplog):
        """Test that the tuned value is logged."""
        queries, answers = training_data
        with caplog.at_level(logging.INFO, logger="lshsearch.tuning"):
            num_probes = ProbeTuner(0.9).tune(index, queries, answers)

        assert f"Tuned number of probes to {num_probes}" in caplog.text


class TestProbeTuningFailures:
    """Test tuning errors."""

    def test_iterations_exhausted(self, sample_points, index):
        """Test that an unreachable target within the cap raises."""
        rng = np.random.default_rng(11)
        queries = rng.standard_normal(size=(30, 10))
        answers = [
            int(np.argmin(np.sum((sample_points - query) ** 2, axis=1)))
            for query in queries
        ]
        index.set_num_probes(12)

        with pytest.raises(TuningError, match="Maximum iterations"):
            ProbeTuner(1.0, max_iterations=1).tune(index, queries, answers)

        assert index.get_num_probes() == 12

    def test_length_mismatch(self, index, training_data):
        """Test that queries and answers must have the same length."""
        queries, answers = training_data
        index.set_num_probes(12)

        with pytest.raises(ValidationError, match="must match"):
            ProbeTuner(0.9).tune(index, queries, answers[:-1])

        assert index.get_num_probes() == 12

    def test_query_dimension_mismatch(self, index):
        """Test that training queries must fit the index."""
        with pytest.raises(ValidationError, match="does not match index dimension"):
            ProbeTuner(0.9).tune(index, np.zeros((3, 4)), [0, 1, 2])

    def test_queries_2d(self, index):
        """Test that a single flat query is rejected."""
        with pytest.raises(ValidationError, match="must be 2D array"):
            ProbeTuner(0.9).tune(index, np.zeros(10), [0])

    def test_empty_training_set(self, index):
        """Test that at least one query is needed."""
        with pytest.raises(ValidationError, match="At least one"):
            ProbeTuner(0.9).tune(index, np.zeros((0, 10)), [])

    def test_answers_out_of_range(self, index):
        """Test that answers must be point indices."""
        with pytest.raises(ValidationError, match="point indices"):
            ProbeTuner(0.9).tune(index, np.zeros((2, 10)), [0, 1000])

    @pytest.mark.parametrize("kwargs", [
        {"target_precision": 1.5},
        {"target_precision": -0.1},
        {"target_precision": 0.9, "init_num_probes": 0},
        {"target_precision": 0.9, "init_num_probes": -4},
        {"target_precision": 0.9, "max_iterations": 0},
    ])
    def test_invalid_settings(self, kwargs):
        """Test that tuner settings are validated up front."""
        with pytest.raises(ValidationError):
            ProbeTuner(**kwargs)

    def test_unbounded_iterations(self, index, training_data):
        """Test that the cap can be removed."""
        queries, answers = training_data
        assert ProbeTuner(0.5, max_iterations=None).tune(index, queries, answers) >= 1
