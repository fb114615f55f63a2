"""
Tests for ParameterSet configuration building.
"""

import logging

import numpy as np

import pytest

from lshsearch import ConfigurationError, ParameterSet
from lshsearch.engine import DistanceFunction, LSHFamily, StorageHashTable
from lshsearch.params import DISTANCES, LSH_FAMILIES, STORAGE_TYPES


@pytest.fixture
def params():
    """Default parameters for 1000 points in 10 dimensions."""
    return ParameterSet(1000, 10)


class TestParameterSetDefaults:
    """Test defaults computed at creation."""

    @pytest.mark.parametrize("n, d", [(1, 1), (1000, 10), (50, 384), (100000, 3)])
    def test_points_and_dimension(self, n, d):
        """Test that point count and dimension are kept as given."""
        params = ParameterSet(n, d)
        assert params.points == n
        assert params.dimension == d

    def test_default_values(self, params):
        """Test the engine defaults for a dense dataset."""
        pv = params.as_mapping()

        assert pv["points"] == 1000
        assert pv["dimension"] == 10
        assert pv["lsh_family"] == "cross_polytope"
        assert pv["distance"] == "euclidean_squared"
        assert pv["storage"] == "bit_packed_flat_hash_table"
        assert pv["hash_tables"] == 10
        assert pv["rotations"] == 1
        assert pv["threads"] == 0
        assert pv["seed"] == 409556018

    def test_default_hash_functions(self, params):
        """Test that 8 hash bits in rotation dimension 16 give two functions."""
        # 16-dimensional cross-polytope: 5 bits per function, 3 bits left for the last one
        assert params.num_hash_functions == 2
        assert params.last_cp_dimension == 4

    def test_create_alias(self):
        """Test that create() matches the constructor."""
        assert ParameterSet.create(200, 5) == ParameterSet(200, 5)

    @pytest.mark.parametrize("n, d", [(0, 10), (10, 0), (-1, 10), (10, -5)])
    def test_non_positive_shape(self, n, d):
        """Test that non-positive point count or dimension is rejected."""
        with pytest.raises(ConfigurationError, match="must be positive"):
            ParameterSet(n, d)

    @pytest.mark.parametrize("n, d", [(10.7, 3), (10, 3.0), ("10", 3), (None, 3)])
    def test_non_integer_shape(self, n, d):
        """Test that sizes are not truncated to integers."""
        with pytest.raises(ConfigurationError, match="must be integers"):
            ParameterSet(n, d)

    def test_numpy_integer_shape(self):
        """Test that numpy integers are accepted as sizes."""
        params = ParameterSet(np.int64(100), np.int32(8))
        assert params.points == 100
        assert params.dimension == 8

    def test_configuration_error_is_value_error(self):
        """Test that configuration errors can be caught as ValueError."""
        with pytest.raises(ValueError):
            ParameterSet(0, 0)


class TestParameterSetSetters:
    """Test chained setters."""

    def test_parameter_changes_effective(self, params):
        """Test that enumerated settings change and chain."""
        pv = params.set_distance("negative_inner_product").set_family("hyperplane").as_mapping()

        assert pv["lsh_family"] == "hyperplane"
        assert pv["distance"] == "negative_inner_product"

    def test_setters_return_self(self, params):
        """Test that every setter returns the same instance."""
        assert params.set_distance("euclidean_squared") is params
        assert params.set_family("hyperplane") is params
        assert params.set_storage("stl_hash_table") is params
        assert params.set_num_hash_functions(4) is params
        assert params.set_num_hash_tables(3) is params
        assert params.set_rotations(2) is params
        assert params.set_seed(7) is params
        assert params.set_num_setup_threads(1) is params

    def test_integer_setters(self, params):
        """Test direct integer writes."""
        params.set_num_hash_functions(3).set_num_hash_tables(2).set_rotations(2)
        params.set_seed(12345).set_num_setup_threads(4)

        assert params.num_hash_functions == 3
        assert params.num_hash_tables == 2
        assert params.rotations == 2
        assert params.seed == 12345
        assert params.num_setup_threads == 4

    def test_integer_setters_not_range_checked(self, params):
        """Test that out-of-range integers are accepted at this layer."""
        params.set_num_hash_functions(-3).set_num_hash_tables(0).set_rotations(-1)

        assert params.num_hash_functions == -3
        assert params.num_hash_tables == 0
        assert params.rotations == -1

    @pytest.mark.parametrize("name", list(STORAGE_TYPES))
    def test_all_storage_names(self, params, name):
        """Test that every known storage name round trips through as_mapping()."""
        assert params.set_storage(name).as_mapping()["storage"] == name

    def test_enum_properties(self, params):
        """Test that enumerated properties expose engine variants."""
        params.set_distance("negative_inner_product").set_family("hyperplane").set_storage("flat_hash_table")

        assert params.distance == DistanceFunction.NEGATIVE_INNER_PRODUCT
        assert params.family == LSHFamily.HYPERPLANE
        assert params.storage == StorageHashTable.FLAT_HASH_TABLE


class TestParameterSetUnknownNames:
    """Test fallback for unrecognized names."""

    @pytest.mark.parametrize("name", ["", "cosine", "EUCLIDEAN_SQUARED", "hamming"])
    def test_unknown_distance(self, params, name):
        """Test that unrecognized distances select unknown."""
        params.set_distance(name)
        assert params.distance == DistanceFunction.UNKNOWN
        assert params.as_mapping()["distance"] == "unknown"

    @pytest.mark.parametrize("name", ["minhash", "Hyperplane", "cross-polytope"])
    def test_unknown_family(self, params, name):
        """Test that unrecognized families select unknown."""
        params.set_family(name)
        assert params.family == LSHFamily.UNKNOWN
        assert params.as_mapping()["lsh_family"] == "unknown"

    @pytest.mark.parametrize("name", ["btree", "flat", "dict"])
    def test_unknown_storage(self, params, name):
        """Test that unrecognized storage types select unknown."""
        params.set_storage(name)
        assert params.storage == StorageHashTable.UNKNOWN
        assert params.as_mapping()["storage"] == "unknown"

    def test_unknown_name_logs_warning(self, params, caplog):
        """Test that the fallback is reported in the log."""
        with caplog.at_level(logging.WARNING, logger="lshsearch.params"):
            params.set_family("minhash")

        assert "minhash" in caplog.text

    def test_with_defaults_unknown_distance(self, params):
        """Test that with_defaults() falls back to the unknown metric."""
        params.with_defaults("manhattan")

        assert params.distance == DistanceFunction.UNKNOWN
        assert params.family == LSHFamily.CROSS_POLYTOPE


class TestParameterSetWithDefaults:
    """Test resetting to defaults."""

    def test_with_defaults_resets_fields(self, params):
        """Test that with_defaults() undoes earlier changes."""
        params.set_family("hyperplane").set_num_hash_tables(50).set_storage("stl_hash_table")
        params.with_defaults()

        assert params == ParameterSet(1000, 10)

    def test_with_defaults_distance(self, params):
        """Test that with_defaults() picks up the named distance."""
        assert params.with_defaults("negative_inner_product") is params
        assert params.as_mapping()["distance"] == "negative_inner_product"


class TestParameterSetMapping:
    """Test the read-only mapping view."""

    def test_mapping_keys(self, params):
        """Test that every field is present."""
        assert set(params.as_mapping()) == {
            "points",
            "dimension",
            "hash_functions",
            "hash_tables",
            "seed",
            "lsh_family",
            "distance",
            "storage",
            "rotations",
            "threads",
            "last_cp_dimension",
            "feature_hashing_dimension",
        }

    def test_mapping_is_read_only(self, params):
        """Test that the snapshot cannot be modified."""
        with pytest.raises(TypeError):
            params.as_mapping()["hash_tables"] = 3

    def test_mapping_is_snapshot(self, params):
        """Test that later changes do not show up in an earlier snapshot."""
        snapshot = params.as_mapping()
        params.set_num_hash_tables(3)
        assert snapshot["hash_tables"] == 10

    def test_round_trip_defaults(self, params):
        """Test that from_mapping() rebuilds the default configuration."""
        assert ParameterSet.from_mapping(params.as_mapping()) == params

    @pytest.mark.parametrize("distance", list(DISTANCES))
    @pytest.mark.parametrize("family", list(LSH_FAMILIES))
    @pytest.mark.parametrize("storage", list(STORAGE_TYPES))
    def test_round_trip_enumerations(self, params, distance, family, storage):
        """Test round trips across enumerated settings."""
        params.set_distance(distance).set_family(family).set_storage(storage)
        params.set_num_hash_functions(6).set_num_hash_tables(4).set_rotations(3).set_seed(99)

        rebuilt = ParameterSet.from_mapping(params.as_mapping())

        assert rebuilt == params
        assert rebuilt.distance == params.distance
        assert rebuilt.family == params.family
        assert rebuilt.storage == params.storage
        assert rebuilt.construction_parameters() == params.construction_parameters()

    def test_copy_is_independent(self, params):
        """Test that copies do not share state."""
        clone = params.copy()
        clone.set_num_hash_tables(2)

        assert params.num_hash_tables == 10
        assert clone != params

    def test_construction_parameters_is_copy(self, params):
        """Test that engine parameters cannot be changed through the copy."""
        engine_params = params.construction_parameters()
        engine_params.l = 1

        assert params.num_hash_tables == 10
