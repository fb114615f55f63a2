"""
ParameterSet - configuration builder for LSH nearest-neighbor indexes.

A ParameterSet starts from engine defaults computed for a dataset of n
points in d dimensions and is then adjusted field by field. Setters mutate
the instance and return it, so calls can be chained:

    >>> params = ParameterSet(1000, 10)
    >>> params.set_distance("negative_inner_product").set_family("hyperplane").set_num_hash_tables(20)

Enumerated settings are given by name. The name tables below are fixed;
names that are not in a table resolve to the ``unknown`` variant, which the
engine rejects when an index is built.
"""

import logging
import numbers
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, TypeVar

from lshsearch.engine import (
    ConstructionParameters,
    DistanceFunction,
    LSHFamily,
    StorageHashTable,
    compute_default_parameters,
)
from lshsearch.errors import ConfigurationError

logger = logging.getLogger(__name__)

DISTANCES = MappingProxyType({
    "unknown": DistanceFunction.UNKNOWN,
    "negative_inner_product": DistanceFunction.NEGATIVE_INNER_PRODUCT,
    "euclidean_squared": DistanceFunction.EUCLIDEAN_SQUARED,
})

LSH_FAMILIES = MappingProxyType({
    "unknown": LSHFamily.UNKNOWN,
    "hyperplane": LSHFamily.HYPERPLANE,
    "cross_polytope": LSHFamily.CROSS_POLYTOPE,
})

STORAGE_TYPES = MappingProxyType({
    "unknown": StorageHashTable.UNKNOWN,
    "flat_hash_table": StorageHashTable.FLAT_HASH_TABLE,
    "bit_packed_flat_hash_table": StorageHashTable.BIT_PACKED_FLAT_HASH_TABLE,
    "stl_hash_table": StorageHashTable.STL_HASH_TABLE,
    "linear_probing_hash_table": StorageHashTable.LINEAR_PROBING_HASH_TABLE,
})

DEFAULT_DISTANCE = "euclidean_squared"
UNKNOWN = "unknown"

V = TypeVar("V")


def lookup(table: Mapping[str, V], name: str, default: V) -> V:
    """
    Get the variant registered under a name, or a default if there is none.

    Args:
        table: Name-to-variant table.
        name: The name to look up.
        default: Value returned when name is not in the table.

    Returns:
        The variant for name, or default.
    """
    if name not in table:
        logger.warning("Unrecognized setting %r, using %r", name, default)
        return default
    return table[name]


def invert(table: Mapping[str, V], value: V, label: str = UNKNOWN) -> str:
    """
    Get the name a variant is registered under, or a label if none matches.

    Assumes the table is one-to-one.
    """
    for name, variant in table.items():
        if variant == value:
            return name
    return label


class ParameterSet:
    """
    Mutable configuration for building a NearestNeighborIndex.

    Holds the point count and dimension of the dataset plus the engine
    construction parameters. An index copies its ParameterSet when it is
    built, so changing the set afterwards does not affect that index.

    Integer setters perform no range checks; out-of-range values are
    reported as ConfigurationError when an index is built.
    """

    def __init__(self, n: int, d: int):
        """
        Initialize with engine defaults for the squared Euclidean distance.

        Args:
            n: Number of data points (positive).
            d: Dimension of the data points (positive).

        Raises:
            ConfigurationError: If n or d is not a positive integer.
        """
        if not isinstance(n, numbers.Integral) or not isinstance(d, numbers.Integral):
            raise ConfigurationError(
                f"Point count and dimension must be integers, got n={n!r}, d={d!r}"
            )
        if n <= 0 or d <= 0:
            raise ConfigurationError(
                f"Point count and dimension must be positive, got n={n}, d={d}"
            )
        self._n = int(n)
        self._d = int(d)
        self._p = ConstructionParameters()
        self.with_defaults()

    @classmethod
    def create(cls, n: int, d: int) -> "ParameterSet":
        return cls(n, d)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "ParameterSet":
        """
        Rebuild a ParameterSet from the output of as_mapping().

        Args:
            mapping: Name-to-value mapping with the keys produced by as_mapping().

        Returns:
            A new ParameterSet equal to the one the mapping was taken from.

        Raises:
            ConfigurationError: If points or dimension are not positive integers.
            KeyError: If a key is missing.
        """
        params = cls(mapping["points"], mapping["dimension"])
        params.set_distance(mapping["distance"])
        params.set_family(mapping["lsh_family"])
        params.set_storage(mapping["storage"])
        params.set_num_hash_functions(mapping["hash_functions"])
        params.set_num_hash_tables(mapping["hash_tables"])
        params.set_rotations(mapping["rotations"])
        params.set_seed(mapping["seed"])
        params.set_num_setup_threads(mapping["threads"])
        params._p.last_cp_dimension = mapping["last_cp_dimension"]
        params._p.feature_hashing_dimension = mapping["feature_hashing_dimension"]
        return params

    @property
    def points(self) -> int:
        return self._n

    @property
    def dimension(self) -> int:
        return self._d

    @property
    def num_hash_functions(self) -> int:
        return self._p.k

    @property
    def num_hash_tables(self) -> int:
        return self._p.l

    @property
    def distance(self) -> DistanceFunction:
        return self._p.distance_function

    @property
    def family(self) -> LSHFamily:
        return self._p.lsh_family

    @property
    def storage(self) -> StorageHashTable:
        return self._p.storage_hash_table

    @property
    def rotations(self) -> int:
        return self._p.num_rotations

    @property
    def seed(self) -> int:
        return self._p.seed

    @property
    def num_setup_threads(self) -> int:
        return self._p.num_setup_threads

    @property
    def last_cp_dimension(self) -> int:
        return self._p.last_cp_dimension

    @property
    def feature_hashing_dimension(self) -> int:
        return self._p.feature_hashing_dimension

    def construction_parameters(self) -> ConstructionParameters:
        """Return a copy of the underlying engine parameters."""
        return self._p.copy()

    def copy(self) -> "ParameterSet":
        clone = self.__class__.__new__(self.__class__)
        clone._n = self._n
        clone._d = self._d
        clone._p = self._p.copy()
        return clone

    def with_defaults(self, distance: str = DEFAULT_DISTANCE) -> "ParameterSet":
        """
        Reset every parameter to the engine defaults for this dataset size.

        Args:
            distance: One of "negative_inner_product", "euclidean_squared"
                or "unknown"; any other name selects "unknown".

        Returns:
            self for method chaining.
        """
        self._p = compute_default_parameters(
            self._n,
            self._d,
            lookup(DISTANCES, distance, DistanceFunction.UNKNOWN),
            True,
        )
        return self

    def set_distance(self, distance: str) -> "ParameterSet":
        """Set the distance function by name; unrecognized names select "unknown"."""
        self._p.distance_function = lookup(DISTANCES, distance, DistanceFunction.UNKNOWN)
        return self

    def set_family(self, family: str) -> "ParameterSet":
        """Set the LSH family ("hyperplane" or "cross_polytope"); unrecognized names select "unknown"."""
        self._p.lsh_family = lookup(LSH_FAMILIES, family, LSHFamily.UNKNOWN)
        return self

    def set_storage(self, storage: str) -> "ParameterSet":
        """
        Set the bucket storage type by name.

        Args:
            storage: One of "flat_hash_table", "bit_packed_flat_hash_table",
                "stl_hash_table", "linear_probing_hash_table" or "unknown";
                any other name selects "unknown".

        Returns:
            self for method chaining.
        """
        self._p.storage_hash_table = lookup(STORAGE_TYPES, storage, StorageHashTable.UNKNOWN)
        return self

    def set_num_hash_functions(self, k: int) -> "ParameterSet":
        self._p.k = k
        return self

    def set_num_hash_tables(self, l: int) -> "ParameterSet":  # noqa: E741
        self._p.l = l
        return self

    def set_rotations(self, rotations: int) -> "ParameterSet":
        """
        Set the number of pseudo-rotations used by the cross-polytope family.

        One rotation is enough for dense data; sparse data calls for two.
        """
        self._p.num_rotations = rotations
        return self

    def set_seed(self, seed: int) -> "ParameterSet":
        self._p.seed = seed
        return self

    def set_num_setup_threads(self, threads: int) -> "ParameterSet":
        """Set the number of threads used to build tables; 0 uses one per CPU."""
        self._p.num_setup_threads = threads
        return self

    def as_mapping(self) -> Mapping[str, Any]:
        """
        Read-only snapshot of every parameter by name.

        Enumerated parameters are rendered by name; values without a name
        render as "unknown".
        """
        return MappingProxyType({
            "points": self._n,
            "dimension": self._d,
            "hash_functions": self._p.k,
            "hash_tables": self._p.l,
            "seed": self._p.seed,
            "lsh_family": invert(LSH_FAMILIES, self._p.lsh_family),
            "distance": invert(DISTANCES, self._p.distance_function),
            "storage": invert(STORAGE_TYPES, self._p.storage_hash_table),
            "rotations": self._p.num_rotations,
            "threads": self._p.num_setup_threads,
            "last_cp_dimension": self._p.last_cp_dimension,
            "feature_hashing_dimension": self._p.feature_hashing_dimension,
        })

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ParameterSet):
            return NotImplemented
        return dict(self.as_mapping()) == dict(other.as_mapping())

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        fields = ", ".join(f"{name}={value!r}" for name, value in self.as_mapping().items())
        return f"ParameterSet({fields})"
