"""
Construction parameters for LSH tables and their data-driven defaults.
"""

import enum
from dataclasses import dataclass, replace

DEFAULT_SEED = 409556018
DEFAULT_NUM_TABLES = 10


class DistanceFunction(enum.Enum):
    UNKNOWN = 0
    NEGATIVE_INNER_PRODUCT = 1
    EUCLIDEAN_SQUARED = 2


class LSHFamily(enum.Enum):
    UNKNOWN = 0
    HYPERPLANE = 1
    CROSS_POLYTOPE = 2


class StorageHashTable(enum.Enum):
    UNKNOWN = 0
    FLAT_HASH_TABLE = 1
    BIT_PACKED_FLAT_HASH_TABLE = 2
    STL_HASH_TABLE = 3
    LINEAR_PROBING_HASH_TABLE = 4


@dataclass
class ConstructionParameters:
    """
    Everything the engine needs to build a table.

    Integer fields left at -1 are unset. ``k`` is the number of hash
    functions per table and ``l`` the number of tables.
    ``last_cp_dimension`` and ``num_rotations`` only matter for the
    cross-polytope family; ``feature_hashing_dimension`` only for sparse
    data, which this engine does not index.
    """

    dimension: int = -1
    lsh_family: LSHFamily = LSHFamily.UNKNOWN
    distance_function: DistanceFunction = DistanceFunction.UNKNOWN
    k: int = -1
    l: int = -1  # noqa: E741
    storage_hash_table: StorageHashTable = StorageHashTable.UNKNOWN
    num_setup_threads: int = 0
    seed: int = DEFAULT_SEED
    last_cp_dimension: int = -1
    num_rotations: int = -1
    feature_hashing_dimension: int = -1

    def copy(self) -> "ConstructionParameters":
        return replace(self)


def next_power_of_two(value: int) -> int:
    """Smallest power of two that is >= value (value >= 1)."""
    return 1 << (value - 1).bit_length()


def log2_floor(value: int) -> int:
    return value.bit_length() - 1


def rotation_dimension(params: ConstructionParameters) -> int:
    """Dimension cross-polytope rotations operate in: the data dimension padded to a power of two."""
    return next_power_of_two(params.dimension)


def compute_number_of_hash_functions(
    number_of_hash_bits: int,
    params: ConstructionParameters,
) -> None:
    """
    Set ``k`` (and ``last_cp_dimension``) so a table uses the given number of hash bits.

    A hyperplane function contributes one bit. A cross-polytope function in
    rotation dimension D contributes log2(D) + 1 bits; when the bits do not
    divide evenly, the last function is shrunk to a smaller cross-polytope
    covering the remainder.

    Args:
        number_of_hash_bits: Target number of bits per table (>= 1).
        params: Parameters to update in place. ``dimension`` and
            ``lsh_family`` must already be set.

    Raises:
        ValueError: If the bit count is not positive or the family is unknown.
    """
    if number_of_hash_bits <= 0:
        raise ValueError(f"Number of hash bits must be positive, got {number_of_hash_bits}")

    if params.lsh_family == LSHFamily.HYPERPLANE:
        params.k = number_of_hash_bits
    elif params.lsh_family == LSHFamily.CROSS_POLYTOPE:
        dim = rotation_dimension(params)
        bits_per_function = log2_floor(dim) + 1
        params.k = number_of_hash_bits // bits_per_function
        remaining_bits = number_of_hash_bits - params.k * bits_per_function
        if remaining_bits > 0:
            params.k += 1
            params.last_cp_dimension = 1 << (remaining_bits - 1)
        else:
            params.last_cp_dimension = dim
    else:
        raise ValueError("Cannot compute the number of hash functions for an unknown LSH family")


def compute_default_parameters(
    dataset_size: int,
    dimension: int,
    distance_function: DistanceFunction,
    is_sufficiently_dense: bool = True,
) -> ConstructionParameters:
    """
    Reasonable construction parameters for a dataset of the given shape.

    Uses the cross-polytope family with 10 tables and bit-packed storage,
    and picks the number of hash bits so that buckets hold a handful of
    points on average.

    Args:
        dataset_size: Number of points that will be indexed.
        dimension: Dimension of the points.
        distance_function: Metric the table will be queried with.
        is_sufficiently_dense: Dense data needs one pseudo-rotation, sparse data two.

    Returns:
        A fresh ConstructionParameters instance.
    """
    params = ConstructionParameters(
        dimension=dimension,
        lsh_family=LSHFamily.CROSS_POLYTOPE,
        distance_function=distance_function,
        l=DEFAULT_NUM_TABLES,
        storage_hash_table=StorageHashTable.BIT_PACKED_FLAT_HASH_TABLE,
        num_setup_threads=0,
        num_rotations=1 if is_sufficiently_dense else 2,
    )

    number_of_hash_bits = 1
    while (1 << (number_of_hash_bits + 2)) <= dataset_size:
        number_of_hash_bits += 1

    compute_number_of_hash_functions(number_of_hash_bits, params)
    return params


def hash_bits_per_table(params: ConstructionParameters) -> int:
    """Number of bits a single table key occupies for the configured family."""
    if params.lsh_family == LSHFamily.HYPERPLANE:
        return params.k
    bits_per_function = log2_floor(rotation_dimension(params)) + 1
    return (params.k - 1) * bits_per_function + log2_floor(params.last_cp_dimension) + 1
