"""
In-memory LSH engine.

This package builds static multi-probe LSH tables (hyperplane or
cross-polytope hashing) over a fixed point set, and computes default
construction parameters from the shape of a dataset.
"""

from lshsearch.engine.parameters import (
    ConstructionParameters,
    DistanceFunction,
    LSHFamily,
    StorageHashTable,
    compute_default_parameters,
    compute_number_of_hash_functions,
)
from lshsearch.engine.table import (
    NO_MAX_NUM_CANDIDATES,
    LSHQueryError,
    LSHTable,
    LSHTableSetupError,
    construct_table,
)

__all__ = [
    "NO_MAX_NUM_CANDIDATES",
    "ConstructionParameters",
    "DistanceFunction",
    "LSHFamily",
    "LSHQueryError",
    "LSHTable",
    "LSHTableSetupError",
    "StorageHashTable",
    "compute_default_parameters",
    "compute_number_of_hash_functions",
    "construct_table",
]
