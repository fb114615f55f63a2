"""
Static multi-probe LSH table.

A table is built once from a point set and never changes. Queries walk
the multi-probe sequence over all ``l`` hash tables, collect the points
stored in the probed buckets and, for neighbor queries, rank them by exact
distance.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Union

import numpy as np

from lshsearch.engine.hashing import CrossPolytopeHash, HyperplaneHash
from lshsearch.engine.parameters import (
    ConstructionParameters,
    DistanceFunction,
    LSHFamily,
    StorageHashTable,
    hash_bits_per_table,
    rotation_dimension,
)
from lshsearch.engine.probing import probing_sequence

logger = logging.getLogger(__name__)

NO_MAX_NUM_CANDIDATES = -1

# Flat tables address buckets directly by key, so the key must fit 32 bits
MAX_FLAT_HASH_BITS = 32
FLAT_STORAGE = (StorageHashTable.FLAT_HASH_TABLE, StorageHashTable.BIT_PACKED_FLAT_HASH_TABLE)


class LSHTableSetupError(ValueError):
    """The parameters or data cannot be turned into a table."""


class LSHQueryError(ValueError):
    """A query-time setting is out of range."""


class LSHTable:
    """
    An immutable LSH nearest-neighbor table over a fixed point set.

    Build instances with construct_table(). The number of probes defaults
    to the number of tables, i.e. one home bucket per table.
    """

    def __init__(
        self,
        points: np.ndarray,
        params: ConstructionParameters,
        hasher: Union[HyperplaneHash, CrossPolytopeHash],
        buckets: list[dict[tuple[int, ...], list[int]]],
    ):
        self._points = points
        self._params = params
        self._hasher = hasher
        self._buckets = buckets
        self._num_nonempty_buckets = sum(len(table) for table in buckets)
        self._num_probes = params.l
        self._max_num_candidates = NO_MAX_NUM_CANDIDATES

    def get_num_probes(self) -> int:
        return self._num_probes

    def set_num_probes(self, num_probes: int) -> None:
        if num_probes < 1:
            raise LSHQueryError(f"Number of probes must be at least 1, got {num_probes}")
        self._num_probes = num_probes

    def get_max_num_candidates(self) -> int:
        return self._max_num_candidates

    def set_max_num_candidates(self, num_candidates: int = NO_MAX_NUM_CANDIDATES) -> None:
        if num_candidates != NO_MAX_NUM_CANDIDATES and num_candidates < 1:
            raise LSHQueryError(
                f"Maximum number of candidates must be positive or {NO_MAX_NUM_CANDIDATES}, "
                f"got {num_candidates}"
            )
        self._max_num_candidates = num_candidates

    def _probe(self, query: np.ndarray) -> list[int]:
        """Candidates from one probing sequence, in probe order, duplicates kept."""
        home_keys = []
        options = []
        for table_id in range(self._params.l):
            home, table_options = self._hasher.probe_options(table_id, query)
            home_keys.append(home)
            options.append(table_options)

        candidates: list[int] = []
        remaining_buckets = self._num_nonempty_buckets
        cap = self._max_num_candidates
        probes = 0

        for table_id, key in probing_sequence(home_keys, options, self._params.k):
            if probes >= self._num_probes or remaining_buckets == 0:
                break
            probes += 1
            bucket = self._buckets[table_id].get(key)
            if bucket is None:
                continue
            remaining_buckets -= 1
            candidates.extend(bucket)
            if cap != NO_MAX_NUM_CANDIDATES and len(candidates) >= cap:
                del candidates[cap:]
                break

        return candidates

    def _distances(self, query: np.ndarray, candidates: list[int]) -> np.ndarray:
        vectors = self._points[candidates]
        if self._params.distance_function == DistanceFunction.NEGATIVE_INNER_PRODUCT:
            return -(vectors @ query)
        diff = vectors - query
        return np.einsum("ij,ij->i", diff, diff)

    def get_candidates_with_duplicates(self, query: np.ndarray) -> list[int]:
        return self._probe(query)

    def get_unique_candidates(self, query: np.ndarray) -> list[int]:
        return list(dict.fromkeys(self._probe(query)))

    def find_nearest_neighbor(self, query: np.ndarray) -> int:
        """Index of the closest candidate, or -1 if no candidate was found."""
        candidates = self.get_unique_candidates(query)
        if not candidates:
            return -1
        distances = self._distances(query, candidates)
        return candidates[int(np.argmin(distances))]

    def find_k_nearest_neighbors(self, query: np.ndarray, k: int) -> list[int]:
        """Up to k closest candidates, closest first."""
        if k < 1:
            raise LSHQueryError(f"Number of neighbors must be positive, got {k}")
        candidates = self.get_unique_candidates(query)
        if not candidates:
            return []
        distances = self._distances(query, candidates)
        order = np.argsort(distances, kind="stable")[:k]
        return [candidates[i] for i in order]

    def find_near_neighbors(self, query: np.ndarray, threshold: float) -> list[int]:
        """All candidates whose distance to the query is below threshold, in probe order."""
        candidates = self.get_unique_candidates(query)
        if not candidates:
            return []
        distances = self._distances(query, candidates)
        return [c for c, dist in zip(candidates, distances) if dist < threshold]


def _validate(points: np.ndarray, params: ConstructionParameters) -> None:
    if params.dimension < 1:
        raise LSHTableSetupError(f"Point dimension must be at least 1, got {params.dimension}")
    if points.ndim != 2 or points.shape[1] != params.dimension:
        raise LSHTableSetupError(
            f"Point set with shape {points.shape} does not match dimension {params.dimension}"
        )
    if points.shape[0] < 1:
        raise LSHTableSetupError("Cannot build a table over an empty point set")
    if params.lsh_family == LSHFamily.UNKNOWN:
        raise LSHTableSetupError("LSH family is not set")
    if params.distance_function == DistanceFunction.UNKNOWN:
        raise LSHTableSetupError("Distance function is not set")
    if params.storage_hash_table == StorageHashTable.UNKNOWN:
        raise LSHTableSetupError("Storage hash table type is not set")
    if params.k < 1:
        raise LSHTableSetupError(f"Number of hash functions must be at least 1, got {params.k}")
    if params.l < 1:
        raise LSHTableSetupError(f"Number of hash tables must be at least 1, got {params.l}")
    if params.seed < 0:
        raise LSHTableSetupError(f"Seed must be non-negative, got {params.seed}")
    if params.num_setup_threads < 0:
        raise LSHTableSetupError(
            f"Number of setup threads must be non-negative, got {params.num_setup_threads}"
        )
    if params.lsh_family == LSHFamily.CROSS_POLYTOPE:
        if params.num_rotations < 1:
            raise LSHTableSetupError(
                f"Number of rotations must be at least 1, got {params.num_rotations}"
            )
        dim = rotation_dimension(params)
        if not 1 <= params.last_cp_dimension <= dim:
            raise LSHTableSetupError(
                f"Last cross-polytope dimension must be between 1 and {dim}, "
                f"got {params.last_cp_dimension}"
            )
    if params.storage_hash_table in FLAT_STORAGE:
        bits = hash_bits_per_table(params)
        if bits > MAX_FLAT_HASH_BITS:
            raise LSHTableSetupError(
                f"Flat hash tables support at most {MAX_FLAT_HASH_BITS} hash bits, "
                f"the configuration needs {bits}"
            )


def _bucketize(symbols: np.ndarray) -> dict[tuple[int, ...], list[int]]:
    buckets: dict[tuple[int, ...], list[int]] = {}
    for point_id, key in enumerate(map(tuple, symbols.tolist())):
        buckets.setdefault(key, []).append(point_id)
    return buckets


def construct_table(points: np.ndarray, params: ConstructionParameters) -> LSHTable:
    """
    Build an LSH table over the given points.

    Args:
        points: 2D array of shape (n_points, dimension). The table keeps a
            reference; callers must not modify it afterwards.
        params: Construction parameters; a copy is kept.

    Returns:
        The constructed table.

    Raises:
        LSHTableSetupError: If the parameters are incomplete, out of range
            or do not match the points.
    """
    points = np.asarray(points, dtype=np.float64)
    _validate(points, params)
    params = params.copy()

    rng = np.random.default_rng(params.seed)
    if params.lsh_family == LSHFamily.HYPERPLANE:
        hasher: Union[HyperplaneHash, CrossPolytopeHash] = HyperplaneHash(params, rng)
    else:
        hasher = CrossPolytopeHash(params, rng)

    max_workers: Optional[int] = params.num_setup_threads or os.cpu_count()
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        buckets = list(
            pool.map(lambda table_id: _bucketize(hasher.hash_points(table_id, points)), range(params.l))
        )

    logger.debug(
        "Built LSH table: %d points, dimension %d, family %s, k=%d, l=%d, %d buckets",
        points.shape[0],
        params.dimension,
        params.lsh_family.name,
        params.k,
        params.l,
        sum(len(table) for table in buckets),
    )
    return LSHTable(points, params, hasher, buckets)
