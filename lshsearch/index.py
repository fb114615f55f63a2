"""
NearestNeighborIndex - in-memory approximate nearest neighbor search with LSH.

This module wraps a static multi-probe LSH table built over a fixed set of
points. Inputs are validated here, before they reach the engine.
"""

import logging
from collections.abc import Sequence
from typing import Any, Optional, Union

import numpy as np

from lshsearch.engine import (
    NO_MAX_NUM_CANDIDATES,
    LSHTable,
    LSHTableSetupError,
    construct_table,
)
from lshsearch.errors import ConfigurationError, IndexClosedError, ValidationError
from lshsearch.params import ParameterSet

logger = logging.getLogger(__name__)

NO_MAX_CANDIDATES = NO_MAX_NUM_CANDIDATES


class NearestNeighborIndex:
    """
    An approximate nearest neighbor index over a fixed point set.

    The point set is copied at construction and cannot change afterwards;
    to index different data, build a new index. Results are 0-based row
    indices into the point set.

    API:
    - __init__(points, params=None)
    - find_nearest(query) - index of the (approximate) nearest point
    - find_k_nearest(query, k) - up to k nearest points, closest first
    - find_within_radius(query, radius) - points closer than radius
    - similar(query, k=1, radius=None, return_points=False) - one of the above
    - get_candidates(query) / get_unique_candidates(query) - raw probing results
    - get_num_probes() / set_num_probes(num_probes)
    - get_max_candidates() / set_max_candidates(num_candidates)
    - tune_num_probes(queries, answers, target_precision)

    Probe and candidate settings must not be changed while other threads
    are querying the same index.

    Example:
        >>> import numpy as np
        >>> points = np.random.rand(1000, 10)
        >>> params = ParameterSet(1000, 10).set_num_hash_tables(20)
        >>> index = NearestNeighborIndex(points, params)
        >>> index.find_nearest(points[3])
        3
    """

    def __init__(self, points: Any, params: Optional[ParameterSet] = None):
        """
        Build the index.

        Args:
            points: 2D array-like of shape (n_points, dimension), one point per row.
            params: Configuration to build with. If None, defaults are
                derived from the shape of points.

        Raises:
            ConfigurationError: If points is not 2D, its dimension differs
                from params.dimension, or the engine rejects the configuration.
        """
        self._table: Optional[LSHTable] = None

        points = np.array(points, dtype=np.float64)
        if points.ndim != 2:
            raise ConfigurationError(f"Points must be 2D array, got shape {points.shape}")

        if params is None:
            params = ParameterSet(points.shape[0], points.shape[1])

        if points.shape[1] != params.dimension:
            raise ConfigurationError(
                f"Dimension mismatch between data ({points.shape[1]}) "
                f"and index parameters ({params.dimension})"
            )
        if points.shape[0] != params.points:
            logger.debug(
                "Parameters were computed for %d points, building over %d",
                params.points,
                points.shape[0],
            )

        points.setflags(write=False)
        self._points = points
        self._params = params.copy()

        try:
            self._table = construct_table(points, self._params.construction_parameters())
        except LSHTableSetupError as exc:
            raise ConfigurationError(str(exc)) from exc

    @property
    def size(self) -> int:
        return self._points.shape[0]

    @property
    def dimension(self) -> int:
        return self._params.dimension

    @property
    def params(self) -> ParameterSet:
        """A copy of the parameters the index was built with."""
        return self._params.copy()

    @property
    def points(self) -> np.ndarray:
        """The indexed points (read-only)."""
        return self._points

    def __len__(self) -> int:
        return self.size

    def _get_table(self) -> LSHTable:
        if self._table is None:
            raise IndexClosedError("Index has been closed")
        return self._table

    def _query_vector(self, query: Any) -> np.ndarray:
        query_vector = np.asarray(query, dtype=np.float64)
        if query_vector.ndim == 2 and query_vector.shape[0] == 1:
            query_vector = query_vector[0]
        if query_vector.ndim != 1:
            raise ValidationError(
                f"Query must be a single vector, got shape {query_vector.shape}"
            )
        if query_vector.shape[0] != self.dimension:
            raise ValidationError(
                f"Query vector dimension {query_vector.shape[0]} "
                f"does not match index dimension {self.dimension}"
            )
        return query_vector

    def find_nearest(self, query: Any) -> Optional[int]:
        """
        Find the point closest to the query.

        Args:
            query: 1D array-like of shape (dimension,).

        Returns:
            Index of the approximate nearest point, or None if the probed
            buckets are all empty.
        """
        query_vector = self._query_vector(query)
        nearest = self._get_table().find_nearest_neighbor(query_vector)
        return None if nearest < 0 else nearest

    def find_k_nearest(self, query: Any, k: int) -> list[int]:
        """
        Find up to k points closest to the query.

        Args:
            query: 1D array-like of shape (dimension,).
            k: Number of neighbors to return (positive).

        Returns:
            Distinct point indices, closest first. Fewer than k are returned
            when the probed buckets hold fewer points.
        """
        query_vector = self._query_vector(query)
        if k <= 0:
            raise ValidationError(f"k-nearest-neighbor search for nonpositive k ({k})")
        return self._get_table().find_k_nearest_neighbors(query_vector, k)

    def find_within_radius(self, query: Any, radius: float) -> list[int]:
        """
        Find the points whose distance to the query is below radius.

        Distances use the configured metric, so for the squared Euclidean
        distance the radius is a squared length.
        """
        query_vector = self._query_vector(query)
        if radius < 0:
            raise ValidationError(f"Near neighbor search with negative radius ({radius})")
        return self._get_table().find_near_neighbors(query_vector, radius)

    def similar(
        self,
        query: Any,
        k: int = 1,
        radius: Optional[float] = None,
        return_points: bool = False,
    ) -> Union[int, list[int], np.ndarray, None]:
        """
        Search for points similar to the query.

        With a radius, all points closer than radius are returned and k is
        ignored. Otherwise k == 1 finds the nearest point and k > 1 the k
        nearest, closest first.

        Args:
            query: 1D array-like of shape (dimension,).
            k: Number of neighbors to return (positive).
            radius: Distance threshold for a radius search.
            return_points: Return the matching rows of the point set
                instead of their indices.

        Returns:
            For k == 1 without a radius, the index of the nearest point (or
            its row), None if nothing was found. Otherwise a list of indices,
            or a 2D array with one matching row each.

        Raises:
            ValidationError: If k is not positive or radius is negative.
        """
        if radius is not None:
            result = self.find_within_radius(query, radius)
        elif k == 1:
            result = self.find_nearest(query)
        else:
            result = self.find_k_nearest(query, k)

        if not return_points or result is None:
            return result
        return self._points[result]

    def get_candidates(self, query: Any) -> list[int]:
        """
        Find all points in the buckets of a single probing sequence.

        A point stored in several probed buckets appears once per bucket.
        """
        return self._get_table().get_candidates_with_duplicates(self._query_vector(query))

    def get_unique_candidates(self, query: Any) -> list[int]:
        """Like get_candidates(), with duplicates removed."""
        return self._get_table().get_unique_candidates(self._query_vector(query))

    def get_num_probes(self) -> int:
        return self._get_table().get_num_probes()

    def set_num_probes(self, num_probes: int) -> "NearestNeighborIndex":
        """
        Set the number of probes used for multi-probe LSH.

        This is cheap and can be done repeatedly.

        Returns:
            self for method chaining.
        """
        if num_probes <= 0:
            raise ValidationError(f"Number of probes must be positive, got {num_probes}")
        self._get_table().set_num_probes(num_probes)
        return self

    def get_max_candidates(self) -> int:
        return self._get_table().get_max_num_candidates()

    def set_max_candidates(self, num_candidates: int = NO_MAX_CANDIDATES) -> "NearestNeighborIndex":
        """
        Cap the number of candidates considered per query.

        Args:
            num_candidates: Positive cap, or NO_MAX_CANDIDATES for no cap.

        Returns:
            self for method chaining.
        """
        if num_candidates != NO_MAX_CANDIDATES and num_candidates <= 0:
            raise ValidationError(
                f"Maximum number of candidates must be positive, got {num_candidates}"
            )
        self._get_table().set_max_num_candidates(num_candidates)
        return self

    def tune_num_probes(
        self,
        queries: Any,
        answers: Sequence[int],
        target_precision: float,
        **kwargs: Any,
    ) -> int:
        """
        Find the number of probes reaching target_precision on training queries.

        The current number of probes is left unchanged; install the result
        with set_num_probes(). Keyword arguments are passed to ProbeTuner.
        """
        from lshsearch.tuning import ProbeTuner

        return ProbeTuner(target_precision, **kwargs).tune(self, queries, answers)

    def close(self) -> None:
        """Release the underlying table."""
        self._table = None

    def __enter__(self) -> "NearestNeighborIndex":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._table is None else f"num_probes={self.get_num_probes()}"
        return f"NearestNeighborIndex(size={self.size}, dimension={self.dimension}, {state})"
