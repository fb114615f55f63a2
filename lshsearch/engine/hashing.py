"""
Hash families for LSH tables.

Each family holds the random state for all ``l`` tables and hashes a batch
of points into integer keys of ``k`` symbols per table. For a single query
it also lists, per table, the cheapest ways of moving to a neighboring
bucket, which drives multi-probe search.
"""

import numpy as np

from lshsearch.engine.parameters import ConstructionParameters, rotation_dimension

# A perturbation: (cost, hash function position, replacement symbol)
Perturbation = tuple[float, int, int]


class HyperplaneHash:
    """
    Random hyperplane hashing.

    Every hash function is a Gaussian random projection; its symbol is the
    sign of the projection. Flipping a symbol costs the squared distance of
    the projection to the hyperplane.
    """

    def __init__(self, params: ConstructionParameters, rng: np.random.Generator):
        self.k = params.k
        # Shape: (l, k, dimension)
        self._planes = rng.standard_normal(size=(params.l, params.k, params.dimension))

    def _project(self, table_id: int, points: np.ndarray) -> np.ndarray:
        return points @ self._planes[table_id].T

    def hash_points(self, table_id: int, points: np.ndarray) -> np.ndarray:
        """
        Hash a batch of points for one table.

        Args:
            table_id: Which hash table to use.
            points: 2D array of shape (n_points, dimension).

        Returns:
            Integer array of shape (n_points, k).
        """
        return (self._project(table_id, points) > 0).astype(np.int64)

    def probe_options(self, table_id: int, query: np.ndarray) -> tuple[tuple[int, ...], list[Perturbation]]:
        """Home key of ``query`` in one table, and single-symbol perturbations sorted by cost."""
        projection = self._project(table_id, query.reshape(1, -1))[0]
        symbols = (projection > 0).astype(np.int64)
        options = [
            (float(projection[j] ** 2), j, int(1 - symbols[j]))
            for j in range(self.k)
        ]
        options.sort()
        return tuple(symbols.tolist()), options


def hadamard_transform(values: np.ndarray) -> np.ndarray:
    """
    Normalized fast Walsh-Hadamard transform along the last axis.

    The last axis must have a power-of-two length. Returns a new array.
    """
    result = np.array(values, dtype=np.float64, copy=True)
    n = result.shape[-1]
    h = 1
    while h < n:
        blocks = result.reshape(*result.shape[:-1], n // (2 * h), 2, h)
        left = blocks[..., 0, :].copy()
        right = blocks[..., 1, :]
        blocks[..., 0, :] = left + right
        blocks[..., 1, :] = left - right
        h *= 2
    return result / np.sqrt(n)


class CrossPolytopeHash:
    """
    Cross-polytope hashing with pseudo-random rotations.

    Points are zero-padded to a power-of-two dimension D and rotated by
    ``num_rotations`` rounds of (random sign flip, Hadamard transform). The
    symbol of a hash function is the closest signed basis vector, an integer
    in [0, 2 * D). The last function of each table only looks at the first
    ``last_cp_dimension`` rotated coordinates.
    """

    def __init__(self, params: ConstructionParameters, rng: np.random.Generator):
        self.k = params.k
        self.dimension = params.dimension
        self.rotation_dim = rotation_dimension(params)
        self.last_cp_dimension = params.last_cp_dimension
        # Shape: (l, k, num_rotations, rotation_dim)
        self._signs = rng.choice(
            np.array([-1.0, 1.0]),
            size=(params.l, params.k, params.num_rotations, self.rotation_dim),
        )

    def _rotate(self, table_id: int, points: np.ndarray) -> np.ndarray:
        """Rotated coordinates with shape (n_points, k, rotation_dim)."""
        padded = np.zeros((points.shape[0], self.rotation_dim))
        padded[:, : self.dimension] = points
        # Shape: (k, n_points, rotation_dim)
        rotated = np.broadcast_to(padded, (self.k,) + padded.shape)
        signs = self._signs[table_id]
        for r in range(signs.shape[1]):
            rotated = hadamard_transform(rotated * signs[:, r, None, :])
        return rotated.transpose(1, 0, 2)

    def _function_width(self, j: int) -> int:
        return self.last_cp_dimension if j == self.k - 1 else self.rotation_dim

    def hash_points(self, table_id: int, points: np.ndarray) -> np.ndarray:
        """
        Hash a batch of points for one table.

        Args:
            table_id: Which hash table to use.
            points: 2D array of shape (n_points, dimension).

        Returns:
            Integer array of shape (n_points, k).
        """
        rotated = self._rotate(table_id, points)
        symbols = np.empty((points.shape[0], self.k), dtype=np.int64)
        for j in range(self.k):
            coords = rotated[:, j, : self._function_width(j)]
            symbols[:, j] = np.argmax(np.concatenate([coords, -coords], axis=1), axis=1)
        return symbols

    def probe_options(self, table_id: int, query: np.ndarray) -> tuple[tuple[int, ...], list[Perturbation]]:
        """
        Home key of ``query`` in one table, and single-symbol perturbations sorted by cost.

        Moving function j to another vertex costs the squared gap between
        the winning coordinate and that vertex's coordinate.
        """
        rotated = self._rotate(table_id, query.reshape(1, -1))[0]
        home = []
        options = []
        for j in range(self.k):
            coords = rotated[j, : self._function_width(j)]
            vertices = np.concatenate([coords, -coords])
            best = int(np.argmax(vertices))
            home.append(best)
            gaps = (vertices[best] - vertices) ** 2
            for symbol in range(vertices.shape[0]):
                if symbol != best:
                    options.append((float(gaps[symbol]), j, symbol))
        options.sort()
        return tuple(home), options
