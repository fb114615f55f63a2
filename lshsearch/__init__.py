"""
lshsearch - Approximate nearest neighbor search with multi-probe LSH.

lshsearch builds in-memory locality-sensitive hashing indexes over a fixed
point set, configured through a chainable ParameterSet, and tunes the
number of multi-probe probes against labeled training queries.
"""

from lshsearch.__version__ import __version__
from lshsearch.errors import (
    ConfigurationError,
    IndexClosedError,
    LSHSearchError,
    TuningError,
    ValidationError,
)
from lshsearch.index import NO_MAX_CANDIDATES, NearestNeighborIndex
from lshsearch.params import ParameterSet
from lshsearch.tuning import DEFAULT_MAX_ITERATIONS, ProbeTuner, tune_num_probes

__all__ = [
    "DEFAULT_MAX_ITERATIONS",
    "NO_MAX_CANDIDATES",
    "ConfigurationError",
    "IndexClosedError",
    "LSHSearchError",
    "NearestNeighborIndex",
    "ParameterSet",
    "ProbeTuner",
    "TuningError",
    "ValidationError",
    "__version__",
    "tune_num_probes",
]
