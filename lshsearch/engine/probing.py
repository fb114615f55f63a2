"""
Multi-probe sequence generation.

Probes are produced jointly over all tables, cheapest first: the home
bucket of every table (cost 0, in table order), then buckets reached by
perturbing one or more hash symbols, in order of total perturbation cost.
The sequence does not depend on how many probes are requested, so the
first p probes are always a prefix of the first p + 1.
"""

import heapq
from collections.abc import Iterator, Sequence

from lshsearch.engine.hashing import Perturbation


def _conflicts(chosen: tuple[int, ...], options: Sequence[Perturbation]) -> tuple[bool, bool]:
    """
    Check a perturbation set for two entries touching the same hash function.

    Returns:
        (conflict anywhere, conflict among all but the last entry)
    """
    seen = set()
    for position, option_index in enumerate(chosen):
        function = options[option_index][1]
        if function in seen:
            return True, position < len(chosen) - 1
        seen.add(function)
    return False, False


def _apply(home: tuple[int, ...], chosen: tuple[int, ...], options: Sequence[Perturbation]) -> tuple[int, ...]:
    key = list(home)
    for option_index in chosen:
        _, function, symbol = options[option_index]
        key[function] = symbol
    return tuple(key)


def probing_sequence(
    home_keys: Sequence[tuple[int, ...]],
    options: Sequence[Sequence[Perturbation]],
    num_functions: int,
) -> Iterator[tuple[int, tuple[int, ...]]]:
    """
    Yield ``(table_id, bucket_key)`` pairs in order of increasing cost.

    Perturbation sets are enumerated with the shift/expand scheme over each
    table's cost-sorted options: a set whose largest option index is m
    spawns "shift" (m replaced by m + 1) and "expand" (m + 1 added). Sets
    that use two options for the same hash function are skipped, and so
    are the descendants that would keep the clash.

    Args:
        home_keys: Home bucket key of the query, one per table.
        options: Cost-sorted perturbations, one list per table.
        num_functions: Hash functions per table; no set can perturb more.

    Yields:
        Distinct (table_id, bucket_key) pairs. The caller stops iterating
        when it has seen enough probes.
    """
    heap = [(0.0, table_id, ()) for table_id in range(len(home_keys))]
    heapq.heapify(heap)

    while heap:
        cost, table_id, chosen = heapq.heappop(heap)
        table_options = options[table_id]
        conflict, conflict_before_last = _conflicts(chosen, table_options)

        if not conflict:
            yield table_id, _apply(home_keys[table_id], chosen, table_options)

        if conflict_before_last:
            continue

        last = chosen[-1] if chosen else -1
        following = last + 1
        if following >= len(table_options):
            continue

        if chosen:
            shifted_cost = cost - table_options[last][0] + table_options[following][0]
            heapq.heappush(heap, (shifted_cost, table_id, chosen[:-1] + (following,)))
        if not conflict and len(chosen) < num_functions:
            heapq.heappush(heap, (cost + table_options[following][0], table_id, chosen + (following,)))
