"""
Probe tuning with lshsearch

This script builds an LSH index over random points, tunes the number of
multi-probe probes on held-out queries, and compares recall and candidate
counts before and after tuning.
"""

import time

import numpy as np

from lshsearch import NearestNeighborIndex, ParameterSet, ProbeTuner


def exact_nearest(points, queries):
    """Exact nearest neighbor of every query by squared Euclidean distance."""
    answers = []
    for query in queries:
        answers.append(int(np.argmin(np.sum((points - query) ** 2, axis=1))))
    return answers


def evaluate(index, queries, answers):
    found = 0
    candidates = 0
    start = time.perf_counter()
    for query, answer in zip(queries, answers):
        candidates += len(index.get_unique_candidates(query))
        if index.find_nearest(query) == answer:
            found += 1
    elapsed = time.perf_counter() - start
    return found / len(answers), candidates / len(answers), elapsed / len(answers)


def main():
    rng = np.random.default_rng(0)
    n, d = 20000, 32

    print(f"Generating {n} points in {d} dimensions...")
    points = rng.standard_normal(size=(n, d))
    points /= np.linalg.norm(points, axis=1, keepdims=True)

    # Queries are noisy copies of stored points
    sources = rng.choice(n, size=400, replace=False)
    queries = points[sources] + 0.05 * rng.standard_normal(size=(400, d))
    queries /= np.linalg.norm(queries, axis=1, keepdims=True)
    train_queries, test_queries = queries[:200], queries[200:]

    print("Computing exact answers...")
    train_answers = exact_nearest(points, train_queries)
    test_answers = exact_nearest(points, test_queries)

    params = ParameterSet(n, d).set_num_hash_tables(20)
    print(f"\nBuilding index with {dict(params.as_mapping())}")
    index = NearestNeighborIndex(points, params)

    print("\n" + "=" * 60)
    print("BEFORE TUNING")
    print("=" * 60)
    recall, candidates, latency = evaluate(index, test_queries, test_answers)
    print(f"Probes: {index.get_num_probes()}")
    print(f"Recall: {recall:.3f}  candidates/query: {candidates:.1f}  ms/query: {latency * 1000:.2f}")

    for target in (0.8, 0.9, 0.95):
        num_probes = ProbeTuner(target).tune(index, train_queries, train_answers)
        index.set_num_probes(num_probes)

        print("\n" + "=" * 60)
        print(f"TUNED FOR PROBE PRECISION {target}")
        print("=" * 60)
        recall, candidates, latency = evaluate(index, test_queries, test_answers)
        print(f"Probes: {num_probes}")
        print(f"Recall: {recall:.3f}  candidates/query: {candidates:.1f}  ms/query: {latency * 1000:.2f}")

    index.close()


if __name__ == "__main__":
    main()
