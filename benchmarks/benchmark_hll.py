#!/usr/bin/env python3
"""Timing and accuracy benchmarks for cardinal's HyperLogLog.

Writes one PNG per benchmark to the current directory.
"""
import argparse
import time

import matplotlib # type: ignore
matplotlib.use("Agg")
import matplotlib.pyplot as plt # type: ignore
import numpy as np # type: ignore

from cardinal.lib.abstractsketch import XXHash64
from cardinal.lib.hyperloglog import HyperLogLog

RSD_LEVELS = [0.1, 0.05, 0.03, 0.02]


def generate_data(size, prefix="item"):
    """Distinct items."""
    return [f"{prefix}_{i}" for i in range(size)]


def benchmark_add(data_sizes, rsd_levels):
    """Benchmark adding items to sketches."""
    results = {f"rsd={rsd}": [] for rsd in rsd_levels}

    for size in data_sizes:
        data = generate_data(size)
        for rsd in rsd_levels:
            sketch = HyperLogLog(rsd)
            start_time = time.perf_counter()
            sketch.add_batch(data)
            elapsed = time.perf_counter() - start_time
            results[f"rsd={rsd}"].append(elapsed)
            print(f"rsd={rsd}: Added {size} items in {elapsed:.4f}s")

    return results


def benchmark_estimate_merge(data_sizes, rsd_levels, repeats=10):
    """Benchmark estimate() and merge() on filled sketches."""
    estimate_results = {f"rsd={rsd}": [] for rsd in rsd_levels}
    merge_results = {f"rsd={rsd}": [] for rsd in rsd_levels}

    for size in data_sizes:
        for rsd in rsd_levels:
            sketch1 = HyperLogLog(rsd)
            sketch2 = HyperLogLog(rsd)
            sketch1.add_batch(generate_data(size, "a"))
            sketch2.add_batch(generate_data(size, "b"))

            start_time = time.perf_counter()
            for _ in range(repeats):
                sketch1.estimate()
            estimate_results[f"rsd={rsd}"].append((time.perf_counter() - start_time) / repeats)

            start_time = time.perf_counter()
            for _ in range(repeats):
                sketch1.merge(sketch2)
            merge_results[f"rsd={rsd}"].append((time.perf_counter() - start_time) / repeats)

    return estimate_results, merge_results


def benchmark_accuracy(data_sizes, rsd_levels, trials=5):
    """Mean relative error (in percent) over several hash seeds."""
    results = {f"rsd={rsd}": [] for rsd in rsd_levels}

    for size in data_sizes:
        data = generate_data(size)
        for rsd in rsd_levels:
            errors = []
            for seed in range(trials):
                sketch = HyperLogLog(rsd, hash_function=XXHash64(seed))
                sketch.add_batch(data)
                errors.append(abs(sketch.estimate() - size) / size * 100)
            mean_error = float(np.mean(errors))
            results[f"rsd={rsd}"].append(mean_error)
            print(f"rsd={rsd}: Size {size}, mean error {mean_error:.2f}% over {trials} seeds")

    return results


def plot_results(title, x_data, y_data, x_label, y_label, legend_loc='upper left'):
    """Plot benchmark results."""
    plt.figure(figsize=(10, 6))

    for name, data in y_data.items():
        plt.plot(x_data, data, marker='o', linewidth=2, label=name)

    plt.title(title)
    plt.xlabel(x_label)
    plt.ylabel(y_label)
    plt.xscale('log')
    plt.grid(True, linestyle='--', alpha=0.7)
    plt.legend(loc=legend_loc)
    plt.tight_layout()

    filename = title.lower().replace(' ', '_') + '.png'
    plt.savefig(filename)
    print(f"Saved plot to {filename}")

    plt.close()


def run_benchmarks(data_sizes):
    """Run all benchmarks."""
    print("\n=== Benchmarking Add Operation ===")
    add_results = benchmark_add(data_sizes, RSD_LEVELS)
    plot_results("HyperLogLog Add Performance", data_sizes, add_results,
                 "Number of Items", "Time (seconds)")

    print("\n=== Benchmarking Estimate and Merge ===")
    estimate_results, merge_results = benchmark_estimate_merge(data_sizes, RSD_LEVELS)
    plot_results("HyperLogLog Estimate Performance", data_sizes, estimate_results,
                 "Number of Items", "Time (seconds)")
    plot_results("HyperLogLog Merge Performance", data_sizes, merge_results,
                 "Number of Items per Sketch", "Time (seconds)")

    print("\n=== Benchmarking Estimation Accuracy ===")
    accuracy_results = benchmark_accuracy(data_sizes, RSD_LEVELS)
    plot_results("HyperLogLog Estimation Error", data_sizes, accuracy_results,
                 "Number of Items", "Error (%)", legend_loc='upper right')


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--sizes", type=int, nargs="+", default=[1000, 5000, 10000, 50000, 100000],
                        help="Stream sizes to benchmark")
    args = parser.parse_args()
    run_benchmarks(args.sizes)
