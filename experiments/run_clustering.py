#!/usr/bin/env python3
"""Clustering demo on synthetic labelled blobs.

Generates Gaussian blobs, runs the replicate driver (or the mini-batch
driver), optionally evaluates the trained clusters on a fresh draw, and
writes a JSON summary of the configuration, clusters and quality.

Usage:
    # Unsupervised, k-means++ initialization
    python experiments/run_clustering.py --k 4 --blobs 4 --init kmeans++

    # Supervised, replicates chosen on ARI by clusters
    python experiments/run_clustering.py --k 3 --supervised --criterion ari_by_clusters

    # Mini-batch mode, thread-parallel random initialization
    python experiments/run_clustering.py --k 3 --mini-batch --batch-size 200 --workers 4
"""

import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import argparse
import json
import logging
import time
from datetime import datetime

from kmcluster.config import KMeansConfig, InitMethod, ReplicateCriterion, DistanceNorm
from kmcluster.clustering import ReplicateDriver
from kmcluster.data.synthetic import BlobGenerator
from kmcluster.monitor import Diagnostics, ProgressMonitor


def run_clustering(
    config: KMeansConfig,
    n_blobs: int,
    n_per_blob: int,
    n_features: int,
    supervised: bool,
    evaluate: bool,
    output_dir: Path = None,
) -> dict:
    """Train on one blob draw and report the quality."""
    print(f"\n{'=' * 60}")
    print(f"Clustering: K={config.k}, init={config.init_method.value}, "
          f"norm={config.norm.value}, replicates={config.replicates}")
    print(f"{'=' * 60}")

    generator = BlobGenerator(seed=config.seed)
    train = generator.generate([n_per_blob] * n_blobs, n_features=n_features)
    instances = train.to_instances(supervised=supervised)
    print(f"  {instances.n_instances} instances, {instances.n_features} features")

    diagnostics = Diagnostics("run_clustering")
    driver = ReplicateDriver(config, ProgressMonitor(), diagnostics)

    start = time.time()
    result = driver.fit(instances)
    elapsed = time.time() - start

    if not result.success:
        print("\n  Clustering failed:")
        for text in diagnostics.warnings + diagnostics.errors:
            print(f"    {text}")
        return {"success": False, "warnings": diagnostics.warnings, "errors": diagnostics.errors}

    clustering = result.clustering
    print(f"\n--- Results ---")
    print(f"  Mode:            {'mini-batch' if result.mini_batch else 'full batch'}")
    print(f"  Best replicate:  {result.best_replicate}/{result.n_replicates_run}")
    print(f"  Clusters:        {len(clustering.clusters)}")
    print(f"  Mean distance:   {clustering.mean_distance():.4f}")
    print(f"  Davies-Bouldin:  {result.quality.davies_bouldin:.4f}")
    if supervised:
        print(f"  ARI by clusters: {result.quality.ari_by_clusters:.4f}")
    print(f"  Runtime:         {elapsed:.2f}s")

    summary = {
        "config": config.to_dict(),
        "n_instances": instances.n_instances,
        "runtime_s": elapsed,
        "result": result.to_dict(),
        "warnings": list(diagnostics.warnings),
        "timestamp": datetime.now().isoformat(),
    }

    if evaluate:
        test = BlobGenerator(seed=config.seed + 1).generate(
            [n_per_blob] * n_blobs, centers=train.centers,
        )
        evaluated = clustering.evaluate(test.to_instances(supervised=supervised))
        if evaluated is not None:
            summary["evaluation"] = evaluated.summary()
            print(f"  Test mean distance: {evaluated.mean_distance():.4f}")

    if output_dir is not None:
        output_dir.mkdir(parents=True, exist_ok=True)
        summary_path = output_dir / "clustering.json"
        with open(summary_path, "w") as f:
            json.dump(summary, f, indent=2)
        print(f"\n  Saved to: {summary_path}")

    return summary


def main():
    parser = argparse.ArgumentParser(description="K-means clustering demo")
    parser.add_argument("--k", type=int, default=3, help="Number of clusters")
    parser.add_argument("--blobs", type=int, default=3, help="Number of generated blobs")
    parser.add_argument("--per-blob", type=int, default=100, help="Instances per blob")
    parser.add_argument("--features", type=int, default=2, help="Feature dimension")
    parser.add_argument(
        "--init", type=str, default=InitMethod.AUTO.value,
        choices=[m.value for m in InitMethod],
        help="Centers initialization method",
    )
    parser.add_argument(
        "--norm", type=str, default=DistanceNorm.L2.value,
        choices=[n.value for n in DistanceNorm],
        help="Distance norm",
    )
    parser.add_argument(
        "--criterion", type=str, default=ReplicateCriterion.AUTO.value,
        choices=[c.value for c in ReplicateCriterion],
        help="Best replicate criterion",
    )
    parser.add_argument("--replicates", type=int, default=10, help="Number of replicates")
    parser.add_argument("--max-iterations", type=int, default=0,
                        help="Iteration cap (0 = until convergence, -1 = none)")
    parser.add_argument("--supervised", action="store_true", help="Use blob labels as target")
    parser.add_argument("--mini-batch", action="store_true", help="Force mini-batch mode")
    parser.add_argument("--batch-size", type=int, default=1000, help="Mini-batch size")
    parser.add_argument("--workers", type=int, default=1,
                        help="Threads for random initialization")
    parser.add_argument("--evaluate", action="store_true",
                        help="Evaluate on a second draw of the same blobs")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--output-dir", type=str, default=None,
                        help="Write the JSON summary to this directory")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    config = KMeansConfig(
        k=args.k,
        norm=args.norm,
        init_method=args.init,
        replicates=args.replicates,
        criterion=args.criterion,
        max_iterations=args.max_iterations,
        mini_batch=args.mini_batch,
        mini_batch_size=args.batch_size,
        workers=args.workers,
        seed=args.seed,
    )

    run_clustering(
        config,
        n_blobs=args.blobs,
        n_per_blob=args.per_blob,
        n_features=args.features,
        supervised=args.supervised,
        evaluate=args.evaluate,
        output_dir=Path(args.output_dir) if args.output_dir else None,
    )


if __name__ == "__main__":
    main()
