"""AGF-v0.1 Entry Point — Adaptive Game Factory.

Supports two drivers:
  --mode loop  : one attempt at a time until N games are accepted
                 (attempt backoff, long cooldown after unexpected errors)
  --mode batch : N attempts in sequential batches, bounded concurrency
                 inside each batch

Collaborators are the seeded offline mocks; failure injection flags let
you exercise the failure / rejection / publish-failure paths.

Artifacts (in --log-dir):
    runs.jsonl   one record per attempt
    state.pkl    run snapshot, read back by --resume (when Redis is unavailable)
    summary.json final RunSummary

Usage:
    python main.py --mode loop -n 20 --attempt-delay 0   # 20 accepted games
    python main.py --mode loop -n 40 --resume            # continue the same run
    python main.py --mode batch -n 100 --batch-size 10 --concurrency 5
    python main.py --mode batch -n 50 --failure-rate 0.1 --broken-rate 0.2
    python main.py --mode loop -n 10 --seed 7 -v
    python generate_report.py --log-dir ./results
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import random
import signal
import sys
from collections import Counter
from pathlib import Path

from agf.collaborators import CollaboratorSet
from agf.config import AGFConfig
from agf.pipeline import GenerationPipeline, RunSummary
from agf.state import StateStore
from agf.tracking import AGFTracker


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

def setup_logging(level: int = logging.INFO) -> None:
    fmt = "[%(asctime)s] %(levelname)-7s %(name)-20s %(message)s"
    logging.basicConfig(
        level=level, format=fmt, datefmt="%H:%M:%S", stream=sys.stdout,
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("mlflow").setLevel(logging.WARNING)
    logging.getLogger("redis").setLevel(logging.WARNING)
    logging.getLogger("matplotlib").setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

def analyze_portfolio(pipeline: GenerationPipeline) -> None:
    """Print the accepted portfolio's composition and quality spread."""
    stats = pipeline.portfolio.statistics

    print(f"\n{'=' * 70}")
    print(f"  PORTFOLIO ANALYSIS ({stats.total} accepted games)")
    print(f"{'=' * 70}")
    if stats.total == 0:
        print("\n  (empty)")
        return

    print(f"\n  Quality: mean={stats.quality_mean:.1f}  std={stats.quality_variance ** 0.5:.1f}")
    print(f"  Diversity score: {stats.diversity_score:.2f}")
    print(f"  Balanced: {'yes' if stats.is_balanced else 'no'}   "
          f"Coverage: {'yes' if stats.has_coverage else 'no'}   "
          f"Needs exploration: {'yes' if stats.needs_exploration else 'no'}")

    for title, counts in (
        ("GENRES", stats.genre_counts),
        ("MECHANICS", stats.mechanic_counts),
        ("DIFFICULTY", stats.difficulty_counts),
        ("QUALITY BANDS", stats.quality_distribution),
    ):
        print(f"\n  {title}:")
        for name, n in Counter(counts).most_common():
            bar = "#" * n
            print(f"    {name:18s} {n:4d}  {bar}")

    best = sorted(pipeline.portfolio, key=lambda e: e.evaluation.total, reverse=True)[:5]
    print("\n  TOP 5:")
    for entry in best:
        c = entry.candidate
        print(f"    {entry.evaluation.total:5.1f}  {c.artifact.title:36s} {c.genre}/{c.mechanic}")


def print_summary(summary: RunSummary) -> None:
    print(f"\n  RUN SUMMARY [{summary.mode}]:")
    print(f"    Attempts:         {summary.attempts} "
          f"({summary.accepted} accepted, {summary.rejected} rejected, {summary.failed} failed)")
    print(f"    Pass rate:        {summary.pass_rate:.1%}")
    print(f"    Average quality:  {summary.average_quality:.1f}")
    print(f"    Final threshold:  {summary.quality_threshold:.1f}")
    print(f"    Final epsilon:    {summary.epsilon:.3f}")
    print(f"    Exploration:      {summary.exploration_ratio:.1%}")
    print(f"    Publish failures: {summary.publish_failures}")
    print(f"    Tokens / cost:    {summary.total_tokens:,} / ${summary.total_cost:.4f}")
    print(f"    Elapsed:          {summary.elapsed_seconds:.1f}s")
    if summary.stopped:
        print("    (stopped early)")


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

async def run(args: argparse.Namespace, log_dir: str) -> RunSummary:
    logger = logging.getLogger("agf.main")

    collaborators = CollaboratorSet.mock(
        seed=args.seed,
        failure_rate=args.failure_rate,
        broken_rate=args.broken_rate,
        publish_failure_rate=args.publish_failure_rate,
        latency=args.latency,
    )
    store = StateStore(
        redis_url=AGFConfig.REDIS_URL,
        log_dir=log_dir,
        use_redis=AGFConfig.USE_REDIS,
    )
    tracker = AGFTracker(
        tracking_uri=AGFConfig.MLFLOW_TRACKING_URI,
        experiment_name=AGFConfig.MLFLOW_EXPERIMENT_NAME,
        enabled=AGFConfig.USE_MLFLOW,
    )

    pipeline = GenerationPipeline(
        collaborators,
        store=store,
        tracker=tracker,
        rng=random.Random(args.seed),
        attempt_delay=args.attempt_delay,
        error_cooldown=args.error_cooldown,
    )
    if args.resume:
        snapshot = store.load_state()
        if snapshot is None:
            logger.warning("No snapshot in %s; starting fresh", log_dir)
        else:
            pipeline.restore(snapshot)

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, pipeline.stop)
    except (NotImplementedError, RuntimeError):
        logger.debug("Signal handlers unavailable; Ctrl-C will abort immediately")

    run_config = {
        "mode": args.mode,
        "num": args.num,
        "batch_size": args.batch_size,
        "concurrency": args.concurrency,
        "seed": args.seed,
        "threshold": pipeline.standards.quality_threshold,
        "epsilon": pipeline.standards.epsilon,
    }
    with tracker.run(f"{args.mode}-{args.num}", run_config):
        if args.mode == "loop":
            summary = await pipeline.run_loop(target_accepted=args.num, max_attempts=args.max_attempts)
        else:
            summary = await pipeline.run_batches(
                total_count=args.num,
                batch_size=args.batch_size,
                max_concurrency=args.concurrency,
                inter_batch_delay=args.inter_batch_delay,
            )
        if store.runs_path.exists():
            tracker.log_artifact(str(store.runs_path))

    analyze_portfolio(pipeline)
    print_summary(summary)

    summary_path = Path(log_dir) / "summary.json"
    summary_path.write_text(json.dumps(summary.as_dict(), indent=2), encoding="utf-8")
    return summary


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="AGF-v0.1 Adaptive Game Factory",
    )
    parser.add_argument(
        "--mode", choices=("loop", "batch"), default="loop",
        help="loop: until N accepted; batch: N attempts in concurrent batches",
    )
    parser.add_argument(
        "-n", "--num", type=int, default=AGFConfig.TARGET_COUNT,
        help="Accepted games (loop) or total attempts (batch)",
    )
    parser.add_argument(
        "--batch-size", type=int, default=AGFConfig.BATCH_SIZE,
        help=f"Tasks per batch (default {AGFConfig.BATCH_SIZE})",
    )
    parser.add_argument(
        "--concurrency", type=int, default=AGFConfig.MAX_CONCURRENCY,
        help=f"Max in-flight tasks per batch (default {AGFConfig.MAX_CONCURRENCY})",
    )
    parser.add_argument(
        "--inter-batch-delay", type=float, default=AGFConfig.INTER_BATCH_DELAY,
        help="Seconds to wait between batches",
    )
    parser.add_argument(
        "--attempt-delay", type=float, default=AGFConfig.ATTEMPT_DELAY,
        help=f"Seconds between loop attempts (default {AGFConfig.ATTEMPT_DELAY})",
    )
    parser.add_argument(
        "--error-cooldown", type=float, default=AGFConfig.ERROR_COOLDOWN,
        help="Seconds to wait after an unexpected loop error",
    )
    parser.add_argument(
        "--max-attempts", type=int, default=None,
        help="Safety cap on loop attempts",
    )
    parser.add_argument("--seed", type=int, default=None, help="RNG seed for mocks and mode selection")
    parser.add_argument("--failure-rate", type=float, default=0.0, help="Mock content failure rate")
    parser.add_argument("--broken-rate", type=float, default=0.0,
                        help="Mock rate of games with no success path")
    parser.add_argument("--publish-failure-rate", type=float, default=0.0,
                        help="Mock publisher failure rate")
    parser.add_argument("--latency", type=float, default=0.0, help="Mock per-call latency (s)")
    parser.add_argument(
        "--log-dir", type=str, default=AGFConfig.LOG_DIR,
        help=f"Directory for state and logs (default {AGFConfig.LOG_DIR})",
    )
    parser.add_argument(
        "--resume", action="store_true",
        help="Continue from the snapshot in --log-dir (standards, counters, rolling window)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Debug logging",
    )
    return parser


def main() -> None:
    args = build_parser().parse_args()

    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    log_dir = args.log_dir or "."

    print(f"\n{'=' * 70}")
    print(f"  AGF-v0.1 ADAPTIVE GAME FACTORY [{args.mode.upper()}]")
    print(f"{'=' * 70}")
    if args.mode == "loop":
        print(f"  Target: {args.num} accepted games")
    else:
        print(f"  Attempts: {args.num}  batch={args.batch_size}  concurrency={args.concurrency}")
    print(f"  Threshold: {AGFConfig.QUALITY_THRESHOLD:.0f} "
          f"[{AGFConfig.MIN_THRESHOLD:.0f}, {AGFConfig.MAX_THRESHOLD:.0f}]  "
          f"epsilon: {AGFConfig.EPSILON:.2f}")
    print(f"  Log dir: {log_dir}")
    print(f"  Redis: {'enabled' if AGFConfig.USE_REDIS else 'disabled'}   "
          f"MLflow: {'enabled' if AGFConfig.USE_MLFLOW else 'disabled'}")

    asyncio.run(run(args, log_dir))

    print(f"\n{'=' * 70}")
    print("  RUN COMPLETE")
    print(f"{'=' * 70}\n")


if __name__ == "__main__":
    main()
