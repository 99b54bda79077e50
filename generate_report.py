"""Generate an AGF run report from runs.jsonl.

Reads <log-dir>/runs.jsonl and produces in <out-dir>:
    fig1_pass_rate.png     rolling pass rate vs. the target band
    fig2_standards.png     quality threshold and epsilon over attempts
    fig3_scores.png        total-score histogram with the final threshold
    fig4_genres.png        accepted games per genre
    report.md              text summary linking the figures

Usage:
    python generate_report.py --log-dir ./results
    python generate_report.py --log-dir ./results --out-dir ./report --window 25
"""

from __future__ import annotations

import argparse
import json
import logging
from collections import Counter
from pathlib import Path

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np

from agf.config import AGFConfig

logger = logging.getLogger("agf.report")

PALETTE = ["#1F77B4", "#FF7F0E", "#2CA02C", "#D62728", "#9467BD"]


# ---------------------------------------------------------------------------
# Load data
# ---------------------------------------------------------------------------

def load_records(path: Path) -> list[dict]:
    with open(path, encoding="utf-8") as f:
        return [json.loads(l) for l in f if l.strip()]


def rolling_pass_rate(records: list[dict], window: int) -> tuple[np.ndarray, np.ndarray]:
    """Pass rate over the last ``window`` scored attempts, per scored attempt."""
    scored = [r for r in records if r.get("outcome") != "FAILED"]
    if not scored:
        return np.array([]), np.array([])
    passed = np.array([1.0 if r.get("passed") else 0.0 for r in scored])
    cum = np.concatenate([[0.0], np.cumsum(passed)])
    idx = np.arange(1, len(passed) + 1)
    lo = np.maximum(0, idx - window)
    rates = (cum[idx] - cum[lo]) / (idx - lo)
    steps = np.array([r["attempt"] for r in scored])
    return steps, rates


def compute_stats(records: list[dict]) -> dict:
    outcomes = Counter(r.get("outcome", "UNKNOWN") for r in records)
    scores = [r["total"] for r in records if r.get("total") is not None]
    accepted = [r for r in records if r.get("outcome") == "ACCEPTED"]
    modes = Counter(r.get("mode") for r in records if r.get("mode"))
    n_scored = outcomes.get("ACCEPTED", 0) + outcomes.get("REJECTED", 0)
    critical = Counter(c for r in records for c in r.get("critical") or [])
    errors = Counter((r.get("error") or "").split(":")[0] for r in records if r.get("error"))
    n_modes = sum(modes.values())
    return {
        "attempts": len(records),
        "accepted": outcomes.get("ACCEPTED", 0),
        "rejected": outcomes.get("REJECTED", 0),
        "failed": outcomes.get("FAILED", 0),
        "pass_rate": outcomes.get("ACCEPTED", 0) / n_scored if n_scored else 0.0,
        "score_mean": float(np.mean(scores)) if scores else 0.0,
        "score_median": float(np.median(scores)) if scores else 0.0,
        "score_std": float(np.std(scores)) if scores else 0.0,
        "threshold_start": records[0].get("threshold") if records else None,
        "threshold_end": records[-1].get("threshold") if records else None,
        "epsilon_start": records[0].get("epsilon") if records else None,
        "epsilon_end": records[-1].get("epsilon") if records else None,
        "exploration_ratio": modes.get("EXPLORATION", 0) / n_modes if n_modes else 0.0,
        "genres": Counter(r.get("genre") or "other" for r in accepted),
        "mechanics": Counter(r.get("mechanic") or "other" for r in accepted),
        "critical": critical,
        "errors": errors,
        "tokens": sum(r.get("tokens") or 0 for r in records),
    }


# ---------------------------------------------------------------------------
# Charts
# ---------------------------------------------------------------------------

def _savefig(out_dir: Path, name: str) -> str:
    p = out_dir / f"{name}.png"
    plt.savefig(p, dpi=150, bbox_inches="tight")
    plt.close()
    return p.name


def chart_pass_rate(records: list[dict], out_dir: Path, window: int) -> str:
    steps, rates = rolling_pass_rate(records, window)
    target = AGFConfig.TARGET_PASS_RATE
    tol = AGFConfig.PASS_RATE_TOLERANCE

    fig, ax = plt.subplots(figsize=(9, 4))
    ax.axhspan((target - tol) * 100, (target + tol) * 100, color=PALETTE[2], alpha=0.15,
               label=f"Target band ({target:.0%} +/- {tol:.0%})")
    if len(steps):
        ax.plot(steps, rates * 100, color=PALETTE[0], lw=1.6, label=f"Rolling pass rate (last {window})")
    ax.set_xlabel("Attempt", fontsize=11)
    ax.set_ylabel("Pass rate (%)", fontsize=11)
    ax.set_ylim(0, 105)
    ax.set_title("Figure 1 — Rolling Pass Rate", fontsize=12, fontweight="bold")
    ax.legend(fontsize=9)
    ax.yaxis.grid(True, alpha=0.3)
    ax.set_axisbelow(True)
    plt.tight_layout()
    return _savefig(out_dir, "fig1_pass_rate")


def chart_standards(records: list[dict], out_dir: Path) -> str:
    steps = [r["attempt"] for r in records]
    thresholds = [r.get("threshold") for r in records]
    epsilons = [r.get("epsilon") for r in records]

    fig, ax = plt.subplots(figsize=(9, 4))
    ax.plot(steps, thresholds, color=PALETTE[3], lw=1.6, label="Quality threshold")
    ax.axhline(AGFConfig.MIN_THRESHOLD, ls=":", color="grey", lw=1.0)
    ax.axhline(AGFConfig.MAX_THRESHOLD, ls=":", color="grey", lw=1.0)
    ax.set_xlabel("Attempt", fontsize=11)
    ax.set_ylabel("Threshold", fontsize=11)

    ax2 = ax.twinx()
    ax2.plot(steps, epsilons, color=PALETTE[4], lw=1.2, ls="--", label="Epsilon")
    ax2.set_ylabel("Epsilon", fontsize=11)
    ax2.set_ylim(0, max(0.6, AGFConfig.EPSILON_MAX + 0.1))

    lines = ax.get_legend_handles_labels()
    lines2 = ax2.get_legend_handles_labels()
    ax.legend(lines[0] + lines2[0], lines[1] + lines2[1], fontsize=9, loc="upper left")
    ax.set_title("Figure 2 — Adaptive Standards", fontsize=12, fontweight="bold")
    plt.tight_layout()
    return _savefig(out_dir, "fig2_standards")


def chart_scores(records: list[dict], out_dir: Path) -> str:
    scores = [r["total"] for r in records if r.get("total") is not None]
    final_threshold = records[-1].get("threshold") if records else None

    fig, ax = plt.subplots(figsize=(7, 4))
    if scores:
        ax.hist(scores, bins=20, color=PALETTE[0], alpha=0.85, edgecolor="white")
    if final_threshold is not None:
        ax.axvline(final_threshold, ls="--", color=PALETTE[3], lw=1.4,
                   label=f"Final threshold ({final_threshold:.1f})")
        ax.legend(fontsize=9)
    ax.set_xlabel("Total score", fontsize=11)
    ax.set_ylabel("Attempts", fontsize=11)
    ax.set_title("Figure 3 — Score Distribution", fontsize=12, fontweight="bold")
    ax.yaxis.grid(True, alpha=0.3)
    ax.set_axisbelow(True)
    plt.tight_layout()
    return _savefig(out_dir, "fig3_scores")


def chart_genres(stats: dict, out_dir: Path) -> str:
    genres = stats["genres"].most_common()
    labels = [g for g, _ in genres]
    counts = [n for _, n in genres]

    fig, ax = plt.subplots(figsize=(8, 4))
    bars = ax.bar(labels, counts, color=PALETTE[1], alpha=0.85)
    for bar, v in zip(bars, counts):
        ax.text(bar.get_x() + bar.get_width() / 2, v + 0.1, str(v),
                ha="center", va="bottom", fontsize=8)
    ax.set_ylabel("Accepted games", fontsize=11)
    ax.set_title("Figure 4 — Accepted Games per Genre", fontsize=12, fontweight="bold")
    ax.yaxis.grid(True, alpha=0.3)
    ax.set_axisbelow(True)
    plt.tight_layout()
    return _savefig(out_dir, "fig4_genres")


# ---------------------------------------------------------------------------
# Text report
# ---------------------------------------------------------------------------

def build_markdown(stats: dict, figures: list[str]) -> str:
    def _fmt(v, fmt):
        return format(v, fmt) if v is not None else "n/a"

    lines = [
        "# AGF Run Report",
        "",
        "## Summary",
        "",
        f"- Attempts: {stats['attempts']} "
        f"({stats['accepted']} accepted, {stats['rejected']} rejected, {stats['failed']} failed)",
        f"- Pass rate (scored attempts): {stats['pass_rate']:.1%}",
        f"- Score: mean {stats['score_mean']:.1f}, median {stats['score_median']:.1f}, "
        f"std {stats['score_std']:.1f}",
        f"- Threshold: {_fmt(stats['threshold_start'], '.1f')} -> {_fmt(stats['threshold_end'], '.1f')}",
        f"- Epsilon: {_fmt(stats['epsilon_start'], '.3f')} -> {_fmt(stats['epsilon_end'], '.3f')}",
        f"- Exploration ratio: {stats['exploration_ratio']:.1%}",
        f"- Tokens: {stats['tokens']:,}",
        "",
        "## Accepted mechanics",
        "",
    ]
    for name, n in stats["mechanics"].most_common(10):
        lines.append(f"- {name}: {n}")
    if stats["critical"]:
        lines += ["", "## Critical violations", ""]
        lines += [f"- {name}: {n}" for name, n in stats["critical"].most_common()]
    if stats["errors"]:
        lines += ["", "## Failures", ""]
        lines += [f"- {name}: {n}" for name, n in stats["errors"].most_common()]
    lines += ["", "## Figures", ""]
    lines += [f"![{f}]({f})" for f in figures]
    return "\n".join(lines) + "\n"


def main() -> None:
    parser = argparse.ArgumentParser(description="AGF run report")
    parser.add_argument("--log-dir", type=str, default=AGFConfig.LOG_DIR,
                        help="Directory containing runs.jsonl")
    parser.add_argument("--out-dir", type=str, default="",
                        help="Output directory (default: <log-dir>/report)")
    parser.add_argument("--window", type=int, default=AGFConfig.ROLLING_WINDOW,
                        help="Rolling pass-rate window")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    runs_file = Path(args.log_dir) / "runs.jsonl"
    if not runs_file.exists():
        raise SystemExit(f"No run log at {runs_file}")
    out_dir = Path(args.out_dir) if args.out_dir else Path(args.log_dir) / "report"
    out_dir.mkdir(parents=True, exist_ok=True)

    records = load_records(runs_file)
    logger.info("Loaded %d records from %s", len(records), runs_file)
    stats = compute_stats(records)

    figures = [
        chart_pass_rate(records, out_dir, args.window),
        chart_standards(records, out_dir),
        chart_scores(records, out_dir),
        chart_genres(stats, out_dir),
    ]
    report_path = out_dir / "report.md"
    report_path.write_text(build_markdown(stats, figures), encoding="utf-8")
    logger.info("Report written to %s", report_path)


if __name__ == "__main__":
    main()
