"""AGF-v0.1 Configuration — Environment-variable-driven config.

All AGF configuration is centralized here, read from environment variables
with sensible defaults. Components take explicit constructor arguments and
fall back to these values, so tests can override anything locally.

Environment variables use the AGF_ prefix to avoid collisions. The initial
quality threshold additionally honours a bare QUALITY_THRESHOLD override.

Usage:
    from agf.config import AGFConfig

    # Read a config value (resolved at import time from env):
    threshold = AGFConfig.QUALITY_THRESHOLD

    # Override via environment:
    #   AGF_MAX_CONCURRENCY=10 python main.py --mode batch -n 50
"""

from __future__ import annotations

import os


def _env_list(name: str, default: str) -> list[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


class AGFConfig:
    """Static configuration namespace — all values resolved from env at import time."""

    # ------------------------------------------------------------------
    # Run shape
    # ------------------------------------------------------------------
    TARGET_COUNT: int = int(os.getenv("AGF_TARGET_COUNT", "100"))
    BATCH_SIZE: int = int(os.getenv("AGF_BATCH_SIZE", "10"))
    MAX_CONCURRENCY: int = int(os.getenv("AGF_MAX_CONCURRENCY", "20"))
    INTER_BATCH_DELAY: float = float(os.getenv("AGF_INTER_BATCH_DELAY", "2.0"))
    ATTEMPT_DELAY: float = float(os.getenv("AGF_ATTEMPT_DELAY", "5.0"))
    ERROR_COOLDOWN: float = float(os.getenv("AGF_ERROR_COOLDOWN", "60.0"))
    # 0 = no per-task timeout
    TASK_TIMEOUT: float = float(os.getenv("AGF_TASK_TIMEOUT", "0"))
    REPORT_EVERY: int = int(os.getenv("AGF_REPORT_EVERY", "10"))

    # ------------------------------------------------------------------
    # Quality threshold
    # ------------------------------------------------------------------
    QUALITY_THRESHOLD: float = float(
        os.getenv("AGF_QUALITY_THRESHOLD", os.getenv("QUALITY_THRESHOLD", "60")),
    )
    MIN_THRESHOLD: float = float(os.getenv("AGF_MIN_THRESHOLD", "40"))
    MAX_THRESHOLD: float = float(os.getenv("AGF_MAX_THRESHOLD", "80"))
    MAX_THRESHOLD_STEP: float = float(os.getenv("AGF_MAX_THRESHOLD_STEP", "3"))

    # ------------------------------------------------------------------
    # Exploration (epsilon-greedy)
    # ------------------------------------------------------------------
    EPSILON: float = float(os.getenv("AGF_EPSILON", "0.3"))
    EPSILON_MIN: float = float(os.getenv("AGF_EPSILON_MIN", "0.1"))
    EPSILON_MAX: float = float(os.getenv("AGF_EPSILON_MAX", "0.5"))
    EPSILON_DECAY: float = float(os.getenv("AGF_EPSILON_DECAY", "0.95"))
    EPSILON_BOOST: float = float(os.getenv("AGF_EPSILON_BOOST", "0.1"))

    # ------------------------------------------------------------------
    # Adaptive controller
    # ------------------------------------------------------------------
    RECALIBRATION_INTERVAL: int = int(os.getenv("AGF_RECALIBRATION_INTERVAL", "10"))
    ROLLING_WINDOW: int = int(os.getenv("AGF_ROLLING_WINDOW", "50"))
    TARGET_PASS_RATE: float = float(os.getenv("AGF_TARGET_PASS_RATE", "0.35"))
    PASS_RATE_TOLERANCE: float = float(os.getenv("AGF_PASS_RATE_TOLERANCE", "0.05"))
    # Threshold points per unit of pass-rate deviation
    PASS_RATE_GAIN: float = float(os.getenv("AGF_PASS_RATE_GAIN", "20"))
    MIN_DIVERSITY_SCORE: float = float(os.getenv("AGF_MIN_DIVERSITY_SCORE", "10"))
    # Portfolio diversity bands (mean pairwise distance / DISTANCE_CEILING);
    # mock portfolios settle around 0.45
    LOW_DIVERSITY: float = float(os.getenv("AGF_LOW_DIVERSITY", "0.3"))
    HIGH_DIVERSITY: float = float(os.getenv("AGF_HIGH_DIVERSITY", "0.6"))
    DIVERSITY_EPSILON_BOOST: float = float(os.getenv("AGF_DIVERSITY_EPSILON_BOOST", "0.05"))
    MIN_DIVERSITY_FLOOR: float = float(os.getenv("AGF_MIN_DIVERSITY_FLOOR", "5"))

    # ------------------------------------------------------------------
    # Portfolio / diversity
    # ------------------------------------------------------------------
    DISTANCE_CEILING: float = float(os.getenv("AGF_DISTANCE_CEILING", "5.0"))
    NEIGHBOR_RADIUS: float = float(os.getenv("AGF_NEIGHBOR_RADIUS", "1.5"))
    DENSITY_SATURATION: int = int(os.getenv("AGF_DENSITY_SATURATION", "10"))
    MIN_PORTFOLIO_FOR_GAPS: int = int(os.getenv("AGF_MIN_PORTFOLIO_FOR_GAPS", "10"))
    COVERAGE_FLOOR: int = int(os.getenv("AGF_COVERAGE_FLOOR", "3"))
    MAX_GAP_AREAS: int = int(os.getenv("AGF_MAX_GAP_AREAS", "5"))
    FALLBACK_TARGETS: list[str] = _env_list(
        "AGF_FALLBACK_TARGETS", "genre:rhythm,genre:memory,genre:puzzle",
    )

    # ------------------------------------------------------------------
    # Scoring budgets (relative 40 + absolute 45; density only subtracts)
    # ------------------------------------------------------------------
    WEIGHT_DIVERSITY: float = float(os.getenv("AGF_WEIGHT_DIVERSITY", "20"))
    WEIGHT_DENSITY: float = float(os.getenv("AGF_WEIGHT_DENSITY", "10"))
    WEIGHT_GAP: float = float(os.getenv("AGF_WEIGHT_GAP", "10"))
    WEIGHT_BALANCE: float = float(os.getenv("AGF_WEIGHT_BALANCE", "10"))
    BUDGET_BASIC: float = float(os.getenv("AGF_BUDGET_BASIC", "15"))
    BUDGET_PLAYABILITY: float = float(os.getenv("AGF_BUDGET_PLAYABILITY", "15"))
    BUDGET_SATISFACTION: float = float(os.getenv("AGF_BUDGET_SATISFACTION", "15"))

    # ------------------------------------------------------------------
    # Idea generation
    # ------------------------------------------------------------------
    IDEA_MAX_RETRIES: int = int(os.getenv("AGF_IDEA_MAX_RETRIES", "3"))
    MIN_FUN_SCORE: float = float(os.getenv("AGF_MIN_FUN_SCORE", "7"))
    # Rough provider cost estimate, USD per 1k tokens
    COST_PER_1K_TOKENS: float = float(os.getenv("AGF_COST_PER_1K_TOKENS", "0.001"))

    # ------------------------------------------------------------------
    # Persistence / logging
    # ------------------------------------------------------------------
    LOG_DIR: str = os.getenv("AGF_LOG_DIR", "./results")
    REDIS_URL: str = os.getenv("AGF_REDIS_URL", "redis://localhost:6379/0")
    USE_REDIS: bool = os.getenv("AGF_USE_REDIS", "false").lower() == "true"

    # ------------------------------------------------------------------
    # MLflow experiment tracking
    # ------------------------------------------------------------------
    USE_MLFLOW: bool = os.getenv("AGF_USE_MLFLOW", "false").lower() == "true"
    MLFLOW_TRACKING_URI: str = os.getenv(
        "AGF_MLFLOW_TRACKING_URI", "http://localhost:5000",
    )
    MLFLOW_EXPERIMENT_NAME: str = os.getenv(
        "AGF_MLFLOW_EXPERIMENT_NAME", "agf-generation",
    )
