"""AGF-v0.1 MLflow Experiment Tracker.

Records generation runs in MLflow when AGF_USE_MLFLOW=true. The tracker
never raises: a missing mlflow install, an unreachable server or a
failing call each degrade to a logged warning, and the run continues
untracked.

Metric layout:
    step = attempt number   total_score, passed, threshold, epsilon,
                            exploration, elapsed_seconds, tokens_used
    step = batch number     batch_success, batch_failed, batch_seconds
    no step                 final_<field> for every numeric summary field

Usage:
    tracker = AGFTracker(tracking_uri=AGFConfig.MLFLOW_TRACKING_URI, enabled=True)
    with tracker.run("batch-100", {"batch_size": 10}):
        ...
        tracker.log_summary(summary.as_dict())
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional

logger = logging.getLogger(__name__)

# MLflow rejects longer param values
_PARAM_MAX_LEN = 250


class AGFTracker:
    def __init__(
        self,
        tracking_uri: str = "",
        experiment_name: str = "agf-generation",
        enabled: bool = True,
    ) -> None:
        self._mlflow: Any = None
        if enabled and tracking_uri:
            self._mlflow = self._init_mlflow(tracking_uri, experiment_name)

    @staticmethod
    def _init_mlflow(tracking_uri: str, experiment_name: str) -> Any:
        try:
            import mlflow
            mlflow.set_tracking_uri(tracking_uri)
            mlflow.set_experiment(experiment_name)
        except Exception as e:
            logger.warning("MLflow unavailable (%s); tracking disabled", e)
            return None
        logger.info("MLflow tracking: uri=%s experiment=%s", tracking_uri, experiment_name)
        return mlflow

    @property
    def enabled(self) -> bool:
        return self._mlflow is not None

    def _call(self, method: str, *args: Any, **kwargs: Any) -> None:
        if self._mlflow is None:
            return
        try:
            getattr(self._mlflow, method)(*args, **kwargs)
        except Exception as e:
            logger.warning("MLflow %s failed: %s", method, e)

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    def start_run(self, run_name: str = "", config: Optional[Mapping[str, Any]] = None) -> None:
        self._call("start_run", run_name=run_name or None)
        if config:
            self._call("log_params", {k: str(v)[:_PARAM_MAX_LEN] for k, v in config.items()})

    def end_run(self) -> None:
        self._call("end_run")

    @contextmanager
    def run(self, run_name: str = "", config: Optional[Mapping[str, Any]] = None) -> Iterator[AGFTracker]:
        """start_run / end_run around a block, ending the run on errors too."""
        self.start_run(run_name, config)
        try:
            yield self
        finally:
            self.end_run()

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def log_attempt(
        self,
        step: int,
        total_score: float,
        passed: bool,
        threshold: float,
        epsilon: float,
        exploration: bool = False,
        elapsed_seconds: float = 0.0,
        tokens_used: int = 0,
    ) -> None:
        self._call("log_metrics", {
            "total_score": total_score,
            "passed": float(passed),
            "threshold": threshold,
            "epsilon": epsilon,
            "exploration": float(exploration),
            "elapsed_seconds": elapsed_seconds,
            "tokens_used": float(tokens_used),
        }, step=step)

    def log_batch(
        self,
        batch_number: int,
        success_count: int,
        fail_count: int,
        elapsed_seconds: float,
    ) -> None:
        self._call("log_metrics", {
            "batch_success": float(success_count),
            "batch_failed": float(fail_count),
            "batch_seconds": elapsed_seconds,
        }, step=batch_number)

    def log_summary(self, summary: Mapping[str, Any]) -> None:
        # bools are ints; skip them along with strings
        metrics = {
            f"final_{k}": float(v)
            for k, v in summary.items()
            if isinstance(v, (int, float)) and not isinstance(v, bool)
        }
        if metrics:
            self._call("log_metrics", metrics)

    def log_artifact(self, local_path: str, artifact_path: str = "") -> None:
        self._call("log_artifact", local_path, artifact_path or None)

    def __repr__(self) -> str:
        return f"AGFTracker({'enabled' if self.enabled else 'disabled'})"
