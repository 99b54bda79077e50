"""AGF-v0.1 Run Store — Snapshots and attempt log, Redis or local files.

A run writes two kinds of artefact:

    snapshot     RunSnapshot (standards state, accepted-portfolio records,
                 counters, rolling window, quality stats, mode counts),
                 rewritten at every recalibration and at run end
    attempt log  one JSON record per attempt, appended as attempts finish

Backends:

    Redis (AGF_USE_REDIS=true and reachable)
        <ns>:snapshot   JSON RunSnapshot
        <ns>:stats      hash of counters (readable with HGETALL while running)
        <ns>:runs       bounded stream of attempt records
    Local (always for the attempt log, otherwise for snapshots)
        runs.jsonl      attempt log
        state.pkl       pickled RunSnapshot, replaced atomically

Usage:
    store = StateStore(redis_url=AGFConfig.REDIS_URL, log_dir="./results")
    store.append_run_log({"attempt": 12, "outcome": AttemptOutcome.ACCEPTED})
    snap = store.save_state(standards, portfolio, {"attempts": 12})
    snap = store.load_state()          # RunSnapshot or None
"""

from __future__ import annotations

import json
import logging
import os
import pickle
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterator, Optional

import numpy as np

if TYPE_CHECKING:
    from agf.mode_selector import ModeSelector
    from agf.portfolio import Portfolio
    from agf.standards import AdaptiveStandards
    from agf.util.rolling import OutcomeWindow, RunningStats

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------

class _RecordEncoder(json.JSONEncoder):
    """Encodes numpy values and enums as plain JSON."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Enum):
            return obj.name
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.generic):
            return obj.item()
        return super().default(obj)


def json_dumps(obj: Any) -> str:
    return json.dumps(obj, cls=_RecordEncoder)


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RunSnapshot:
    standards: dict[str, Any]
    portfolio: list[dict[str, Any]]
    stats: dict[str, int]
    window: dict[str, Any] = field(default_factory=dict)
    quality: dict[str, Any] = field(default_factory=dict)
    selector: dict[str, int] = field(default_factory=dict)
    saved_at: float = field(default_factory=time.time)

    @classmethod
    def capture(
        cls,
        standards: AdaptiveStandards,
        portfolio: Portfolio,
        stats: dict[str, int],
        window: Optional[OutcomeWindow] = None,
        quality: Optional[RunningStats] = None,
        selector: Optional[ModeSelector] = None,
    ) -> RunSnapshot:
        return cls(
            standards=standards.state_dict(),
            portfolio=portfolio.to_records(),
            stats=dict(stats),
            window=window.state_dict() if window is not None else {},
            quality=quality.state_dict() if quality is not None else {},
            selector=selector.state_dict() if selector is not None else {},
        )

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> RunSnapshot:
        return cls(
            standards=d["standards"],
            portfolio=list(d.get("portfolio", [])),
            stats={k: int(v) for k, v in d.get("stats", {}).items()},
            window=dict(d.get("window") or {}),
            quality=dict(d.get("quality") or {}),
            selector={k: int(v) for k, v in (d.get("selector") or {}).items()},
            saved_at=float(d.get("saved_at", 0.0)),
        )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class StateStore:
    """Persists snapshots and the attempt log for one run directory.

    Every Redis failure is logged and answered by the local files, so a
    flaky Redis never costs an attempt record.
    """

    STREAM_MAXLEN = 10_000

    def __init__(
        self,
        redis_url: str = "",
        log_dir: str = ".",
        use_redis: bool = True,
        namespace: str = "agf",
    ) -> None:
        self._log_dir = Path(log_dir)
        self._log_dir.mkdir(parents=True, exist_ok=True)
        self.namespace = namespace
        self._redis = self._connect(redis_url) if (redis_url and use_redis) else None

    @staticmethod
    def _connect(redis_url: str):
        try:
            import redis
            client = redis.from_url(redis_url, decode_responses=True)
            client.ping()
        except Exception as e:
            logger.warning("Redis unavailable at %s (%s); writing local files only", redis_url, e)
            return None
        logger.info("Redis connected: %s", redis_url)
        return client

    def _key(self, name: str) -> str:
        return f"{self.namespace}:{name}"

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    @property
    def runs_path(self) -> Path:
        return self._log_dir / "runs.jsonl"

    @property
    def snapshot_path(self) -> Path:
        return self._log_dir / "state.pkl"

    @property
    def has_redis(self) -> bool:
        if self._redis is None:
            return False
        try:
            return bool(self._redis.ping())
        except Exception:
            return False

    @property
    def backend(self) -> str:
        return "redis" if self.has_redis else "local"

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def save_state(
        self,
        standards: AdaptiveStandards,
        portfolio: Portfolio,
        stats: dict[str, int],
        window: Optional[OutcomeWindow] = None,
        quality: Optional[RunningStats] = None,
        selector: Optional[ModeSelector] = None,
    ) -> RunSnapshot:
        """Capture and persist a snapshot; returns what was written."""
        snap = RunSnapshot.capture(standards, portfolio, stats, window, quality, selector)
        if not (self.has_redis and self._write_redis(snap)):
            self._write_local(snap)
        return snap

    def _write_redis(self, snap: RunSnapshot) -> bool:
        try:
            pipe = self._redis.pipeline()
            pipe.set(self._key("snapshot"), json_dumps(asdict(snap)))
            if snap.stats:
                pipe.hset(self._key("stats"), mapping={k: str(v) for k, v in snap.stats.items()})
            pipe.execute()
        except Exception as e:
            logger.warning("Redis snapshot failed (%s); using %s", e, self.snapshot_path.name)
            return False
        logger.debug("Snapshot saved to Redis (%d accepted)", len(snap.portfolio))
        return True

    def _write_local(self, snap: RunSnapshot) -> None:
        tmp = self.snapshot_path.with_suffix(".pkl.tmp")
        try:
            with open(tmp, "wb") as f:
                pickle.dump(asdict(snap), f, protocol=pickle.HIGHEST_PROTOCOL)
            os.replace(tmp, self.snapshot_path)
        except OSError as e:
            logger.warning("Could not write %s: %s", self.snapshot_path, e)
            return
        logger.debug("Snapshot saved to %s (%d accepted)", self.snapshot_path, len(snap.portfolio))

    def load_state(self) -> Optional[RunSnapshot]:
        """Latest snapshot from Redis, else from state.pkl, else None."""
        if self.has_redis:
            try:
                raw = self._redis.get(self._key("snapshot"))
                if raw:
                    return RunSnapshot.from_dict(json.loads(raw))
            except Exception as e:
                logger.warning("Redis snapshot read failed (%s); trying %s",
                               e, self.snapshot_path.name)

        if not self.snapshot_path.exists():
            return None
        try:
            with open(self.snapshot_path, "rb") as f:
                return RunSnapshot.from_dict(pickle.load(f))
        except (OSError, pickle.UnpicklingError, EOFError, KeyError) as e:
            logger.warning("Unreadable snapshot %s: %s", self.snapshot_path, e)
            return None

    # ------------------------------------------------------------------
    # Attempt log
    # ------------------------------------------------------------------

    def append_run_log(self, record: dict[str, Any]) -> None:
        line = json_dumps(record)
        try:
            with open(self.runs_path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            logger.warning("Could not append to %s: %s", self.runs_path, e)

        if self.has_redis:
            try:
                self._redis.xadd(
                    self._key("runs"),
                    {k: json_dumps(v) for k, v in record.items()},
                    maxlen=self.STREAM_MAXLEN,
                    approximate=True,
                )
            except Exception as e:
                logger.warning("Redis XADD failed: %s", e)

    def iter_run_log(self) -> Iterator[dict[str, Any]]:
        """Attempt records from runs.jsonl in write order."""
        if not self.runs_path.exists():
            return
        with open(self.runs_path, encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    yield json.loads(line)

    def get_run_history(self, count: int = 100) -> list[dict[str, Any]]:
        """The last ``count`` attempt records, oldest first."""
        if self.has_redis:
            try:
                entries = self._redis.xrevrange(self._key("runs"), count=count)
                return [
                    {k: json.loads(v) for k, v in fields.items()}
                    for _, fields in reversed(entries)
                ]
            except Exception as e:
                logger.warning("Redis XREVRANGE failed (%s); reading %s", e, self.runs_path.name)
        return list(deque(self.iter_run_log(), maxlen=count))

    def __repr__(self) -> str:
        return f"StateStore(backend={self.backend}, log_dir={self._log_dir})"
