"""AGF-v0.1 Collaborators — External generator roles and mock implementations.

The pipeline is decoupled from any AI provider. It talks to five roles:

    IdeaGenerator     generate(avoid, target) -> GameSeed
    ImageGenerator    generate(seed)          -> image asset refs
    SoundGenerator    generate(seed)          -> sound asset refs
    ContentGenerator  generate_from_seed(seed, assets) -> GameArtifact
    Publisher         publish(entry)          -> PublishResult   (optional)

RetryingIdeaGenerator wraps a raw IdeaSource with internal retries and
three distinct rejection reasons (duplicate, low self-reported fun score,
transient error), and keeps an avoid list of over-used mechanics/themes.

The Mock* classes are seeded and deterministic. They back the CLI's
offline mode and the test-suite.

Usage:
    collaborators = CollaboratorSet.mock(seed=42)
    seed = await collaborators.ideas.generate(avoid=[], target="genre:rhythm")
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import random as _random
import uuid
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence

from agf.config import AGFConfig
from agf.protocol import (
    ART_STYLES,
    GENRES,
    MECHANICS,
    GameArtifact,
    GameObject,
    GameRule,
    IdeaGenerationError,
    IdeaRejection,
    PortfolioEntry,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GameSeed:
    """An idea: what to build, before any asset or logic exists."""
    title: str
    genre: str
    mechanic: str
    theme: str
    difficulty: str = "normal"
    art_style: str = "flat"
    fun_score: float = 8.0          # generator's self-reported estimate, 0-10
    object_count: int = 3
    rule_count: int = 5
    duration: float = 15.0
    tokens_used: int = 0
    seed_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def content_hash(self) -> str:
        key = "|".join(
            s.strip().lower() for s in (self.title, self.genre, self.mechanic, self.theme)
        )
        return hashlib.sha1(key.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class AssetRefs:
    """Opaque asset references attached to an artifact."""
    background: Optional[str] = None
    objects: tuple[str, ...] = ()
    sounds: tuple[str, ...] = ()
    tokens_used: int = 0


@dataclass(frozen=True)
class PublishResult:
    success: bool
    external_id: Optional[str] = None
    error: str = ""


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------

class IdeaSource(Protocol):
    """One raw idea proposal; may raise on provider errors."""

    async def propose(self, avoid: Sequence[str], target: Optional[str]) -> GameSeed: ...


class IdeaGenerator(Protocol):
    async def generate(self, avoid: Sequence[str] = (), target: Optional[str] = None) -> GameSeed: ...


class ImageGenerator(Protocol):
    async def generate(self, seed: GameSeed) -> AssetRefs: ...


class SoundGenerator(Protocol):
    async def generate(self, seed: GameSeed) -> AssetRefs: ...


class ContentGenerator(Protocol):
    async def generate_from_seed(self, seed: GameSeed, assets: AssetRefs) -> GameArtifact: ...


class Publisher(Protocol):
    async def publish(self, entry: PortfolioEntry) -> PublishResult: ...


# ---------------------------------------------------------------------------
# Retrying idea generator
# ---------------------------------------------------------------------------

class RetryingIdeaGenerator:
    """Idea generation with de-duplication, a quality floor and retries.

    Attributes:
        source: Raw idea provider.
        max_retries: Proposals tried per generate() call.
        min_fun_score: Minimum self-reported fun score.
        used_mechanics: How often each mechanic has been handed out.
    """

    def __init__(
        self,
        source: IdeaSource,
        max_retries: int = AGFConfig.IDEA_MAX_RETRIES,
        min_fun_score: float = AGFConfig.MIN_FUN_SCORE,
        avoid_size: int = 5,
    ) -> None:
        if max_retries <= 0:
            raise ValueError(f"max_retries must be positive, got {max_retries}")
        self.source = source
        self.max_retries = max_retries
        self.min_fun_score = min_fun_score
        self.avoid_size = avoid_size
        self._seen: set[str] = set()
        self.used_mechanics: Counter[str] = Counter()
        self._recent_themes: deque[str] = deque(maxlen=avoid_size)

    def avoid_list(self) -> list[str]:
        """Most used mechanics plus the most recent themes."""
        mechanics = [m for m, _ in self.used_mechanics.most_common(self.avoid_size)]
        return mechanics + list(self._recent_themes)

    async def generate(self, avoid: Sequence[str] = (), target: Optional[str] = None) -> GameSeed:
        rejections: list[IdeaRejection] = []
        for attempt in range(1, self.max_retries + 1):
            try:
                seed = await self.source.propose(list(avoid) + self.avoid_list(), target)
            except Exception as e:
                logger.warning("Idea attempt %d/%d failed: %s", attempt, self.max_retries, e)
                rejections.append(IdeaRejection.TRANSIENT_ERROR)
                continue

            digest = seed.content_hash()
            if digest in self._seen:
                logger.info("Idea attempt %d/%d: duplicate '%s'", attempt, self.max_retries, seed.title)
                rejections.append(IdeaRejection.DUPLICATE)
                continue
            self._seen.add(digest)

            if seed.fun_score < self.min_fun_score:
                logger.info(
                    "Idea attempt %d/%d: fun score %.1f < %.1f for '%s'",
                    attempt, self.max_retries, seed.fun_score, self.min_fun_score, seed.title,
                )
                rejections.append(IdeaRejection.LOW_QUALITY)
                continue

            self.used_mechanics[seed.mechanic] += 1
            self._recent_themes.append(seed.theme)
            return seed

        raise IdeaGenerationError(rejections)


# ---------------------------------------------------------------------------
# Mock implementations
# ---------------------------------------------------------------------------

THEMES: tuple[str, ...] = (
    "space", "ocean", "forest", "candy", "robots", "dinosaurs", "city",
    "kitchen", "music", "weather", "farm", "castle", "sports", "insects",
)

# Condition palettes per genre; every palette starts with its main input
GENRE_CONDITIONS: dict[str, tuple[str, ...]] = {
    "action": ("touch", "collision", "time", "position"),
    "puzzle": ("touch", "flag", "counter", "gameState"),
    "rhythm": ("time", "touch", "animation"),
    "reflex": ("touch", "time", "random"),
    "memory": ("flag", "touch", "animation", "counter"),
    "arcade": ("collision", "touch", "counter", "position"),
    "casual": ("touch", "animation", "random"),
    "timing": ("time", "touch", "position"),
}
FEEDBACK_ACTIONS: tuple[str, ...] = (
    "addScore", "counter", "effect", "playSound", "show", "hide", "move",
    "randomAction", "switchAnimation", "setFlag", "toggleFlag", "showMessage",
)


def _parse_target(target: Optional[str]) -> tuple[Optional[str], Optional[str]]:
    if not target or ":" not in target:
        return None, None
    kind, _, value = target.partition(":")
    return kind, value


class MockIdeaSource:
    """Seeded idea provider with injectable failure modes."""

    def __init__(
        self,
        seed: Optional[int] = None,
        error_rate: float = 0.0,
        duplicate_rate: float = 0.0,
        low_quality_rate: float = 0.0,
        latency: float = 0.0,
    ) -> None:
        self._rng = _random.Random(seed)
        self.error_rate = error_rate
        self.duplicate_rate = duplicate_rate
        self.low_quality_rate = low_quality_rate
        self.latency = latency
        self._last: Optional[GameSeed] = None
        self._counter = 0

    async def propose(self, avoid: Sequence[str], target: Optional[str]) -> GameSeed:
        if self.latency:
            await asyncio.sleep(self.latency)
        rng = self._rng
        if rng.random() < self.error_rate:
            raise ConnectionError("mock idea provider unavailable")
        if self._last is not None and rng.random() < self.duplicate_rate:
            return self._last

        kind, value = _parse_target(target)
        genre = value if kind == "genre" and value in GENRES else rng.choice(GENRES)
        if kind == "mechanic" and value in MECHANICS:
            mechanic = value
        else:
            fresh = [m for m in MECHANICS if m not in avoid]
            mechanic = rng.choice(fresh or list(MECHANICS))
        themes = [t for t in THEMES if t not in avoid] or list(THEMES)
        theme = rng.choice(themes)

        self._counter += 1
        fun = rng.uniform(4.0, 6.5) if rng.random() < self.low_quality_rate else rng.uniform(7.0, 10.0)
        seed = GameSeed(
            title=f"{theme.title()} {mechanic.replace('-', ' ').title()} #{self._counter}",
            genre=genre,
            mechanic=mechanic,
            theme=theme,
            difficulty=rng.choice(("easy", "normal", "hard")),
            art_style=rng.choice(ART_STYLES),
            fun_score=round(fun, 1),
            object_count=rng.randint(1, 7),
            rule_count=rng.randint(2, 10),
            duration=float(rng.choice((5, 10, 15, 20, 30))),
            tokens_used=rng.randint(300, 800),
        )
        self._last = seed
        return seed


class MockImageGenerator:
    def __init__(self, seed: Optional[int] = None, failure_rate: float = 0.0,
                 latency: float = 0.0) -> None:
        self._rng = _random.Random(seed)
        self.failure_rate = failure_rate
        self.latency = latency

    async def generate(self, seed: GameSeed) -> AssetRefs:
        if self.latency:
            await asyncio.sleep(self.latency)
        if self._rng.random() < self.failure_rate:
            raise RuntimeError("mock image generation failed")
        return AssetRefs(
            background=f"img://{seed.seed_id}/background.png",
            objects=tuple(f"img://{seed.seed_id}/obj{i}.png" for i in range(seed.object_count)),
            tokens_used=self._rng.randint(100, 300),
        )


class MockSoundGenerator:
    def __init__(self, seed: Optional[int] = None, failure_rate: float = 0.0,
                 latency: float = 0.0) -> None:
        self._rng = _random.Random(seed)
        self.failure_rate = failure_rate
        self.latency = latency

    async def generate(self, seed: GameSeed) -> AssetRefs:
        if self.latency:
            await asyncio.sleep(self.latency)
        if self._rng.random() < self.failure_rate:
            raise RuntimeError("mock sound generation failed")
        return AssetRefs(sounds=(f"snd://{seed.seed_id}/bgm.mp3", f"snd://{seed.seed_id}/se.mp3"),
                         tokens_used=self._rng.randint(50, 150))


class MockContentGenerator:
    """Builds a rule script from a seed.

    ``broken_rate`` drops the success rule, producing an artifact with no
    reachable success path.
    """

    def __init__(
        self,
        seed: Optional[int] = None,
        failure_rate: float = 0.0,
        broken_rate: float = 0.0,
        latency: float = 0.0,
    ) -> None:
        self._rng = _random.Random(seed)
        self.failure_rate = failure_rate
        self.broken_rate = broken_rate
        self.latency = latency

    async def generate_from_seed(self, seed: GameSeed, assets: AssetRefs) -> GameArtifact:
        if self.latency:
            await asyncio.sleep(self.latency)
        rng = self._rng
        if rng.random() < self.failure_rate:
            raise RuntimeError("mock logic generation returned invalid JSON")

        palette = GENRE_CONDITIONS.get(seed.genre, ("touch",))
        object_ids = [f"obj{i}" for i in range(len(assets.objects))]
        rules: list[GameRule] = []

        if rng.random() >= self.broken_rate:
            if "counter" in palette:
                rules.append(GameRule(conditions=("counter",), actions=("success",)))
                rules.append(GameRule(
                    conditions=(palette[0],), actions=("counter", "playSound"),
                    target_ids=tuple(object_ids[:1]),
                ))
            else:
                rules.append(GameRule(
                    conditions=(palette[0],), actions=("success", "effect"),
                    target_ids=tuple(object_ids[:1]),
                ))
        if seed.rule_count > 2:
            rules.append(GameRule(conditions=("time",), actions=("failure",)))
        while len(rules) < seed.rule_count:
            n_actions = rng.randint(1, 2)
            rules.append(GameRule(
                conditions=(rng.choice(palette),),
                actions=tuple(rng.sample(FEEDBACK_ACTIONS, n_actions)),
                target_ids=(rng.choice(object_ids),) if object_ids else (),
            ))

        objects = tuple(
            GameObject(object_id=oid, frame_count=rng.randint(1, 3)) for oid in object_ids
        )
        return GameArtifact(
            title=seed.title,
            genre=seed.genre,
            mechanic=seed.mechanic,
            difficulty=seed.difficulty,
            art_style=seed.art_style,
            duration_seconds=seed.duration,
            rules=tuple(rules),
            objects=objects,
            has_background=assets.background is not None,
            sounds=assets.sounds,
            payload_bytes=rng.randint(200_000, 2_000_000),
            settings={"name": seed.title, "duration": seed.duration},
        )


class MockPublisher:
    def __init__(self, seed: Optional[int] = None, failure_rate: float = 0.0) -> None:
        self._rng = _random.Random(seed)
        self.failure_rate = failure_rate
        self.published: list[str] = []

    async def publish(self, entry: PortfolioEntry) -> PublishResult:
        if self._rng.random() < self.failure_rate:
            return PublishResult(success=False, error="mock storage rejected upload")
        external_id = f"pub-{entry.candidate.candidate_id}"
        self.published.append(external_id)
        return PublishResult(success=True, external_id=external_id)


# ---------------------------------------------------------------------------
# Bundle
# ---------------------------------------------------------------------------

@dataclass
class CollaboratorSet:
    ideas: IdeaGenerator
    images: ImageGenerator
    sounds: SoundGenerator
    content: ContentGenerator
    publisher: Optional[Publisher] = None

    @classmethod
    def mock(
        cls,
        seed: Optional[int] = None,
        failure_rate: float = 0.0,
        broken_rate: float = 0.0,
        publish_failure_rate: float = 0.0,
        latency: float = 0.0,
    ) -> CollaboratorSet:
        """Offline collaborators; each role gets its own derived seed."""
        base = _random.Random(seed)
        seeds = [base.randrange(2**31) for _ in range(5)]
        return cls(
            ideas=RetryingIdeaGenerator(MockIdeaSource(seed=seeds[0], latency=latency)),
            images=MockImageGenerator(seed=seeds[1], latency=latency),
            sounds=MockSoundGenerator(seed=seeds[2], latency=latency),
            content=MockContentGenerator(
                seed=seeds[3], failure_rate=failure_rate, broken_rate=broken_rate,
                latency=latency,
            ),
            publisher=MockPublisher(seed=seeds[4], failure_rate=publish_failure_rate),
        )
