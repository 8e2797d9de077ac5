"""Script batch orchestration: cache lookup, AI generation, rule-based fallback.

A batch is keyed by ``(topic, genre)``. ``request`` resolves a batch through
this chain and never raises for expected failures:

    cached batch (unexpired) -> AI batch (persisted) -> rule-based script -> error script

``ScriptSession`` serves one batch sequentially and regenerates on exhaustion.
"""

from __future__ import annotations

import asyncio
import logging
import random
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from fastapi import HTTPException

from config import settings
from services.categories import Category
from services.datasets import DatasetCatalog, Pools
from services.document_store import (
    METRICS_COLLECTION,
    SETTINGS_COLLECTION,
    DocumentStore,
    batch_cache_key,
)
from services.llm_client import ScriptCompletionClient, is_rate_limited
from services.relevance import find_relevant_items
from services.resilience import RetryPolicy, call_with_retry, with_fallback
from services.script_generation import (
    DEFAULT_GENRE,
    build_batch_prompt,
    error_script,
    generate_rule_based_script,
    parse_batch_response,
    punchline_suggestion,
    sanitize_script,
)
from services.usage_tracker import UsageTracker, usage_tracker

logger = logging.getLogger(__name__)

GENERATOR_SETTINGS_DOC = "generator"
GENERATOR_METRICS_DOC = "generator"

SOURCE_CACHE = "cache"
SOURCE_AI = "ai"
SOURCE_RULE_BASED = "rule_based"
SOURCE_ERROR = "error"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class BatchResult:
    key: str
    scripts: List[Dict[str, Any]]
    source: str
    generation: Dict[str, Any] = field(default_factory=dict)


@dataclass
class MatchedItems:
    dialogues: List[Dict[str, Any]]
    memes: List[Dict[str, Any]]
    trends: List[Dict[str, Any]]

    @property
    def any(self) -> bool:
        return bool(self.dialogues or self.memes or self.trends)


async def read_generator_settings(store: DocumentStore) -> Dict[str, Any]:
    document = await with_fallback(
        lambda: store.get(SETTINGS_COLLECTION, GENERATOR_SETTINGS_DOC),
        None,
        label="load generator settings",
    )
    use_ai = document.get("useAI") if isinstance(document, dict) else None
    return {"useAI": use_ai if isinstance(use_ai, bool) else bool(settings.AI_GENERATION_ENABLED)}


async def update_generator_settings(store: DocumentStore, use_ai: bool) -> Dict[str, Any]:
    payload = {"useAI": bool(use_ai), "updatedAt": _utcnow().isoformat()}
    await store.set(SETTINGS_COLLECTION, GENERATOR_SETTINGS_DOC, payload)
    logger.info("Generator mode set to %s", "AI" if use_ai else "rule-based")
    return payload


class ScriptBatchOrchestrator:
    def __init__(
        self,
        store: DocumentStore,
        *,
        catalog: Optional[DatasetCatalog] = None,
        completion_client: Optional[ScriptCompletionClient] = None,
        tracker: Optional[UsageTracker] = None,
        retry_policy: Optional[RetryPolicy] = None,
        batch_size: Optional[int] = None,
        cache_ttl: Optional[timedelta] = None,
        match_threshold: Optional[float] = None,
        session_limit: Optional[int] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.store = store
        self.catalog = catalog
        self.completion_client = completion_client
        self.tracker = tracker or usage_tracker
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=settings.LLM_MAX_ATTEMPTS,
            base_delay=settings.LLM_RETRY_BASE_DELAY_SECONDS,
            retryable=is_rate_limited,
        )
        self.batch_size = max(int(batch_size or settings.SCRIPT_BATCH_SIZE), 1)
        self.cache_ttl = cache_ttl or timedelta(days=settings.SCRIPT_CACHE_TTL_DAYS)
        self.match_threshold = settings.RELEVANCE_MATCH_THRESHOLD if match_threshold is None else match_threshold
        self.session_limit = max(int(session_limit or settings.SCRIPT_SESSION_LIMIT), 1)
        self.rng = rng or random.Random()
        self._clock = clock
        self._sleep = sleep
        self._in_flight: Dict[str, Tuple[asyncio.Task, bool]] = {}
        self._sessions: "OrderedDict[str, ScriptSession]" = OrderedDict()

    # Batch resolution

    async def request(
        self,
        topic: str,
        genre: Optional[str] = DEFAULT_GENRE,
        pools: Optional[Pools] = None,
        *,
        force_refresh: bool = False,
    ) -> BatchResult:
        """Resolve a batch for ``(topic, genre)``.

        Concurrent callers for the same key share one in-flight resolution. A
        forced refresh that finds a plain request in flight waits for it and
        only regenerates when that request was answered from the cache.
        """
        topic = str(topic or "").strip()
        if not topic:
            raise HTTPException(status_code=422, detail="Please enter a topic")
        genre = str(genre or "").strip() or DEFAULT_GENRE

        key = batch_cache_key(topic, genre)
        entry = self._in_flight.get(key)
        if entry is not None:
            task, refreshing = entry
            result = await asyncio.shield(task)
            if refreshing or not force_refresh or result.source != SOURCE_CACHE:
                return result
        task = self._start_resolution(key, topic, genre, pools, force_refresh)
        return await asyncio.shield(task)

    def _start_resolution(
        self,
        key: str,
        topic: str,
        genre: str,
        pools: Optional[Pools],
        force_refresh: bool,
    ) -> asyncio.Task:
        entry = self._in_flight.get(key)
        if entry is not None and (entry[1] or not force_refresh):
            return entry[0]
        task = asyncio.ensure_future(self._resolve_safely(topic, genre, pools, force_refresh))
        self._in_flight[key] = (task, force_refresh)
        task.add_done_callback(lambda done: self._drop_in_flight(key, done))
        return task

    def _drop_in_flight(self, key: str, task: asyncio.Task) -> None:
        entry = self._in_flight.get(key)
        if entry is not None and entry[0] is task:
            del self._in_flight[key]

    async def _resolve_safely(
        self,
        topic: str,
        genre: str,
        pools: Optional[Pools],
        force_refresh: bool,
    ) -> BatchResult:
        try:
            result = await self._resolve(topic, genre, pools, force_refresh)
        except Exception as exc:
            logger.exception("Script batch resolution failed for %r", topic)
            result = BatchResult(
                key=batch_cache_key(topic, genre),
                scripts=[error_script(f"Script generation failed: {exc}")],
                source=SOURCE_ERROR,
                generation={"mode": "error", "used_fallback": True, "fallback_reason": str(exc)},
            )
        await self._record_metrics(result)
        return result

    async def _resolve(
        self,
        topic: str,
        genre: str,
        pools: Optional[Pools],
        force_refresh: bool,
    ) -> BatchResult:
        key = batch_cache_key(topic, genre)

        if force_refresh:
            await with_fallback(
                lambda: self.store.delete_cached_batch(key),
                None,
                label="delete exhausted batch",
            )
        else:
            cached = await self._cached_batch(topic, genre)
            if cached is not None:
                return cached

        matched = await self._match(topic, genre, pools)
        settings_doc = await read_generator_settings(self.store)

        fallback_reason = "AI generation disabled"
        if settings_doc["useAI"]:
            scripts, fallback_reason = await self._generate_ai(topic, genre, matched)
            if scripts:
                expires_at = self._clock() + self.cache_ttl
                await with_fallback(
                    lambda: self.store.put_cached_batch(topic, genre, scripts, expires_at),
                    None,
                    label="persist script batch",
                )
                return BatchResult(
                    key=key,
                    scripts=scripts,
                    source=SOURCE_AI,
                    generation={
                        "mode": "ai",
                        "provider": "openai",
                        "model": self.completion_client.model,
                        "used_fallback": False,
                        "fallback_reason": None,
                    },
                )

        return self._rule_based(key, topic, genre, matched, fallback_reason)

    async def _cached_batch(self, topic: str, genre: str) -> Optional[BatchResult]:
        cached = await with_fallback(
            lambda: self.store.get_cached_batch(topic, genre),
            None,
            label="load cached batch",
        )
        if not cached:
            return None

        expires_at = cached.get("expiresAt")
        rows = cached.get("batch")
        scripts = [sanitize_script(row) for row in rows if isinstance(row, dict)] if isinstance(rows, list) else []
        expired = expires_at is not None and expires_at <= self._clock()
        if expired or not scripts:
            logger.info("Discarding %s cached batch for %r", "expired" if expired else "unusable", topic)
            await with_fallback(
                lambda: self.store.delete_cached_batch(cached["key"]),
                None,
                label="delete stale batch",
            )
            return None

        return BatchResult(
            key=cached["key"],
            scripts=scripts,
            source=SOURCE_CACHE,
            generation={"mode": "cache", "used_fallback": False, "fallback_reason": None},
        )

    async def _match(self, topic: str, genre: str, pools: Optional[Pools]) -> MatchedItems:
        if pools is None:
            if self.catalog is not None:
                pools = await self.catalog.get_pools()
            else:
                pools = {}

        def _find(category: Category, limit: int) -> List[Dict[str, Any]]:
            return find_relevant_items(
                topic,
                pools.get(category) or [],
                category,
                limit,
                genre,
                threshold=self.match_threshold,
                rng=self.rng,
            )

        return MatchedItems(
            dialogues=_find(Category.DIALOGUE, 2),
            memes=_find(Category.MEME, 1),
            trends=_find(Category.TREND, 1),
        )

    async def _generate_ai(
        self,
        topic: str,
        genre: str,
        matched: MatchedItems,
    ) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        client = self.completion_client
        if client is None or not client.available:
            return [], "OpenAI API key missing or unavailable"

        suggestion = punchline_suggestion(matched.dialogues, matched.memes, matched.trends)
        prompt = build_batch_prompt(
            topic=topic,
            genre=genre,
            batch_size=self.batch_size,
            dialogues=matched.dialogues,
            memes=matched.memes,
            trends=matched.trends,
            suggestion=suggestion,
        )
        try:
            completion = await call_with_retry(
                lambda: client.complete(prompt, json_output=True),
                self.retry_policy,
                sleep=self._sleep,
            )
        except Exception as exc:
            logger.warning("Script batch AI generation fallback: %s", exc)
            return [], f"openai_error: {exc}"

        self.tracker.log_usage(completion.input_tokens, completion.output_tokens)
        scripts = parse_batch_response(
            completion.text,
            default_used_dataset=matched.any,
            suggestion=suggestion,
        )
        if not scripts:
            logger.warning("AI returned no usable scripts for %r", topic)
            return [], "no usable scripts in AI response"
        return scripts, None

    def _rule_based(
        self,
        key: str,
        topic: str,
        genre: str,
        matched: MatchedItems,
        fallback_reason: Optional[str],
    ) -> BatchResult:
        try:
            script = generate_rule_based_script(topic, matched.dialogues, matched.memes, matched.trends, genre)
        except Exception as exc:
            logger.exception("Rule-based generation failed for %r", topic)
            return BatchResult(
                key=key,
                scripts=[error_script(f"Rule-based generation failed: {exc}")],
                source=SOURCE_ERROR,
                generation={"mode": "error", "used_fallback": True, "fallback_reason": str(exc)},
            )
        return BatchResult(
            key=key,
            scripts=[script],
            source=SOURCE_RULE_BASED,
            generation={
                "mode": "rule_based",
                "provider": "deterministic",
                "model": "deterministic-v1",
                "used_fallback": True,
                "fallback_reason": fallback_reason,
            },
        )

    async def _record_metrics(self, result: BatchResult) -> None:
        async def _increment() -> None:
            current = await self.store.get(METRICS_COLLECTION, GENERATOR_METRICS_DOC) or {}
            ai_mode = result.source in (SOURCE_AI, SOURCE_CACHE)
            updates = {"scriptsGenerated": 1, "aiModeUsage" if ai_mode else "ruleModeUsage": 1}
            if ai_mode and result.scripts:
                used_dataset = bool(result.scripts[0].get("usedDataset"))
                updates["datasetHits" if used_dataset else "datasetMisses"] = 1
            for name, amount in updates.items():
                current[name] = int(current.get(name) or 0) + amount
            current["lastUpdated"] = _utcnow().isoformat()
            await self.store.set(METRICS_COLLECTION, GENERATOR_METRICS_DOC, current)

        await with_fallback(_increment, None, label="update generator metrics")

    # Serving sessions

    async def open_session(self, topic: str, genre: Optional[str] = DEFAULT_GENRE) -> "ScriptSession":
        result = await self.request(topic, genre)
        session = ScriptSession(
            orchestrator=self,
            session_id=uuid.uuid4().hex,
            topic=str(topic).strip(),
            genre=str(genre or "").strip() or DEFAULT_GENRE,
            batch=result,
        )
        self._sessions[session.session_id] = session
        while len(self._sessions) > self.session_limit:
            self._sessions.popitem(last=False)
        return session

    def get_session(self, session_id: str) -> "ScriptSession":
        session = self._sessions.get(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail="Script session not found")
        self._sessions.move_to_end(session_id)
        return session


@dataclass
class ScriptSession:
    orchestrator: ScriptBatchOrchestrator
    session_id: str
    topic: str
    genre: str
    batch: BatchResult
    index: int = 0

    @property
    def current(self) -> Dict[str, Any]:
        return self.batch.scripts[self.index]

    @property
    def has_more(self) -> bool:
        return self.index + 1 < len(self.batch.scripts)

    async def advance(self) -> Dict[str, Any]:
        """Next script; a fresh batch replaces the exhausted one."""
        if self.has_more:
            self.index += 1
            return self.current
        logger.info("Batch exhausted for %r, regenerating", self.topic)
        self.batch = await self.orchestrator.request(self.topic, self.genre, force_refresh=True)
        self.index = 0
        return self.current

    def snapshot(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "topic": self.topic,
            "genre": self.genre,
            "script": self.current,
            "index": self.index,
            "batch_size": len(self.batch.scripts),
            "has_more": self.has_more,
            "source": self.batch.source,
            "generation": self.batch.generation,
        }
