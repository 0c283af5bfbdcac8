"""Reference snippets used as context for suggested replies.

Every operation is best-effort: when the vector index is missing or not
ready, or a call fails, the operation logs and returns an empty result
instead of raising.
"""

from __future__ import annotations

import time
import uuid
from datetime import UTC, datetime
from typing import Any

import structlog

from .interface import Embedder, VectorIndex
from .logging import component_logger
from .models import TrainingMatch

TRAINING_TYPE = "training_data"

DEFAULT_TRAINING_DATA: list[dict[str, Any]] = [
    {
        "content": (
            "I am applying for a job position. If the lead is interested, "
            "share the meeting booking link: https://cal.com/example"
        ),
        "category": "job_application",
        "metadata": {"type": "template", "priority": "high"},
    },
    {
        "content": (
            "Thank you for your interest in our product. I'd be happy to schedule "
            "a demo. Please book a time that works for you: https://cal.com/demo"
        ),
        "category": "product_demo",
        "metadata": {"type": "template", "priority": "high"},
    },
    {
        "content": (
            "I'm available for a technical interview. You can book a slot here: "
            "https://cal.com/technical-interview"
        ),
        "category": "interview",
        "metadata": {"type": "template", "priority": "high"},
    },
    {
        "content": (
            "I would love to discuss this opportunity further. Please let me know "
            "when you're available for a call."
        ),
        "category": "follow_up",
        "metadata": {"type": "template", "priority": "medium"},
    },
    {
        "content": (
            "Thank you for considering my application. I'm excited about the "
            "possibility of joining your team."
        ),
        "category": "gratitude",
        "metadata": {"type": "template", "priority": "medium"},
    },
]


class TrainingLibrary:
    """Stores, retrieves and deletes reply-context snippets."""

    def __init__(
        self,
        index: VectorIndex | None,
        embedder: Embedder,
        *,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._index = index
        self._embedder = embedder
        self._log = logger or component_logger("training")

    @property
    def available(self) -> bool:
        return self._index is not None and self._index.ready

    async def store(
        self,
        content: str,
        category: str = "general",
        metadata: dict[str, Any] | None = None,
    ) -> str | None:
        """Embed and store *content*. Returns the new snippet id, or ``None``."""
        if not self.available:
            self._log.warning("training_store_skipped", reason="vector_index_unavailable")
            return None
        assert self._index is not None

        snippet_id = f"training_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"
        payload = {
            **(metadata or {}),
            "type": TRAINING_TYPE,
            "content": content,
            "category": category,
            "storedAt": datetime.now(UTC).isoformat(),
        }
        try:
            vector = await self._embedder.embed(content)
            await self._index.upsert(snippet_id, vector, payload)
        except Exception as exc:
            self._log.error("training_store_failed", error=str(exc))
            return None

        self._log.info("training_stored", id=snippet_id, category=category)
        return snippet_id

    async def find_relevant(self, query: str, top_k: int = 3) -> list[TrainingMatch]:
        """Return up to *top_k* snippets ranked by similarity to *query*."""
        if not self.available:
            return []
        assert self._index is not None

        try:
            vector = await self._embedder.embed(query)
            matches = await self._index.search(
                vector,
                top_k,
                payload_filter={"must": [{"key": "type", "match": {"value": TRAINING_TYPE}}]},
            )
        except Exception as exc:
            self._log.error("training_search_failed", error=str(exc))
            return []

        return [
            TrainingMatch(
                id=match.id,
                content=str(match.payload.get("content", "")),
                category=str(match.payload.get("category", "general")),
                score=match.score,
            )
            for match in matches
        ]

    async def delete(self, snippet_id: str) -> bool:
        if not self.available:
            self._log.warning("training_delete_skipped", reason="vector_index_unavailable")
            return False
        assert self._index is not None

        try:
            await self._index.delete(snippet_id)
        except Exception as exc:
            self._log.error("training_delete_failed", id=snippet_id, error=str(exc))
            return False
        self._log.info("training_deleted", id=snippet_id)
        return True

    async def stats(self) -> dict[str, Any] | None:
        if not self.available:
            return None
        assert self._index is not None

        try:
            count = await self._index.count()
        except Exception as exc:
            self._log.error("training_stats_failed", error=str(exc))
            return None
        return {"points_count": count}

    async def seed_defaults(self) -> int:
        """Store the built-in reply templates. Returns how many were stored."""
        stored = 0
        for item in DEFAULT_TRAINING_DATA:
            if await self.store(item["content"], item["category"], item["metadata"]):
                stored += 1
        self._log.info("training_defaults_seeded", count=stored)
        return stored
