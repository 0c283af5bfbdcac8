"""Elasticsearch-backed message store."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import structlog
from elasticsearch import AsyncElasticsearch, NotFoundError

from .config import ElasticsearchConfig
from .interface import EmailStore
from .logging import component_logger
from .models import Category, Message, SearchResult
from .queries import (
    INDEX_MAPPINGS,
    INDEX_SETTINGS,
    build_category_counts,
    build_email_stats,
    build_filter_search,
)


class ElasticsearchStore(EmailStore):
    """Keeps one document per message, keyed by :attr:`Message.id`.

    ``put`` is a full replace, so reprocessing a message overwrites the
    previous document. Errors from the cluster propagate to the caller.
    """

    def __init__(
        self,
        config: ElasticsearchConfig,
        *,
        client: AsyncElasticsearch | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._config = config
        self._client = client
        self._index = config.index
        self._log = logger or component_logger("elasticsearch", index=config.index)

    @property
    def client(self) -> AsyncElasticsearch:
        if self._client is None:
            raise AssertionError("Client not started")
        return self._client

    async def start(self) -> None:
        if self._client is None:
            self._client = AsyncElasticsearch(
                hosts=[self._config.url],
                request_timeout=self._config.request_timeout,
            )
        await self.ensure_index()
        self._log.info("elasticsearch_connected", url=self._config.url)

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def ensure_index(self) -> None:
        """Create the index with its analyzer and mapping, or refresh the mapping."""
        if await self.client.indices.exists(index=self._index):
            await self.client.indices.put_mapping(index=self._index, body=INDEX_MAPPINGS)
            self._log.info("elasticsearch_index_exists")
            return

        await self.client.indices.create(
            index=self._index,
            body={"settings": INDEX_SETTINGS, "mappings": INDEX_MAPPINGS},
        )
        self._log.info("elasticsearch_index_created")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def put(self, message: Message) -> None:
        await self.client.index(index=self._index, id=message.id, body=message.to_document())
        self._log.debug("email_indexed", id=message.id)

    async def patch_category(self, message_id: str, category: Category) -> None:
        await self.client.update(
            index=self._index,
            id=message_id,
            body={
                "doc": {
                    "category": category.value,
                    "updatedAt": datetime.now(UTC).isoformat(),
                }
            },
        )
        self._log.debug("email_category_updated", id=message_id, category=category.value)

    async def delete(self, message_id: str) -> bool:
        try:
            await self.client.delete(index=self._index, id=message_id)
        except NotFoundError:
            return False
        self._log.info("email_deleted", id=message_id)
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def query(self, text: str | None, filters: dict[str, Any] | None = None) -> SearchResult:
        body = build_filter_search(filters, q=text)
        resp = await self.client.search(index=self._index, body=body)

        hits_data = resp.get("hits", {})
        hits = [
            {**hit.get("_source", {}), "_score": hit.get("_score")}
            for hit in hits_data.get("hits", [])
        ]
        return SearchResult(
            hits=hits,
            total=hits_data.get("total", {}).get("value", 0),
            took_ms=resp.get("took", 0),
        )

    async def get(self, message_id: str) -> Message | None:
        try:
            doc = await self.client.get(index=self._index, id=message_id)
        except NotFoundError:
            return None
        return Message.model_validate(doc["_source"])

    async def stats(self) -> dict[str, Any]:
        resp = await self.client.search(index=self._index, body=build_email_stats())
        aggs = resp.get("aggregations", {})
        return {
            "total_emails": aggs.get("total_emails", {}).get("value", 0),
            "by_account": _buckets(aggs, "by_account"),
            "by_category": _buckets(aggs, "by_category"),
            "by_folder": _buckets(aggs, "by_folder"),
        }

    async def category_counts(self) -> dict[str, int]:
        resp = await self.client.search(index=self._index, body=build_category_counts())
        return _buckets(resp.get("aggregations", {}), "categories")


def _buckets(aggs: dict[str, Any], name: str) -> dict[str, int]:
    return {
        str(bucket["key"]): int(bucket["doc_count"])
        for bucket in aggs.get(name, {}).get("buckets", [])
    }
