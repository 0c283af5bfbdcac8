"""Tests for inboxwatch.store."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from elasticsearch import NotFoundError

from tests.conftest import _make_message

from inboxwatch.config import ElasticsearchConfig
from inboxwatch.models import Category
from inboxwatch.queries import INDEX_MAPPINGS, INDEX_SETTINGS
from inboxwatch.store import ElasticsearchStore


def _not_found() -> NotFoundError:
    return NotFoundError(404, {"error": "not found"}, {"error": "not found"})


@pytest.fixture
def es_mock() -> AsyncMock:
    es = AsyncMock()
    es.indices = MagicMock()
    es.indices.exists = AsyncMock(return_value=False)
    es.indices.create = AsyncMock()
    es.indices.put_mapping = AsyncMock()
    return es


@pytest.fixture
def store(es_mock: AsyncMock) -> ElasticsearchStore:
    return ElasticsearchStore(ElasticsearchConfig(index="emails"), client=es_mock)


class TestEnsureIndex:
    @pytest.mark.asyncio
    async def test_creates_missing_index(self, store: ElasticsearchStore, es_mock: AsyncMock):
        await store.start()
        es_mock.indices.create.assert_awaited_once_with(
            index="emails",
            body={"settings": INDEX_SETTINGS, "mappings": INDEX_MAPPINGS},
        )
        es_mock.indices.put_mapping.assert_not_called()

    @pytest.mark.asyncio
    async def test_updates_mapping_of_existing_index(
        self, store: ElasticsearchStore, es_mock: AsyncMock
    ):
        es_mock.indices.exists.return_value = True
        await store.ensure_index()
        es_mock.indices.put_mapping.assert_awaited_once_with(index="emails", body=INDEX_MAPPINGS)
        es_mock.indices.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_client_required(self):
        store = ElasticsearchStore(ElasticsearchConfig())
        with pytest.raises(AssertionError, match="Client not started"):
            await store.put(_make_message())


class TestWrites:
    @pytest.mark.asyncio
    async def test_put_indexes_document_by_id(self, store: ElasticsearchStore, es_mock: AsyncMock):
        message = _make_message(uid=12)
        await store.put(message)

        kwargs = es_mock.index.call_args.kwargs
        assert kwargs["index"] == "emails"
        assert kwargs["id"] == "a@x.com_12"
        assert kwargs["body"]["email"] == "a@x.com"
        assert kwargs["body"]["from"] == "lead@example.com"
        assert kwargs["body"]["category"] is None

    @pytest.mark.asyncio
    async def test_patch_category(self, store: ElasticsearchStore, es_mock: AsyncMock):
        await store.patch_category("a@x.com_1", Category.SPAM)

        kwargs = es_mock.update.call_args.kwargs
        assert kwargs["id"] == "a@x.com_1"
        assert kwargs["body"]["doc"]["category"] == "Spam"
        assert "updatedAt" in kwargs["body"]["doc"]

    @pytest.mark.asyncio
    async def test_put_errors_propagate(self, store: ElasticsearchStore, es_mock: AsyncMock):
        es_mock.index.side_effect = ConnectionError("cluster down")
        with pytest.raises(ConnectionError):
            await store.put(_make_message())

    @pytest.mark.asyncio
    async def test_delete(self, store: ElasticsearchStore, es_mock: AsyncMock):
        assert await store.delete("a@x.com_1") is True
        es_mock.delete.side_effect = _not_found()
        assert await store.delete("a@x.com_2") is False


class TestReads:
    @pytest.mark.asyncio
    async def test_query_maps_hits(self, store: ElasticsearchStore, es_mock: AsyncMock):
        es_mock.search.return_value = {
            "took": 7,
            "hits": {
                "total": {"value": 1},
                "hits": [{"_id": "a@x.com_1", "_score": 2.5, "_source": {"subject": "Hello"}}],
            },
        }

        result = await store.query("hello", {"account": "a@x.com"})

        assert result.total == 1
        assert result.took_ms == 7
        assert result.hits == [{"subject": "Hello", "_score": 2.5}]
        body = es_mock.search.call_args.kwargs["body"]
        assert body["query"]["bool"]["filter"] == [{"term": {"email": "a@x.com"}}]

    @pytest.mark.asyncio
    async def test_get(self, store: ElasticsearchStore, es_mock: AsyncMock):
        es_mock.get.return_value = {"_source": _make_message(uid=3).to_document()}
        message = await store.get("a@x.com_3")
        assert message is not None
        assert message.uid == 3
        assert message.sender == "lead@example.com"

    @pytest.mark.asyncio
    async def test_get_missing(self, store: ElasticsearchStore, es_mock: AsyncMock):
        es_mock.get.side_effect = _not_found()
        assert await store.get("nope") is None

    @pytest.mark.asyncio
    async def test_stats(self, store: ElasticsearchStore, es_mock: AsyncMock):
        es_mock.search.return_value = {
            "aggregations": {
                "total_emails": {"value": 5},
                "by_account": {"buckets": [{"key": "a@x.com", "doc_count": 5}]},
                "by_category": {
                    "buckets": [
                        {"key": "Interested", "doc_count": 3},
                        {"key": "Spam", "doc_count": 2},
                    ]
                },
                "by_folder": {"buckets": [{"key": "INBOX", "doc_count": 5}]},
            }
        }
        stats = await store.stats()
        assert stats == {
            "total_emails": 5,
            "by_account": {"a@x.com": 5},
            "by_category": {"Interested": 3, "Spam": 2},
            "by_folder": {"INBOX": 5},
        }

    @pytest.mark.asyncio
    async def test_category_counts(self, store: ElasticsearchStore, es_mock: AsyncMock):
        es_mock.search.return_value = {
            "aggregations": {"categories": {"buckets": [{"key": "Spam", "doc_count": 4}]}}
        }
        assert await store.category_counts() == {"Spam": 4}
