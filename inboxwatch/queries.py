"""Elasticsearch index definition and query builders for message documents."""

from __future__ import annotations

from datetime import datetime
from typing import Any

DEFAULT_PAGE_SIZE = 50

_TEXT_WITH_KEYWORD = {
    "type": "text",
    "analyzer": "email_analyzer",
    "fields": {"keyword": {"type": "keyword"}},
}

INDEX_SETTINGS: dict[str, Any] = {
    "number_of_shards": 1,
    "number_of_replicas": 0,
    "analysis": {
        "analyzer": {
            "email_analyzer": {
                "type": "custom",
                "tokenizer": "standard",
                "filter": ["lowercase", "stop", "snowball"],
            }
        }
    },
}

INDEX_MAPPINGS: dict[str, Any] = {
    "properties": {
        "id": {"type": "keyword"},
        "uid": {"type": "long"},
        "email": {"type": "keyword"},
        "from": _TEXT_WITH_KEYWORD,
        "to": _TEXT_WITH_KEYWORD,
        "subject": _TEXT_WITH_KEYWORD,
        "text": {"type": "text", "analyzer": "email_analyzer"},
        "html": {"type": "text"},
        "date": {"type": "date"},
        "folder": {"type": "keyword"},
        "category": {"type": "keyword"},
        "flags": {"type": "keyword"},
        "size": {"type": "long"},
        "messageId": {"type": "keyword"},
        "inReplyTo": {"type": "keyword"},
        "references": {"type": "keyword"},
        "attachments": {
            "type": "nested",
            "properties": {
                "filename": {"type": "keyword"},
                "contentType": {"type": "keyword"},
                "size": {"type": "long"},
            },
        },
        "createdAt": {"type": "date"},
        "updatedAt": {"type": "date"},
    }
}


def build_email_search(
    *,
    q: str | None = None,
    account: str | None = None,
    folder: str | None = None,
    category: str | None = None,
    date_from: datetime | str | None = None,
    date_to: datetime | str | None = None,
    offset: int = 0,
    limit: int = DEFAULT_PAGE_SIZE,
) -> dict:
    """Build a full-text search over stored messages, newest first.

    Subject matches weigh most, then sender and recipient, then body.
    Returns a dict ready to pass as ``body=`` to ``AsyncElasticsearch.search()``.
    """
    must: list[dict] = []
    filters: list[dict] = []

    if q:
        must.append({
            "multi_match": {
                "query": q,
                "fields": ["subject^3", "from^2", "to^2", "text"],
                "type": "best_fields",
                "fuzziness": "AUTO",
            }
        })

    if account:
        filters.append({"term": {"email": account}})

    if folder:
        filters.append({"term": {"folder": folder}})

    if category:
        filters.append({"term": {"category": category}})

    if date_from or date_to:
        range_q: dict = {}
        if date_from:
            range_q["gte"] = _iso(date_from)
        if date_to:
            range_q["lte"] = _iso(date_to)
        filters.append({"range": {"date": range_q}})

    return {
        "query": {
            "bool": {
                "must": must or [{"match_all": {}}],
                "filter": filters,
            }
        },
        "sort": [{"date": {"order": "desc"}}],
        "from": offset,
        "size": limit,
    }


def build_filter_search(filters: dict[str, Any] | None, q: str | None = None) -> dict:
    """Map a loose filter dict onto :func:`build_email_search`.

    Accepts both the stored field names (``email``, ``dateFrom``...) and
    the snake_case keyword names.
    """
    filters = filters or {}
    return build_email_search(
        q=q,
        account=filters.get("account") or filters.get("email"),
        folder=filters.get("folder"),
        category=filters.get("category"),
        date_from=filters.get("date_from") or filters.get("dateFrom"),
        date_to=filters.get("date_to") or filters.get("dateTo"),
        offset=int(filters.get("offset", filters.get("from", 0))),
        limit=int(filters.get("limit", filters.get("size", DEFAULT_PAGE_SIZE))),
    )


def build_email_stats() -> dict:
    """Aggregation query for dashboard counts by account, category and folder."""
    return {
        "size": 0,
        "aggs": {
            "total_emails": {"value_count": {"field": "id"}},
            "by_account": {"terms": {"field": "email", "size": 10}},
            "by_category": {"terms": {"field": "category", "size": 10}},
            "by_folder": {"terms": {"field": "folder", "size": 10}},
        },
    }


def build_category_counts() -> dict:
    return {
        "size": 0,
        "aggs": {"categories": {"terms": {"field": "category", "size": 10}}},
    }


def _iso(value: datetime | str) -> str:
    return value.isoformat() if isinstance(value, datetime) else value
