"""Qdrant-backed vector index, spoken to over its REST API with httpx."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog

from .config import QdrantConfig
from .interface import VectorIndex
from .logging import component_logger
from .models import VectorMatch

# Qdrant only accepts unsigned integers or UUIDs as point ids; string keys
# are mapped onto UUIDv5 and kept in the payload under this field.
POINT_KEY_FIELD = "point_key"
_POINT_NAMESPACE = uuid.UUID("6f1d7c2e-4b8a-5d3f-9e21-0c7a4b5e8d90")


def point_uuid(point_id: str) -> str:
    return str(uuid.uuid5(_POINT_NAMESPACE, point_id))


class QdrantVectorIndex(VectorIndex):
    """Stores and searches embedding vectors in one Qdrant collection."""

    def __init__(
        self,
        config: QdrantConfig,
        *,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._config = config
        self._client: httpx.AsyncClient | None = None
        self._ready = False
        self._log = logger or component_logger("qdrant", collection=config.collection)

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def _points_path(self) -> str:
        return f"/collections/{self._config.collection}/points"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """Open the HTTP client and make sure the collection exists.

        Returns ``False`` (and stays not-ready) when Qdrant is unreachable;
        the vector index is optional and must not block startup.
        """
        self._client = httpx.AsyncClient(
            base_url=self._config.url,
            timeout=httpx.Timeout(self._config.timeout_seconds),
        )
        try:
            await self.ensure_collection()
        except httpx.HTTPError as exc:
            self._log.warning("qdrant_unavailable", url=self._config.url, error=str(exc))
            return False
        self._ready = True
        self._log.info("qdrant_ready", url=self._config.url)
        return True

    async def stop(self) -> None:
        self._ready = False
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _require_client(self) -> httpx.AsyncClient:
        assert self._client is not None, "Qdrant client not started"
        return self._client

    async def ensure_collection(self) -> None:
        client = self._require_client()
        path = f"/collections/{self._config.collection}"

        response = await client.get(path)
        if response.status_code == 200:
            self._log.info("qdrant_collection_exists")
            return
        if response.status_code != 404:
            response.raise_for_status()

        response = await client.put(
            path,
            json={
                "vectors": {"size": self._config.vector_size, "distance": "Cosine"},
                "optimizers_config": {"default_segment_number": 2},
                "replication_factor": 1,
            },
        )
        response.raise_for_status()
        self._log.info("qdrant_collection_created", size=self._config.vector_size)

    # ------------------------------------------------------------------
    # Points
    # ------------------------------------------------------------------

    async def upsert(self, point_id: str, vector: list[float], payload: dict[str, Any]) -> None:
        client = self._require_client()
        point = {
            "id": point_uuid(point_id),
            "vector": vector,
            "payload": {
                **payload,
                POINT_KEY_FIELD: point_id,
                "createdAt": datetime.now(UTC).isoformat(),
            },
        }
        response = await client.put(
            self._points_path,
            params={"wait": "true"},
            json={"points": [point]},
        )
        response.raise_for_status()
        self._log.debug("vector_stored", point_id=point_id)

    async def search(
        self,
        vector: list[float],
        k: int,
        *,
        payload_filter: dict[str, Any] | None = None,
    ) -> list[VectorMatch]:
        client = self._require_client()
        body: dict[str, Any] = {
            "vector": vector,
            "limit": k,
            "with_payload": True,
            "with_vector": False,
        }
        if payload_filter:
            body["filter"] = payload_filter

        response = await client.post(f"{self._points_path}/search", json=body)
        response.raise_for_status()

        matches: list[VectorMatch] = []
        for point in response.json().get("result", []):
            payload = point.get("payload") or {}
            matches.append(
                VectorMatch(
                    id=str(payload.get(POINT_KEY_FIELD, point["id"])),
                    score=float(point.get("score", 0.0)),
                    payload=payload,
                )
            )
        return matches

    async def delete(self, point_id: str) -> None:
        client = self._require_client()
        response = await client.post(
            f"{self._points_path}/delete",
            params={"wait": "true"},
            json={"points": [point_uuid(point_id)]},
        )
        response.raise_for_status()
        self._log.debug("vector_deleted", point_id=point_id)

    async def count(self) -> int | None:
        client = self._require_client()
        response = await client.post(f"{self._points_path}/count", json={"exact": True})
        response.raise_for_status()
        return int(response.json()["result"]["count"])
