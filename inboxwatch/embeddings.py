"""Text embeddings with a deterministic local fallback.

Training snippets are written and queried through the same
:class:`FallbackEmbedder`, so both sides land in the same vector space
whether or not the remote provider is reachable.
"""

from __future__ import annotations

import math
import re

import structlog

from .interface import Embedder
from .llm import OpenAIClient
from .logging import component_logger

VECTOR_SIZE = 1536

# ECMAScript WhiteSpace and LineTerminator. Narrower than Python's ``\s``
# (no \x1c-\x1f or \x85) and includes U+FEFF.
_WHITESPACE_RE = re.compile(
    "[\t\n\v\f\r \u00a0\u1680\u2000-\u200a\u2028\u2029\u202f\u205f\u3000\ufeff]+"
)


def simple_hash(token: str) -> int:
    """32-bit rolling hash ``h = h * 31 + unit`` over UTF-16 code units.

    Arithmetic wraps as a signed 32-bit integer; the absolute value is
    returned.
    """
    data = token.encode("utf-16-le", errors="surrogatepass")
    h = 0
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = _to_int32(h * 31 + unit)
    return abs(h)


def hash_embedding(text: str, size: int = VECTOR_SIZE) -> list[float]:
    """Normalised bag-of-words hash embedding.

    Lower-cases *text*, splits on runs of whitespace (leading or trailing
    whitespace yields an empty token, which is counted like any other),
    counts each token into bucket ``simple_hash(token) % size`` and scales
    the result to unit length.
    """
    vector = [0.0] * size
    for token in _WHITESPACE_RE.split(text.lower()):
        vector[simple_hash(token) % size] += 1.0

    magnitude = math.sqrt(sum(v * v for v in vector))
    if magnitude == 0:
        return vector
    return [v / magnitude for v in vector]


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


class FallbackEmbedder(Embedder):
    """Uses the remote embedding API, falling back to :func:`hash_embedding`."""

    def __init__(
        self,
        client: OpenAIClient | None,
        *,
        size: int = VECTOR_SIZE,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._client = client
        self._size = size
        self._log = logger or component_logger("embeddings")

    async def embed(self, text: str) -> list[float]:
        if self._client is None or not self._client.is_configured:
            return hash_embedding(text, self._size)
        try:
            return await self._client.embed(text)
        except Exception as exc:
            self._log.warning("embedding_fallback", error=str(exc))
            return hash_embedding(text, self._size)
