"""
Tenant-scoped vector stores for knowledge chunks.

Ingestion happens elsewhere; these stores only answer nearest-neighbour
queries. Every query carries the tenant id as a hard filter.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KnowledgeChunk:
    """Read-only text fragment with its embedding."""

    chunk_id: str
    tenant_id: str
    content: str
    embedding: tuple[float, ...]
    category: Optional[str] = None
    source: Optional[str] = None


@dataclass(frozen=True)
class ScoredChunk:
    chunk: KnowledgeChunk
    score: float


class KnowledgeStore(Protocol):
    async def search(
        self,
        tenant_id: str,
        embedding: Sequence[float],
        threshold: float,
        limit: int,
        category: Optional[str] = None,
    ) -> list[ScoredChunk]:
        ...


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Embedding dimensions differ: {va.size} != {vb.size}")
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    return float(np.dot(va, vb)) / norm if norm else 0.0


class InMemoryKnowledgeStore:
    """Brute-force cosine search over chunks held in memory."""

    def __init__(self, chunks: Optional[Sequence[KnowledgeChunk]] = None) -> None:
        self._chunks: dict[str, list[KnowledgeChunk]] = {}
        for chunk in chunks or ():
            self.add(chunk)

    def add(self, chunk: KnowledgeChunk) -> None:
        self._chunks.setdefault(chunk.tenant_id, []).append(chunk)

    async def search(
        self,
        tenant_id: str,
        embedding: Sequence[float],
        threshold: float,
        limit: int,
        category: Optional[str] = None,
    ) -> list[ScoredChunk]:
        scored = []
        for chunk in self._chunks.get(tenant_id, []):
            if category and chunk.category != category:
                continue
            score = cosine_similarity(embedding, chunk.embedding)
            if score >= threshold:
                scored.append(ScoredChunk(chunk, score))
        scored.sort(key=lambda s: (-s.score, s.chunk.chunk_id))
        return scored[:limit]


class PgVectorKnowledgeStore:
    """pgvector-backed store using the ``<=>`` cosine distance operator.

    Expects a ``knowledge_chunks`` table with ``id``, ``tenant_id``,
    ``content``, ``category``, ``source`` and ``embedding vector(n)``.
    """

    SEARCH_SQL = """
    SELECT id::text, tenant_id::text, content, category, source,
           1 - (embedding <=> %(vec)s) AS score
    FROM knowledge_chunks
    WHERE tenant_id = %(tenant_id)s
      AND embedding IS NOT NULL
      AND (%(category)s::text IS NULL OR category = %(category)s)
      AND 1 - (embedding <=> %(vec)s) >= %(threshold)s
    ORDER BY embedding <=> %(vec)s
    LIMIT %(limit)s;
    """

    def __init__(self, dsn: str) -> None:
        if not dsn:
            raise ValueError("KNOWLEDGE_DATABASE_URL is required for the pgvector store")
        self._dsn = dsn

    def _search_sync(
        self, tenant_id: str, embedding: Sequence[float], threshold: float, limit: int, category: Optional[str]
    ) -> list[ScoredChunk]:
        import psycopg
        from pgvector.psycopg import register_vector

        with psycopg.connect(self._dsn) as conn:
            register_vector(conn)
            with conn.cursor() as cur:
                cur.execute(
                    self.SEARCH_SQL,
                    {
                        "vec": np.asarray(embedding, dtype=np.float32),
                        "tenant_id": tenant_id,
                        "category": category,
                        "threshold": threshold,
                        "limit": limit,
                    },
                )
                rows = cur.fetchall()

        return [
            ScoredChunk(
                KnowledgeChunk(
                    chunk_id=row[0],
                    tenant_id=row[1],
                    content=row[2],
                    embedding=(),
                    category=row[3],
                    source=row[4],
                ),
                float(row[5]),
            )
            for row in rows
        ]

    async def search(
        self,
        tenant_id: str,
        embedding: Sequence[float],
        threshold: float,
        limit: int,
        category: Optional[str] = None,
    ) -> list[ScoredChunk]:
        return await asyncio.to_thread(self._search_sync, tenant_id, embedding, threshold, limit, category)
