"""
Knowledge retrieval: embed a query, search the tenant's vectors, filter.

An empty result is a normal outcome meaning "no relevant context"; the
agent loop answers generically or escalates instead of inventing facts.
Results are re-checked here against the tenant and the threshold, so a
misbehaving store cannot leak another tenant's chunks.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from agent_orchestrator.config import RetrievalConfig, settings
from agent_orchestrator.knowledge.embeddings import Embedder
from agent_orchestrator.knowledge.store import KnowledgeStore, ScoredChunk

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetrievalResult:
    query: str
    tenant_id: str
    chunks: list[ScoredChunk] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.chunks


class KnowledgeRetriever:
    """Tenant-scoped semantic search with a similarity floor."""

    def __init__(
        self,
        embedder: Embedder,
        store: KnowledgeStore,
        config: Optional[RetrievalConfig] = None,
    ) -> None:
        self._embedder = embedder
        self._store = store
        self._config = config or settings.retrieval

    async def search(
        self,
        query: str,
        tenant_id: str,
        category: Optional[str] = None,
        k: Optional[int] = None,
        threshold: Optional[float] = None,
    ) -> RetrievalResult:
        query = query.strip()
        if not query or not tenant_id:
            return RetrievalResult(query, tenant_id)

        limit = max(1, min(k or self._config.default_k, self._config.max_k))
        floor = self._config.threshold if threshold is None else threshold

        vector = await self._embedder.embed(query)
        found = await self._store.search(tenant_id, vector, floor, limit, category)

        kept = [s for s in found if s.chunk.tenant_id == tenant_id and s.score >= floor]
        if len(kept) != len(found):
            logger.warning(
                "Dropped %d chunk(s) outside tenant scope or below threshold", len(found) - len(kept)
            )
        kept.sort(key=lambda s: s.score, reverse=True)
        kept = kept[:limit]

        logger.debug("Retrieved %d chunk(s) for tenant %s (threshold %.2f)", len(kept), tenant_id, floor)
        return RetrievalResult(query, tenant_id, kept)
