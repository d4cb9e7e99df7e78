"""Query embedding for semantic knowledge search."""

import asyncio
import logging
from typing import Any, Optional, Protocol

from agent_orchestrator.config import RetrievalConfig, settings

logger = logging.getLogger(__name__)


class Embedder(Protocol):
    async def embed(self, text: str) -> list[float]:
        ...


class FastEmbedEmbedder:
    """Multilingual sentence embeddings via ``fastembed``.

    The model is loaded on first use and inference runs in a worker
    thread so the event loop is never blocked.
    """

    def __init__(self, config: Optional[RetrievalConfig] = None) -> None:
        self._model_name = (config or settings.retrieval).embedding_model
        self._model: Any = None

    def _load(self) -> Any:
        if self._model is None:
            from fastembed import TextEmbedding

            logger.info("Loading embedding model %s", self._model_name)
            self._model = TextEmbedding(model_name=self._model_name)
        return self._model

    def _embed_sync(self, text: str) -> list[float]:
        vector = next(iter(self._load().embed([text])))
        return [float(x) for x in vector]

    async def embed(self, text: str) -> list[float]:
        return await asyncio.to_thread(self._embed_sync, text)
