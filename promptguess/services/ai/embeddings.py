"""Embedding provider used by the semantic scoring algorithm."""

import asyncio
from typing import List, Optional

from langchain_core.embeddings import Embeddings
from langchain_openai import OpenAIEmbeddings

from promptguess.config import config
from promptguess.lib.exceptions import (
    EmbeddingDimensionMismatchError,
    EmbeddingUnavailableError,
)
from promptguess.lib.logger import configure_logger

logger = configure_logger(__name__)


def create_embedding_model() -> OpenAIEmbeddings:
    """Create an OpenAI embeddings model using the configured settings.

    Returns:
        Configured OpenAIEmbeddings instance
    """
    embedding_config = {
        "model": config.embedding.default_model,
        "dimensions": config.embedding.dimensions,
    }

    if config.embedding.api_base:
        embedding_config["base_url"] = config.embedding.api_base

    if config.embedding.api_key:
        embedding_config["api_key"] = config.embedding.api_key

    logger.debug(
        f"Creating OpenAI embeddings with model: {config.embedding.default_model}"
    )
    return OpenAIEmbeddings(**embedding_config)


class EmbeddingProvider:
    """Embeds text with a timeout and a fixed expected dimensionality.

    Any provider failure, including a timeout, surfaces as
    EmbeddingUnavailableError. A vector of the wrong size surfaces as
    EmbeddingDimensionMismatchError.
    """

    def __init__(
        self,
        model: Optional[Embeddings] = None,
        timeout_seconds: Optional[float] = None,
        dimensions: Optional[int] = None,
    ):
        self._model = model
        self.timeout_seconds = (
            config.embedding.timeout_seconds
            if timeout_seconds is None
            else timeout_seconds
        )
        self.dimensions = config.embedding.dimensions if dimensions is None else dimensions

    @property
    def model(self) -> Embeddings:
        if self._model is None:
            try:
                self._model = create_embedding_model()
            except Exception as e:
                raise EmbeddingUnavailableError(
                    f"Embedding model could not be created: {str(e)}"
                ) from e
        return self._model

    async def embed(self, text: str) -> List[float]:
        try:
            vector = await asyncio.wait_for(
                self.model.aembed_query(text), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            logger.warning(
                "Embedding request timed out",
                extra={"timeout_seconds": self.timeout_seconds},
            )
            raise EmbeddingUnavailableError(
                "Embedding request timed out", timed_out=True
            ) from e
        except EmbeddingUnavailableError:
            raise
        except Exception as e:
            logger.error("Embedding request failed", extra={"error": str(e)})
            raise EmbeddingUnavailableError(
                f"Embedding request failed: {str(e)}"
            ) from e

        if self.dimensions and len(vector) != self.dimensions:
            raise EmbeddingDimensionMismatchError(len(vector), self.dimensions)
        return list(vector)
