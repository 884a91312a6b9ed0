"""
Embedding Generator
Converts text to vector embeddings using OpenAI text-embedding-3-small

- Dimensions: 1536
- Cost: ~$0.02 per 1M tokens
"""

import logging
from typing import List

from openai import AsyncOpenAI

log = logging.getLogger(__name__)


class EmbeddingGenerator:
    """
    Generate embeddings for problem samples and retrieval queries.

    Failures propagate; callers decide whether a missing vector is fatal
    (sample storage) or degrades to no vector results (retrieval).
    """

    DEFAULT_MODEL = "text-embedding-3-small"
    EMBEDDING_DIM = 1536

    def __init__(self, client: AsyncOpenAI, model_name: str = DEFAULT_MODEL):
        self.client = client
        self.model_name = model_name

    async def embed(self, text: str) -> List[float]:
        """
        Generate embedding for a single text

        Raises:
            ValueError: text is empty
        """
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        response = await self.client.embeddings.create(
            input=text,
            model=self.model_name,
        )
        return response.data[0].embedding

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Embed several texts in one API call, preserving order."""
        if not texts:
            return []
        processed = [t if t and t.strip() else " " for t in texts]
        response = await self.client.embeddings.create(input=processed, model=self.model_name)
        return [item.embedding for item in response.data]
