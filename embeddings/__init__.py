"""
Embeddings package
Handles text-to-vector conversion (OpenAI) and the Qdrant sample index
"""

from .generator import EmbeddingGenerator
from .qdrant_manager import QdrantManager

__all__ = [
    "EmbeddingGenerator",
    "QdrantManager",
]
