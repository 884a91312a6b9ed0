"""
Qdrant Vector Database Manager
Vector index for reference problem samples (cosine similarity)
"""

import logging
from typing import Any, Dict, List, Optional

from qdrant_client import QdrantClient
from qdrant_client.models import (
    Distance, VectorParams, PointStruct,
    Filter, FieldCondition, MatchValue,
)

log = logging.getLogger(__name__)


class QdrantManager:
    """
    Manages the problem_samples collection.

    Point id = ProblemSample.id; payload carries domain/subdomain/origin so
    vector search can be filtered by domain.
    """

    COLLECTION_SAMPLES = "problem_samples"
    EMBEDDING_DIM = 1536  # text-embedding-3-small

    def __init__(self, client: QdrantClient):
        self.client = client

    def ensure_collection(self, recreate: bool = False):
        """Create problem_samples (with payload indexes) if it does not exist."""
        names = [c.name for c in self.client.get_collections().collections]
        if self.COLLECTION_SAMPLES in names:
            if not recreate:
                log.info(f"[Qdrant] Collection exists: {self.COLLECTION_SAMPLES}")
                return
            self.client.delete_collection(self.COLLECTION_SAMPLES)
            log.info(f"[Qdrant] Deleted existing: {self.COLLECTION_SAMPLES}")

        self.client.create_collection(
            collection_name=self.COLLECTION_SAMPLES,
            vectors_config=VectorParams(size=self.EMBEDDING_DIM, distance=Distance.COSINE),
        )
        for field, schema in [("domain", "keyword"), ("subdomain", "keyword"), ("origin", "keyword")]:
            self.client.create_payload_index(
                collection_name=self.COLLECTION_SAMPLES,
                field_name=field,
                field_schema=schema,
            )
        log.info(f"[Qdrant] Created collection: {self.COLLECTION_SAMPLES}")

    def index_sample(self, sample_id: int, embedding: List[float], payload: Dict[str, Any]) -> str:
        """Upsert one sample vector. Returns the point id."""
        point = PointStruct(id=sample_id, vector=embedding, payload=payload)
        self.client.upsert(collection_name=self.COLLECTION_SAMPLES, points=[point])
        return str(sample_id)

    def search_samples(
        self,
        query_vector: List[float],
        limit: int = 10,
        score_threshold: float = 0.7,
        domain: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Cosine search over sample vectors.

        Returns [{sample_id, score, payload}] sorted by score descending,
        only hits with score >= score_threshold.
        """
        search_filter = None
        if domain is not None:
            search_filter = Filter(
                must=[FieldCondition(key="domain", match=MatchValue(value=domain))]
            )

        response = self.client.query_points(
            collection_name=self.COLLECTION_SAMPLES,
            query=query_vector,
            query_filter=search_filter,
            limit=limit,
            score_threshold=score_threshold,
            with_payload=True,
        )
        hits = [
            {"sample_id": int(p.id), "score": p.score, "payload": p.payload or {}}
            for p in response.points
        ]
        hits.sort(key=lambda h: h["score"], reverse=True)
        return hits
