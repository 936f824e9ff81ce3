"""Qdrant implementation of the record store."""

import asyncio
import hashlib
import uuid
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from loguru import logger
from qdrant_client import QdrantClient as QdrantBaseClient
from qdrant_client.http import models as qdrant_models
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from community_search.exceptions import QueryError
from community_search.services.vector_db.types import Candidate, Embedding, Record
from community_search.settings import settings

T = TypeVar("T")

VECTOR_NAME = "embedding"
MODEL_FIELD = "embeddingModel"
SCROLL_PAGE_SIZE = 256


def point_id(record_id: str) -> str:
    """
    Generate a deterministic Qdrant point id for a record.

    :param record_id: external record id
    :returns: UUID string derived from the md5 of the id
    """
    return str(uuid.UUID(hashlib.md5(record_id.encode()).hexdigest()))


class QdrantRecordStore:
    """Record store backed by a single Qdrant collection with a named vector."""

    def __init__(
        self,
        host: str = settings.qdrant_host,
        port: int = settings.qdrant_port,
        api_key: Optional[str] = settings.qdrant_api_key,
        timeout: int = settings.qdrant_timeout,
        collection_name: str = settings.qdrant_collection_name,
        location: Optional[str] = settings.qdrant_location,
    ):
        """
        Initialize Qdrant client.

        :param host: Qdrant server host
        :param port: Qdrant server port
        :param api_key: API key for authentication
        :param timeout: Request timeout in seconds
        :param collection_name: Collection holding the records
        :param location: ":memory:" or a path for embedded mode
        """
        if location:
            self.client = QdrantBaseClient(location=location)
            logger.info(f"Initialized embedded Qdrant client: {location}")
        else:
            self.client = QdrantBaseClient(
                host=host,
                port=port,
                api_key=api_key,
                timeout=timeout,
                check_compatibility=False,
            )
            logger.info(f"Initialized Qdrant client: {host}:{port}")
        self.collection_name = collection_name
        self._collection_ready = False

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(
            (ConnectionError, TimeoutError, UnexpectedResponse, ResponseHandlingException)
        ),
        reraise=True,
    )
    async def _run(self, func: Callable[[], T]) -> T:
        # Run in a separate thread to avoid blocking the event loop
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func)

    async def _call(self, action: str, func: Callable[[], T]) -> T:
        try:
            return await self._run(func)
        except Exception as e:
            logger.error(f"Failed to {action} in {self.collection_name}: {e}")
            raise QueryError(
                f"Failed to {action}: {e}", collection=self.collection_name
            ) from e

    async def test_connection(self) -> bool:
        """
        Simple health check: can we talk to Qdrant and see our collection?

        :returns: True if the collection is reachable
        """
        try:
            return await self._run(
                lambda: self.client.collection_exists(self.collection_name)
            )
        except Exception as e:
            logger.error(f"Qdrant connection failed: {e}")
            return False

    async def ensure_collection(self, vector_size: int, recreate: bool = False) -> bool:
        """
        Ensure the collection exists, creating it if necessary.

        :param vector_size: Dimension of the embedding model in use
        :param recreate: Whether to drop and recreate the collection
        :returns: True if the collection was created, False if it already existed
        """
        if self._collection_ready and not recreate:
            logger.debug(f"Collection {self.collection_name} already initialized")
            return False

        exists = await self._call(
            "check collection",
            lambda: self.client.collection_exists(self.collection_name),
        )
        if exists and recreate:
            await self._call(
                "delete collection",
                lambda: self.client.delete_collection(self.collection_name),
            )
            logger.info(f"Deleted existing collection: {self.collection_name}")
            exists = False

        if exists:
            existing_size = await self._vector_size()
            if existing_size != vector_size:
                raise QueryError(
                    f"Collection {self.collection_name} holds {existing_size}-d "
                    f"'{VECTOR_NAME}' vectors but the embedding model produces "
                    f"{vector_size}-d vectors; recreate the collection to switch models",
                    collection=self.collection_name,
                )
            logger.info(f"Collection {self.collection_name} already exists")
            self._collection_ready = True
            return False

        await self._call(
            "create collection",
            lambda: self.client.create_collection(
                collection_name=self.collection_name,
                vectors_config={
                    VECTOR_NAME: qdrant_models.VectorParams(
                        size=vector_size,
                        distance=qdrant_models.Distance.COSINE,
                    )
                },
            ),
        )
        logger.info(
            f"Created collection: {self.collection_name}, vector_size: {vector_size}"
        )
        self._collection_ready = True
        return True

    async def _vector_size(self) -> Optional[int]:
        """
        Read the size of the named vector from the collection config.

        :returns: vector size, or None if the collection has no such vector
        """
        info = await self._call(
            "read collection config",
            lambda: self.client.get_collection(self.collection_name),
        )
        vectors = info.config.params.vectors
        if isinstance(vectors, dict):
            params = vectors.get(VECTOR_NAME)
            return params.size if params is not None else None
        return None

    def _to_record(self, payload: Optional[Dict[str, Any]], vector: Any = None) -> Record:
        record = Record.model_validate(payload or {})
        if isinstance(vector, dict):
            vector = vector.get(VECTOR_NAME)
        if vector:
            record.embedding = list(vector)
        return record

    async def find_one(self, record_id: str) -> Optional[Record]:
        """
        Fetch a record together with its stored vector.

        :param record_id: external record id
        :returns: Record or None if unknown
        """
        points = await self._call(
            f"retrieve record {record_id}",
            lambda: self.client.retrieve(
                collection_name=self.collection_name,
                ids=[point_id(record_id)],
                with_payload=True,
                with_vectors=[VECTOR_NAME],
            ),
        )
        if not points:
            return None
        return self._to_record(points[0].payload, points[0].vector)

    def _embedding_filter(self, with_embedding: bool) -> qdrant_models.Filter:
        # embedding and embeddingModel are always written together
        missing = qdrant_models.IsEmptyCondition(
            is_empty=qdrant_models.PayloadField(key=MODEL_FIELD)
        )
        if with_embedding:
            return qdrant_models.Filter(must_not=[missing])
        return qdrant_models.Filter(must=[missing])

    async def find_records(self, missing_embedding: bool = False) -> List[Record]:
        """
        Scroll through the collection.

        :param missing_embedding: only return records without an embedding
        :returns: Records without their vectors
        """
        scroll_filter = self._embedding_filter(False) if missing_embedding else None
        records: List[Record] = []
        offset = None
        while True:
            points, offset = await self._call(
                "scroll records",
                lambda: self.client.scroll(
                    collection_name=self.collection_name,
                    scroll_filter=scroll_filter,
                    limit=SCROLL_PAGE_SIZE,
                    offset=offset,
                    with_payload=True,
                    with_vectors=False,
                ),
            )
            records.extend(self._to_record(p.payload) for p in points)
            if offset is None:
                break
        logger.debug(f"[VECTOR_DB] Scrolled {len(records)} records")
        return records

    async def count_documents(self, with_embedding: Optional[bool] = None) -> int:
        """
        Count records.

        :param with_embedding: None for all, True/False to filter on embedding presence
        :returns: number of matching records
        """
        count_filter = (
            None if with_embedding is None else self._embedding_filter(with_embedding)
        )
        result = await self._call(
            "count records",
            lambda: self.client.count(
                collection_name=self.collection_name,
                count_filter=count_filter,
                exact=True,
            ),
        )
        return result.count

    async def save_embedding(self, record: Record, embedding: Embedding) -> None:
        """
        Write embedding and embeddingModel onto a record in one upsert.

        :param record: record the vector belongs to
        :param embedding: vector and model tag
        """
        payload = record.to_payload()
        payload[MODEL_FIELD] = embedding.model
        point = qdrant_models.PointStruct(
            id=point_id(record.id),
            vector={VECTOR_NAME: embedding.vector},
            payload=payload,
        )
        await self._call(
            f"save embedding for {record.id}",
            lambda: self.client.upsert(
                collection_name=self.collection_name,
                points=[point],
            ),
        )
        logger.debug(
            f"[VECTOR_DB] Saved {embedding.dimensions}-d embedding for {record.id}"
        )

    async def upsert_records(self, records: Sequence[Record]) -> int:
        """
        Insert or update records, keeping stored embeddings of existing ones.

        :param records: records to write
        :returns: number of records written
        """
        if not records:
            return 0

        ids = [point_id(r.id) for r in records]
        existing = await self._call(
            "retrieve existing records",
            lambda: self.client.retrieve(
                collection_name=self.collection_name,
                ids=ids,
                with_payload=False,
                with_vectors=False,
            ),
        )
        existing_ids = {str(p.id) for p in existing}

        new_points = []
        for record, pid in zip(records, ids):
            payload = record.to_payload()
            if pid in existing_ids and not record.has_embedding:
                # Merge so the stored vector and its model tag stay paired
                payload.pop(MODEL_FIELD, None)
                await self._call(
                    f"update record {record.id}",
                    lambda payload=payload, pid=pid: self.client.set_payload(
                        collection_name=self.collection_name,
                        payload=payload,
                        points=[pid],
                    ),
                )
                continue
            if not record.has_embedding:
                payload.pop(MODEL_FIELD, None)
            vector = {VECTOR_NAME: record.embedding} if record.has_embedding else {}
            new_points.append(
                qdrant_models.PointStruct(id=pid, vector=vector, payload=payload)
            )

        if new_points:
            await self._call(
                "upsert records",
                lambda: self.client.upsert(
                    collection_name=self.collection_name,
                    points=new_points,
                ),
            )
        logger.info(f"Upserted {len(records)} records to {self.collection_name}")
        return len(records)

    async def ann_query(
        self,
        query_vector: List[float],
        candidate_pool_size: int,
        top_k: int,
    ) -> List[Candidate]:
        """
        Approximate nearest-neighbour query on the embedding vector.

        :param query_vector: vector to search for
        :param candidate_pool_size: HNSW candidate list size (ef)
        :param top_k: maximum number of candidates to return
        :returns: candidates ordered by cosine similarity
        """
        logger.debug(
            f"[VECTOR_DB] ANN query: collection={self.collection_name}, "
            f"pool={candidate_pool_size}, top_k={top_k}"
        )
        response = await self._call(
            "query vectors",
            lambda: self.client.query_points(
                collection_name=self.collection_name,
                query=query_vector,
                using=VECTOR_NAME,
                limit=top_k,
                search_params=qdrant_models.SearchParams(hnsw_ef=candidate_pool_size),
                with_payload=True,
                with_vectors=False,
            ),
        )
        candidates = [
            Candidate(record=self._to_record(p.payload), score=p.score)
            for p in response.points
        ]
        logger.debug(f"[VECTOR_DB] ANN query returned {len(candidates)} candidates")
        return candidates


@lru_cache()
def get_record_store() -> QdrantRecordStore:
    """
    Get a singleton instance of the Qdrant record store.

    :returns: QdrantRecordStore instance
    """
    return QdrantRecordStore(
        host=settings.qdrant_host,
        port=settings.qdrant_port,
        api_key=settings.qdrant_api_key,
        timeout=settings.qdrant_timeout,
        collection_name=settings.qdrant_collection_name,
        location=settings.qdrant_location,
    )
