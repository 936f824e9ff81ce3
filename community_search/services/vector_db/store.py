"""Record store contract shared by the embedding job and the search engine."""

from typing import List, Optional, Protocol, Sequence, runtime_checkable

from community_search.services.vector_db.types import Candidate, Embedding, Record


@runtime_checkable
class RecordStore(Protocol):
    """
    Document store with an approximate nearest-neighbour query primitive.

    Similarity is cosine and must match the metric the index was built with.
    """

    async def test_connection(self) -> bool:
        ...

    async def ensure_collection(self, vector_size: int, recreate: bool = False) -> bool:
        ...

    async def find_one(self, record_id: str) -> Optional[Record]:
        ...

    async def find_records(self, missing_embedding: bool = False) -> List[Record]:
        ...

    async def count_documents(self, with_embedding: Optional[bool] = None) -> int:
        ...

    async def save_embedding(self, record: Record, embedding: Embedding) -> None:
        ...

    async def upsert_records(self, records: Sequence[Record]) -> int:
        ...

    async def ann_query(
        self,
        query_vector: List[float],
        candidate_pool_size: int,
        top_k: int,
    ) -> List[Candidate]:
        ...
