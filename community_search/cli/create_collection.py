"""Create the services collection in the vector store."""

import argparse
import asyncio
import sys
from typing import List, Optional

from loguru import logger

from community_search.exceptions import CommunitySearchError
from community_search.logging_config import configure_logging
from community_search.services.embedding.types import model_dimensions
from community_search.services.vector_db.qdrant_client import get_record_store
from community_search.settings import settings


async def create_collection(recreate: bool = False) -> bool:
    """
    Create the collection sized for the configured embedding model.

    :param recreate: drop and recreate an existing collection
    :returns: True if a collection was created
    """
    dimensions = model_dimensions(settings.openai_embedding_model)
    if dimensions is None:
        raise ValueError(f"Unknown embedding model: {settings.openai_embedding_model}")

    store = get_record_store()
    created = await store.ensure_collection(vector_size=dimensions, recreate=recreate)
    if created:
        logger.info(
            f"Collection {store.collection_name} ready "
            f"({dimensions} dimensions, cosine distance)"
        )
    return created


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Create the services vector collection")
    parser.add_argument(
        "--recreate",
        action="store_true",
        help="Drop the collection first if it already exists",
    )
    args = parser.parse_args(argv)
    configure_logging()

    try:
        created = asyncio.run(create_collection(recreate=args.recreate))
    except (CommunitySearchError, ValueError) as e:
        logger.error(f"Failed to create collection: {e}")
        return 1

    print("Collection created" if created else "Collection already exists")
    return 0


if __name__ == "__main__":
    sys.exit(main())
