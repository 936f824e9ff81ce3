"""Import service records from a JSON file into the vector store."""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, List, Optional

from loguru import logger
from pydantic import ValidationError

from community_search.exceptions import CommunitySearchError
from community_search.logging_config import configure_logging
from community_search.services.embedding.types import model_dimensions
from community_search.services.vector_db.qdrant_client import get_record_store
from community_search.services.vector_db.store import RecordStore
from community_search.services.vector_db.types import Record
from community_search.settings import settings


def load_records(path: Path) -> List[Record]:
    """
    Read records from a JSON list or a ``{"services": [...]}`` document.

    :param path: JSON file
    :returns: parsed records
    :raises ValueError: if the file does not hold a list of records
    """
    data: Any = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("services")
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a list of services")
    return [Record.model_validate(item) for item in data]


async def import_records(store: RecordStore, records: List[Record]) -> int:
    """
    Upsert records, keeping embeddings already stored for them.

    :param store: target record store
    :param records: records to write
    :returns: number of records written
    """
    dimensions = model_dimensions(settings.openai_embedding_model)
    if dimensions is not None:
        await store.ensure_collection(vector_size=dimensions)
    return await store.upsert_records(records)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Import service records from JSON")
    parser.add_argument("file", type=Path, help="JSON file with service records")
    args = parser.parse_args(argv)
    configure_logging()

    try:
        records = load_records(args.file)
    except (OSError, ValueError, ValidationError) as e:
        logger.error(f"Could not read {args.file}: {e}")
        return 1

    incomplete = [r.id for r in records if not r.is_complete]
    if incomplete:
        logger.warning(
            f"{len(incomplete)} services have no locations: {', '.join(incomplete[:10])}"
        )

    try:
        count = asyncio.run(import_records(get_record_store(), records))
    except CommunitySearchError as e:
        logger.error(f"Import failed: {e.message}")
        return 1

    print(f"Imported {count} services")
    if incomplete:
        print(f"  Without locations: {len(incomplete)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
