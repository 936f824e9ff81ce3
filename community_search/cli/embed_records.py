"""Generate embeddings for stored service records."""

import argparse
import asyncio
import sys
from typing import List, Optional

from loguru import logger

from community_search.exceptions import CommunitySearchError
from community_search.logging_config import configure_logging
from community_search.services.embedding.batch_job import (
    BatchEmbeddingJob,
    BatchJobReport,
    JobCheckpoint,
)
from community_search.services.embedding.client import get_embedding_client
from community_search.services.embedding.scheduler import BackoffPolicy, BatchScheduler
from community_search.services.vector_db.qdrant_client import get_record_store
from community_search.settings import settings


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate embeddings for service records in the vector store"
    )
    parser.add_argument(
        "--force",
        "--all",
        dest="force",
        action="store_true",
        help="Re-embed every record, not only those missing an embedding",
    )
    parser.add_argument(
        "--resume",
        action="store_true",
        help="Skip records completed by an interrupted earlier run",
    )
    parser.add_argument(
        "--batch-size",
        type=positive_int,
        default=settings.embedding_batch_size,
        help="Records embedded concurrently per batch",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=settings.embedding_batch_delay,
        help="Seconds to wait between batches",
    )
    parser.add_argument(
        "--checkpoint",
        default=settings.embedding_checkpoint_path,
        help="Progress file used for resuming",
    )
    return parser


def print_report(report: BatchJobReport) -> None:
    print("\nEmbedding generation complete")
    print(f"  Processed:    {report.total}")
    if report.skipped:
        print(f"  Skipped:      {report.skipped} (completed earlier)")
    print(f"  Succeeded:    {report.succeeded}")
    print(f"  Failed:       {report.failed}")
    print(f"  Success rate: {report.success_rate}%")
    print(f"  Services with embeddings: {report.final_count}")
    if report.stale_models:
        print(f"  Stale model:  {report.stale_models} (re-run with --force)")
    if report.failures:
        print("\nFailed services:")
        for failure in report.failures:
            print(f"  - {failure.name} ({failure.id}): {failure.error}")


async def run(args: argparse.Namespace) -> BatchJobReport:
    job = BatchEmbeddingJob(
        store=get_record_store(),
        embedding_client=get_embedding_client(),
        scheduler=BatchScheduler(batch_size=args.batch_size, delay=args.delay),
        backoff=BackoffPolicy.from_settings(),
        checkpoint=JobCheckpoint(args.checkpoint),
    )
    try:
        return await job.run(force=args.force, resume=args.resume)
    finally:
        await job.embedding_client.close()


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run the batch embedding job.

    :param argv: command-line arguments (defaults to sys.argv)
    :returns: exit code, 1 if any record failed or the job could not start
    """
    args = build_parser().parse_args(argv)
    configure_logging()

    try:
        report = asyncio.run(run(args))
    except CommunitySearchError as e:
        logger.error(f"Embedding job failed: {e.message}")
        return 1

    print_report(report)
    return 1 if report.has_failures else 0


if __name__ == "__main__":
    sys.exit(main())
