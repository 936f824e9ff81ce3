"""Batch embedding generation for stored service records."""

import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple, Union

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from community_search.services.embedding.client import EmbeddingClient
from community_search.services.embedding.scheduler import BackoffPolicy, BatchScheduler
from community_search.services.vector_db.store import RecordStore
from community_search.services.vector_db.types import Record
from community_search.settings import settings


class FailureEntry(BaseModel):
    """One record that could not be embedded."""

    id: str
    name: str = ""
    error: str


class BatchJobState(BaseModel):
    """Progress of a batch embedding run, persisted after every batch."""

    force: bool = False
    total: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    failures: List[FailureEntry] = Field(default_factory=list)
    completed_ids: List[str] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class BatchJobReport(BaseModel):
    """Summary returned once a run finishes."""

    total: int
    succeeded: int
    failed: int
    skipped: int = 0
    stale_models: int = 0
    success_rate: float
    failures: List[FailureEntry] = Field(default_factory=list)
    final_count: int

    @property
    def has_failures(self) -> bool:
        return self.failed > 0


class JobCheckpoint:
    """JSON progress file that survives process restarts."""

    def __init__(self, path: Union[str, Path] = settings.embedding_checkpoint_path):
        self.path = Path(path)

    def load(self) -> Optional[BatchJobState]:
        """
        Read the saved state.

        :returns: state, or None when there is no usable checkpoint
        """
        if not self.path.exists():
            return None
        try:
            return BatchJobState.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable checkpoint {self.path}: {e}")
            return None

    def save(self, state: BatchJobState) -> None:
        """
        Write the state atomically.

        :param state: current progress
        """
        state.updated_at = datetime.now(timezone.utc)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(state.model_dump_json(indent=2))
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        logger.debug(f"Checkpoint saved: {state.processed}/{state.total} processed")

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
            logger.debug(f"Removed checkpoint {self.path}")


class BatchEmbeddingJob:
    """
    Generates and stores embeddings for every record that needs one.

    Records are processed in concurrent batches; a failing record is
    written to the failure ledger and never stops its siblings.
    """

    def __init__(
        self,
        store: RecordStore,
        embedding_client: EmbeddingClient,
        scheduler: Optional[BatchScheduler] = None,
        backoff: Optional[BackoffPolicy] = None,
        checkpoint: Optional[JobCheckpoint] = None,
    ):
        """
        Initialize the job.

        :param store: record store to read from and write to
        :param embedding_client: client used to embed composed record text
        :param scheduler: batching strategy (defaults to settings)
        :param backoff: retry policy for transient provider failures
        :param checkpoint: progress file (defaults to settings)
        """
        self.store = store
        self.embedding_client = embedding_client
        self.scheduler = scheduler or BatchScheduler()
        self.backoff = backoff or BackoffPolicy.from_settings()
        self.checkpoint = checkpoint or JobCheckpoint()

    async def _select(self, force: bool) -> Tuple[List[Record], int]:
        total = await self.store.count_documents()
        logger.info(f"Found {total} services in collection")

        records = await self.store.find_records(missing_embedding=not force)
        if force:
            logger.info(f"Force mode: processing all {len(records)} services")
            return records, 0

        logger.info(f"Found {len(records)} services without embeddings")
        model = self.embedding_client.model
        stale = sum(
            1
            for r in await self.store.find_records()
            if r.embedding_model and r.embedding_model != model
        )
        if stale:
            logger.warning(
                f"{stale} services have embeddings from a model other than {model}; "
                f"run with --force to re-embed them"
            )
        return records, stale

    async def _embed_one(self, record: Record) -> Tuple[Record, Optional[FailureEntry]]:
        try:
            embedding = await self.backoff.call(
                lambda: self.embedding_client.embed_record(record)
            )
            await self.store.save_embedding(record, embedding)
        except Exception as e:
            logger.error(f"Failed to generate embedding for {record.name} ({record.id}): {e}")
            return record, FailureEntry(id=record.id, name=record.name, error=str(e))

        logger.debug(f"Generated embedding for: {record.name}")
        return record, None

    async def run(self, force: bool = False, resume: bool = False) -> BatchJobReport:
        """
        Embed every selected record.

        :param force: re-embed all records instead of only those missing one
        :param resume: skip records completed by an interrupted earlier run
        :returns: run report
        :raises MissingCredentialsError: if the provider is not configured
        :raises QueryError: if the store cannot be reached
        """
        self.embedding_client.initialize()
        records, stale_models = await self._select(force)

        skipped = 0
        state = BatchJobState(force=force)
        if resume:
            previous = self.checkpoint.load()
            if previous is not None:
                done = set(previous.completed_ids)
                remaining = [r for r in records if r.id not in done]
                skipped = len(records) - len(remaining)
                records = remaining
                state.completed_ids = list(previous.completed_ids)
                logger.info(f"Resuming: skipping {skipped} already completed services")
        state.total = len(records)

        async def _on_batch_complete(
            index: int,
            outcomes: List[Tuple[Record, Optional[FailureEntry]]],
        ) -> None:
            for record, failure in outcomes:
                state.processed += 1
                if failure is None:
                    state.succeeded += 1
                    state.completed_ids.append(record.id)
                else:
                    state.failed += 1
                    state.failures.append(failure)
            self.checkpoint.save(state)
            logger.info(f"Progress: {state.processed}/{state.total}")

        if records:
            await self.scheduler.run(records, self._embed_one, _on_batch_complete)
        else:
            logger.info("All services already have embeddings")

        self.checkpoint.clear()

        final_count = await self.store.count_documents(with_embedding=True)
        success_rate = (
            round(state.succeeded / state.processed * 100, 1) if state.processed else 0.0
        )
        report = BatchJobReport(
            total=state.total,
            succeeded=state.succeeded,
            failed=state.failed,
            skipped=skipped,
            stale_models=stale_models,
            success_rate=success_rate,
            failures=state.failures,
            final_count=final_count,
        )
        logger.info(
            f"Embedding generation complete: {report.succeeded} succeeded, "
            f"{report.failed} failed ({report.success_rate}% success rate), "
            f"{report.final_count} services now have embeddings"
        )
        return report
