"""Tests for the batch embedding job."""

import httpx
import openai
import pytest

from community_search.exceptions import MissingCredentialsError, QueryError
from community_search.services.embedding.batch_job import (
    BatchEmbeddingJob,
    BatchJobState,
    JobCheckpoint,
)
from community_search.services.embedding.client import EmbeddingClient
from community_search.services.embedding.scheduler import BatchScheduler
from community_search.settings import settings
from community_search.tests.conftest import (
    TEST_MODEL,
    InMemoryRecordStore,
    SleepRecorder,
    make_record,
)

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/embeddings")


class RecordingScheduler(BatchScheduler):
    """Scheduler that remembers how work was partitioned."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.batch_sizes = []

    def partition(self, items):
        batches = super().partition(items)
        self.batch_sizes = [len(b) for b in batches]
        return batches


@pytest.fixture
def records_store() -> InMemoryRecordStore:
    return InMemoryRecordStore([make_record(i) for i in range(23)])


@pytest.fixture
def checkpoint(tmp_path) -> JobCheckpoint:
    return JobCheckpoint(tmp_path / "progress.json")


def make_job(store, embedding_client, checkpoint, backoff, sleep=None):
    scheduler = RecordingScheduler(
        batch_size=10, delay=1.0, sleep=sleep or SleepRecorder()
    )
    return BatchEmbeddingJob(
        store=store,
        embedding_client=embedding_client,
        scheduler=scheduler,
        backoff=backoff,
        checkpoint=checkpoint,
    )


class TestBatchEmbeddingJob:
    """Test the end-to-end batch run."""

    @pytest.mark.asyncio
    async def test_embeds_all_missing_records(
        self, records_store, embedding_client, fake_openai, checkpoint, no_wait_backoff
    ):
        sleep = SleepRecorder()
        job = make_job(records_store, embedding_client, checkpoint, no_wait_backoff, sleep)

        report = await job.run()

        assert job.scheduler.batch_sizes == [10, 10, 3]
        assert sleep.delays == [1.0, 1.0]
        assert len(fake_openai.calls) == 23
        assert report.total == 23
        assert report.succeeded == 23
        assert report.failed == 0
        assert report.success_rate == 100.0
        assert report.final_count == 23
        assert not report.has_failures
        stored = records_store.records["svc-0"]
        assert stored.embedding_model == TEST_MODEL
        assert len(stored.embedding) == 1536
        assert not checkpoint.path.exists()

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(
        self, records_store, embedding_client, fake_openai, checkpoint, no_wait_backoff
    ):
        job = make_job(records_store, embedding_client, checkpoint, no_wait_backoff)
        await job.run()
        calls_after_first_run = len(fake_openai.calls)

        report = await job.run()

        assert len(fake_openai.calls) == calls_after_first_run
        assert report.total == 0
        assert report.final_count == 23

    @pytest.mark.asyncio
    async def test_force_reembeds_everything(
        self, records_store, embedding_client, fake_openai, checkpoint, no_wait_backoff
    ):
        job = make_job(records_store, embedding_client, checkpoint, no_wait_backoff)
        await job.run()

        report = await job.run(force=True)

        assert len(fake_openai.calls) == 46
        assert report.total == 23

    @pytest.mark.asyncio
    async def test_counts_records_from_another_model(
        self, records_store, embedding_client, fake_openai, checkpoint, no_wait_backoff
    ):
        job = make_job(records_store, embedding_client, checkpoint, no_wait_backoff)
        await job.run()
        for record_id in ("svc-1", "svc-2"):
            records_store.records[record_id].embedding_model = "text-embedding-ada-002"

        report = await job.run()

        assert report.total == 0
        assert report.stale_models == 2

        forced = await job.run(force=True)

        assert forced.total == 23
        assert forced.stale_models == 0
        assert records_store.records["svc-1"].embedding_model == TEST_MODEL

    @pytest.mark.asyncio
    async def test_failure_is_isolated(
        self, records_store, embedding_client, fake_openai, checkpoint, no_wait_backoff
    ):
        fake_openai.embeddings.fail(
            "Service 7\n",
            openai.AuthenticationError(
                "Invalid API key",
                response=httpx.Response(401, request=_REQUEST),
                body=None,
            ),
        )
        job = make_job(records_store, embedding_client, checkpoint, no_wait_backoff)

        report = await job.run()

        assert report.succeeded == 22
        assert report.failed == 1
        assert report.has_failures
        assert report.failures[0].id == "svc-7"
        assert report.failures[0].name == "Service 7"
        assert "Invalid API key" in report.failures[0].error
        assert report.success_rate == 95.7
        assert report.final_count == 22
        # Permanent errors are not retried
        assert len(fake_openai.calls) == 23

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(
        self, records_store, embedding_client, fake_openai, checkpoint, no_wait_backoff
    ):
        fake_openai.embeddings.fail(
            "Service 3\n", openai.APIConnectionError(request=_REQUEST), times=2
        )
        job = make_job(records_store, embedding_client, checkpoint, no_wait_backoff)

        report = await job.run()

        assert report.failed == 0
        assert report.succeeded == 23
        assert len(fake_openai.calls) == 25

    @pytest.mark.asyncio
    async def test_record_without_text_goes_to_ledger(
        self, embedding_client, fake_openai, checkpoint, no_wait_backoff
    ):
        store = InMemoryRecordStore(
            [make_record(1), make_record(2, name="", description="<p></p>", locations=[])]
        )
        job = make_job(store, embedding_client, checkpoint, no_wait_backoff)

        report = await job.run()

        assert report.succeeded == 1
        assert report.failures[0].id == "svc-2"
        assert report.failures[0].error == "No valid text found in record data"
        assert len(fake_openai.calls) == 1

    @pytest.mark.asyncio
    async def test_store_write_failure_goes_to_ledger(
        self, records_store, embedding_client, checkpoint, no_wait_backoff
    ):
        records_store.fail_saves = {"svc-12"}
        job = make_job(records_store, embedding_client, checkpoint, no_wait_backoff)

        report = await job.run()

        assert [f.id for f in report.failures] == ["svc-12"]
        assert report.final_count == 22

    @pytest.mark.asyncio
    async def test_missing_credentials_is_fatal(
        self, records_store, checkpoint, no_wait_backoff, monkeypatch
    ):
        monkeypatch.setattr(settings, "openai_api_key", None)
        client = EmbeddingClient(api_key=None, model=TEST_MODEL)
        job = make_job(records_store, client, checkpoint, no_wait_backoff)

        with pytest.raises(MissingCredentialsError):
            await job.run()
        assert records_store.saved == []

    @pytest.mark.asyncio
    async def test_unreachable_store_is_fatal(
        self, records_store, embedding_client, fake_openai, checkpoint, no_wait_backoff
    ):
        records_store.reachable = False
        job = make_job(records_store, embedding_client, checkpoint, no_wait_backoff)

        with pytest.raises(QueryError):
            await job.run()
        assert fake_openai.calls == []


class TestInterruptedRun:
    """Test checkpointing and recovery after a crash."""

    @pytest.mark.asyncio
    async def test_default_rerun_processes_only_remaining(
        self, records_store, embedding_client, fake_openai, checkpoint, no_wait_backoff
    ):
        crashing = make_job(
            records_store,
            embedding_client,
            checkpoint,
            no_wait_backoff,
            sleep=SleepRecorder(crash_on_call=2),
        )
        with pytest.raises(RuntimeError):
            await crashing.run()

        assert len(fake_openai.calls) == 20
        state = checkpoint.load()
        assert state is not None
        assert state.processed == 20
        assert len(state.completed_ids) == 20

        rerun = make_job(records_store, embedding_client, checkpoint, no_wait_backoff)
        report = await rerun.run()

        assert len(fake_openai.calls) == 23
        assert report.total == 3
        assert report.final_count == 23
        assert not checkpoint.path.exists()

    @pytest.mark.asyncio
    async def test_force_resume_skips_completed(
        self, records_store, embedding_client, fake_openai, checkpoint, no_wait_backoff
    ):
        crashing = make_job(
            records_store,
            embedding_client,
            checkpoint,
            no_wait_backoff,
            sleep=SleepRecorder(crash_on_call=2),
        )
        with pytest.raises(RuntimeError):
            await crashing.run(force=True)
        assert len(fake_openai.calls) == 20

        rerun = make_job(records_store, embedding_client, checkpoint, no_wait_backoff)
        report = await rerun.run(force=True, resume=True)

        assert len(fake_openai.calls) == 23
        assert report.skipped == 20
        assert report.total == 3

    @pytest.mark.asyncio
    async def test_resume_without_checkpoint_runs_everything(
        self, records_store, embedding_client, fake_openai, checkpoint, no_wait_backoff
    ):
        job = make_job(records_store, embedding_client, checkpoint, no_wait_backoff)
        report = await job.run(force=True, resume=True)

        assert report.skipped == 0
        assert len(fake_openai.calls) == 23


class TestJobCheckpoint:
    """Test the progress file."""

    def test_save_and_load(self, checkpoint):
        state = BatchJobState(total=5, processed=2, succeeded=2, completed_ids=["a", "b"])
        checkpoint.save(state)

        loaded = checkpoint.load()
        assert loaded.completed_ids == ["a", "b"]
        assert loaded.total == 5
        assert list(checkpoint.path.parent.glob("*.tmp")) == []

    def test_load_missing(self, checkpoint):
        assert checkpoint.load() is None

    def test_load_corrupt(self, checkpoint):
        checkpoint.path.write_text("{not json", encoding="utf-8")
        assert checkpoint.load() is None

    def test_clear(self, checkpoint):
        checkpoint.save(BatchJobState())
        checkpoint.clear()
        assert not checkpoint.path.exists()
        checkpoint.clear()
