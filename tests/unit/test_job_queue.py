from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from gameforge.core.errors import StaleJobTimeout, StoreUnavailableError, ValidationError
from gameforge.jobs.models import DEFAULT_PRIORITY, JobPayload, JobRecord, JobStatus, TemplateKind
from gameforge.jobs.queue import PROCESSING_KEY, QUEUE_KEY, parse_submission


def _payload(prompt: str = "A knight climbing a volcano") -> JobPayload:
  return JobPayload(prompt=prompt, template=TemplateKind.PLATFORMER, user_id="user-1")


@pytest.mark.anyio
async def test_dequeue_serves_lowest_priority_value_first(queue) -> None:
  low = await queue.enqueue(_payload("slow lane"), 8)
  urgent = await queue.enqueue(_payload("fast lane"), 1)
  default = await queue.enqueue(_payload("middle lane"))

  order = [(await queue.dequeue()).id for _ in range(3)]

  assert order == [urgent, default, low]
  assert await queue.dequeue() is None


@pytest.mark.anyio
async def test_enqueue_persists_pending_record_and_pointer(queue, repo, store, clock) -> None:
  job_id = await queue.enqueue(_payload(), 3)

  record = repo.jobs[job_id]
  assert record.status == JobStatus.PENDING
  assert record.priority == 3
  assert record.created_at == clock()
  assert store.members(QUEUE_KEY) == {job_id: 3}


@pytest.mark.anyio
@pytest.mark.parametrize("priority", [-1, 11, True, "3", 2.5])
async def test_enqueue_rejects_invalid_priority(queue, repo, priority) -> None:
  with pytest.raises(ValidationError):
    await queue.enqueue(_payload(), priority)
  assert repo.jobs == {}


@pytest.mark.anyio
async def test_dequeue_claims_job_and_tracks_processing(queue, repo, store, clock) -> None:
  job_id = await queue.enqueue(_payload())
  clock.advance(5)

  record = await queue.dequeue()

  assert record.id == job_id
  assert record.status == JobStatus.PROCESSING
  assert record.started_at == clock()
  assert repo.jobs[job_id].status == JobStatus.PROCESSING
  assert store.set_members(PROCESSING_KEY) == {job_id}


@pytest.mark.anyio
async def test_concurrent_dequeues_never_share_a_job(queue) -> None:
  for index in range(5):
    await queue.enqueue(_payload(f"game {index}"))

  results = await asyncio.gather(*(queue.dequeue() for _ in range(8)))

  claimed = [record.id for record in results if record is not None]
  assert len(claimed) == 5
  assert len(set(claimed)) == 5


@pytest.mark.anyio
async def test_dequeue_skips_pointers_without_pending_record(queue, repo, store) -> None:
  await store.zadd(QUEUE_KEY, "ghost", 0)
  job_id = await queue.enqueue(_payload())

  record = await queue.dequeue()

  assert record.id == job_id
  assert store.members(QUEUE_KEY) == {}


@pytest.mark.anyio
async def test_dequeue_restores_pointer_when_ledger_claim_fails(queue, repo, store) -> None:
  job_id = await queue.enqueue(_payload(), 2)
  repo.available = False

  with pytest.raises(StoreUnavailableError):
    await queue.dequeue()

  assert store.members(QUEUE_KEY) == {job_id: 2}


@pytest.mark.anyio
async def test_enqueue_marks_job_failed_when_pointer_insert_fails(queue, repo, store) -> None:
  store.failing.add("zadd")

  with pytest.raises(StoreUnavailableError):
    await queue.enqueue(_payload())

  [record] = repo.jobs.values()
  assert record.status == JobStatus.FAILED
  assert "resubmit" in record.error_message


@pytest.mark.anyio
async def test_complete_records_result_and_clears_processing(queue, repo, store) -> None:
  job_id = await queue.enqueue(_payload())
  await queue.dequeue()

  record = await queue.complete(job_id, "gs://bucket/packages/job.zip", result_json={"packageSize": 10})

  assert record.status == JobStatus.COMPLETED
  assert record.result_ref == "gs://bucket/packages/job.zip"
  assert record.result_json == {"packageSize": 10}
  assert record.completed_at is not None
  assert store.set_members(PROCESSING_KEY) == set()


@pytest.mark.anyio
async def test_complete_with_error_marks_failed(queue) -> None:
  job_id = await queue.enqueue(_payload())
  await queue.dequeue()

  record = await queue.complete(job_id, error_message="Provider rejected the prompt.")

  assert record.status == JobStatus.FAILED
  assert record.error_message == "Provider rejected the prompt."
  assert record.result_ref is None


@pytest.mark.anyio
async def test_terminal_jobs_are_not_overwritten(queue) -> None:
  job_id = await queue.enqueue(_payload())
  await queue.dequeue()
  await queue.complete(job_id, error_message="first failure")

  record = await queue.complete(job_id, "gs://bucket/late.zip")

  assert record.status == JobStatus.FAILED
  assert record.error_message == "first failure"


@pytest.mark.anyio
async def test_complete_unknown_job_returns_none(queue) -> None:
  assert await queue.complete("missing", "gs://bucket/x.zip") is None


@pytest.mark.anyio
async def test_sweep_fails_only_jobs_past_timeout(queue, repo, store, clock) -> None:
  stale_id = await queue.enqueue(_payload("stale"))
  await queue.dequeue()
  clock.advance(200)
  fresh_id = await queue.enqueue(_payload("fresh"))
  await queue.dequeue()
  clock.advance(150)

  cleared = await queue.sweep_stale(300)

  assert cleared == 1
  assert repo.jobs[stale_id].status == JobStatus.FAILED
  assert repo.jobs[stale_id].error_message == str(StaleJobTimeout(300))
  assert repo.jobs[fresh_id].status == JobStatus.PROCESSING
  assert store.set_members(PROCESSING_KEY) == {fresh_id}
  assert store.members(QUEUE_KEY) == {}


@pytest.mark.anyio
async def test_reconcile_restores_missing_pointers_once(queue, repo, store, clock) -> None:
  # A PENDING ledger row whose pointer never reached the ordered structure.
  orphan = JobRecord(id="orphan-1", prompt="lost job", template=TemplateKind.PUZZLE, priority=4, status=JobStatus.PENDING, created_at=clock())
  await repo.create_job(orphan)
  young = JobRecord(id="young-1", prompt="new job", template=TemplateKind.PUZZLE, priority=4, status=JobStatus.PENDING, created_at=clock() + timedelta(seconds=500))
  await repo.create_job(young)
  clock.advance(600)

  assert await queue.reconcile_orphans(300) == 1
  assert await queue.reconcile_orphans(300) == 0
  assert store.members(QUEUE_KEY) == {"orphan-1": 4}
  assert (await queue.dequeue()).id == "orphan-1"


@pytest.mark.anyio
async def test_stats_report_depth_processing_and_recent(queue, clock) -> None:
  await queue.enqueue(_payload("one"))
  await queue.enqueue(_payload("two"))
  await queue.dequeue()
  clock.advance(2 * 60 * 60)
  await queue.enqueue(_payload("three"))

  stats = await queue.stats()

  assert stats.pending == 2
  assert stats.processing == 1
  assert stats.recent_jobs == 1


def test_parse_submission_normalizes_template_and_config() -> None:
  payload = parse_submission("  Space pirates  ", "Shooter", user_id="u1", config={"theme": "space", "difficulty": "hard"})

  assert payload.prompt == "Space pirates"
  assert payload.template == TemplateKind.SHOOTER
  assert payload.config.difficulty == "hard"


@pytest.mark.parametrize("raw", [TemplateKind.PUZZLE, "puzzle", " PUZZLE "])
def test_template_kind_parse_accepts_members_and_names(raw) -> None:
  assert TemplateKind.parse(raw) is TemplateKind.PUZZLE


@pytest.mark.parametrize(
  ("prompt", "template", "config"),
  [
    ("", "platformer", None),
    ("A game", "", None),
    ("A game", "strategy", None),
    ("A game", "platformer", {"difficulty": "impossible"}),
    ("A game", "platformer", {"unknownOption": 1}),
  ],
)
def test_parse_submission_rejects_invalid_fields(prompt, template, config) -> None:
  with pytest.raises(ValidationError):
    parse_submission(prompt, template, config=config)


@pytest.mark.anyio
async def test_single_job_is_claimed_by_exactly_one_of_many_dequeuers(queue) -> None:
  job_id = await queue.enqueue(_payload())

  results = await asyncio.gather(*(queue.dequeue() for _ in range(10)))

  assert [record.id for record in results if record is not None] == [job_id]


@pytest.mark.anyio
async def test_submission_without_priority_is_pending_at_default(queue) -> None:
  payload = parse_submission("a ninja platformer", "platformer")

  job_id = await queue.enqueue(payload)
  record = await queue.get_status(job_id)

  assert record.status == JobStatus.PENDING
  assert record.priority == DEFAULT_PRIORITY
  assert record.user_id is None
