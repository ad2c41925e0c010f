import base64
import json

import pytest

from pinforge.handlers import enqueue, progress as progress_handler, worker
from pinforge.handlers.events import parse_body
from pinforge.pipeline import BatchOutcome, BatchPipeline
from pinforge.services import RateLimiter


class FakeSQS:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.messages = []

    def send_message(self, QueueUrl, MessageBody):
        if self.fail:
            raise RuntimeError("queue unavailable")
        self.messages.append(json.loads(MessageBody))
        return {"MessageId": f"m-{len(self.messages)}"}


def body_of(result):
    return json.loads(result["body"])


@pytest.fixture
def pipeline(store, storage, renderer, progress, locks):
    return BatchPipeline(store, storage, renderer, progress, locks, batch_size=2, batch_delay=0, seed=1)


# ---------------------------------------------------------------------------
# Event parsing


def test_parse_body_sources():
    assert parse_body({"Records": [{"body": '{"campaign_id": "c1"}'}]}) == {"campaign_id": "c1"}
    assert parse_body({"body": '{"campaign_id": "c2"}'}) == {"campaign_id": "c2"}
    encoded = base64.b64encode(b'{"campaign_id": "c3"}').decode()
    assert parse_body({"body": encoded, "isBase64Encoded": True}) == {"campaign_id": "c3"}
    assert parse_body({"campaign_id": "c4"}) == {"campaign_id": "c4"}
    with pytest.raises(ValueError):
        parse_body({"body": "[1, 2]"})


# ---------------------------------------------------------------------------
# Worker


def test_worker_renders_campaign(pipeline, progress, store):
    result = worker.handler({"body": json.dumps({"campaign_id": "c1"})}, None, pipeline, progress)

    assert result["statusCode"] == 200
    payload = body_of(result)
    assert payload["status"] == "completed"
    assert payload["completed"] == 5
    assert len(store.pins) == 5


def test_worker_accepts_sqs_chunk(pipeline, progress, store):
    progress.start("c1", 5)
    event = {"Records": [{"body": json.dumps({"campaign_id": "c1", "start_index": 2, "row_count": 2})}]}
    result = worker.handler(event, None, pipeline, progress)

    assert result["statusCode"] == 200
    assert sorted(pin["data_row"]["rowIndex"] for pin in store.pins) == [2, 3]


def test_worker_requires_campaign_id(pipeline, progress):
    assert worker.handler({"body": "{}"}, None, pipeline, progress)["statusCode"] == 400
    assert worker.handler({"body": "not json"}, None, pipeline, progress)["statusCode"] == 400


def test_worker_rejects_non_integer_start(pipeline, progress):
    event = {"body": json.dumps({"campaign_id": "c1", "start_index": "abc"})}
    assert worker.handler(event, None, pipeline, progress)["statusCode"] == 400


def test_worker_pauses_when_progress_says_so(pipeline, progress, store):
    progress.start("c1", 5)
    progress.set_progress("c1", status="paused")
    event = {"body": json.dumps({"campaign_id": "c1", "start_index": 1})}

    result = worker.handler(event, None, pipeline, progress)
    # resuming flips the record back to processing before the first batch
    assert body_of(result)["status"] == "completed"

    progress.set_progress("c1", status="paused")
    chunk = {"body": json.dumps({"campaign_id": "c1", "start_index": 0, "row_count": 2})}
    paused = body_of(worker.handler(chunk, None, pipeline, progress))
    assert paused["status"] == "paused"
    assert paused["next_index"] == 0


def test_worker_reports_partial_failure(store, failing_storage, renderer, progress, locks):
    pipeline = BatchPipeline(store, failing_storage, renderer, progress, locks, batch_size=2, batch_delay=0)
    result = worker.handler({"campaign_id": "c1"}, None, pipeline, progress)
    assert result["statusCode"] == 207
    assert body_of(result)["errors"] == [{"row": 2, "error": "Upload failed for pin 2"}]


def test_worker_conflict_when_locked(pipeline, progress, locks):
    locks.acquire("render:c1")
    result = worker.handler({"campaign_id": "c1"}, None, pipeline, progress)
    assert result["statusCode"] == 409


def test_worker_missing_campaign(pipeline, progress):
    result = worker.handler({"campaign_id": "nope"}, None, pipeline, progress)
    assert result["statusCode"] == 500
    assert body_of(result)["status"] == "failed"


def test_status_codes():
    assert worker.status_code_for(BatchOutcome("c", "completed", completed=3)) == 200
    assert worker.status_code_for(BatchOutcome("c", "failed", completed=2, failed=1)) == 207
    assert worker.status_code_for(BatchOutcome("c", "failed", failed=3)) == 500
    assert worker.status_code_for(BatchOutcome("c", "failed", message="no rows")) == 500
    assert worker.status_code_for(BatchOutcome("c", "skipped")) == 409


# ---------------------------------------------------------------------------
# Enqueue


def test_chunk_messages():
    messages = enqueue.chunk_messages("c1", 160, rows_per_chunk=75)
    assert [m["start_index"] for m in messages] == [0, 75, 150]
    assert all(m["row_count"] == 75 for m in messages)

    resumed = enqueue.chunk_messages("c1", 10, start_index=150, rows_per_chunk=75)
    assert resumed == [{"campaign_id": "c1", "start_index": 150, "row_count": 75}]


def test_enqueue_queues_chunks_and_starts_progress(cache, progress):
    sqs = FakeSQS()
    event = {"body": json.dumps({"campaign_id": "c1", "total_rows": 160})}
    result = enqueue.handler(event, None, sqs=sqs, rate_limiter=RateLimiter(cache), progress=progress,
                             queue_url="https://sqs.example/queue")

    assert result["statusCode"] == 200
    payload = body_of(result)
    assert payload["chunks"] == 3
    assert payload["message_ids"] == ["m-1", "m-2", "m-3"]
    assert sqs.messages[1] == {"campaign_id": "c1", "start_index": 75, "row_count": 75}

    record = progress.get_progress("c1")
    assert (record.total, record.completed, record.status) == (160, 0, "processing")


def test_enqueue_resume_keeps_counters(cache, progress):
    progress.start("c1", 100)
    progress.increment("c1", "completed", 40)
    sqs = FakeSQS()
    event = {"body": json.dumps({"campaign_id": "c1", "total_rows": 100, "start_index": 40})}
    enqueue.handler(event, None, sqs=sqs, rate_limiter=RateLimiter(cache), progress=progress, queue_url="q")

    assert [m["start_index"] for m in sqs.messages] == [40]
    record = progress.get_progress("c1")
    assert (record.completed, record.next_index) == (40, 40)


def test_enqueue_validation(cache, progress):
    def call(payload):
        return enqueue.handler({"body": json.dumps(payload)}, None, sqs=FakeSQS(),
                               rate_limiter=RateLimiter(cache), progress=progress, queue_url="q")

    assert call({"total_rows": 5})["statusCode"] == 400
    assert call({"campaign_id": "c1", "total_rows": 0})["statusCode"] == 400
    assert call({"campaign_id": "c1", "total_rows": 5, "start_index": 5})["statusCode"] == 400


def test_enqueue_requires_queue_url(cache, progress, monkeypatch):
    monkeypatch.setattr(enqueue, "QUEUE_URL", None)
    event = {"body": json.dumps({"campaign_id": "c1", "total_rows": 5})}
    result = enqueue.handler(event, None, sqs=FakeSQS(), rate_limiter=RateLimiter(cache), progress=progress)
    assert result["statusCode"] == 500


def test_enqueue_rate_limited(cache, progress):
    limiter = RateLimiter(cache, max_requests=1)
    event = {"body": json.dumps({"campaign_id": "c1", "total_rows": 5})}
    options = dict(sqs=FakeSQS(), rate_limiter=limiter, progress=progress, queue_url="q")
    assert enqueue.handler(event, None, **options)["statusCode"] == 200
    assert enqueue.handler(event, None, **options)["statusCode"] == 429


def test_enqueue_queue_failure_marks_progress_failed(cache, progress):
    event = {"body": json.dumps({"campaign_id": "c1", "total_rows": 5})}
    result = enqueue.handler(event, None, sqs=FakeSQS(fail=True), rate_limiter=RateLimiter(cache),
                             progress=progress, queue_url="q")
    assert result["statusCode"] == 500
    assert progress.get_progress("c1").status == "failed"


# ---------------------------------------------------------------------------
# Progress polling


def test_progress_handler(progress):
    progress.start("c1", 4)
    progress.increment("c1", "completed")

    result = progress_handler.handler({"pathParameters": {"campaign_id": "c1"}}, None, progress)
    assert result["statusCode"] == 200
    payload = body_of(result)
    assert (payload["completed"], payload["percentage"]) == (1, 25)

    query = progress_handler.handler({"queryStringParameters": {"campaignId": "c1"}}, None, progress)
    assert query["statusCode"] == 200


def test_progress_handler_missing(progress):
    assert progress_handler.handler({}, None, progress)["statusCode"] == 400
    assert progress_handler.handler({"pathParameters": {"campaign_id": "zzz"}}, None, progress)["statusCode"] == 404
