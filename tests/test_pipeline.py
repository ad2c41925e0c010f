import threading

import pytest

from pinforge.clients import MemoryCache
from pinforge.models import Campaign, DistributionMode, ShapeElement, Template
from pinforge.pipeline import BatchPipeline, RowStatus, RowTracker
from pinforge.services import LockService, ProgressService, render_lock_key


@pytest.fixture
def make_pipeline(store, storage, renderer, progress, locks):
    def _make(**overrides):
        options = dict(
            store=store,
            storage=storage,
            renderer=renderer,
            progress=progress,
            locks=locks,
            batch_size=2,
            batch_delay=0,
            seed=1,
            sleep=lambda _: None,
        )
        options.update(overrides)
        return BatchPipeline(**options)
    return _make


def pinned_rows(store):
    return sorted(pin["data_row"]["rowIndex"] for pin in store.pins)


# ---------------------------------------------------------------------------
# Tracker


def test_tracker_lifecycle():
    tracker = RowTracker()
    for i in range(3):
        tracker.add_row(i, {"title": str(i)}, "t1")
    tracker.mark_rendering(0)
    tracker.mark_completed(0, "https://cdn/0.jpg")
    tracker.mark_failed(1, "upload failed")

    assert [job.index for job in tracker.get_pending()] == [2]
    assert tracker.get_stats() == {"pending": 1, "rendering": 0, "completed": 1, "failed": 1}
    assert tracker.errors() == [{"row": 1, "error": "upload failed"}]
    assert tracker.get_completed()[0].status is RowStatus.COMPLETED


# ---------------------------------------------------------------------------
# Full runs


def test_run_renders_every_row(make_pipeline, campaign, store, storage, progress):
    outcome = make_pipeline().run(campaign)

    assert outcome.status == "completed"
    assert (outcome.completed, outcome.failed, outcome.next_index) == (5, 0, 5)
    assert sorted(storage.uploads) == [0, 1, 2, 3, 4]
    assert all(data[:2] == b"\xff\xd8" for data in storage.uploads.values())
    assert pinned_rows(store) == [0, 1, 2, 3, 4]
    assert store.pins[0]["user_id"] == "u1"
    assert store.pins[0]["status"] == "generated"

    record = progress.get_progress("c1")
    assert (record.completed, record.failed, record.status) == (5, 0, "completed")
    assert store.statuses() == ["processing", "completed"]
    assert store.updates[-1][1]["generated_pins"] == 5


def test_failed_row_marks_campaign_failed(make_pipeline, campaign, store, failing_storage, progress):
    outcome = make_pipeline(storage=failing_storage).run(campaign)

    assert outcome.status == "failed"
    assert (outcome.completed, outcome.failed) == (4, 1)
    assert outcome.errors == [{"row": 2, "error": "Upload failed for pin 2"}]
    assert 2 not in pinned_rows(store)

    record = progress.get_progress("c1")
    assert record.status == "failed"
    assert record.errors == [{"row": 2, "error": "Upload failed for pin 2"}]
    assert store.statuses()[-1] == "failed"


def test_run_campaign_id_loads_from_store(make_pipeline):
    outcome = make_pipeline().run_campaign_id("c1")
    assert outcome.status == "completed"


def test_unknown_campaign_fails_only_that_campaign(make_pipeline, store):
    outcome = make_pipeline().run_campaign_id("missing")
    assert outcome.status == "failed"
    assert "not found" in outcome.message
    assert store.statuses() == ["failed"]


def test_campaign_without_rows_fails(make_pipeline, square_template, store, locks):
    empty = Campaign(id="c2", templates=[square_template], rows=[])
    outcome = make_pipeline().run(empty)
    assert outcome.status == "failed"
    assert "no data rows" in outcome.message
    assert not locks.is_campaign_rendering("c2")


# ---------------------------------------------------------------------------
# Locking


def test_second_run_is_skipped_while_locked(make_pipeline, campaign, store, storage, locks):
    assert locks.acquire(render_lock_key("c1"))

    outcome = make_pipeline().run(campaign)

    assert outcome.status == "skipped"
    assert store.updates == []
    assert storage.uploads == {}


def test_lock_is_released_after_run(make_pipeline, campaign, locks):
    make_pipeline().run(campaign)
    assert not locks.is_campaign_rendering("c1")


# ---------------------------------------------------------------------------
# Pause and resume


def test_pause_then_resume_renders_each_row_once(make_pipeline, campaign, store, storage, progress):
    pipeline = make_pipeline()

    outcome = pipeline.run(campaign, pause=lambda: len(store.pins) >= 2)
    assert outcome.status == "paused"
    assert outcome.next_index == 2
    assert pinned_rows(store) == [0, 1]

    record = progress.get_progress("c1")
    assert (record.status, record.next_index, record.completed) == ("paused", 2, 2)
    assert store.statuses()[-1] == "paused"

    resumed = pipeline.run(campaign, start_index=2)
    assert resumed.status == "completed"
    assert pinned_rows(store) == [0, 1, 2, 3, 4]
    assert sorted(storage.uploads) == [0, 1, 2, 3, 4]

    record = progress.get_progress("c1")
    assert (record.completed, record.status) == (5, "completed")
    assert store.updates[-1][1]["generated_pins"] == 5


def test_resume_keeps_random_assignment(store, storage, renderer, progress, locks):
    templates = [
        Template(id=f"t{i}", width=20, height=20, elements=[ShapeElement(id="s", width=20, height=20)])
        for i in range(3)
    ]
    campaign = Campaign(
        id="c3", templates=templates, rows=[{"n": i} for i in range(6)],
        distribution_mode=DistributionMode.RANDOM,
    )
    pipeline = BatchPipeline(store, storage, renderer, progress, locks, batch_size=3, batch_delay=0, seed=5)

    _, full = pipeline._plan(campaign, 0, 6)
    _, resumed = pipeline._plan(campaign, 3, 6)
    assert [job.template_id for job in full.get_pending()[3:]] == [job.template_id for job in resumed.get_pending()]


# ---------------------------------------------------------------------------
# Degraded distributed state


def test_broken_cache_still_renders(make_pipeline, campaign, store, broken_cache):
    pipeline = make_pipeline(progress=ProgressService(broken_cache), locks=LockService(broken_cache))
    outcome = pipeline.run(campaign)

    assert outcome.status == "completed"
    assert pinned_rows(store) == [0, 1, 2, 3, 4]
    assert store.statuses()[-1] == "completed"
    assert store.updates[-1][1]["generated_pins"] == 5


def test_no_cache_backend_still_renders(make_pipeline, campaign, store):
    pipeline = make_pipeline(progress=ProgressService(None), locks=LockService(None))
    assert pipeline.run(campaign).status == "completed"


# ---------------------------------------------------------------------------
# Queued chunks


def test_chunks_finish_campaign_on_last_counter(make_pipeline, campaign, store, progress):
    progress.start("c1", campaign.total)
    pipeline = make_pipeline()

    first = pipeline.run(campaign, start_index=0, row_count=2)
    second = pipeline.run(campaign, start_index=2, row_count=2)
    assert (first.completed, second.completed) == (2, 2)
    assert "completed" not in store.statuses()

    last = pipeline.run(campaign, start_index=4, row_count=2)
    assert last.completed == 1
    assert last.status == "completed"
    assert store.statuses()[-1] == "completed"
    assert pinned_rows(store) == [0, 1, 2, 3, 4]
    assert progress.get_progress("c1").status == "completed"


def test_chunk_without_progress_backend_decides_on_last_row(make_pipeline, campaign, store):
    pipeline = make_pipeline(progress=ProgressService(None))

    pipeline.run(campaign, start_index=0, row_count=3)
    assert "completed" not in store.statuses()

    pipeline.run(campaign, start_index=3, row_count=3)
    assert store.statuses()[-1] == "completed"


def pause_on_call(n):
    """Pause callable that starts returning True on its n-th call."""
    lock = threading.Lock()
    calls = []

    def pause():
        with lock:
            calls.append(1)
            return len(calls) >= n
    return pause


def test_pause_mid_batch_never_repeats_finished_rows(make_pipeline, campaign, store, progress):
    pipeline = make_pipeline(batch_size=3)

    # call 1 is the batch check, call 2 lets row 0 start, call 3 stops row 1
    outcome = pipeline.run(campaign, pause=pause_on_call(3))
    assert outcome.status == "paused"
    assert outcome.next_index == 1
    assert pinned_rows(store) == [0]

    resumed = pipeline.run(campaign, start_index=outcome.next_index)
    assert resumed.status == "completed"
    assert pinned_rows(store) == [0, 1, 2, 3, 4]
    assert progress.get_progress("c1").completed == 5


def test_rows_in_flight_finish_when_pause_flips(store, storage, renderer, progress, locks, campaign):
    release_row_0 = threading.Event()

    class SlowFirstRow:
        def __init__(self, inner):
            self.inner = inner
            self.images = inner.images

        def render_row(self, template, row, field_mapping, row_index):
            if row_index == 0:
                release_row_0.wait(timeout=5)
            return self.inner.render_row(template, row, field_mapping, row_index)

    stop_at_row_2 = pause_on_call(4)

    def pause():
        # row 0 is still rendering when the pause flips
        stopped = stop_at_row_2()
        if stopped:
            release_row_0.set()
        return stopped

    pipeline = BatchPipeline(store, storage, SlowFirstRow(renderer), progress, locks, batch_size=3, batch_delay=0)
    outcome = pipeline.run(campaign, pause=pause)

    assert outcome.status == "paused"
    assert outcome.next_index == 2
    assert pinned_rows(store) == [0, 1]

    pipeline.run(campaign, start_index=outcome.next_index)
    assert pinned_rows(store) == [0, 1, 2, 3, 4]


def test_resuming_a_paused_run_keeps_counters(make_pipeline, campaign, store):
    class RecordingProgress(ProgressService):
        starts = 0

        def start(self, campaign_id, total):
            RecordingProgress.starts += 1
            return super().start(campaign_id, total)

    backend = MemoryCache()
    progress = RecordingProgress(backend)
    pipeline = make_pipeline(progress=progress)

    paused = pipeline.run(campaign, pause=pause_on_call(2))
    assert (paused.status, paused.next_index) == ("paused", 0)

    resumed = pipeline.run(campaign, start_index=0)
    assert resumed.status == "completed"
    assert RecordingProgress.starts == 1
    assert progress.get_progress("c1").completed == 5
    assert backend.exists("progress:c1")
