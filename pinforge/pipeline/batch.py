"""Batch generation: render every campaign row, upload it, record the pin."""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable

from ..clients.storage import PinStorage
from ..clients.supabase import SupabaseClient
from ..config import BATCH_DELAY_SECONDS, BATCH_SIZE, JPEG_QUALITY, LOCK_TTL_SECONDS
from ..errors import ConfigurationError
from ..models import Campaign, CampaignStatus, ImageElement, RenderResult, Template
from ..render import HeadlessRenderer, encode_jpeg
from ..services import LockService, ProgressService, render_lock_key
from ..text.substitution import resolve_image_url
from ..utils import chunked, utc_now_iso
from .distribution import TemplateDistributor
from .tracker import RowJob, RowStatus, RowTracker

logger = logging.getLogger(__name__)

PauseCheck = Callable[[], bool]


class StartGate:
    """
    Lets a batch's rows start in index order and closes at the first pause.

    Rows that got through always form a prefix of the batch, so resuming at
    the first row that did not start never repeats a finished row.
    """

    def __init__(self, indices: list[int], pause: PauseCheck | None):
        self._order = sorted(indices)
        self._position = 0
        self._pause = pause
        self._closed = False
        self._turn = threading.Condition()

    def enter(self, index: int) -> bool:
        with self._turn:
            self._turn.wait_for(
                lambda: self._closed
                or (self._position < len(self._order) and self._order[self._position] == index)
            )
            if self._closed:
                return False
            stop = True
            try:
                stop = self._pause is not None and self._pause()
            finally:
                # a failing pause check closes the gate so waiting rows never hang
                if stop:
                    self._closed = True
                else:
                    self._position += 1
                self._turn.notify_all()
            return not stop


@dataclass
class BatchOutcome:
    """How a pipeline run ended: completed, failed, paused or skipped."""
    campaign_id: str
    status: str
    total: int = 0
    completed: int = 0
    failed: int = 0
    next_index: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)
    image_urls: list[str] = field(default_factory=list)
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "campaign_id": self.campaign_id,
            "status": self.status,
            "total": self.total,
            "completed": self.completed,
            "failed": self.failed,
            "next_index": self.next_index,
            "errors": self.errors or None,
            "message": self.message,
        }


class BatchPipeline:
    """
    Drives one campaign run.

    Rows are processed in batches of `batch_size`; rows inside a batch render
    concurrently and each row works on its own resolved copy of the template's
    elements. A campaign lock keeps a second run of the same campaign out.
    """

    def __init__(
        self,
        store: SupabaseClient,
        storage: PinStorage,
        renderer: HeadlessRenderer,
        progress: ProgressService,
        locks: LockService,
        batch_size: int = BATCH_SIZE,
        batch_delay: float = BATCH_DELAY_SECONDS,
        lock_ttl: int = LOCK_TTL_SECONDS,
        jpeg_quality: int = JPEG_QUALITY,
        seed: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.storage = storage
        self.renderer = renderer
        self.progress = progress
        self.locks = locks
        self.batch_size = max(1, batch_size)
        self.batch_delay = batch_delay
        self.lock_ttl = lock_ttl
        self.jpeg_quality = jpeg_quality
        self.seed = seed
        self.sleep = sleep

    # ------------------------------------------------------------------
    # Entry points

    def run_campaign_id(
        self,
        campaign_id: str,
        start_index: int = 0,
        pause: PauseCheck | None = None,
        row_count: int | None = None,
    ) -> BatchOutcome:
        """Load the campaign, then run it. Missing data fails only this campaign."""
        try:
            campaign = self.store.load_campaign(campaign_id)
        except ConfigurationError as e:
            logger.error(f"Campaign {campaign_id} misconfigured: {e}")
            self._mark_failed(campaign_id, str(e))
            return BatchOutcome(campaign_id, CampaignStatus.FAILED.value, message=str(e))
        return self.run(campaign, start_index, pause, row_count)

    def run(
        self,
        campaign: Campaign,
        start_index: int = 0,
        pause: PauseCheck | None = None,
        row_count: int | None = None,
    ) -> BatchOutcome:
        """
        Render a campaign's rows from start_index.

        Args:
            campaign: Campaign with templates and rows loaded
            start_index: First row to render; > 0 resumes a paused run
            pause: Polled before each batch and each row; True stops starting
                new rows (rows already rendering finish)
            row_count: Render only this many rows from start_index (one
                queued chunk). Chunks lock render:{id}:{start} and leave
                progress initialization to whoever enqueued them.

        Returns:
            BatchOutcome. 'skipped' means another run holds the campaign lock
            and nothing was touched.
        """
        lock_key = render_lock_key(campaign.id)
        if row_count is not None:
            lock_key = f"{lock_key}:{start_index}"
        lock_token = self.locks.acquire(lock_key, self.lock_ttl)
        if not lock_token:
            logger.info(f"Campaign {campaign.id} is already rendering, skipping")
            return BatchOutcome(
                campaign.id, "skipped", total=campaign.total, next_index=start_index,
                message="Already in progress",
            )

        try:
            return self._run_locked(campaign, start_index, pause, row_count)
        except ConfigurationError as e:
            logger.error(f"Campaign {campaign.id} misconfigured: {e}")
            self._mark_failed(campaign.id, str(e))
            return BatchOutcome(campaign.id, CampaignStatus.FAILED.value, total=campaign.total, message=str(e))
        except RuntimeError as e:
            logger.error(f"Campaign {campaign.id} failed: {e}")
            self._mark_failed(campaign.id, str(e))
            return BatchOutcome(campaign.id, CampaignStatus.FAILED.value, total=campaign.total, message=str(e))
        finally:
            self.locks.release(lock_key, lock_token)

    # ------------------------------------------------------------------
    # Run

    def _run_locked(
        self,
        campaign: Campaign,
        start_index: int,
        pause: PauseCheck | None,
        row_count: int | None,
    ) -> BatchOutcome:
        if not campaign.templates:
            raise ConfigurationError(f"Campaign {campaign.id} has no templates")
        if not campaign.rows:
            raise ConfigurationError(f"Campaign {campaign.id} has no data rows")
        if not 0 <= start_index <= campaign.total:
            raise ConfigurationError(f"start_index {start_index} out of range for {campaign.total} rows")

        total = campaign.total
        end_index = total if row_count is None else min(total, start_index + row_count)
        self.store.update_campaign(campaign.id, {"status": CampaignStatus.PROCESSING.value})
        if row_count is not None:
            logger.info(f"Campaign {campaign.id}: rendering chunk {start_index}-{end_index - 1} of {total}")
        elif start_index == 0 and not self._is_paused(campaign.id):
            self.progress.start(campaign.id, total)
        else:
            logger.info(f"Resuming campaign {campaign.id} at row {start_index}/{total}")
            self.progress.set_progress(campaign.id, status=CampaignStatus.PROCESSING.value, next_index=start_index)

        templates, tracker = self._plan(campaign, start_index, end_index)
        self._prefetch_images(campaign, templates, tracker)

        batches = chunked(tracker.get_pending(), self.batch_size)
        outcome = BatchOutcome(campaign.id, CampaignStatus.PROCESSING.value, total=total, next_index=start_index)

        for number, batch in enumerate(batches, 1):
            if pause is not None and pause():
                return self._pause(campaign, tracker, outcome, batch[0].index)

            first, last = batch[0].index, batch[-1].index
            logger.info(f"[batch {number}/{len(batches)}] rendering rows {first}-{last}")
            results = self._render_batch(campaign, templates, tracker, batch, pause)
            self._persist_pins(campaign, [r for r in results if r.success])

            outcome.completed += sum(1 for r in results if r.success)
            outcome.failed += sum(1 for r in results if not r.success)
            outcome.image_urls += [r.image_url for r in results if r.success]

            skipped = [job.index for job in batch if job.status == RowStatus.PENDING]
            if skipped:
                return self._pause(campaign, tracker, outcome, min(skipped))

            outcome.next_index = last + 1
            if row_count is None:
                self.progress.set_progress(campaign.id, next_index=outcome.next_index)
            stats = tracker.get_stats()
            logger.info(
                f"[batch {number}/{len(batches)}] done: "
                f"{stats['completed']} completed, {stats['failed']} failed, {stats['pending']} pending"
            )

            if number < len(batches) and self.batch_delay > 0:
                self.sleep(self.batch_delay)

        outcome.next_index = end_index
        return self._finish(campaign, tracker, outcome, final=end_index >= total)

    def _plan(self, campaign: Campaign, start_index: int, end_index: int) -> tuple[dict[int, Template], RowTracker]:
        """Template per row and a tracker holding the rows still to render."""
        distributor = TemplateDistributor(
            campaign.templates, campaign.distribution_mode, campaign.total, self.seed
        )
        templates: dict[int, Template] = {}
        tracker = RowTracker()
        # assign from row 0 so a seeded random run gives a resumed row the same template
        for index, row in enumerate(campaign.rows):
            assignment = distributor.assign(index, row)
            if not start_index <= index < end_index:
                continue
            if assignment.warning:
                logger.warning(f"Row {index}: {assignment.warning}")
            templates[index] = assignment.template
            tracker.add_row(index, row, assignment.template.id)
        return templates, tracker

    def _prefetch_images(self, campaign: Campaign, templates: dict[int, Template], tracker: RowTracker):
        sources = []
        for job in tracker.get_pending():
            for element in templates[job.index].elements:
                if isinstance(element, ImageElement) and element.visible is not False:
                    sources.append(resolve_image_url(element, job.row, campaign.field_mapping))
        self.renderer.images.prefetch(sources)

    def _render_batch(
        self,
        campaign: Campaign,
        templates: dict[int, Template],
        tracker: RowTracker,
        batch: list[RowJob],
        pause: PauseCheck | None,
    ) -> list[RenderResult]:
        results = []
        gate = StartGate([job.index for job in batch], pause)
        with ThreadPoolExecutor(max_workers=self.batch_size) as executor:
            futures = {
                executor.submit(self._process_row, campaign, templates[job.index], tracker, job, gate): job
                for job in batch
            }
            for future in as_completed(futures):
                result = future.result()
                if result is not None:
                    results.append(result)
        return sorted(results, key=lambda r: r.row_index)

    def _process_row(
        self,
        campaign: Campaign,
        template: Template,
        tracker: RowTracker,
        job: RowJob,
        gate: StartGate,
    ) -> RenderResult | None:
        """Render, encode and upload one row. None when a pause stopped it from starting."""
        if not gate.enter(job.index):
            return None

        tracker.mark_rendering(job.index)
        try:
            output = self.renderer.render_row(template, job.row, campaign.field_mapping, job.index)
            data = encode_jpeg(output.image, self.jpeg_quality)
            url = self.storage.upload_pin(campaign.id, job.index, data)
        except Exception as e:
            error = str(e)
            logger.warning(f"Row {job.index} failed: {error}")
            tracker.mark_failed(job.index, error)
            self.progress.add_error(campaign.id, job.index, error)
            self.progress.increment(campaign.id, "failed")
            return RenderResult(row_index=job.index, row=job.row, error=error)

        tracker.mark_completed(job.index, url, output.warnings)
        self.progress.increment(campaign.id, "completed")
        return RenderResult(
            row_index=job.index, row=job.row, image=data, image_url=url, warnings=output.warnings
        )

    def _persist_pins(self, campaign: Campaign, results: list[RenderResult]):
        """Insert generated_pins records for a batch's successful rows."""
        if not results:
            return
        self.store.insert_generated_pins([
            {
                "campaign_id": campaign.id,
                "user_id": campaign.user_id,
                "data_row": {**r.row, "rowIndex": r.row_index},
                "image_url": r.image_url,
                "status": "generated",
            }
            for r in results
        ])

    def _pause(self, campaign: Campaign, tracker: RowTracker, outcome: BatchOutcome, next_index: int) -> BatchOutcome:
        """Persist where to resume from, then hand control back."""
        outcome.status = CampaignStatus.PAUSED.value
        outcome.next_index = next_index
        outcome.errors = tracker.errors()
        self.progress.set_progress(campaign.id, status=CampaignStatus.PAUSED.value, next_index=next_index)
        self.store.update_campaign(campaign.id, {
            "status": CampaignStatus.PAUSED.value,
            "generated_pins": self._generated_count(campaign.id, tracker),
        })
        logger.info(f"Campaign {campaign.id} paused, resume at row {next_index}")
        return outcome

    def _finish(self, campaign: Campaign, tracker: RowTracker, outcome: BatchOutcome, final: bool) -> BatchOutcome:
        failed_here = tracker.get_stats()["failed"] > 0
        campaign_status = self._campaign_status(campaign.id, failed_here, final)
        outcome.status = campaign_status or (
            CampaignStatus.FAILED.value if failed_here else CampaignStatus.COMPLETED.value
        )
        outcome.errors = tracker.errors()

        fields: dict[str, Any] = {"generated_pins": self._generated_count(campaign.id, tracker)}
        if campaign_status:
            fields.update(status=campaign_status, completed_at=utc_now_iso())
        self.store.update_campaign(campaign.id, fields)
        logger.info(
            f"Campaign {campaign.id} {campaign_status or 'still processing'}: "
            f"{outcome.completed} completed, {outcome.failed} failed in this run"
        )
        return outcome

    def _campaign_status(self, campaign_id: str, failed_here: bool, final: bool) -> str | None:
        """
        Terminal campaign status, or None while other chunks are still running.

        The progress record decides when it is available; without one, the run
        that covered the last row decides from its own rows.
        """
        record = self.progress.get_progress(campaign_id)
        if record is not None:
            if record.status in (CampaignStatus.COMPLETED.value, CampaignStatus.FAILED.value):
                return record.status
            if not record.is_done:
                return None
            return CampaignStatus.FAILED.value if record.failed else CampaignStatus.COMPLETED.value
        if not final:
            return None
        return CampaignStatus.FAILED.value if failed_here else CampaignStatus.COMPLETED.value

    def _is_paused(self, campaign_id: str) -> bool:
        record = self.progress.get_progress(campaign_id)
        return record is not None and record.status == CampaignStatus.PAUSED.value

    def _generated_count(self, campaign_id: str, tracker: RowTracker) -> int:
        """Pins produced across runs when progress is tracked, else this run's count."""
        record = self.progress.get_progress(campaign_id)
        if record is not None:
            return record.completed
        return len(tracker.get_completed())

    def _mark_failed(self, campaign_id: str, message: str):
        self.progress.set_progress(campaign_id, status=CampaignStatus.FAILED.value)
        self.progress.add_error(campaign_id, -1, message)
        try:
            self.store.update_campaign(campaign_id, {"status": CampaignStatus.FAILED.value})
        except RuntimeError as e:
            logger.error(f"Could not mark campaign {campaign_id} failed: {e}")
