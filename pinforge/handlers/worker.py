"""AWS Lambda handler for campaign rendering."""

import json
import logging

from ..clients import ImageFetcher, PinStorage, SupabaseClient, build_cache
from ..config import (
    KV_REST_API_TOKEN,
    KV_REST_API_URL,
    S3_ACCESS_KEY,
    S3_BUCKET,
    S3_ENDPOINT,
    S3_PUBLIC_BASE_URL,
    S3_SECRET_KEY,
    SUPABASE_SERVICE_ROLE_KEY,
    SUPABASE_URL,
)
from ..errors import ConfigurationError
from ..fonts import FontRegistry
from ..pipeline import BatchOutcome, BatchPipeline
from ..render import HeadlessRenderer
from ..services import CacheService, LockService, ProgressService
from ..utils import configure_logging
from .events import parse_body, response

logger = logging.getLogger(__name__)

CUSTOM_FONT_CACHE_TTL = 3600


def build_pipeline() -> tuple[BatchPipeline, ProgressService]:
    """Wire the pipeline from environment configuration."""
    if not SUPABASE_URL or not SUPABASE_SERVICE_ROLE_KEY:
        raise ConfigurationError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required")
    if not S3_BUCKET:
        raise ConfigurationError("S3_BUCKET is required")

    cache = build_cache(KV_REST_API_URL, KV_REST_API_TOKEN)
    if cache is None:
        logger.info("Cache credentials not found - progress, locks and caching disabled")

    store = SupabaseClient(SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY)
    cache_service = CacheService(cache)

    def custom_font_lookup(family: str) -> str | None:
        return cache_service.cache_get(
            f"fonts:custom:{family}",
            lambda: store.get_custom_font_url(family),
            CUSTOM_FONT_CACHE_TTL,
        )

    renderer = HeadlessRenderer(
        font_registry=FontRegistry(custom_font_lookup=custom_font_lookup),
        image_fetcher=ImageFetcher(),
    )
    storage = PinStorage(
        S3_BUCKET,
        endpoint=S3_ENDPOINT,
        access_key=S3_ACCESS_KEY,
        secret_key=S3_SECRET_KEY,
        public_base_url=S3_PUBLIC_BASE_URL,
    )
    progress = ProgressService(cache)
    pipeline = BatchPipeline(store, storage, renderer, progress, LockService(cache))
    return pipeline, progress


def status_code_for(outcome: BatchOutcome) -> int:
    """200 all rows ok, 207 partial, 409 already running, 500 nothing produced."""
    if outcome.status == "skipped":
        return 409
    if outcome.status == "failed" and outcome.message:
        return 500
    if outcome.failed and not outcome.completed:
        return 500
    if outcome.failed:
        return 207
    return 200


def handler(event, context, pipeline: BatchPipeline | None = None, progress: ProgressService | None = None):
    """
    AWS Lambda handler - triggered by SQS or HTTP.

    Input payload:
    {
        "campaign_id": "3f9c...",
        "start_index": 0,       # optional, resume point or chunk start
        "row_count": 75         # optional, render one chunk only
    }
    """
    try:
        body = parse_body(event)
    except ValueError as e:
        return response(400, {"error": f"Invalid payload: {e}"})

    campaign_id = body.get("campaign_id") or body.get("campaignId")
    if not campaign_id or not isinstance(campaign_id, str):
        return response(400, {"error": "Missing 'campaign_id' field"})

    try:
        start_index = int(body.get("start_index", body.get("startIndex", 0)) or 0)
        row_count = body.get("row_count", body.get("batchSize"))
        row_count = int(row_count) if row_count is not None else None
    except (TypeError, ValueError):
        return response(400, {"error": "start_index and row_count must be integers"})

    try:
        if pipeline is None:
            pipeline, progress = build_pipeline()

        def pause_requested() -> bool:
            record = progress.get_progress(campaign_id) if progress else None
            return record is not None and record.status == "paused"

        logger.info(f"Processing campaign {campaign_id} from row {start_index}")
        outcome = pipeline.run_campaign_id(campaign_id, start_index, pause_requested, row_count)
        return response(status_code_for(outcome), outcome.to_dict())

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return response(500, {"error": str(e)})
    except Exception as e:
        logger.exception(f"Worker failed for campaign {campaign_id}: {e}")
        return response(500, {"error": str(e)})


# Local testing
if __name__ == "__main__":
    import sys

    configure_logging()

    if len(sys.argv) < 2:
        print("Usage: python -m pinforge.handlers.worker <campaign_id> [start_index] [row_count]")
        sys.exit(1)

    test_input = {"campaign_id": sys.argv[1]}
    if len(sys.argv) > 2:
        test_input["start_index"] = int(sys.argv[2])
    if len(sys.argv) > 3:
        test_input["row_count"] = int(sys.argv[3])

    result = handler({"body": json.dumps(test_input)}, None)
    print(f"Status: {result['statusCode']}")
    print(json.dumps(json.loads(result["body"]), indent=2))
