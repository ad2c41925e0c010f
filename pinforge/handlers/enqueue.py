"""AWS Lambda handler for HTTP to SQS enqueue of campaign chunks."""

import json
import logging

import boto3

from ..clients import build_cache
from ..config import EVENT_BATCH_ROWS, KV_REST_API_TOKEN, KV_REST_API_URL, QUEUE_URL
from ..services import ProgressService, RateLimiter, render_lock_key
from ..utils import configure_logging
from .events import parse_body, response

logger = logging.getLogger(__name__)


def chunk_messages(
    campaign_id: str,
    total_rows: int,
    start_index: int = 0,
    rows_per_chunk: int = EVENT_BATCH_ROWS,
) -> list[dict]:
    """One worker payload per slice of rows."""
    return [
        {"campaign_id": campaign_id, "start_index": start_index + offset, "row_count": rows_per_chunk}
        for offset in range(0, total_rows, rows_per_chunk)
    ]


def handler(
    event,
    context,
    sqs=None,
    rate_limiter: RateLimiter | None = None,
    progress: ProgressService | None = None,
    queue_url: str | None = None,
):
    """
    Validate a render request and queue it for the workers.

    Input payload:
    {
        "campaign_id": "3f9c...",
        "total_rows": 300,   # rows in the campaign
        "start_index": 0     # optional, resume point
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
        total_rows = int(body.get("total_rows", body.get("totalRows", 0)))
        start_index = int(body.get("start_index", 0) or 0)
    except (TypeError, ValueError):
        return response(400, {"error": "total_rows and start_index must be integers"})
    if total_rows <= 0:
        return response(400, {"error": "total_rows must be positive"})
    if not 0 <= start_index < total_rows:
        return response(400, {"error": "start_index must be within total_rows"})

    queue_url = queue_url or QUEUE_URL
    if not queue_url:
        return response(500, {"error": "QUEUE_URL is not configured"})

    if rate_limiter is None or progress is None:
        cache = build_cache(KV_REST_API_URL, KV_REST_API_TOKEN)
        rate_limiter = rate_limiter or RateLimiter(cache)
        progress = progress or ProgressService(cache)

    if not rate_limiter.check(render_lock_key(campaign_id)):
        logger.warning(f"Rate limit exceeded for campaign {campaign_id}")
        return response(429, {"error": "Rate limit exceeded. Please wait before generating more pins."})

    messages = chunk_messages(campaign_id, total_rows - start_index, start_index)
    logger.info(f"Queueing {len(messages)} chunks for {total_rows} rows of campaign {campaign_id}")

    try:
        if start_index:
            progress.set_progress(campaign_id, status="processing", next_index=start_index)
        else:
            progress.start(campaign_id, total_rows)
        sqs = sqs or boto3.client("sqs")
        message_ids = []
        for message in messages:
            sent = sqs.send_message(QueueUrl=queue_url, MessageBody=json.dumps(message))
            message_ids.append(sent["MessageId"])
    except Exception as e:
        logger.error(f"Failed to queue campaign {campaign_id}: {e}")
        progress.set_progress(campaign_id, status="failed")
        return response(500, {"error": f"Failed to queue render job: {e}"})

    return response(200, {
        "status": "queued",
        "campaign_id": campaign_id,
        "chunks": len(messages),
        "message_ids": message_ids,
    })


# Local testing
if __name__ == "__main__":
    import sys

    configure_logging()

    if len(sys.argv) < 3:
        print("Usage: python -m pinforge.handlers.enqueue <campaign_id> <total_rows>")
        sys.exit(1)

    event = {"body": json.dumps({"campaign_id": sys.argv[1], "total_rows": int(sys.argv[2])})}
    result = handler(event, None)
    print(f"Status: {result['statusCode']}")
    print(result["body"])
