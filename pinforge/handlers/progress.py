"""AWS Lambda handler for campaign progress polling."""

import json
import logging

from ..clients import build_cache
from ..config import KV_REST_API_TOKEN, KV_REST_API_URL
from ..services import ProgressService
from ..utils import configure_logging
from .events import parse_body, response

logger = logging.getLogger(__name__)


def handler(event, context, progress: ProgressService | None = None):
    """GET /campaign-progress/{campaign_id} -> progress record, or 404."""
    params = {**(event.get("queryStringParameters") or {}), **(event.get("pathParameters") or {})}
    campaign_id = params.get("campaign_id") or params.get("campaignId")
    if not campaign_id and "body" in event:
        try:
            campaign_id = parse_body(event).get("campaign_id")
        except ValueError:
            campaign_id = None
    if not campaign_id:
        return response(400, {"error": "Campaign ID required"})

    progress = progress or ProgressService(build_cache(KV_REST_API_URL, KV_REST_API_TOKEN))
    record = progress.get_progress(campaign_id)
    if record is None:
        return response(404, {"campaignId": campaign_id, "error": "No progress available"})
    return response(200, record.to_dict())


# Local testing
if __name__ == "__main__":
    import sys

    configure_logging()

    if len(sys.argv) < 2:
        print("Usage: python -m pinforge.handlers.progress <campaign_id>")
        sys.exit(1)

    result = handler({"pathParameters": {"campaign_id": sys.argv[1]}}, None)
    print(f"Status: {result['statusCode']}")
    print(json.dumps(json.loads(result["body"]), indent=2))
