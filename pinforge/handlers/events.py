"""Lambda event parsing shared by the handlers."""

import base64
import json
from typing import Any


def parse_body(event: dict[str, Any]) -> dict[str, Any]:
    """
    Request payload from an SQS record, an HTTP (API Gateway / function URL)
    event, or a direct invocation with the payload as the event itself.

    Raises:
        ValueError: the body is not a JSON object
    """
    if "Records" in event:
        body = event["Records"][0]["body"]
    elif "body" in event:
        body = event.get("body") or "{}"
        if event.get("isBase64Encoded"):
            body = base64.b64decode(body).decode("utf-8")
    else:
        return dict(event)

    payload = json.loads(body) if isinstance(body, str) else body
    if not isinstance(payload, dict):
        raise ValueError("Request body must be a JSON object")
    return payload


def response(status_code: int, payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(payload),
    }
