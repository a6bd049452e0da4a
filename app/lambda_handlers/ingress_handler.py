from __future__ import annotations

import base64
import json
import os
from datetime import datetime, timedelta, timezone
from typing import Any

import boto3
from botocore.exceptions import ClientError

from app.lambda_handlers.app_secrets import load_app_secret_values
from whatsapp.event_ids import build_whatsapp_event_id
from whatsapp.events import BUSINESS_ACCOUNT_OBJECT, InboundEventError, iter_messages, iter_statuses
from whatsapp.signature import verify_whatsapp_signature

WHATSAPP_APP_SECRET = os.getenv("WHATSAPP_APP_SECRET", "")
WHATSAPP_VERIFY_TOKEN = os.getenv("WHATSAPP_VERIFY_TOKEN", "")
SQS_QUEUE_URL = os.getenv("SQS_QUEUE_URL", "")
EVENT_DEDUPE_TABLE = os.getenv("EVENT_DEDUPE_TABLE", "")
EVENT_DEDUPE_TTL_DAYS = int(os.getenv("EVENT_DEDUPE_TTL_DAYS", "7"))
WHATSAPP_WEBHOOK_PATH = os.getenv("WHATSAPP_WEBHOOK_PATH", "/webhook")
APP_SECRETS_ARN = os.getenv("APP_SECRETS_ARN", "")
APP_SECRETS_NAME = os.getenv("APP_SECRETS_NAME", "")

_clients: dict[str, Any] = {}


def _client(name: str) -> Any:
    if name not in _clients:
        _clients[name] = boto3.client(name)
    return _clients[name]


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    _ = context
    method = str(event.get("requestContext", {}).get("http", {}).get("method", "")).upper()
    path = str(event.get("rawPath", ""))
    if WHATSAPP_WEBHOOK_PATH and path and path != WHATSAPP_WEBHOOK_PATH:
        return _response(404, {"ok": False, "error": "not_found"})
    if method == "GET":
        return _verify_subscription(event)
    if method != "POST":
        return _response(405, {"ok": False, "error": "method_not_allowed"})
    if not SQS_QUEUE_URL:
        return _response(500, {"ok": False, "error": "SQS_QUEUE_URL is required"})

    body_bytes = _decode_body(event)
    app_secret = _resolve_secret("whatsapp_app_secret", WHATSAPP_APP_SECRET)
    if app_secret:
        signature = _get_header(event.get("headers", {}), "x-hub-signature-256")
        if not verify_whatsapp_signature(app_secret, body_bytes, signature):
            return _response(401, {"ok": False, "error": "invalid_signature"})

    try:
        payload = json.loads(body_bytes.decode("utf-8"))
    except Exception:
        return _response(400, {"ok": False, "error": "invalid_json"})
    if not isinstance(payload, dict):
        return _response(400, {"ok": False, "error": "payload_must_be_object"})
    if payload.get("object") != BUSINESS_ACCOUNT_OBJECT:
        return _response(200, {"ok": True, "enqueued": 0, "skipped": 0})

    try:
        statuses = list(iter_statuses(payload))
        messages = list(iter_messages(payload))
    except InboundEventError as exc:
        print(f"inbound-event-dropped reason={exc}")
        return _response(400, {"ok": False, "error": str(exc)})

    for status in statuses:
        print(f"status-update id={status.get('id', '')} status={status.get('status', '')}")

    enqueued = 0
    skipped = len(statuses)
    for message in messages:
        event_id = build_whatsapp_event_id(message)
        if not event_id:
            skipped += 1
            continue
        if not _mark_event(event_id):
            skipped += 1
            continue
        _enqueue_message(message=message, event_id=event_id)
        enqueued += 1

    return _response(200, {"ok": True, "enqueued": enqueued, "skipped": skipped})


def _verify_subscription(event: dict[str, Any]) -> dict[str, Any]:
    params = event.get("queryStringParameters") or {}
    mode = str(params.get("hub.mode", "") or "")
    token = str(params.get("hub.verify_token", "") or "")
    challenge = str(params.get("hub.challenge", "") or "")
    verify_token = _resolve_secret("whatsapp_verify_token", WHATSAPP_VERIFY_TOKEN)
    if mode and verify_token and token == verify_token:
        return {"statusCode": 200, "headers": {"content-type": "text/plain"}, "body": challenge}
    return {"statusCode": 403, "headers": {"content-type": "text/plain"}, "body": "Forbidden"}


def _decode_body(event: dict[str, Any]) -> bytes:
    body = event.get("body", "")
    if body is None:
        return b""
    if bool(event.get("isBase64Encoded", False)):
        return base64.b64decode(str(body))
    return str(body).encode("utf-8")


def _get_header(headers: Any, name: str) -> str | None:
    if not isinstance(headers, dict):
        return None
    needle = name.lower()
    for key, value in headers.items():
        if str(key).lower() == needle:
            return str(value)
    return None


def _mark_event(event_id: str) -> bool:
    if not EVENT_DEDUPE_TABLE:
        return True
    now = datetime.now(timezone.utc)
    expires_at = int((now + timedelta(days=max(1, EVENT_DEDUPE_TTL_DAYS))).timestamp())
    try:
        _client("dynamodb").put_item(
            TableName=EVENT_DEDUPE_TABLE,
            Item={
                "event_id": {"S": event_id},
                "received_at": {"S": now.isoformat()},
                "expires_at_epoch": {"N": str(expires_at)},
            },
            ConditionExpression="attribute_not_exists(event_id)",
        )
        return True
    except ClientError as exc:
        code = str(exc.response.get("Error", {}).get("Code", ""))
        if code == "ConditionalCheckFailedException":
            return False
        raise


def _resolve_secret(key: str, env_value: str) -> str:
    if env_value:
        return env_value
    secret_id = APP_SECRETS_ARN or APP_SECRETS_NAME
    if not secret_id:
        return ""
    return str(load_app_secret_values(secret_id, client=_client("secretsmanager")).get(key, "") or "")


def _enqueue_message(message: dict[str, Any], event_id: str) -> None:
    identity = str(message.get("from", "") or "").strip()
    envelope = {
        "event_id": event_id,
        "received_at": datetime.now(timezone.utc).isoformat(),
        "message": message,
    }
    # one FIFO group per sender keeps each conversation in arrival order
    _client("sqs").send_message(
        QueueUrl=SQS_QUEUE_URL,
        MessageBody=json.dumps(envelope, ensure_ascii=False),
        MessageGroupId=identity or "whatsapp-default",
        MessageDeduplicationId=event_id,
    )


def _response(status_code: int, payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {
            "content-type": "application/json; charset=utf-8",
        },
        "body": json.dumps(payload, ensure_ascii=False),
    }
