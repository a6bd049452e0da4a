from __future__ import annotations

import json
import os
from typing import Any

import boto3
from botocore.exceptions import ClientError

_cache: dict[str, dict[str, Any]] = {}


def app_secret_id() -> str:
    return str(os.getenv("APP_SECRETS_ARN", "") or "").strip() or str(os.getenv("APP_SECRETS_NAME", "") or "").strip()


def load_app_secret_values(secret_id: str | None = None, client: Any | None = None) -> dict[str, Any]:
    """Return the JSON object stored in the app secret, cached per secret id.

    An unset secret id yields an empty dict; unreadable or non-JSON secrets raise RuntimeError.
    """
    key = app_secret_id() if secret_id is None else secret_id.strip()
    if not key:
        return {}
    if key in _cache:
        return _cache[key]

    secrets_client = client or boto3.client("secretsmanager")
    try:
        raw = secrets_client.get_secret_value(SecretId=key).get("SecretString")
    except ClientError as exc:
        raise RuntimeError(f"failed to read app secret from Secrets Manager: {exc}") from exc

    values: dict[str, Any] = {}
    if isinstance(raw, str) and raw.strip():
        try:
            parsed = json.loads(raw)
        except ValueError as exc:
            raise RuntimeError(f"invalid app secret JSON payload: {exc}") from exc
        if isinstance(parsed, dict):
            values = parsed
    _cache[key] = values
    return values
