from __future__ import annotations

import os
from typing import Any

from fastapi import FastAPI, Header, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, PlainTextResponse

from app.config import load_config
from whatsapp.webhook_handler import WhatsAppWebhookHandler

DEFAULT_CONFIG_PATH = "config.yaml"

CONFIG_PATH = os.getenv("BOT_CONFIG_PATH", DEFAULT_CONFIG_PATH)
CONFIG = load_config(CONFIG_PATH)
HANDLER = WhatsAppWebhookHandler(CONFIG)

app = FastAPI(title="Innova WhatsApp Bot", version="0.1.0")
WEBHOOK_PATH = str(CONFIG.get("whatsapp", {}).get("webhook_path", "/webhook"))


@app.get("/healthz")
async def healthz() -> dict[str, Any]:
    whatsapp_conf = CONFIG.get("whatsapp", {})
    return {
        "ok": True,
        "apiVersion": whatsapp_conf.get("api_version"),
        "hasAccessToken": bool(whatsapp_conf.get("access_token")),
        "hasPhoneNumberId": bool(whatsapp_conf.get("phone_number_id")),
    }


@app.get(WEBHOOK_PATH)
async def verify_webhook(
    hub_mode: str | None = Query(default=None, alias="hub.mode"),
    hub_verify_token: str | None = Query(default=None, alias="hub.verify_token"),
    hub_challenge: str | None = Query(default=None, alias="hub.challenge"),
) -> PlainTextResponse:
    status_code, body = HANDLER.verify_subscription(hub_mode, hub_verify_token, hub_challenge)
    return PlainTextResponse(status_code=status_code, content=body)


@app.post(WEBHOOK_PATH)
async def whatsapp_webhook(
    request: Request,
    x_hub_signature_256: str | None = Header(default=None),
) -> JSONResponse:
    body = await request.body()
    # transitions hold per-identity locks and sleep between message parts
    status_code, payload = await run_in_threadpool(HANDLER.handle, body, x_hub_signature_256)
    return JSONResponse(status_code=status_code, content=payload)


@app.get("/admin/applications")
async def list_applications(kind: str | None = None) -> JSONResponse:
    try:
        rows = await run_in_threadpool(HANDLER.list_applications, kind)
    except ValueError:
        return JSONResponse(status_code=400, content={"error": "invalid_kind", "message": f"unknown kind: {kind}"})
    except Exception as exc:  # noqa: BLE001
        print(f"admin-applications-failed error={exc}")
        return JSONResponse(status_code=500, content={"error": "db_error", "message": str(exc)})
    return JSONResponse(content=rows)
