"""Inbound Intercom webhook adapter.

Receives Intercom webhook callbacks, verifies the ``X-Hub-Signature``
HMAC-SHA1 header against the shared secret and hands each decoded payload to
the core EventProcessor. The endpoint does no delivery work itself.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from core.errors import StorageFailure
from core.processor import EventProcessor

LOGGER = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Hub-Signature"


def compute_signature(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha1).hexdigest()
    return f"sha1={digest}"


def verify_signature(secret: str, body: bytes, signature: Optional[str]) -> bool:
    if not signature:
        return False
    return hmac.compare_digest(compute_signature(secret, body), signature)


def create_webhook_app(
    processor: EventProcessor,
    secret: str,
    queue_depth: Optional[Callable[[], int]] = None,
) -> FastAPI:
    """Build the FastAPI app serving ``POST /webhook`` and ``GET /healthz``."""

    app = FastAPI(title="intergram webhook")

    @app.get("/healthz")
    def healthz() -> dict[str, object]:
        status: dict[str, object] = {"status": "ok"}
        if queue_depth is not None:
            status["queue_length"] = queue_depth()
        return status

    @app.post("/webhook")
    async def webhook(request: Request):  # type: ignore[no-untyped-def]
        body = await request.body()
        if not verify_signature(secret, body, request.headers.get(SIGNATURE_HEADER)):
            LOGGER.error("Rejected webhook with missing or invalid signature")
            return PlainTextResponse("Invalid signature", status_code=401)

        try:
            payload = json.loads(body)
        except ValueError:
            LOGGER.error("Rejected webhook with a non-JSON body")
            return PlainTextResponse("Invalid JSON", status_code=400)

        if isinstance(payload, dict):
            LOGGER.info("Webhook received: type=%s topic=%s", payload.get("type"), payload.get("topic"))
        try:
            result = processor.handle(payload)
        except StorageFailure:
            # Intercom retries non-2xx deliveries, which is what we want here.
            LOGGER.exception("Dedup store unavailable while accepting webhook")
            return PlainTextResponse("Storage unavailable", status_code=500)

        return JSONResponse({"result": result.value})

    return app
