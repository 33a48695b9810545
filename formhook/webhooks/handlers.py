"""Webhook request handling: payload -> extract -> validate -> persist.

Each request:
1. Decodes the body into a RawPayload (JSON, form fields, or query params)
2. Extracts a candidate submission (never fails)
3. Validates completeness (400 with a full per-field report on failure)
4. Persists once (500 with diagnostic detail on failure)
5. Returns 200 with the saved fields

Contract:
- No state is shared between requests; the pool is the only shared resource
- Nothing is retried; a store failure is terminal for that request
- Every request emits exactly one FORM_AUDIT log line
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException

from formhook.models import MissingFields, StoreError
from formhook.store import PersistenceGateway
from formhook.webhooks.extraction import Extraction, FieldExtractor
from formhook.webhooks.validation import Validator

logger = logging.getLogger(__name__)

_FORM_CONTENT_TYPES = {"application/x-www-form-urlencoded", "multipart/form-data"}


class HandlerState(str, Enum):
    """Request lifecycle states."""

    RECEIVED = "received"
    EXTRACTED = "extracted"
    VALIDATED = "validated"
    PERSISTED = "persisted"  # terminal, 200
    REJECTED = "rejected"  # terminal, 400
    PERSIST_FAILED = "persist_failed"  # terminal, 500


@dataclass(frozen=True)
class WebhookResponse:
    """Structured response produced by the pipeline."""

    status_code: int
    body: dict[str, Any]
    state: HandlerState


def _log_submission(extraction: Extraction, state: HandlerState, detail: str = "") -> None:
    """Audit log for submission handling."""
    logger.info(
        "FORM_AUDIT shape=%s status=%s date_defaulted=%s %s",
        extraction.shape.value,
        state.value,
        extraction.date_defaulted,
        detail,
    )


class RequestHandler:
    """Runs one RawPayload through the pipeline.  Synchronous; one store call."""

    def __init__(
        self,
        extractor: FieldExtractor,
        validator: Validator,
        gateway: PersistenceGateway,
    ):
        self.extractor = extractor
        self.validator = validator
        self.gateway = gateway

    def handle(self, raw: Any) -> WebhookResponse:
        logger.debug("%s: %r", HandlerState.RECEIVED.value, raw)
        extraction = self.extractor.extract(raw)
        candidate = extraction.candidate
        logger.debug("%s via %s: %r", HandlerState.EXTRACTED.value, extraction.shape.value, candidate)

        result = self.validator.validate(candidate)
        if isinstance(result, MissingFields):
            missing = result.to_wire()
            _log_submission(
                extraction,
                HandlerState.REJECTED,
                "missing=" + ",".join(k for k, v in missing.items() if v),
            )
            return WebhookResponse(
                status_code=400,
                body={
                    "error": "incomplete data",
                    "received": candidate.to_wire(),
                    "missingFields": missing,
                },
                state=HandlerState.REJECTED,
            )

        logger.debug("%s", HandlerState.VALIDATED.value)
        stored = self.gateway.persist(result)
        if isinstance(stored, StoreError):
            _log_submission(extraction, HandlerState.PERSIST_FAILED)
            return WebhookResponse(
                status_code=500,
                body={"error": "server error", "details": stored.message},
                state=HandlerState.PERSIST_FAILED,
            )

        _log_submission(extraction, HandlerState.PERSISTED, f"id={stored.id}")
        return WebhookResponse(
            status_code=200,
            body={"message": "saved", "data": result.to_wire()},
            state=HandlerState.PERSISTED,
        )


async def read_payload(request: Request) -> Any:
    """Decode the request into a RawPayload.

    JSON bodies are parsed (undecodable JSON becomes an empty payload), form
    and multipart bodies become a field mapping with uploads dropped, and an
    empty body falls back to the query string.  Query parameters fill gaps in
    a mapping body but never override it.
    """
    body = await request.body()
    if not body:
        return dict(request.query_params)

    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    payload: Any
    if content_type in _FORM_CONTENT_TYPES:
        try:
            form = await request.form()
        except (HTTPException, MultiPartException) as e:
            logger.info("Unparseable %s body, treating as empty: %s", content_type, e)
            payload = {}
        else:
            payload = {k: v for k, v in form.multi_items() if isinstance(v, str)}
    else:
        try:
            payload = json.loads(body)
        # ValueError covers JSONDecodeError, UnicodeDecodeError and oversized ints
        except (ValueError, RecursionError):
            logger.info("Undecodable %s body, treating as empty", content_type or "untyped")
            payload = {}

    if isinstance(payload, dict):
        for key, value in request.query_params.items():
            payload.setdefault(key, value)
    return payload


def register_webhook_routes(app: FastAPI) -> None:
    """Register the form webhook endpoint.

    The pipeline is taken from ``app.state.handler``, set up by the lifespan.
    """

    @app.post("/webhook")
    async def form_webhook(request: Request):
        """Receive a form submission."""
        payload = await read_payload(request)
        handler: RequestHandler = request.app.state.handler
        response = await run_in_threadpool(handler.handle, payload)
        return JSONResponse(response.body, status_code=response.status_code)
