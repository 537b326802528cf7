"""
api.py - FastAPI HTTP layer for statement reconciliation.

Endpoints:
  - POST /reconcile  (multipart: statement file + bills JSON)
  - GET  /health

No matching logic lives here; errors from reconcile.py are mapped to HTTP
status codes. Confirming a match (marking the bill paid, recording the
payment) belongs to the portal, not to this service.
"""

from __future__ import annotations

import json
from typing import Any, Optional

import uvicorn
from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

import config
from errors import FileFormatError, NoPendingBillsError, NoTransactionsFoundError, ParseError
from explain import format_result_json
from logging_config import get_logger, setup_logging
from models import Bill
from reconcile import parse_bills, reconcile_statement

logger = get_logger("reconcile-api")

app = FastAPI(
    title="Statement Reconciliation API",
    version="1.0.0",
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)

# The portal front-end is served from another origin.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _bills_from_form(raw: str) -> list[Bill]:
    """Parse the `bills` form field (JSON list or {"bills": [...]})."""
    try:
        payload: Any = json.loads(raw or "[]")
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=400, detail=f"bills is not valid JSON: {exc}") from exc

    if isinstance(payload, dict):
        payload = payload.get("bills", [])
    if not isinstance(payload, list):
        raise HTTPException(status_code=400, detail="bills must be a JSON list of bills.")

    try:
        return parse_bills(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid bill data: {exc.errors()}") from exc


def _statuses_from_form(raw: Optional[str]) -> Optional[list[str]]:
    if not raw:
        return None
    return [part.strip() for part in raw.split(",") if part.strip()] or None


@app.get("/health")
def health() -> dict[str, str]:
    """Service health check."""
    return {"status": "ok"}


@app.post("/reconcile")
async def reconcile_upload(
    statement: UploadFile = File(...),
    bills: str = Form(...),
    password: Optional[str] = Form(default=None),
    strategy: Optional[str] = Form(default=None),
    year: Optional[int] = Form(default=None),
    statuses: Optional[str] = Form(default=None),
) -> dict[str, Any]:
    """Reconcile one uploaded statement against the supplied bills."""
    bill_list = _bills_from_form(bills)

    try:
        data = await statement.read()
    finally:
        await statement.close()

    logger.info(
        "api_reconcile | file=%s | content_type=%s | bytes=%s | bills=%s",
        statement.filename,
        statement.content_type,
        len(data),
        len(bill_list),
    )

    try:
        result = reconcile_statement(
            data,
            statement.filename,
            bill_list,
            content_type=statement.content_type,
            password=password,
            strategy=strategy,
            year=year,
            statuses=_statuses_from_form(statuses),
        )
    except FileFormatError as exc:
        raise HTTPException(status_code=415, detail=str(exc)) from exc
    except (ParseError, NoTransactionsFoundError, NoPendingBillsError) as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return format_result_json(result)


if __name__ == "__main__":
    setup_logging(level=config.LOG_LEVEL, json_format=config.LOG_JSON)
    uvicorn.run("api:app", host="0.0.0.0", port=config.PORT, reload=False)
