"""Order-submission API built with FastAPI.

This module exposes the single order endpoint and a health check. The view
is kept small: it parses the body with Pydantic, delegates to
``FulfillmentService``, maps domain errors to HTTP statuses and returns the
order total.

Idempotency: when an ``Idempotency-Key`` header is provided, the first
request is processed and its response stored. Retries with the same payload
replay the stored response (``Idempotent-Replay: true``); reusing the key
with a different payload returns HTTP 409. A request cancelled before it
finishes frees its key unless the order was already persisted.
"""

import asyncio
import logging

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.engine import Engine

from .config import get_settings
from .domain import Fulfillment, FulfillmentStatus
from .errors import (
    FigureInvalid,
    InsufficientStock,
    InvalidRequest,
    OrderError,
    Unavailable,
    UnknownFigureType,
    UpstreamError,
)
from .fulfillment import FulfillmentService
from .idempotency import discard, finalize, get_or_create_idempotent
from .logging_filters import configure_logging
from .middleware import add_request_id
from .pricing import check_markup_table
from .providers import get_engine, get_fulfillment_service
from .schemas import CartIn, OrderTotalOut

logger = logging.getLogger(__name__)

app = FastAPI(title="Figures Store")
app.middleware("http")(add_request_id)

STATUS_BY_ERROR = {
    InvalidRequest: 400,
    FigureInvalid: 400,
    Unavailable: 422,
    InsufficientStock: 422,
    UnknownFigureType: 500,
}


def status_for(exc: OrderError) -> int:
    for cls, code in STATUS_BY_ERROR.items():
        if isinstance(exc, cls):
            return code
    return 400


@app.on_event("startup")
def _startup():
    settings = get_settings()
    configure_logging(settings.log_level)
    check_markup_table()
    get_engine()


@app.get("/health")
def health():
    """Liveness/health check endpoint."""
    return {"ok": True}


@app.post("/order")
async def submit_order(
    request: Request,
    service: FulfillmentService = Depends(get_fulfillment_service),
    engine: Engine = Depends(get_engine),
):
    """Fulfill a cart and return its total.

    Returns:
        JSONResponse: One of the following responses.
        - 200 with {"total": "<amount>"} when the order is completed.
        - 200 (or the stored status) with the stored body when the same
          idempotency key and payload are retried.
        - 409 with {detail: "IDEMPOTENCY_CONFLICT"} when the same key is
          reused with a different payload, or IDEMPOTENCY_IN_PROGRESS while
          the first request is still running.
        - 400 for malformed bodies, non-positive counts and invalid figures.
        - 422 with {detail: "UNAVAILABLE" | "INSUFFICIENT_STOCK"} when stock
          does not cover the cart.
        - 500 with {detail: "UNKNOWN_FIGURE_TYPE"} for unknown figure types.
        - 503 when the inventory or order store is unavailable.
    """
    idem_key = request.headers.get("Idempotency-Key")

    # 1) Parse and validate
    try:
        payload = await request.json()
        dto = CartIn.model_validate(payload)
    except (ValueError, ValidationError) as e:
        return JSONResponse({"detail": "INVALID_REQUEST", "errors": str(e)}, status_code=400)

    # 2) Idempotency get-or-create
    if idem_key:
        try:
            existing, stored = get_or_create_idempotent(engine, idem_key, payload)
        except ValueError:
            return JSONResponse({"detail": "IDEMPOTENCY_CONFLICT"}, status_code=409)
        if existing:
            if not stored.status_code:
                return JSONResponse({"detail": "IDEMPOTENCY_IN_PROGRESS"}, status_code=409)
            resp = JSONResponse(stored.body, status_code=stored.status_code)
            resp.headers["Idempotent-Replay"] = "true"
            return resp

    # 3) Domain
    job = Fulfillment(cart=dto.to_domain())
    try:
        total = await service.fulfill(job)
        status_code, body = 200, OrderTotalOut(total=total).model_dump(mode="json")
    except OrderError as e:
        status_code, body = status_for(e), {"detail": e.code}
        logger.info("order rejected", extra={"code": e.code, "reason": e.detail, "state": job.status.value})
    except UpstreamError as e:
        status_code, body = 503, {"detail": e.code}
        logger.warning("order failed", extra={"code": e.code, "reason": e.detail, "state": job.status.value})
    except asyncio.CancelledError:
        if idem_key:
            _settle_abandoned(engine, idem_key, job)
        raise
    except Exception:
        logger.exception("order failed unexpectedly", extra={"state": job.status.value})
        status_code, body = 500, {"detail": "INTERNAL_ERROR"}

    if idem_key:
        finalize(engine, idem_key, status_code, body)
    return JSONResponse(body, status_code=status_code)


def _settle_abandoned(engine: Engine, key: str, job: Fulfillment) -> None:
    # The client went away mid-fulfillment. A persisted order is recorded so
    # a retry replays it; anything else was compensated and may run again.
    if job.status in (FulfillmentStatus.PERSISTED, FulfillmentStatus.COMPLETED) and job.total is not None:
        finalize(engine, key, 200, OrderTotalOut(total=job.total).model_dump(mode="json"))
    else:
        discard(engine, key)
    logger.warning("order request cancelled", extra={"state": job.status.value})
