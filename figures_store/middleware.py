"""Middleware that assigns and propagates a request identifier.

Every incoming HTTP request receives a request identifier. The identifier
is read from the incoming ``X-Request-ID`` header when provided by the
client, or generated server-side (UUID4) otherwise. It is stored on
``request.state`` and in a context variable so code running downstream
(logging filters, the HTTP inventory client) can read it without passing
the value explicitly. The response echoes the id in ``X-Request-ID``.
"""

import contextvars
import logging
import uuid

from fastapi import Request

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")

logger = logging.getLogger("figures_store.access")


async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    token = REQUEST_ID_CTX.set(rid)
    try:
        response = await call_next(request)
        logger.info(
            "request handled",
            extra={"path": request.url.path, "method": request.method, "status": response.status_code},
        )
    finally:
        REQUEST_ID_CTX.reset(token)
    response.headers["X-Request-ID"] = rid
    return response
