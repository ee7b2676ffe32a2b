"""Idempotency utilities for safely handling duplicate order submissions.

This module stores and retrieves idempotency keys to de-duplicate client
requests. It supports creating an idempotent record, detecting conflicts
when the same key is used with a different payload, and finalizing a stored
response so subsequent retries can short-circuit.
"""

import hashlib
import json
from dataclasses import dataclass
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from .repo import IdempotencyKey, get_session


@dataclass(frozen=True)
class StoredResponse:
    """Response recorded for an idempotency key (status 0 while in flight)."""

    status_code: int
    body: Optional[dict]


def canonical_hash(payload: dict) -> str:
    """Compute a stable SHA-256 hash for a JSON-serializable payload.

    The payload is serialized with sorted keys and compact separators to
    ensure a deterministic representation before hashing.
    """
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


def get_or_create_idempotent(engine: Engine, key: str, payload: dict) -> Tuple[bool, StoredResponse]:
    """Get-or-create an idempotency record for the given key and payload.

    Behavior:
        - New key: create a record and return ``(False, StoredResponse(0, None))``;
          the caller processes the request and calls :func:`finalize`.
        - Known key, same payload: return ``(True, stored)`` for replay.
        - Known key, different payload: raise ``ValueError("IDEMPOTENCY_CONFLICT")``.

    Args:
        engine: Engine holding the ``idempotency_keys`` table.
        key: Client-provided idempotency key.
        payload: Request payload used to compute the request hash.

    Raises:
        ValueError: If the key exists but the payload hash differs.
    """
    h = canonical_hash(payload)

    with get_session(engine) as s:
        try:
            s.add(IdempotencyKey(key=key, request_hash=h, response_status=0))
            s.commit()
            return False, StoredResponse(0, None)
        except IntegrityError:
            s.rollback()

        # Already exists: lock and verify hash
        rec = s.execute(
            select(IdempotencyKey).where(IdempotencyKey.key == key).with_for_update()
        ).scalars().one()
        if rec.request_hash != h:
            raise ValueError("IDEMPOTENCY_CONFLICT")
        return True, StoredResponse(rec.response_status, rec.response_body)


def finalize(engine: Engine, key: str, status_code: int, body: dict) -> None:
    """Persist the final response for an idempotent request.

    Subsequent retries return this stored response without re-running side
    effects.
    """
    with get_session(engine) as s:
        rec = s.get(IdempotencyKey, key)
        if rec is None:
            return
        rec.response_status = status_code
        rec.response_body = body
        s.commit()


def discard(engine: Engine, key: str) -> None:
    """Drop an in-flight record so the key can be retried from scratch.

    Records that already hold a final response are left alone.
    """
    with get_session(engine) as s:
        rec = s.get(IdempotencyKey, key)
        if rec is None or rec.response_status:
            return
        s.delete(rec)
        s.commit()
