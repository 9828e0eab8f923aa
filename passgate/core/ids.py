# passgate/core/ids.py
from __future__ import annotations

import logging
import re
import secrets
import uuid
from collections.abc import Container
from datetime import datetime, timezone

from passgate.core.config import settings

logger = logging.getLogger(__name__)

_TRANSACTION_ID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

PASS_ID_ATTEMPTS = 20


def new_transaction_id() -> str:
    """36-char UUIDv4 string; uuid4 draws from os.urandom."""
    return str(uuid.uuid4())


def is_transaction_id(value: str) -> bool:
    return bool(value) and _TRANSACTION_ID_RE.match(value) is not None


def new_record_id() -> str:
    return uuid.uuid4().hex


def generate_pass_id(taken: Container[str] = (), now: datetime | None = None) -> str:
    """
    Business pass identifier: <prefix><YYYYMMDD><6 random digits>,
    e.g. ACC20251104000001.

    Candidates found in ``taken`` are discarded and redrawn. After
    PASS_ID_ATTEMPTS collisions the last candidate is returned anyway;
    uniqueness here is best-effort, the store does not enforce it.
    """
    now = now or datetime.now(timezone.utc)
    stamp = now.strftime("%Y%m%d")
    candidate = ""
    for _ in range(PASS_ID_ATTEMPTS):
        candidate = f"{settings.pass_id_prefix}{stamp}{secrets.randbelow(1_000_000):06d}"
        if candidate not in taken:
            return candidate
        logger.warning("pass_id collision on %s, regenerating", candidate)
    return candidate
