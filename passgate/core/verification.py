# passgate/core/verification.py
"""
Verification orchestrator.

start_verification() opens a session on the verifier sandbox. The caller
then polls poll_verification() with the transaction id; each poll is one
upstream request plus, once a credential has been presented, a check of
the presented claims against the whitelist.

Whitelist checks run in a fixed order (existence, expiry, name, status)
and only the first failure is reported.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from starlette.concurrency import run_in_threadpool

from passgate.core.config import settings
from passgate.core.errors import UpstreamError
from passgate.core.ids import new_transaction_id
from passgate.core.qr import extract_qr, qrcode_url
from passgate.core.upstream import UpstreamClient, json_document, raise_for_upstream
from passgate.store.models import PassRecord
from passgate.store.whitelist import WhitelistStore

logger = logging.getLogger(__name__)

PENDING = "pending"
COMPLETED = "completed"
FAILED = "failed"

MSG_NOT_IN_WHITELIST = "Pass ID is not in the whitelist or has expired"
MSG_EXPIRED = "Pass has expired"
MSG_NAME_MISMATCH = "Name mismatch"
MSG_STATUS_MISMATCH = "Pass status mismatch"
MSG_VERIFIED = "Verification passed"
MSG_PENDING = "Waiting for the visitor to present a credential"
MSG_SESSION_NOT_FOUND = "Verification session not found"
MSG_NO_CLAIMS = "Verification completed without any credential claims"

_CLAIM_NAME_KEYS = ("ename", "key", "name")
_CLAIM_VALUE_KEYS = ("value", "content")


@dataclass
class VerificationSession:
    transaction_id: str
    ref: str
    created_at: datetime
    qr_code: str | None = None
    qr_code_url: str | None = None
    status: str = PENDING


@dataclass
class Outcome:
    status: str
    message: str
    claims: dict = field(default_factory=dict)
    record: PassRecord | None = None

    @property
    def ok(self) -> bool:
        return self.status == COMPLETED


# --- claims ----------------------------------------------------------------

def _is_claim_object(node: dict) -> bool:
    if "ename" in node:
        return True
    return any(k in node for k in ("key", "name")) and any(k in node for k in _CLAIM_VALUE_KEYS)


def _collect(node, claims: dict, plain: bool) -> None:
    """
    One walk over the document. With ``plain`` False only claim objects are
    taken; with ``plain`` True only scalar values of wrapper dicts are.
    """
    if isinstance(node, list):
        for item in node:
            _collect(item, claims, plain)
    elif isinstance(node, dict):
        if _is_claim_object(node):
            if not plain:
                name = next(node[k] for k in _CLAIM_NAME_KEYS if k in node)
                value = next((node[k] for k in _CLAIM_VALUE_KEYS if k in node), None)
                claims.setdefault(str(name), value)
            return
        for key, value in node.items():
            if isinstance(value, (list, dict)):
                _collect(value, claims, plain)
            elif plain and value is not None:
                claims.setdefault(key, value)


def extract_claims(doc: dict) -> dict:
    """
    Flatten the claims of a verifier result into one name -> value dict.

    Accepts a flat mapping under ``data``, a list of ``{ename, value}``
    objects, or such lists nested under ``claims``/``credentials``.
    Claim objects take precedence over plain values of the wrappers around
    them (a credential's ``name`` is not the holder's ``name``).
    """
    for key in ("data", "claims", "credentials"):
        source = doc.get(key)
        if source:
            claims: dict = {}
            _collect(source, claims, plain=False)
            _collect(source, claims, plain=True)
            return claims
    return {}


# --- whitelist reconciliation ---------------------------------------------

def reconcile(claims: dict, record: PassRecord | None, now: datetime) -> Outcome:
    if record is None:
        return Outcome(FAILED, MSG_NOT_IN_WHITELIST, claims)
    if record.is_expired(now):
        return Outcome(FAILED, MSG_EXPIRED, claims, record)
    if claims.get("name") != record.name:
        return Outcome(FAILED, MSG_NAME_MISMATCH, claims, record)
    if claims.get("pass_status") != record.pass_status:
        return Outcome(FAILED, MSG_STATUS_MISMATCH, claims, record)
    return Outcome(COMPLETED, MSG_VERIFIED, claims, record)


def check_against_whitelist(store: WhitelistStore, claims: dict, now: datetime | None = None) -> Outcome:
    now = now or datetime.now(timezone.utc)
    store.sweep_expired(now)
    pass_id = claims.get("pass_id")
    record = store.find_by_pass_id_and_status(pass_id) if pass_id else None
    outcome = reconcile(claims, record, now)
    logger.info("Whitelist check pass_id=%s -> %s (%s)", pass_id, outcome.status, outcome.message)
    return outcome


# --- upstream session ------------------------------------------------------

async def start_verification(upstream: UpstreamClient) -> VerificationSession:
    transaction_id = new_transaction_id()
    ref = settings.vp_ref
    response = await upstream.post_verifier_qrcode({"transactionId": transaction_id, "ref": ref})
    raise_for_upstream(response, "Verifier")

    doc = json_document(response)
    echoed = doc.get("transactionId")
    if echoed and echoed != transaction_id:
        logger.warning("Verifier echoed transaction %s for %s", echoed, transaction_id)

    session = VerificationSession(
        transaction_id=transaction_id,
        ref=ref,
        created_at=datetime.now(timezone.utc),
        qr_code=extract_qr(doc),
        qr_code_url=qrcode_url(response, doc, upstream.settings.verifier_api_url),
    )
    if not session.qr_code and not session.qr_code_url:
        raise UpstreamError("Verifier API returned no QR code")
    logger.info("Verification session started: %s", transaction_id)
    return session


async def poll_verification(
    transaction_id: str,
    upstream: UpstreamClient,
    store: WhitelistStore,
    now: datetime | None = None,
) -> Outcome:
    response = await upstream.get_verifier_result(transaction_id)
    if response.status_code == 204:
        return Outcome(PENDING, MSG_PENDING)
    if response.status_code == 404:
        return Outcome(FAILED, MSG_SESSION_NOT_FOUND)
    raise_for_upstream(response, "Verifier")

    doc = json_document(response)
    status = str(doc.get("status") or "").lower()
    verify_result = doc.get("verifyResult")

    if status == FAILED or verify_result is False:
        message = doc.get("message") or doc.get("resultDescription") or "Credential verification failed"
        logger.info("Verifier reported failure for %s: %s", transaction_id, message)
        return Outcome(FAILED, message)

    if status == COMPLETED or verify_result is True:
        claims = extract_claims(doc)
        if not claims:
            return Outcome(FAILED, MSG_NO_CLAIMS)
        # Whitelist access does file I/O under the store lock
        return await run_in_threadpool(check_against_whitelist, store, claims, now)

    if doc and status != PENDING:
        logger.debug("Unrecognised verifier result for %s: %s", transaction_id, sorted(doc))
    return Outcome(PENDING, MSG_PENDING)
