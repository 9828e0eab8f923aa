# passgate/api/verifier.py
from fastapi import APIRouter, Depends

from passgate.core.errors import InvalidRequest
from passgate.core.ids import is_transaction_id
from passgate.core.upstream import UpstreamClient, get_upstream
from passgate.core.verification import COMPLETED, FAILED, poll_verification, start_verification
from passgate.store.session import get_store
from passgate.store.whitelist import WhitelistStore

router = APIRouter()


@router.post("/generate-verification-qr")
async def generate_verification_qr(upstream: UpstreamClient = Depends(get_upstream)):
    session = await start_verification(upstream)
    return {
        "success": True,
        "qrCode": session.qr_code,
        "qrCodeUrl": session.qr_code_url,
        "transactionId": session.transaction_id,
        "ref": session.ref,
        "message": "Verification QR code created",
    }


@router.get("/verification-result/{transaction_id}")
async def verification_result(
    transaction_id: str,
    upstream: UpstreamClient = Depends(get_upstream),
    store: WhitelistStore = Depends(get_store),
):
    if not is_transaction_id(transaction_id):
        raise InvalidRequest("Malformed transaction id", status=FAILED)

    outcome = await poll_verification(transaction_id, upstream, store)
    body = {"success": True, "status": outcome.status, "message": outcome.message}
    if outcome.status == COMPLETED:
        body["data"] = outcome.claims
    return body
