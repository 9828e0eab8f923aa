# passgate/api/issuer.py
from fastapi import APIRouter, Depends

from passgate.core.ids import generate_pass_id
from passgate.core.issuance import CredentialRequest, issue_credential
from passgate.core.upstream import UpstreamClient, get_upstream
from passgate.store.session import get_store
from passgate.store.whitelist import WhitelistStore

router = APIRouter()


@router.post("/issue-credential")
async def issue(body: CredentialRequest, upstream: UpstreamClient = Depends(get_upstream)):
    # Whitelist insertion is the caller's job, and only after this succeeds
    issued = await issue_credential(body, upstream)
    return {"success": True, **issued, "message": "Credential issued"}


@router.get("/pass-id")
def new_pass_id(store: WhitelistStore = Depends(get_store)):
    return {"success": True, "pass_id": generate_pass_id(store.pass_ids())}
