# passgate/api/whitelist.py
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from passgate.core.verification import check_against_whitelist
from passgate.store.models import PassRecord, PassRecordIn
from passgate.store.session import get_store
from passgate.store.whitelist import WhitelistStore, merge

router = APIRouter()


@router.post("/whitelist")
def add_entry(body: PassRecordIn, store: WhitelistStore = Depends(get_store)):
    record = store.insert(body)
    return {"success": True, "data": record.model_dump()}


@router.get("/whitelist")
def list_entries(store: WhitelistStore = Depends(get_store)):
    return {"success": True, "data": [r.model_dump() for r in store.list_active()]}


@router.delete("/whitelist/{record_id}")
def remove_entry(record_id: str, store: WhitelistStore = Depends(get_store)):
    record = store.remove(record_id)
    return {
        "success": True,
        "data": record.model_dump(),
        "message": f"Access revoked for {record.name}",
    }


class MergeInput(BaseModel):
    local: list[PassRecord] = Field(default_factory=list)


@router.post("/whitelist/merge")
def merge_entries(body: MergeInput, store: WhitelistStore = Depends(get_store)):
    merged = merge(body.local, store.list_active())
    return {"success": True, "data": [r.model_dump() for r in merged]}


class VerifyWhitelistInput(BaseModel):
    pass_id: str = Field(min_length=1)
    name: str
    pass_status: str


@router.post("/verify-whitelist")
def verify_whitelist(body: VerifyWhitelistInput, store: WhitelistStore = Depends(get_store)):
    outcome = check_against_whitelist(store, body.model_dump())
    if not outcome.ok:
        return {"success": False, "message": outcome.message}
    return {"success": True, "message": outcome.message, "data": outcome.record.model_dump()}
