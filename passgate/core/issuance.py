# passgate/core/issuance.py
"""
Issuance proxy: validates a visitor-pass request, forwards it to the issuer
sandbox and relays the QR payload it returns. Holds no state; adding the
whitelist entry is left to the caller once this succeeds.
"""
import logging
import re
from datetime import date, timedelta

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from passgate.core.config import settings
from passgate.core.errors import UpstreamError
from passgate.core.ids import new_transaction_id
from passgate.core.qr import extract_qr, first_present, qrcode_url
from passgate.core.upstream import UpstreamClient, json_document, raise_for_upstream

logger = logging.getLogger(__name__)

_ID_NUMBER_RE = re.compile(r"^[A-Z]\d{9}$")
_ROC_DATE_RE = re.compile(r"^\d{7}$")


def _parse_iso_date(value: str) -> date:
    if not re.fullmatch(r"\d{4}-\d{2}-\d{2}", value):
        raise ValueError("must be YYYY-MM-DD")
    return date.fromisoformat(value)


class CredentialRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    name: str = Field(min_length=1)
    # ROC calendar date, YYYMMDD (e.g. 0900101 for 2001-01-01)
    birth_date: str = Field(validation_alias=AliasChoices("birth_date", "roc_birthday", "roc_brithday"))
    id_number: str
    pass_status: str = Field(min_length=1)
    pass_id: str = Field(min_length=1)
    issueDate: str
    expiryDate: str

    @field_validator("id_number")
    @classmethod
    def validate_id_number(cls, v):
        if not _ID_NUMBER_RE.match(v):
            raise ValueError("must be one uppercase letter followed by 9 digits")
        return v

    @field_validator("birth_date")
    @classmethod
    def validate_birth_date(cls, v):
        if not _ROC_DATE_RE.match(v):
            raise ValueError("must be a 7-digit ROC date (YYYMMDD)")
        month, day = int(v[3:5]), int(v[5:7])
        if not (1 <= month <= 12 and 1 <= day <= 31):
            raise ValueError("month or day out of range")
        return v

    @field_validator("issueDate", "expiryDate")
    @classmethod
    def validate_dates(cls, v):
        _parse_iso_date(v)
        return v

    @model_validator(mode="after")
    def validate_window(self):
        issued = _parse_iso_date(self.issueDate)
        expires = _parse_iso_date(self.expiryDate)
        if expires < issued:
            raise ValueError("expiryDate cannot be earlier than issueDate")
        if expires - issued > timedelta(days=settings.max_validity_days):
            raise ValueError(f"validity cannot exceed {settings.max_validity_days} days")
        return self


def build_issuer_payload(req: CredentialRequest) -> dict:
    return {
        "vcUid": settings.vc_template_code,
        "issuanceDate": req.issueDate.replace("-", ""),
        "expiredDate": req.expiryDate.replace("-", ""),
        "fields": [
            {"ename": "name", "content": req.name},
            {"ename": "roc_birthday", "content": req.birth_date},
            {"ename": "id_number", "content": req.id_number},
            {"ename": "pass_status", "content": req.pass_status},
            {"ename": "pass_id", "content": req.pass_id},
            {"ename": "issueDate", "content": req.issueDate},
            {"ename": "expiryDate", "content": req.expiryDate},
        ],
    }


async def issue_credential(req: CredentialRequest, upstream: UpstreamClient) -> dict:
    logger.info("Issuing credential pass_id=%s status=%s", req.pass_id, req.pass_status)
    response = await upstream.post_issuer(build_issuer_payload(req))
    raise_for_upstream(response, "Issuer")

    doc = json_document(response)
    qr = extract_qr(doc)
    qr_url = qrcode_url(response, doc, upstream.settings.issuer_api_url)
    if not qr and not qr_url:
        raise UpstreamError("Issuer API returned no QR code")

    transaction_id = first_present(doc, ("transactionId", "qrcodeId"))
    if not transaction_id:
        transaction_id = new_transaction_id()
        logger.info("Issuer returned no transaction id, using %s", transaction_id)

    logger.info("Credential issued pass_id=%s transaction=%s", req.pass_id, transaction_id)
    return {
        "qrCode": qr,
        "qrCodeUrl": qr_url,
        "transactionId": transaction_id,
        "vcUid": settings.vc_template_code,
    }
