# passgate/core/qr.py
"""
QR payload helpers. The sandbox responses are not consistent about where the
QR image lives, so the document is searched for the first known field that
holds a non-empty value.
"""
import base64
import logging
from io import BytesIO

import httpx
import qrcode

logger = logging.getLogger(__name__)

QR_IMAGE_FIELDS = ("qrCode", "qrcodeImage", "qrCodeImage", "qrcode", "qr_code", "image")
QR_LINK_FIELDS = ("authUri", "deepLink", "qrcodeUrl", "qrCodeUrl", "url")


def first_present(doc: dict, fields) -> str | None:
    for field in fields:
        value = doc.get(field)
        if isinstance(value, str) and value.strip():
            return value
    nested = doc.get("data")
    if isinstance(nested, dict):
        return first_present(nested, fields)
    return None


def render_qr_data_uri(text: str) -> str:
    img = qrcode.make(text)
    buf = BytesIO(); img.save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


def qrcode_url(response: httpx.Response, doc: dict, base_url: str) -> str | None:
    """Link to the upstream QR resource, from the Location header or ``qrcodeId``."""
    location = response.headers.get("location")
    qrcode_id = location.rstrip("/").split("/")[-1] if location else doc.get("qrcodeId")
    if not qrcode_id:
        return None
    return f"{base_url.rstrip('/')}/api/qrcode/{qrcode_id}"


def extract_qr(doc: dict) -> str | None:
    """
    Inline QR image from an upstream document. Falls back to rendering one
    from a wallet link when only the link is present.
    """
    image = first_present(doc, QR_IMAGE_FIELDS)
    if image:
        return image
    link = first_present(doc, QR_LINK_FIELDS)
    if link:
        logger.info("No inline QR image upstream, rendering one from link")
        return render_qr_data_uri(link)
    logger.warning("No QR payload in upstream response (keys: %s)", sorted(doc))
    return None
