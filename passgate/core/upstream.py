# passgate/core/upstream.py
"""
Thin httpx wrapper around the issuer and verifier sandboxes.

Every call carries ``settings.upstream_timeout``. Transport failures and
timeouts become UpstreamError/UpstreamTimeout; status handling is left to
the caller, which gets the raw httpx.Response back.
"""
import logging

import httpx

from passgate.core.config import Settings, settings as default_settings
from passgate.core.errors import UpstreamError, UpstreamTimeout

logger = logging.getLogger(__name__)


class UpstreamClient:
    def __init__(self, settings: Settings = default_settings, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.settings.upstream_timeout,
            transport=self._transport,
        )

    @staticmethod
    def _headers(token: str) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if token:
            headers["Access-Token"] = token
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def request(self, method: str, url: str, token: str, **kwargs) -> httpx.Response:
        try:
            async with self._client() as client:
                response = await client.request(method, url, headers=self._headers(token), **kwargs)
        except httpx.TimeoutException as e:
            logger.warning("Upstream timeout: %s %s", method, url)
            raise UpstreamTimeout(f"Upstream timed out: {url}") from e
        except httpx.HTTPError as e:
            logger.warning("Upstream unreachable: %s %s (%s)", method, url, e)
            raise UpstreamError(f"Upstream unreachable: {e}") from e
        logger.info("Upstream %s %s -> %s", method, url, response.status_code)
        return response

    async def post_issuer(self, payload: dict) -> httpx.Response:
        url = self.settings.issuer_api_url.rstrip("/") + self.settings.issuer_qrcode_path
        return await self.request("POST", url, self.settings.issuer_access_token, json=payload)

    async def post_verifier_qrcode(self, payload: dict) -> httpx.Response:
        url = self.settings.verifier_api_url.rstrip("/") + self.settings.verifier_qrcode_path
        return await self.request("POST", url, self.settings.verifier_access_token, json=payload)

    async def get_verifier_result(self, transaction_id: str) -> httpx.Response:
        path = self.settings.verifier_result_path.format(transaction_id=transaction_id)
        url = self.settings.verifier_api_url.rstrip("/") + path
        return await self.request("GET", url, self.settings.verifier_access_token)


def raise_for_upstream(response: httpx.Response, label: str) -> None:
    """Fold a non-2xx status and body into an UpstreamError."""
    if response.is_success:
        return
    body = response.text
    logger.error("%s error response %s: %s", label, response.status_code, body[:500])
    raise UpstreamError(
        f"{label} API error: {response.status_code} - {body}",
        status=response.status_code,
        body=body,
    )


def json_document(response: httpx.Response) -> dict:
    """Response body as a dict; empty or non-object bodies come back as {}."""
    if not response.content:
        return {}
    try:
        doc = response.json()
    except ValueError:
        logger.warning("Upstream returned non-JSON body from %s", response.request.url)
        return {}
    return doc if isinstance(doc, dict) else {"data": doc}


def get_upstream() -> UpstreamClient:
    return UpstreamClient()
