# tests/conftest.py
import os
import sys
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

# --- Make 'passgate' importable from the repo root ---
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

TMP = (ROOT / ".pytest_tmp").absolute()
WHITELIST_FILE = TMP / "whitelist.json"

ISSUER_URL = "http://issuer.test"
VERIFIER_URL = "http://verifier.test"


def _prepare_test_env() -> None:
    TMP.mkdir(exist_ok=True)
    os.environ["WHITELIST_PATH"] = WHITELIST_FILE.as_posix()
    os.environ["ISSUER_API_URL"] = ISSUER_URL
    os.environ["ISSUER_ACCESS_TOKEN"] = "issuer-token"
    os.environ["VC_TEMPLATE_CODE"] = "00000000_visitor_pass"
    os.environ["VERIFIER_API_URL"] = VERIFIER_URL
    os.environ["VERIFIER_ACCESS_TOKEN"] = "verifier-token"
    os.environ["VP_REF"] = "00000000_visitor_check"


# Settings is instantiated on first import of passgate, so the env goes first
_prepare_test_env()


class FakeUpstream:
    """
    Stand-in for both sandboxes. ``routes`` maps (method, path) to an
    httpx.Response, or to a callable taking the request.
    """

    def __init__(self):
        self.routes = {}
        self.calls: list[httpx.Request] = []

    def on(self, method: str, path: str, response):
        self.routes[(method, path)] = response

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"message": "no such route"})
        return route(request) if callable(route) else route

    def client(self):
        from passgate.core.upstream import UpstreamClient
        return UpstreamClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture(scope="session")
def client():
    """
    Test client with an ephemeral whitelist file under .pytest_tmp/.
    'with' runs the lifespan (startup sweep + sweeper task).
    """
    from passgate.main import app
    with TestClient(app) as c:
        yield c


@pytest.fixture(autouse=True)
def _fresh_store():
    from passgate.store.session import reset_store
    WHITELIST_FILE.unlink(missing_ok=True)
    reset_store()
    yield
    reset_store()


@pytest.fixture
def store():
    from passgate.store.session import get_store
    return get_store()


@pytest.fixture
def upstream():
    from passgate.core.upstream import get_upstream
    from passgate.main import app
    fake = FakeUpstream()
    app.dependency_overrides[get_upstream] = fake.client
    yield fake
    app.dependency_overrides.pop(get_upstream, None)


# --- Reset settings after each test (autouse) ---
@pytest.fixture(autouse=True)
def _reset_settings_between_tests():
    from passgate.core.config import settings
    snapshot = settings.model_dump()
    yield
    for key, value in snapshot.items():
        setattr(settings, key, value)
