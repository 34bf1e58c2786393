import asyncio
import socket
import sys
import time
from pathlib import Path
from urllib.parse import quote

import pytest


ROOT = Path(__file__).resolve().parents[1]

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from auth_server import AuthServer  # noqa: E402
from google_oauth.models import Credential  # noqa: E402


def free_ports(count: int):
    """Ports nothing is listening on right now, reserved only for the call"""
    sockets = []
    try:
        for _ in range(count):
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            sock.bind(("127.0.0.1", 0))
            sockets.append(sock)
        return [sock.getsockname()[1] for sock in sockets]
    finally:
        for sock in sockets:
            sock.close()


def is_listening(port: int) -> bool:
    try:
        with socket.create_connection(("127.0.0.1", port), timeout=0.5):
            return True
    except OSError:
        return False


async def wait_until(predicate, timeout: float = 3.0, interval: float = 0.02) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


def make_credential(**overrides) -> Credential:
    values = {
        "access_token": "ya29.access",
        "refresh_token": "1//refresh",
        "scope": "https://www.googleapis.com/auth/calendar",
        "expiry_date": int((time.time() + 3600) * 1000),
    }
    values.update(overrides)
    return Credential(**values)


class FakeOAuthClient:
    def __init__(self, credential=None, exchange_delay=0.0, exchange_error=None, url_error=None):
        self.credential = credential or make_credential()
        self.exchange_delay = exchange_delay
        self.exchange_error = exchange_error
        self.url_error = url_error
        self.exchange_calls = []
        self.redirect_uris = []

    def build_authorization_url(self, redirect_uri):
        if self.url_error:
            raise self.url_error
        self.redirect_uris.append(redirect_uri)
        return f"https://accounts.google.test/auth?redirect_uri={quote(redirect_uri, safe='')}"

    async def exchange_code(self, code, redirect_uri):
        self.exchange_calls.append((code, redirect_uri))
        if self.exchange_delay:
            await asyncio.sleep(self.exchange_delay)
        if self.exchange_error:
            raise self.exchange_error
        return self.credential


class FakeTokenStore:
    def __init__(self, valid=False, check_error=None, persist_error=None):
        self.valid = valid
        self.check_error = check_error
        self.persist_error = persist_error
        self.check_calls = 0
        self.persisted = []

    async def has_valid_credential(self):
        self.check_calls += 1
        if self.check_error:
            raise self.check_error
        return self.valid

    async def persist(self, credential):
        if self.persist_error:
            raise self.persist_error
        self.persisted.append(credential)


class BrowserRecorder:
    def __init__(self, result=True):
        self.result = result
        self.urls = []

    def __call__(self, url):
        self.urls.append(url)
        return self.result


@pytest.fixture
def occupied_ports():
    """Bind and listen on ports so nothing else can take them"""
    held = []

    def occupy(count: int):
        ports = []
        for _ in range(count):
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            sock.bind(("127.0.0.1", 0))
            sock.listen(1)
            held.append(sock)
            ports.append(sock.getsockname()[1])
        return ports

    yield occupy

    for sock in held:
        sock.close()


@pytest.fixture
def browser():
    return BrowserRecorder()


@pytest.fixture
def make_server(browser):
    """Factory for AuthServer instances wired to fakes"""

    def factory(ports=None, oauth_client=None, token_store=None, **kwargs):
        kwargs.setdefault("browser_opener", browser)
        kwargs.setdefault("stop_grace_seconds", 1.0)
        return AuthServer(
            oauth_client or FakeOAuthClient(),
            token_store or FakeTokenStore(),
            ports=ports if ports is not None else free_ports(5),
            host="127.0.0.1",
            **kwargs,
        )

    return factory


@pytest.fixture
def keys_file(tmp_path):
    path = tmp_path / "gcp-oauth.keys.json"
    path.write_text(
        '{"installed": {"client_id": "client-123.apps.googleusercontent.com", '
        '"client_secret": "secret-abc", "redirect_uris": ["http://localhost"]}}',
        encoding="utf-8",
    )
    return path
