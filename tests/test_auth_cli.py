import asyncio

import httpx
import pytest

import auth_cli
from auth_cli import CLIAuthFlow, parse_args
from auth_server import AuthStatus
from conftest import FakeOAuthClient, FakeTokenStore, free_ports, wait_until


@pytest.fixture
def flow_factory(monkeypatch, make_server, tmp_path):
    """CLIAuthFlow whose server is built from fakes; the server is kept on ``flow.server``"""

    def factory(**server_kwargs):
        flow = CLIAuthFlow(
            credentials_file=str(tmp_path / "unused.keys.json"),
            token_file=str(tmp_path / "tokens.json"),
            poll_interval=0.05,
        )

        def build_server():
            flow.server = make_server(**server_kwargs)
            return flow.server

        monkeypatch.setattr(flow, "build_server", build_server)
        return flow

    return factory


@pytest.mark.asyncio
async def test_valid_tokens_exit_zero(flow_factory):
    flow = flow_factory(token_store=FakeTokenStore(valid=True))

    assert await flow.run() == 0
    assert flow.server.status is AuthStatus.TOKEN_ALREADY_VALID


@pytest.mark.asyncio
async def test_no_free_port_exits_one(flow_factory, occupied_ports):
    flow = flow_factory(ports=occupied_ports(5))

    assert await flow.run() == 1
    assert flow.server.status is AuthStatus.FAILED


@pytest.mark.asyncio
async def test_successful_browser_flow_exits_zero(flow_factory):
    ports = free_ports(5)
    store = FakeTokenStore()
    flow = flow_factory(ports=ports, token_store=store)

    run = asyncio.ensure_future(flow.run())
    assert await wait_until(lambda: getattr(flow, "server", None) is not None
                            and flow.server.status is AuthStatus.LISTENING)
    async with httpx.AsyncClient(timeout=5.0) as client:
        await client.get(f"http://127.0.0.1:{ports[0]}/oauth2callback?code=ABC")

    assert await asyncio.wait_for(run, timeout=5.0) == 0
    assert len(store.persisted) == 1


@pytest.mark.asyncio
async def test_denied_consent_exits_one(flow_factory):
    ports = free_ports(5)
    flow = flow_factory(ports=ports)

    run = asyncio.ensure_future(flow.run())
    assert await wait_until(lambda: getattr(flow, "server", None) is not None
                            and flow.server.status is AuthStatus.LISTENING)
    async with httpx.AsyncClient(timeout=5.0) as client:
        await client.get(f"http://127.0.0.1:{ports[0]}/oauth2callback?error=access_denied")

    assert await asyncio.wait_for(run, timeout=5.0) == 1


@pytest.mark.asyncio
async def test_interrupt_while_listening_exits_zero_and_stops(flow_factory):
    ports = free_ports(5)
    client = FakeOAuthClient()
    flow = flow_factory(ports=ports, oauth_client=client)

    run = asyncio.ensure_future(flow.run())
    assert await wait_until(lambda: getattr(flow, "server", None) is not None
                            and flow.server.status is AuthStatus.LISTENING)
    flow.request_stop()

    assert await asyncio.wait_for(run, timeout=5.0) == 0
    assert flow.server.bound_port is None
    assert flow.server.completed_successfully is False
    assert client.exchange_calls == []


@pytest.mark.asyncio
async def test_missing_keys_file_exits_one(tmp_path):
    flow = CLIAuthFlow(
        credentials_file=str(tmp_path / "missing.keys.json"),
        token_file=str(tmp_path / "tokens.json"),
    )

    assert await flow.run() == 1


def test_request_stop_before_run_is_harmless():
    CLIAuthFlow().request_stop()


def test_parse_args_defaults():
    args = parse_args([])

    assert args.credentials_file is None
    assert args.token_file is None
    assert args.no_browser is False
    assert args.debug is False


def test_parse_args_flags():
    args = parse_args(["--credentials-file", "keys.json", "--token-file", "t.json", "--no-browser", "-d"])

    assert args.credentials_file == "keys.json"
    assert args.token_file == "t.json"
    assert args.no_browser is True
    assert args.debug is True


def test_main_exits_with_flow_result(monkeypatch):
    captured = {}

    async def fake_run(self):
        captured["flow"] = self
        return 1

    monkeypatch.setattr(auth_cli, "setup_logging", lambda debug=False: None)
    monkeypatch.setattr(CLIAuthFlow, "run", fake_run)

    with pytest.raises(SystemExit) as exc_info:
        auth_cli.main(["--no-browser", "--token-file", "tokens.json"])

    assert exc_info.value.code == 1
    assert captured["flow"].open_browser is False
    assert captured["flow"].storage.token_file.name == "tokens.json"
