"""Tests for the application entry point."""

import asyncio
import signal

import httpx
import pytest

from lnd_exporter import main as main_module
from lnd_exporter.config.loader import ConfigLoader
from lnd_exporter.main import ExporterApp, main, parse_args
from lnd_exporter.services import auth

# Fixtures imported from conftest.py: cert_path, macaroon_path, sample_replies, logger


@pytest.fixture
def config(cert_path, macaroon_path):
    return ConfigLoader.from_mapping({
        "lnd": {"tls_cert_path": cert_path, "macaroon_path": macaroon_path},
        "collection": {
            "poll_interval_seconds": 1,
            "rpc_timeout_seconds": 0.5,
            "endpoints": ["getinfo", "channelbalance"],
        },
    })


@pytest.fixture
def mock_node(monkeypatch, sample_replies):
    """Route every LndClient in the app to an in-memory LND gateway."""
    routes = {
        "/v1/getinfo": sample_replies["getinfo"],
        "/v1/balance/channels": sample_replies["channelbalance"],
    }

    def handler(request):
        return httpx.Response(200, json=routes[request.url.path])

    transport = httpx.MockTransport(handler)
    original_client = main_module.LndClient
    original_handshake = auth.LndClient

    def with_transport(cls):
        def build(credentials, timeout, logger=None, transport_=None, **kwargs):
            return cls(credentials, timeout, logger, transport=transport)
        return build

    monkeypatch.setattr(main_module, "LndClient", with_transport(original_client))
    monkeypatch.setattr(auth, "LndClient", with_transport(original_handshake))
    return routes


@pytest.mark.asyncio
async def test_run_once_prints_exposition(config, logger, mock_node, capsys):
    app = ExporterApp(config, logger)

    exit_code = await app.run_once()

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "lnd_channel_balance_sat{node=\"02abc" in out
    assert app.registry.generation == 1


def test_main_missing_config_exits_nonzero(tmp_path):
    assert main(["--config", str(tmp_path / "missing.yaml")]) == 1


def test_main_bad_credentials_exits_nonzero(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "lnd:\n"
        f"  tls_cert_path: {tmp_path / 'missing.cert'}\n"
        f"  macaroon_path: {tmp_path / 'missing.macaroon'}\n"
    )

    assert main(["--config", str(config_path), "--run-once"]) == 1


def test_parse_args_defaults(monkeypatch):
    monkeypatch.delenv("LND_EXPORTER_CONFIG", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)

    args = parse_args([])

    assert args.config == "config/config.yaml"
    assert args.log_level is None
    assert not args.run_once


def test_parse_args_env_defaults(monkeypatch):
    monkeypatch.setenv("LND_EXPORTER_CONFIG", "/etc/lnd-exporter.yaml")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")

    args = parse_args([])

    assert args.config == "/etc/lnd-exporter.yaml"
    assert args.log_level == "DEBUG"


@pytest.mark.asyncio
async def test_shutdown_during_handshake_exits_cleanly(config, logger, monkeypatch):
    app = ExporterApp(config, logger)
    handshake_started = asyncio.Event()

    async def hanging_connect():
        handshake_started.set()
        await asyncio.sleep(30)

    monkeypatch.setattr(app, "connect", hanging_connect)

    async def interrupt():
        await handshake_started.wait()
        app.request_shutdown(signal.SIGINT)

    asyncio.ensure_future(interrupt())

    exit_code = await asyncio.wait_for(app.serve(), timeout=5)

    assert exit_code == 0
    assert app.server is None
    assert app.client is None
