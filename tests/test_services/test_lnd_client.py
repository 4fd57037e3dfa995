"""Tests for LndClient against a mocked REST gateway."""

import httpx
import pytest

from lnd_exporter.services.lnd_client import MACAROON_HEADER, LndClient
from lnd_exporter.utils.errors import (
    CredentialsRejectedError,
    RpcStatusError,
    RpcTimeoutError,
    RpcTransportError,
)

# Fixtures imported from conftest.py: credentials, macaroon_path, sample_replies


def make_client(credentials, handler):
    return LndClient(credentials, timeout=1.0, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_call_returns_json(credentials, sample_replies):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=sample_replies["getinfo"])

    async with make_client(credentials, handler) as client:
        reply = await client.get_info()

    assert reply["alias"] == "alice"
    assert seen[0].url.path == "/v1/getinfo"
    assert seen[0].url.host == "localhost"


@pytest.mark.asyncio
async def test_macaroon_header_on_every_call(credentials, macaroon_path):
    headers = []

    def handler(request):
        headers.append(request.headers.get(MACAROON_HEADER))
        return httpx.Response(200, json={})

    async with make_client(credentials, handler) as client:
        await client.call("/v1/getinfo")
        await client.call("/v1/balance/channels")

    with open(macaroon_path, "rb") as f:
        expected = f.read().hex()
    assert headers == [expected, expected]


@pytest.mark.asyncio
async def test_query_params_forwarded(credentials):
    seen = []

    def handler(request):
        seen.append(dict(request.url.params))
        return httpx.Response(200, json={"payments": []})

    async with make_client(credentials, handler) as client:
        await client.call("/v1/payments", {"include_incomplete": "true", "index_offset": "5"})

    assert seen == [{"include_incomplete": "true", "index_offset": "5"}]


@pytest.mark.asyncio
async def test_timeout_maps_to_rpc_timeout(credentials):
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    async with make_client(credentials, handler) as client:
        with pytest.raises(RpcTimeoutError) as exc_info:
            await client.call("/v1/channels", endpoint="listchannels")

    assert exc_info.value.endpoint == "listchannels"


@pytest.mark.asyncio
async def test_connect_error_maps_to_transport_error(credentials):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with make_client(credentials, handler) as client:
        with pytest.raises(RpcTransportError):
            await client.call("/v1/peers", endpoint="listpeers")


@pytest.mark.asyncio
async def test_rpc_error_body_parsed(credentials):
    def handler(request):
        return httpx.Response(500, json={"code": 2, "message": "wallet locked"})

    async with make_client(credentials, handler) as client:
        with pytest.raises(RpcStatusError) as exc_info:
            await client.call("/v1/balance/blockchain", endpoint="walletbalance")

    assert not isinstance(exc_info.value, CredentialsRejectedError)
    assert exc_info.value.status_code == 500
    assert "wallet locked" in str(exc_info.value)


@pytest.mark.asyncio
async def test_macaroon_rejection_detected(credentials):
    def handler(request):
        return httpx.Response(500, json={"code": 2, "message": "verification failed: signature mismatch"})

    async with make_client(credentials, handler) as client:
        with pytest.raises(CredentialsRejectedError):
            await client.call("/v1/getinfo", endpoint="getinfo")


@pytest.mark.asyncio
async def test_forbidden_is_credentials_rejection(credentials):
    def handler(request):
        return httpx.Response(403, text="forbidden")

    async with make_client(credentials, handler) as client:
        with pytest.raises(CredentialsRejectedError) as exc_info:
            await client.call("/v1/getinfo", endpoint="getinfo")

    assert exc_info.value.status_code == 403


@pytest.mark.asyncio
async def test_invalid_json_is_transport_error(credentials):
    def handler(request):
        return httpx.Response(200, text="<html>proxy</html>")

    async with make_client(credentials, handler) as client:
        with pytest.raises(RpcTransportError):
            await client.call("/v1/getinfo")


@pytest.mark.asyncio
async def test_non_object_reply_is_transport_error(credentials):
    def handler(request):
        return httpx.Response(200, json=[1, 2, 3])

    async with make_client(credentials, handler) as client:
        with pytest.raises(RpcTransportError):
            await client.call("/v1/getinfo")


@pytest.mark.asyncio
async def test_client_builds_tls_context_from_certificate(credentials):
    # No transport: the real TLS path parses the node certificate
    async with LndClient(credentials, timeout=1.0) as client:
        assert client.credentials is credentials
