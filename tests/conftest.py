"""Shared pytest configuration and fixtures."""

import asyncio
import copy
from dataclasses import replace
from pathlib import Path

import pytest

from lnd_exporter.services.auth import load_credentials
from lnd_exporter.utils.logger import setup_logger


FIXTURES = Path(__file__).parent / "fixtures"

NODE_PUBKEY = "02abc" + "0" * 61
PEER_PUBKEY = "03def" + "1" * 61

SAMPLE_REPLIES = {
    "getinfo": {
        "identity_pubkey": NODE_PUBKEY,
        "alias": "alice",
        "version": "0.17.0-beta commit=v0.17.0-beta",
        "num_peers": 3,
        "block_height": 812000,
        "synced_to_chain": True,
        "synced_to_graph": False,
        "num_active_channels": 2,
        "num_inactive_channels": 0,
        "num_pending_channels": 1,
    },
    "walletbalance": {
        "total_balance": "250000",
        "confirmed_balance": "200000",
        "unconfirmed_balance": "50000",
    },
    "channelbalance": {
        "balance": "150000",
        "pending_open_balance": "20000",
    },
    "listchannels": {
        "channels": [
            {
                "chan_id": "812345678901234567",
                "active": True,
                "channel_point": "a1b2c3:0",
                "local_balance": "100000",
                "remote_balance": "40000",
                "unsettled_balance": "0",
                "capacity": "150000",
            },
            {
                "chan_id": "812345678901234999",
                "active": False,
                "channel_point": "d4e5f6:1",
                "local_balance": "50000",
                "remote_balance": "0",
                "unsettled_balance": "1000",
                "capacity": "60000",
            },
        ]
    },
    "listpeers": {
        "peers": [
            {
                "pub_key": PEER_PUBKEY,
                "bytes_sent": "1024",
                "bytes_recv": "2048",
                "ping_time": "1500",
            }
        ]
    },
    "listpayments": {
        "payments": [
            {"payment_index": "1", "status": "SUCCEEDED", "failure_reason": "FAILURE_REASON_NONE", "fee_msat": "1000"},
            {"payment_index": "2", "status": "FAILED", "failure_reason": "FAILURE_REASON_NO_ROUTE", "fee_msat": "0"},
        ],
        "first_index_offset": "1",
        "last_index_offset": "2",
    },
}

# Records each sample reply maps to
SAMPLE_RECORD_COUNTS = {
    "getinfo": 8,
    "walletbalance": 3,
    "channelbalance": 2,
    "listchannels": 8,
    "listpeers": 3,
    "listpayments": 5,
}


class FakeLndClient:
    """Stand-in for LndClient answering from a per-endpoint table."""

    def __init__(self, replies):
        self.replies = copy.deepcopy(replies)
        self.failures = {}
        self.delays = {}
        self.calls = []

    async def call(self, path, params=None, endpoint=None):
        self.calls.append((endpoint, path, params))
        delay = self.delays.get(endpoint)
        if delay:
            await asyncio.sleep(delay)
        if endpoint in self.failures:
            raise self.failures[endpoint]
        return copy.deepcopy(self.replies[endpoint])


@pytest.fixture
def logger():
    """Create logger for tests."""
    return setup_logger("test", "DEBUG")


@pytest.fixture
def sample_replies():
    return copy.deepcopy(SAMPLE_REPLIES)


@pytest.fixture
def fake_client():
    return FakeLndClient(SAMPLE_REPLIES)


@pytest.fixture
def cert_path():
    return str(FIXTURES / "tls.cert")


@pytest.fixture
def macaroon_path():
    return str(FIXTURES / "readonly.macaroon")


@pytest.fixture
def credentials(cert_path, macaroon_path):
    """Credentials as produced by a successful handshake."""
    loaded = load_credentials(cert_path, macaroon_path, "https://localhost:8080")
    return replace(loaded, node_pubkey=NODE_PUBKEY)


@pytest.fixture
def node_pubkey():
    return NODE_PUBKEY


@pytest.fixture
def peer_pubkey():
    return PEER_PUBKEY


@pytest.fixture
def sample_record_counts():
    return dict(SAMPLE_RECORD_COUNTS)
