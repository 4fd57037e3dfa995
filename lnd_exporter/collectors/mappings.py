"""
Fixed table of polled LND methods and their reply-to-records mappings.

Each entry names the REST gateway path of an LND RPC method and a mapping
function ``(reply, context) -> List[MetricRecord]``. Replies are the decoded
JSON bodies; LND encodes 64-bit integers as strings, so every numeric field
goes through ``_num``.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..utils.metrics import MetricRecord


@dataclass
class PaymentLedger:
    """
    Cumulative view of outgoing payments.

    ListPayments is read incrementally from ``index_offset``; counts from
    earlier replies are kept here so each pass reports lifetime totals.
    The offset never moves past a payment that is still in flight: from the
    first unsettled payment on, the page is counted as ``pending`` and read
    again next pass, so a payment is committed once, in its final state.
    """

    index_offset: int = 0
    by_status: Dict[str, int] = field(default_factory=dict)
    by_failure_reason: Dict[str, int] = field(default_factory=dict)
    total_fee_msat: int = 0
    pending: Optional["PaymentLedger"] = None

    def apply(self, reply: Dict[str, Any]) -> None:
        """Fold one ListPayments reply into the ledger."""
        settled = PaymentLedger()
        tail = PaymentLedger()
        index_offset = self.index_offset

        payments = reply.get("payments") or []
        for payment in payments:
            status = PAYMENT_STATUSES.get(payment.get("status", "UNKNOWN"), "unknown")
            if tail.by_status or status in UNSETTLED_STATUSES:
                tail._count(payment, status)
                continue
            settled._count(payment, status)
            if "payment_index" in payment:
                index_offset = max(index_offset, int(_num(payment["payment_index"])))

        # Only commit once the whole reply parsed. An empty page reports offset 0.
        if payments and not tail.by_status:
            index_offset = max(index_offset, int(_num(reply.get("last_index_offset"))))

        self.index_offset = index_offset
        self.by_status = _merge(self.by_status, settled.by_status)
        self.by_failure_reason = _merge(self.by_failure_reason, settled.by_failure_reason)
        self.total_fee_msat += settled.total_fee_msat
        self.pending = tail if tail.by_status else None

    def _count(self, payment: Dict[str, Any], status: str) -> None:
        reason = FAILURE_REASONS.get(
            payment.get("failure_reason", "FAILURE_REASON_NONE"), "unknown"
        )
        self.by_status[status] = self.by_status.get(status, 0) + 1
        self.by_failure_reason[reason] = self.by_failure_reason.get(reason, 0) + 1
        if status == "succeeded":
            self.total_fee_msat += int(_num(payment.get("fee_msat")))

    def totals(self) -> Tuple[Dict[str, int], Dict[str, int], int]:
        """Committed counts plus the payments still awaiting a final state."""
        if self.pending is None:
            return dict(self.by_status), dict(self.by_failure_reason), self.total_fee_msat
        return (
            _merge(self.by_status, self.pending.by_status),
            _merge(self.by_failure_reason, self.pending.by_failure_reason),
            self.total_fee_msat + self.pending.total_fee_msat,
        )


def _merge(counts: Dict[str, int], extra: Dict[str, int]) -> Dict[str, int]:
    merged = dict(counts)
    for key, value in extra.items():
        merged[key] = merged.get(key, 0) + value
    return merged


@dataclass
class MappingContext:
    """Per-process inputs shared by all mapping functions."""

    node_pubkey: str
    payments: PaymentLedger = field(default_factory=PaymentLedger)


Mapper = Callable[[Dict[str, Any], MappingContext], List[MetricRecord]]


@dataclass(frozen=True)
class RpcMethod:
    """One polled LND method."""

    name: str
    path: str
    mapper: Mapper
    params: Optional[Callable[[MappingContext], Dict[str, Any]]] = None

    def request_params(self, context: MappingContext) -> Dict[str, Any]:
        return self.params(context) if self.params else {}


PAYMENT_STATUSES = {
    "UNKNOWN": "unknown",
    "IN_FLIGHT": "in_flight",
    "SUCCEEDED": "succeeded",
    "FAILED": "failed",
    "INITIATED": "initiated",
}

# Payments in these states may still settle; the ledger re-reads them.
UNSETTLED_STATUSES = frozenset({"in_flight", "initiated"})

FAILURE_REASONS = {
    "FAILURE_REASON_NONE": "none",
    "FAILURE_REASON_TIMEOUT": "timeout",
    "FAILURE_REASON_NO_ROUTE": "no_route",
    "FAILURE_REASON_ERROR": "error",
    "FAILURE_REASON_INCORRECT_PAYMENT_DETAILS": "incorrect_payment_details",
    "FAILURE_REASON_INSUFFICIENT_BALANCE": "insufficient_balance",
    "FAILURE_REASON_CANCELED": "canceled",
}

METRIC_HELP = {
    "lnd_peers": "Number of peers connected to the lnd node",
    "lnd_block_height": "Chain block height",
    "lnd_synced_to_chain": "Whether the wallet is synced to the chain tip",
    "lnd_synced_to_graph": "Whether the node is synced to the channel graph",
    "lnd_channels": "Number of channels by state",
    "lnd_info": "Node alias and version, value is always 1",
    "lnd_wallet_balance_sat": "On-chain wallet balance",
    "lnd_channel_balance_sat": "Sum of local balances of open channels",
    "lnd_channel_pending_open_balance_sat": "Sum of local balances of pending channels",
    "lnd_channel_funds_sat": "Individual channel balances",
    "lnd_channel_capacity_sat": "Individual channel capacity",
    "lnd_peer_sent_bytes": "Bytes sent to the peer",
    "lnd_peer_received_bytes": "Bytes received from the peer",
    "lnd_peer_ping_time_microseconds": "Last ping round trip to the peer",
    "lnd_outgoing_payments": "Number of outgoing payments on the lnd node",
    "lnd_payment_failure_reasons": "Payment failure reasons",
    "lnd_total_fee_msat": "Total fee paid by succeeded outgoing payments",
    "collector_errors_total": "Failed RPC calls per polled method",
    "collector_endpoint_up": "Whether the last call to the method succeeded",
}


def _num(value: Any, default: float = 0) -> float:
    """Parse an LND numeric field; int64 values arrive as strings."""
    if value is None or value == "":
        return float(default)
    return float(value)


def _flag(value: Any) -> float:
    return 1.0 if value in (True, "true") else 0.0


def map_getinfo(reply: Dict[str, Any], ctx: MappingContext) -> List[MetricRecord]:
    node = ctx.node_pubkey
    return [
        MetricRecord.gauge("lnd_peers", _num(reply.get("num_peers")), node=node),
        MetricRecord.gauge("lnd_block_height", _num(reply.get("block_height")), node=node),
        MetricRecord.gauge("lnd_synced_to_chain", _flag(reply.get("synced_to_chain")), node=node),
        MetricRecord.gauge("lnd_synced_to_graph", _flag(reply.get("synced_to_graph")), node=node),
        MetricRecord.gauge(
            "lnd_channels", _num(reply.get("num_active_channels")), node=node, state="active"
        ),
        MetricRecord.gauge(
            "lnd_channels", _num(reply.get("num_inactive_channels")), node=node, state="inactive"
        ),
        MetricRecord.gauge(
            "lnd_channels", _num(reply.get("num_pending_channels")), node=node, state="pending"
        ),
        MetricRecord.gauge(
            "lnd_info", 1,
            node=node,
            alias=reply.get("alias", ""),
            version=reply.get("version", "")
        ),
    ]


def map_walletbalance(reply: Dict[str, Any], ctx: MappingContext) -> List[MetricRecord]:
    return [
        MetricRecord.gauge(
            "lnd_wallet_balance_sat", _num(reply.get(f"{status}_balance")),
            node=ctx.node_pubkey, status=status
        )
        for status in ("total", "confirmed", "unconfirmed")
    ]


def map_channelbalance(reply: Dict[str, Any], ctx: MappingContext) -> List[MetricRecord]:
    return [
        MetricRecord.gauge("lnd_channel_balance_sat", _num(reply.get("balance")), node=ctx.node_pubkey),
        MetricRecord.gauge(
            "lnd_channel_pending_open_balance_sat",
            _num(reply.get("pending_open_balance")),
            node=ctx.node_pubkey
        ),
    ]


def map_listchannels(reply: Dict[str, Any], ctx: MappingContext) -> List[MetricRecord]:
    records = []
    for channel in reply.get("channels") or []:
        labels = {
            "node": ctx.node_pubkey,
            "chan_id": str(channel["chan_id"]),
            "active": "true" if channel.get("active") else "false",
            "channel_point": channel.get("channel_point", ""),
        }
        for category in ("local", "remote", "unsettled"):
            records.append(MetricRecord.gauge(
                "lnd_channel_funds_sat",
                _num(channel.get(f"{category}_balance")),
                category=category,
                **labels
            ))
        records.append(MetricRecord.gauge(
            "lnd_channel_capacity_sat", _num(channel.get("capacity")), **labels
        ))
    return records


def map_listpeers(reply: Dict[str, Any], ctx: MappingContext) -> List[MetricRecord]:
    records = []
    for peer in reply.get("peers") or []:
        labels = {"node": ctx.node_pubkey, "peer": peer["pub_key"]}
        records.extend([
            MetricRecord.gauge("lnd_peer_sent_bytes", _num(peer.get("bytes_sent")), **labels),
            MetricRecord.gauge("lnd_peer_received_bytes", _num(peer.get("bytes_recv")), **labels),
            MetricRecord.gauge(
                "lnd_peer_ping_time_microseconds", _num(peer.get("ping_time")), **labels
            ),
        ])
    return records


def map_listpayments(reply: Dict[str, Any], ctx: MappingContext) -> List[MetricRecord]:
    ctx.payments.apply(reply)
    by_status, by_failure_reason, total_fee_msat = ctx.payments.totals()

    node = ctx.node_pubkey
    records = [
        MetricRecord.gauge("lnd_outgoing_payments", count, node=node, status=status)
        for status, count in sorted(by_status.items())
    ]
    records.extend(
        MetricRecord.gauge("lnd_payment_failure_reasons", count, node=node, reason=reason)
        for reason, count in sorted(by_failure_reason.items())
    )
    records.append(MetricRecord.gauge("lnd_total_fee_msat", total_fee_msat, node=node))
    return records


def _payments_params(ctx: MappingContext) -> Dict[str, Any]:
    return {
        "include_incomplete": "true",
        "index_offset": str(ctx.payments.index_offset),
    }


METHOD_TABLE: Dict[str, RpcMethod] = {
    method.name: method for method in (
        RpcMethod("getinfo", "/v1/getinfo", map_getinfo),
        RpcMethod("walletbalance", "/v1/balance/blockchain", map_walletbalance),
        RpcMethod("channelbalance", "/v1/balance/channels", map_channelbalance),
        RpcMethod("listchannels", "/v1/channels", map_listchannels),
        RpcMethod("listpeers", "/v1/peers", map_listpeers),
        RpcMethod("listpayments", "/v1/payments", map_listpayments, params=_payments_params),
    )
}

DEFAULT_ENDPOINTS = list(METHOD_TABLE)
