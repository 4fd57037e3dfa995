"""Collector that polls a fixed set of LND methods and builds snapshots."""

import asyncio
import logging
import time
from typing import Dict, List, Optional, Sequence, Tuple

from ..utils.errors import CollectionError, CredentialsRejectedError, RpcTimeoutError
from ..utils.metrics import EndpointResult, MetricRecord, Snapshot
from .base import BaseCollector
from .mappings import METHOD_TABLE, MappingContext, RpcMethod


class NodeCollector(BaseCollector):
    """
    Poll every configured method concurrently and fold the replies into a Snapshot.

    A failing method contributes its previous records (marked stale) and bumps
    ``collector_errors_total{endpoint}``; the other methods are unaffected.
    """

    def __init__(
        self,
        client,
        endpoints: Sequence[str],
        per_call_timeout: float,
        node_pubkey: str,
        logger: logging.Logger,
        method_table: Optional[Dict[str, RpcMethod]] = None
    ):
        """
        Initialize node collector.

        Args:
            client: LndClient (anything with an async ``call(path, params, endpoint)``)
            endpoints: Method names to poll, in snapshot order
            per_call_timeout: Upper bound for each call in seconds
            node_pubkey: Node identity used as the ``node`` label
            logger: Logger instance
            method_table: Override of METHOD_TABLE
        """
        super().__init__(logger)
        table = method_table if method_table is not None else METHOD_TABLE
        unknown = [name for name in endpoints if name not in table]
        if unknown:
            raise ValueError(f"Unknown RPC method(s): {', '.join(unknown)}")

        self.client = client
        self.methods = [table[name] for name in endpoints]
        self.per_call_timeout = per_call_timeout
        self.context = MappingContext(node_pubkey=node_pubkey)

        self._last_records: Dict[str, Tuple[MetricRecord, ...]] = {}
        self._error_counts: Dict[str, int] = {name: 0 for name in endpoints}

    @property
    def error_counts(self) -> Dict[str, int]:
        return dict(self._error_counts)

    async def collect(self, generation: int) -> Snapshot:
        """
        Run one collection pass.

        Args:
            generation: Generation number stamped on the snapshot

        Returns:
            Snapshot: Records of this pass plus stale carry-over for failed methods

        Raises:
            CredentialsRejectedError: Every method was refused by the node; no
                state is changed so the previous snapshot stays authoritative
        """
        start_time = time.time()

        outcomes = await asyncio.gather(
            *(self._poll(method) for method in self.methods),
            return_exceptions=True
        )

        failures = [o for o in outcomes if isinstance(o, BaseException)]
        if failures and len(failures) == len(outcomes) and all(
            isinstance(f, CredentialsRejectedError) for f in failures
        ):
            raise failures[0]

        results = [
            self._fold(method, outcome)
            for method, outcome in zip(self.methods, outcomes)
        ]

        records: List[MetricRecord] = []
        for result in results:
            records.extend(result.records)
        records.extend(self._bookkeeping_records(results))

        failed = [r.endpoint for r in results if not r.ok]
        duration = time.time() - start_time
        self.logger.info(
            f"Collection pass {generation} complete: {len(records)} record(s) "
            f"in {duration:.2f}s, {len(failed)} failed endpoint(s)",
            extra={"generation": generation, "failed_endpoints": failed}
        )

        return Snapshot(generation=generation, records=tuple(records), captured_at=start_time)

    async def _poll(self, method: RpcMethod) -> List[MetricRecord]:
        """
        Call one method within the per-call timeout and map the reply.

        A timed-out call is cancelled; a late reply is never used.
        """
        try:
            reply = await asyncio.wait_for(
                self.client.call(
                    method.path,
                    method.request_params(self.context),
                    endpoint=method.name
                ),
                timeout=self.per_call_timeout
            )
        except asyncio.TimeoutError as e:
            raise RpcTimeoutError(
                method.name, f"no reply within {self.per_call_timeout}s"
            ) from e

        try:
            return method.mapper(reply, self.context)
        except (KeyError, TypeError, ValueError) as e:
            raise CollectionError(method.name, f"unmappable reply: {type(e).__name__}: {e}") from e

    def _fold(self, method: RpcMethod, outcome) -> EndpointResult:
        """Turn a gather outcome into an EndpointResult and update carry-over state."""
        if not isinstance(outcome, BaseException):
            records = tuple(outcome)
            self._last_records[method.name] = records
            return EndpointResult(endpoint=method.name, records=records)

        if not isinstance(outcome, Exception):
            # CancelledError and friends must not be swallowed.
            raise outcome

        self._error_counts[method.name] += 1
        expected = isinstance(outcome, CollectionError)
        log_failure = self.logger.warning if expected else self.logger.error
        log_failure(
            f"Endpoint {method.name} failed, carrying over previous values: {outcome}",
            exc_info=None if expected else outcome,
            extra={"endpoint": method.name, "error_type": type(outcome).__name__}
        )
        return EndpointResult.failure(
            method.name,
            str(outcome),
            previous=self._last_records.get(method.name, ())
        )

    def _bookkeeping_records(self, results: List[EndpointResult]) -> List[MetricRecord]:
        records = [
            MetricRecord.counter("collector_errors_total", self._error_counts[r.endpoint], endpoint=r.endpoint)
            for r in results
        ]
        records.extend(
            MetricRecord.gauge("collector_endpoint_up", 1 if r.ok else 0, endpoint=r.endpoint)
            for r in results
        )
        return records
