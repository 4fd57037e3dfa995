"""Scrape endpoint: renders the current snapshot in the Prometheus text format."""

import contextlib
import logging
import time
from typing import Dict, Iterable, Optional

import uvicorn
from fastapi import FastAPI, Request, Response
from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import Metric

from ..collectors.mappings import METRIC_HELP
from ..utils.errors import ExpositionError, RegistryNotReadyError
from ..utils.metrics import MetricKind, Snapshot
from .registry import MetricRegistry


CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


class SnapshotCollector:
    """prometheus_client custom collector that yields one snapshot's records."""

    def __init__(self, snapshot: Snapshot):
        self.snapshot = snapshot

    def collect(self) -> Iterable[Metric]:
        families: Dict[str, Metric] = {}
        for record in self.snapshot.records:
            family = families.get(record.name)
            if family is None:
                family_name = record.name
                if record.kind is MetricKind.COUNTER:
                    # The text encoder appends _total to counter families.
                    family_name = family_name[:-len("_total")]
                family = Metric(
                    family_name,
                    METRIC_HELP.get(record.name, record.name),
                    record.kind.value
                )
                families[record.name] = family
            family.add_sample(record.name, record.label_dict, record.value)
        return families.values()


def render(snapshot: Snapshot) -> bytes:
    """
    Serialize a snapshot; the same snapshot always yields the same bytes.

    Raises:
        ExpositionError: If a record cannot be encoded
    """
    registry = CollectorRegistry(auto_describe=False)
    registry.register(SnapshotCollector(snapshot))
    try:
        return generate_latest(registry)
    except (ValueError, TypeError) as e:
        raise ExpositionError(f"Cannot render generation {snapshot.generation}: {e}") from e


def create_app(registry: MetricRegistry, logger: Optional[logging.Logger] = None) -> FastAPI:
    """
    Build the scrape application.

    Args:
        registry: Source of the current snapshot; only read, never written
        logger: Optional logger for access and error lines
    """
    logger = (logger or logging.getLogger(__name__)).getChild("exposition")
    app = FastAPI(title="lnd-exporter", docs_url=None, redoc_url=None, openapi_url=None)

    @app.middleware("http")
    async def access_log(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        client = request.client.host if request.client else "-"
        logger.info(
            f"{request.method} {request.url.path} {client} {response.status_code} "
            f"{time.time() - start_time:.4f}"
        )
        return response

    @app.get("/metrics")
    async def metrics() -> Response:
        try:
            snapshot = registry.current()
        except RegistryNotReadyError:
            return Response(status_code=503)

        try:
            body = render(snapshot)
        except ExpositionError as e:
            logger.error(f"Failed to encode metrics: {e}")
            return Response(status_code=500)

        return Response(
            content=body,
            media_type=CONTENT_TYPE,
            headers={"X-Snapshot-Generation": str(snapshot.generation)}
        )

    @app.get("/health")
    async def health() -> Response:
        return Response(status_code=200)

    return app


class ExpositionServer(uvicorn.Server):
    """
    uvicorn server that runs inside the application's event loop.

    Signals are handled by the application, which sets ``should_exit``.
    """

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield

    @classmethod
    def for_app(cls, app: FastAPI, host: str, port: int) -> "ExpositionServer":
        config = uvicorn.Config(
            app,
            host=host,
            port=port,
            log_config=None,
            access_log=False,
            lifespan="off"
        )
        return cls(config)
