"""Metric data structures shared by the collector, registry and exposition."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple, Union
import re
import time


METRIC_NAME_RE = re.compile(r'^[a-zA-Z_:][a-zA-Z0-9_:]*$')
LABEL_NAME_RE = re.compile(r'^[a-zA-Z_][a-zA-Z0-9_]*$')

LabelPairs = Tuple[Tuple[str, str], ...]


class MetricKind(Enum):
    """Prometheus metric type of a record."""

    COUNTER = "counter"
    GAUGE = "gauge"


@dataclass(frozen=True)
class MetricRecord:
    """
    One sample: name, label set, value and kind.

    Labels may be passed as a mapping; they are stored as a tuple of
    (key, value) pairs sorted by key so records are hashable and immutable.
    Records carried over from a previous pass have ``stale`` set.
    """

    name: str
    labels: Union[Mapping[str, str], LabelPairs] = ()
    value: float = 0.0
    kind: MetricKind = MetricKind.GAUGE
    stale: bool = False

    def __post_init__(self):
        if not METRIC_NAME_RE.match(self.name):
            raise ValueError(f"Invalid metric name: {self.name!r}")

        pairs = self.labels.items() if isinstance(self.labels, Mapping) else self.labels
        normalized = {}
        for key, value in pairs:
            if not LABEL_NAME_RE.match(key) or key.startswith("__"):
                raise ValueError(f"Invalid label name {key!r} on {self.name}")
            if key in normalized:
                raise ValueError(f"Duplicate label {key!r} on {self.name}")
            normalized[key] = str(value)

        object.__setattr__(self, "labels", tuple(sorted(normalized.items())))
        object.__setattr__(self, "value", float(self.value))
        if self.kind is MetricKind.COUNTER and not self.name.endswith("_total"):
            raise ValueError(f"Counter names must end with _total: {self.name}")

    @property
    def label_dict(self) -> Dict[str, str]:
        return dict(self.labels)

    def as_stale(self) -> "MetricRecord":
        """Copy of this record marked as carried over."""
        return self if self.stale else replace(self, stale=True)

    @classmethod
    def gauge(cls, name: str, value: float, **labels: str) -> "MetricRecord":
        return cls(name=name, labels=labels, value=value, kind=MetricKind.GAUGE)

    @classmethod
    def counter(cls, name: str, value: float, **labels: str) -> "MetricRecord":
        return cls(name=name, labels=labels, value=value, kind=MetricKind.COUNTER)


@dataclass(frozen=True)
class Snapshot:
    """Immutable result of one collection pass."""

    generation: int
    records: Tuple[MetricRecord, ...]
    captured_at: float = field(default_factory=time.time)

    def __post_init__(self):
        object.__setattr__(self, "records", tuple(self.records))

    def names(self) -> List[str]:
        """Distinct metric names in first-seen order."""
        return list(dict.fromkeys(record.name for record in self.records))

    def find(self, name: str, **labels: str) -> List[MetricRecord]:
        """Records with the given name whose labels include ``labels``."""
        wanted = set(labels.items())
        return [
            record for record in self.records
            if record.name == name and wanted.issubset(record.labels)
        ]


@dataclass(frozen=True)
class EndpointResult:
    """Outcome of one RPC method within a pass."""

    endpoint: str
    records: Tuple[MetricRecord, ...]
    error: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "records", tuple(self.records))

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(
        cls,
        endpoint: str,
        error: str,
        previous: Tuple[MetricRecord, ...] = ()
    ) -> "EndpointResult":
        """Failed result carrying the previous pass's records, marked stale."""
        return cls(
            endpoint=endpoint,
            records=tuple(record.as_stale() for record in previous),
            error=error
        )
