from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class MetricKind(str, Enum):
    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"
    SUMMARY = "summary"


class GaugeAggregator(str, Enum):
    SUM = "sum"
    MIN = "min"
    MAX = "max"
    AVERAGE = "average"
    FIRST = "first"
    OMIT = "omit"


class MetricDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    # kept as a plain string so unknown kinds reach the registry and fail there
    kind: str
    name: str
    help: str
    label_names: List[str] = []
    buckets: Optional[List[float]] = None
    aggregator: GaugeAggregator = GaugeAggregator.SUM


class SampleSnapshot(BaseModel):
    name: str
    labels: Dict[str, str] = {}
    value: float


class MetricFamilySnapshot(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    name: str
    help: str
    type: str
    unit: str = ""
    aggregator: GaugeAggregator = GaugeAggregator.SUM
    samples: List[SampleSnapshot] = []


# One worker's registry as it travels between processes
MetricSnapshot = List[Dict[str, Any]]
