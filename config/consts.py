import enum

from config.config import config


class ExecMode(str, enum.Enum):
    STANDALONE = "standalone"
    CLUSTER = "cluster"


class TimeoutPolicy(str, enum.Enum):
    PARTIAL = "partial"
    FAIL = "fail"


SERVICE_NAME = config("SERVICE_NAME", default="cluster-metrics")
LOG_LEVEL = config("LOG_LEVEL", default="INFO")

# pm2 style: anything other than "cluster" means a single process
EXEC_MODE = (
    ExecMode.CLUSTER
    if str(config("EXEC_MODE", default="standalone")).lower() == ExecMode.CLUSTER.value
    else ExecMode.STANDALONE
)
WORKER_ID = config("WORKER_ID", default=None, cast=int)

METRICS_REQUEST_LATENCY_ENABLED = config(
    "METRICS_REQUEST_LATENCY_ENABLED", default=True, cast=bool
)
# 0 disables the deadline and waits for every worker
METRICS_COLLECTION_TIMEOUT = config("METRICS_COLLECTION_TIMEOUT", default=5.0, cast=float)
METRICS_COLLECTION_ON_TIMEOUT = TimeoutPolicy(
    str(config("METRICS_COLLECTION_ON_TIMEOUT", default="partial")).lower()
)
METRICS_DEFAULT_LABELS = config("METRICS_DEFAULT_LABELS", default={}, cast=dict)

REDIS_URL = config("REDIS_URL", default="redis://localhost:6379/0")
WORKER_HEARTBEAT_INTERVAL = config("WORKER_HEARTBEAT_INTERVAL", default=5, cast=int)
WORKER_TTL = config("WORKER_TTL", default=15, cast=int)

# Message topics exchanged between workers
TOPIC_GET_METRICS = "get_metrics"
TOPIC_RETURN_METRICS = "return_metrics"

# Request latency metric names
HTTP_REQUEST_DURATION_METRIC = "http_request_duration_ms"
HTTP_REQUEST_COUNTER_METRIC = "http_request_counter"
HTTP_REQUEST_LABELS = ["method", "route", "status_code"]
# 0.1ms to 1s
HTTP_REQUEST_DURATION_BUCKETS = [0.1, 5, 15, 50, 100, 200, 300, 400, 500, 1000]
