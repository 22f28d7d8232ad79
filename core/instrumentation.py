import logging

from fastapi import FastAPI
from prometheus_client import Gauge, Counter, Histogram, Summary
from prometheus_fastapi_instrumentator import Instrumentator
from prometheus_fastapi_instrumentator.metrics import Info

from config.consts import HTTP_REQUEST_COUNTER_METRIC, HTTP_REQUEST_DURATION_METRIC
from core.registry import MetricRegistry

logger = logging.getLogger(__name__)

# handler name the instrumentator reports for requests that matched no route
UNTEMPLATED_HANDLER = "none"
EXCLUDED_HANDLERS = ["/metrics", "/v1/metrics", "/health", "/v1/health"]


def request_latency(registry: MetricRegistry):
    """
    Build an instrumentation recording request duration (ms) and request count.

    Runs after the response is finalized, errors included. Failures are logged
    and never reach the request being measured.
    """

    def instrumentation(info: Info) -> None:
        route = info.modified_handler
        if not route or route == UNTEMPLATED_HANDLER:
            return

        labels = {
            "method": info.method,
            "route": route,
            "status_code": info.modified_status,
        }
        try:
            duration = registry.get_instance(HTTP_REQUEST_DURATION_METRIC)
            if isinstance(duration, (Histogram, Summary)):
                duration.labels(**labels).observe(info.modified_duration * 1000)
            else:
                raise LookupError(f"Metric {HTTP_REQUEST_DURATION_METRIC} is not registered")

            counter = registry.get_instance(HTTP_REQUEST_COUNTER_METRIC)
            if isinstance(counter, (Counter, Gauge)):
                counter.labels(**labels).inc(1)
            else:
                raise LookupError(f"Metric {HTTP_REQUEST_COUNTER_METRIC} is not registered")
        except Exception:
            logger.exception("Failed to record request latency", extra=labels)

    return instrumentation


def instrument_app(app: FastAPI, registry: MetricRegistry, enabled: bool):
    if not enabled:
        logger.info("Request latency metrics are disabled")
        return

    registry.create_request_metrics()
    instrumentator = Instrumentator(
        excluded_handlers=EXCLUDED_HANDLERS,
        should_group_status_codes=False,
        should_group_untemplated=True,
    )
    instrumentator.add(request_latency(registry))
    instrumentator.instrument(app=app)
