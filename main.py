import logging
from typing import Dict, Optional

import uvicorn
from fastapi import FastAPI
from dotenv import find_dotenv, load_dotenv

import logging_conf
from config.consts import (
    EXEC_MODE,
    METRICS_COLLECTION_ON_TIMEOUT,
    METRICS_COLLECTION_TIMEOUT,
    METRICS_DEFAULT_LABELS,
    METRICS_REQUEST_LATENCY_ENABLED,
    ExecMode,
    TimeoutPolicy,
)
from api.routes.v1 import health, metrics
from core.instrumentation import instrument_app
from core.lifespan import lifespan
from core.process_manager import ProcessManager
from core.registry import MetricRegistry

# Load environment variables
load_dotenv(find_dotenv())
logging_conf.setup_logging()
logger = logging.getLogger(__name__)


def create_app(
    registry: Optional[MetricRegistry] = None,
    exec_mode: ExecMode = EXEC_MODE,
    process_manager: Optional[ProcessManager] = None,
    request_latency_enabled: bool = METRICS_REQUEST_LATENCY_ENABLED,
    collection_timeout: Optional[float] = METRICS_COLLECTION_TIMEOUT,
    collection_on_timeout: TimeoutPolicy = METRICS_COLLECTION_ON_TIMEOUT,
    default_labels: Optional[Dict[str, str]] = None,
) -> FastAPI:
    if registry is None:
        registry = MetricRegistry(
            default_labels=METRICS_DEFAULT_LABELS if default_labels is None else default_labels
        )

    app = FastAPI(
        title="Cluster Metrics",
        description="Aggregated Prometheus metrics across the workers of a process group",
        lifespan=lifespan,
    )
    app.state.registry = registry
    app.state.exec_mode = ExecMode(exec_mode)
    app.state.process_manager = process_manager
    app.state.collector = None
    app.state.collection_timeout = collection_timeout
    app.state.collection_on_timeout = collection_on_timeout

    # Include routers
    app.include_router(health.router, prefix="/v1", tags=["health"])
    app.include_router(metrics.router, prefix="/v1", tags=["metrics"])
    app.include_router(health.router, tags=["root"])
    app.include_router(metrics.router, tags=["root"])

    instrument_app(app, registry, enabled=request_latency_enabled)
    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8080)
