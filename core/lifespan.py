import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from config.consts import ExecMode
from core.collector import ClusterCollector

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    state = app.state
    logger.info(
        "Starting Cluster Metrics Service", extra={"exec_mode": state.exec_mode.value}
    )

    process_manager = None
    if state.exec_mode == ExecMode.CLUSTER:
        process_manager = state.process_manager
        if process_manager is None:
            from core.redis_process_manager import RedisProcessManager

            logger.info("EXEC_MODE is cluster - joining process group via Redis")
            process_manager = RedisProcessManager()
            state.process_manager = process_manager

        collector = ClusterCollector(
            state.registry,
            process_manager,
            timeout=state.collection_timeout,
            on_timeout=state.collection_on_timeout,
        )
        collector.install()
        state.collector = collector
        await process_manager.start()
    else:
        logger.info("EXEC_MODE is standalone - serving local metrics only")

    yield

    # Shutdown
    logger.info("Shutting down Cluster Metrics Service")

    if process_manager:
        await process_manager.stop()

    logger.info("Cluster Metrics Service stopped")
