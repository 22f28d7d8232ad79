import logging

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from config.consts import ExecMode
from core.aggregation import render
from core.errors import CollectionTimeoutError, MetricsError

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/metrics")
async def get_metrics(request: Request):
    state = request.app.state
    registry = state.registry

    try:
        if state.exec_mode == ExecMode.CLUSTER:
            snapshots = await state.collector.collect_cluster_metrics()
        else:
            snapshots = [registry.snapshot()]
    except CollectionTimeoutError as e:
        logger.exception("Metrics collection timed out")
        return JSONResponse(content={"detail": str(e)}, status_code=504)
    except MetricsError as e:
        logger.exception("Metrics collection failed")
        return JSONResponse(content={"detail": str(e)}, status_code=503)

    return Response(content=render(snapshots), media_type=registry.content_type())
