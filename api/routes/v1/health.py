from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter()


@router.get("/health")
def health_check(request: Request):
    state = request.app.state
    process_manager = getattr(state, "process_manager", None)
    return JSONResponse(
        content={
            "status": "ok",
            "exec_mode": state.exec_mode.value,
            "worker_id": process_manager.worker_id if process_manager else 0,
        },
        status_code=200,
    )


@router.get("/")
def get_status():
    return JSONResponse(
        content="Cluster Metrics Service Running\n",
        status_code=200,
        headers={"Content-Type": "text/plain"},
    )
