from fastapi import APIRouter

from sqlguard.workers.scheduler import get_scheduler

router = APIRouter()


@router.get("/ready")
def readiness_probe():
    return {"status": "ready", "polling": get_scheduler().running}


@router.get("/live")
def liveness_probe():
    return {"status": "alive"}
