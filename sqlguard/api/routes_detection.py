from fastapi import APIRouter, HTTPException, Query

from sqlguard.core.logger import get_logger
from sqlguard.schemas.detection import AnalyzeRequest, AnalyzeResponse
from sqlguard.services.analyzer import analyze_query
from sqlguard.services.assessment_stats import get_assessment_stats
from sqlguard.services.threat_level import classify

router = APIRouter()
log = get_logger(__name__)


@router.post("/analyze", response_model=AnalyzeResponse)
async def analyze(request: AnalyzeRequest):
    """
    Score a SQL query with the detector service.
    Degrades to the fallback heuristic when the service is unreachable; the
    response then has degraded=true and a notice for the UI banner.
    """
    try:
        return await analyze_query(request.query, request.model_choice, request.mode)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.post("/classify")
def classify_confidence(confidence: float = Query(...)):
    try:
        level = classify(confidence)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"confidence": confidence, "threat_level": level.value}


@router.get("/stats")
def detection_stats():
    """Analysis counters, live and fallback kept apart."""
    return get_assessment_stats().summary()
