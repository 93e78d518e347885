from typing import List

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from sqlguard.core.logger import get_logger
from sqlguard.schemas.alerts import AlertEngineState, AlertEvent, AlertLog, DismissResult
from sqlguard.schemas.metrics import MetricSnapshot
from sqlguard.services.alert_engine import get_alert_engine

router = APIRouter()
log = get_logger(__name__)


@router.get("", response_model=AlertLog)
def list_alerts():
    """Notification log, newest first."""
    return AlertLog(alerts=get_alert_engine().alerts)


@router.get("/state", response_model=AlertEngineState)
def alert_state():
    return get_alert_engine().describe()


@router.delete("/{alert_id}", response_model=DismissResult)
async def dismiss_alert(alert_id: int):
    dismissed = get_alert_engine().dismiss(alert_id)
    return DismissResult(id=alert_id, dismissed=dismissed)


@router.post("/ingest")
async def ingest_snapshot(snapshot: MetricSnapshot):
    """Feed a pushed metrics snapshot to the engine as one tick."""
    engine = get_alert_engine()
    event = engine.on_tick(snapshot)
    return {
        "raised": event is not None,
        "alert": event.model_dump(mode="json") if event is not None else None,
        "state": engine.state.value,
    }


def _log_payload(alerts: List[AlertEvent]) -> dict:
    return {"type": "alerts", "alerts": [a.model_dump(mode="json") for a in alerts]}


@router.websocket("/ws")
async def alerts_ws(websocket: WebSocket):
    """Push the notification log on connect and whenever it changes."""
    await websocket.accept()
    engine = get_alert_engine()

    async def ws_sink(alerts: List[AlertEvent]) -> None:
        await websocket.send_json(_log_payload(alerts))

    engine.subscribe(ws_sink)
    try:
        await websocket.send_json(_log_payload(engine.alerts))
        while True:
            message = await websocket.receive_json()
            kind = message.get("type") if isinstance(message, dict) else None
            if kind == "ping":
                await websocket.send_json({"type": "pong"})
            elif kind == "dismiss":
                alert_id = message.get("id")
                dismissed = isinstance(alert_id, int) and engine.dismiss(alert_id)
                await websocket.send_json({"type": "dismissed", "id": alert_id, "dismissed": dismissed})
            else:
                await websocket.send_json({"type": "error", "message": "unknown message type"})
    except WebSocketDisconnect:
        log.info("Alert WebSocket closed")
    finally:
        engine.unsubscribe(ws_sink)
