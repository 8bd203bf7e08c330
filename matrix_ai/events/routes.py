import json
import asyncio
import math
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.orm import Session
from sse_starlette.sse import EventSourceResponse

from matrix_ai.auth.gate import Principal, get_current_principal, require_analyst
from matrix_ai.db.models.common import EventSeverity, EventStatus
from matrix_ai.db.session import get_db
from matrix_ai.events.event_bus import EVENT_STATUS_CHANGED, EventBus
from matrix_ai.events.lifecycle import EventLifecycleManager
from matrix_ai.events.schemas import (
    EventFilters, EventListResponse, EventOut, EventStats, EventSummary, Pagination,
    StatusUpdateInput, StatusUpdateResponse,
)
from matrix_ai.nlp.routes import analyze_text_route

router = APIRouter()

# Same handler as POST /analyze
router.add_api_route("/analyze", analyze_text_route, methods=["POST"])


@router.get("", response_model=EventListResponse)
def list_events_route(
    status: Optional[EventStatus] = None,
    severity: Optional[EventSeverity] = None,
    category: Optional[str] = None,
    source_id: Optional[str] = Query(None, alias="sourceId"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    filters = EventFilters(
        status=status,
        severity=severity,
        category=category,
        source_id=source_id,
        start_date=start_date,
        end_date=end_date,
        search=search or None,
    )
    events, total = EventLifecycleManager.list_events(db, filters, page, limit)
    return EventListResponse(
        events=[EventOut.from_event(e) for e in events],
        pagination=Pagination(total=total, page=page, limit=limit, pages=math.ceil(total / limit)),
    )

@router.get("/stats/summary", response_model=EventStats)
def event_stats_route(
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return EventLifecycleManager.summarize(db, start_date, end_date)

@router.get("/stream")
async def stream_events_route(request: Request, principal: Principal = Depends(get_current_principal)):
    async def event_generator():
        try:
            async for message in EventBus.subscribe_to_updates():
                if await request.is_disconnected():
                    break

                if message.get("type") == "HEARTBEAT":
                    yield {"event": "HEARTBEAT", "data": "ping"}
                else:
                    yield {"event": message.get("type", "UPDATE"), "data": json.dumps(message.get("payload", {}))}
        except ConnectionError as e:
            yield {"event": "ERROR", "data": json.dumps({"message": str(e)})}
        except asyncio.CancelledError:
            pass

    return EventSourceResponse(event_generator())

@router.get("/{event_id}", response_model=EventOut)
def get_event_route(event_id: str, principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return EventOut.from_event(EventLifecycleManager.get_event(db, event_id))

@router.put("/{event_id}/status", response_model=StatusUpdateResponse)
def update_event_status_route(
    event_id: str,
    payload: StatusUpdateInput,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(require_analyst),
    db: Session = Depends(get_db),
):
    event = EventLifecycleManager.transition_status(db, event_id, payload.status, principal, payload.comment)
    summary = EventSummary.from_event(event)
    background_tasks.add_task(
        EventBus.publish_update, EVENT_STATUS_CHANGED, summary.model_dump(mode="json", by_alias=True)
    )
    return StatusUpdateResponse(message="Event status updated successfully", event=summary)
