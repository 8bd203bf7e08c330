from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List, Dict, Optional
from datetime import datetime

from matrix_ai.db.models.common import Event, EventSeverity, EventStatus, EventType
from matrix_ai.nlp.schemas import AnalysisResult, CamelModel


class EventComment(CamelModel):
    text: str
    user_id: str
    username: str
    timestamp: datetime

class EventMetadata(CamelModel):
    """Analysis snapshot + append-only comment thread; unknown keys are kept as-is."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    analysis: Optional[AnalysisResult] = None
    comments: List[EventComment] = []

    @classmethod
    def from_column(cls, raw: Optional[dict]) -> "EventMetadata":
        return cls.model_validate(raw or {})

    def to_column(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class StatusUpdateInput(CamelModel):
    status: str
    comment: Optional[str] = None


class EventSummary(CamelModel):
    id: str
    title: str
    status: EventStatus
    processed_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None

    @classmethod
    def from_event(cls, event: Event) -> "EventSummary":
        return cls(
            id=event.id,
            title=event.title,
            status=event.status,
            processed_at=event.processed_at,
            resolved_at=event.resolved_at,
            resolved_by=event.resolved_by,
        )

class EventOut(EventSummary):
    content: Optional[str] = None
    type: EventType
    category: Optional[str] = None
    severity: EventSeverity
    confidence: float
    source_url: Optional[str] = None
    metadata: Dict = {}
    source_id: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_event(cls, event: Event) -> "EventOut":
        return cls(
            id=event.id,
            title=event.title,
            status=event.status,
            processed_at=event.processed_at,
            resolved_at=event.resolved_at,
            resolved_by=event.resolved_by,
            content=event.content,
            type=event.type,
            category=event.category,
            severity=event.severity,
            confidence=event.confidence,
            source_url=event.source_url,
            metadata=event.event_metadata or {},
            source_id=event.source_id,
            created_by=event.created_by,
            created_at=event.created_at,
            updated_at=event.updated_at,
        )


class StatusUpdateResponse(CamelModel):
    message: str
    event: EventSummary

class Pagination(CamelModel):
    total: int
    page: int
    limit: int
    pages: int

class EventListResponse(CamelModel):
    events: List[EventOut]
    pagination: Pagination

class EventFilters(CamelModel):
    status: Optional[EventStatus] = None
    severity: Optional[EventSeverity] = None
    category: Optional[str] = None
    source_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    search: Optional[str] = Field(None, min_length=1)

class EventStats(CamelModel):
    total_count: int
    by_status: Dict[str, int]
    by_severity: Dict[str, int]
    by_category: Dict[str, int]
    by_source: Dict[str, int]
