"""
Event Lifecycle Manager
Creates events from analysis output and moves them through their status lifecycle
"""
from datetime import datetime, timezone
from typing import List, Optional, Tuple
import logging

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from matrix_ai.auth.gate import Principal
from matrix_ai.core.errors import NotFoundError, ValidationError
from matrix_ai.db.models.common import Event, EventSeverity, EventStatus, EventType, Source
from matrix_ai.events.schemas import EventComment, EventFilters, EventMetadata, EventStats
from matrix_ai.nlp.schemas import AnalysisResult, ThreatLevel

logger = logging.getLogger(__name__)

SEVERITY_BY_THREAT_LEVEL = {
    ThreatLevel.HIGH: EventSeverity.HIGH,
    ThreatLevel.MEDIUM: EventSeverity.MEDIUM,
    ThreatLevel.LOW: EventSeverity.LOW,
}

RESOLVING_STATUSES = (EventStatus.RESOLVED, EventStatus.FALSE_POSITIVE)
TITLE_PREVIEW_LENGTH = 50


def parse_status(value: str) -> EventStatus:
    try:
        return EventStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in EventStatus)
        raise ValidationError(f"Invalid status {value!r}. Allowed: {allowed}")


def _title_for(text: str) -> str:
    suffix = "..." if len(text) > TITLE_PREVIEW_LENGTH else ""
    return f"Text analysis: {text[:TITLE_PREVIEW_LENGTH]}{suffix}"


class EventLifecycleManager:
    @staticmethod
    def create_from_analysis(
        db: Session, source_id: str, text: str, analysis: AnalysisResult, principal: Principal
    ) -> Event:
        source = db.get(Source, source_id)
        if source is None:
            raise NotFoundError(f"Source {source_id} not found")

        metadata = EventMetadata(analysis=analysis)
        event = Event(
            title=_title_for(text),
            content=text,
            type=EventType.TEXT,
            category=analysis.classification.top_category.replace("_", " "),
            severity=SEVERITY_BY_THREAT_LEVEL[analysis.threat_level],
            confidence=analysis.classification.confidence,
            source_url="",
            status=EventStatus.NEW,
            source_id=source.id,
            event_metadata=metadata.to_column(),
            created_by=principal.id,
        )
        db.add(event)
        db.commit()
        db.refresh(event)

        logger.info(f"Event {event.id} created from analysis (source={source.id}, severity={event.severity.value})")
        return event

    @staticmethod
    def get_event(db: Session, event_id: str) -> Event:
        event = db.get(Event, event_id)
        if event is None:
            raise NotFoundError(f"Event {event_id} not found")
        return event

    @staticmethod
    def transition_status(
        db: Session, event_id: str, new_status: str, principal: Principal, comment: Optional[str] = None
    ) -> Event:
        """
        Move an event to `new_status`.

        processedAt is stamped on the first entry into processing; resolvedAt /
        resolvedBy on the first entry into resolved or false_positive. Neither
        is ever re-stamped. A non-empty comment is appended to metadata.comments.
        """
        status = parse_status(new_status)

        event = db.query(Event).filter(Event.id == event_id).with_for_update().first()
        if event is None:
            raise NotFoundError(f"Event {event_id} not found")

        now = datetime.now(timezone.utc)
        previous = event.status

        if status == EventStatus.PROCESSING and event.processed_at is None:
            event.processed_at = now

        if status in RESOLVING_STATUSES and event.resolved_at is None:
            event.resolved_at = now
            event.resolved_by = principal.id

        if comment:
            metadata = EventMetadata.from_column(event.event_metadata)
            metadata.comments.append(EventComment(
                text=comment,
                user_id=principal.id,
                username=principal.username,
                timestamp=now,
            ))
            event.event_metadata = metadata.to_column()

        event.status = status
        db.commit()
        db.refresh(event)

        logger.info(f"Event {event.id}: {previous.value} -> {status.value} by {principal.username}")
        return event

    @staticmethod
    def list_events(db: Session, filters: EventFilters, page: int = 1, limit: int = 20) -> Tuple[List[Event], int]:
        query = db.query(Event)

        if filters.status:
            query = query.filter(Event.status == filters.status)
        if filters.severity:
            query = query.filter(Event.severity == filters.severity)
        if filters.category:
            query = query.filter(Event.category == filters.category)
        if filters.source_id:
            query = query.filter(Event.source_id == filters.source_id)
        if filters.start_date:
            query = query.filter(Event.created_at >= filters.start_date)
        if filters.end_date:
            query = query.filter(Event.created_at <= filters.end_date)
        if filters.search:
            pattern = f"%{filters.search}%"
            query = query.filter(or_(Event.title.ilike(pattern), Event.content.ilike(pattern)))

        total = query.count()
        events = (
            query.order_by(Event.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return events, total

    @staticmethod
    def summarize(db: Session, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None) -> EventStats:
        conditions = []
        if start_date:
            conditions.append(Event.created_at >= start_date)
        if end_date:
            conditions.append(Event.created_at <= end_date)

        def grouped(column) -> dict:
            rows = db.query(column, func.count(Event.id)).filter(*conditions).group_by(column).all()
            counts = {}
            for key, count in rows:
                key = getattr(key, "value", key)
                counts[key if key is not None else "unknown"] = count
            return counts

        return EventStats(
            total_count=db.query(func.count(Event.id)).filter(*conditions).scalar() or 0,
            by_status=grouped(Event.status),
            by_severity=grouped(Event.severity),
            by_category=grouped(Event.category),
            by_source=grouped(Event.source_id),
        )
