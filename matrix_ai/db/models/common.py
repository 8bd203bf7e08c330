"""
Common Database Models
"""
from sqlalchemy import Column, String, DateTime, Integer, Float, Text, Boolean, JSON, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from matrix_ai.db.session import Base
import enum
import uuid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def new_id() -> str:
    return str(uuid.uuid4())


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    ANALYST = "analyst"
    USER = "user"

class SourceType(str, enum.Enum):
    """Data source enumeration"""
    VKONTAKTE = "vkontakte"
    TELEGRAM = "telegram"
    TWITTER = "twitter"
    OTHER = "other"

class EventType(str, enum.Enum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    MIXED = "mixed"

class EventSeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

class EventStatus(str, enum.Enum):
    NEW = "new"
    PROCESSING = "processing"
    RESOLVED = "resolved"
    FALSE_POSITIVE = "false_positive"
    IGNORED = "ignored"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class User(Base):
    """Account used for authentication and role checks"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    username = Column(String(50), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100))
    last_name = Column(String(100))
    role = Column(SQLEnum(UserRole, values_callable=_enum_values), nullable=False, default=UserRole.USER)
    is_active = Column(Boolean, nullable=False, default=True)
    last_login = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Source(Base):
    """External data origin (social network feed, channel, ...)"""
    __tablename__ = "sources"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    type = Column(SQLEnum(SourceType, values_callable=_enum_values), nullable=False)
    url = Column(String(500))
    credentials = Column(JSON)
    is_active = Column(Boolean, nullable=False, default=True)
    sync_frequency = Column(Integer, nullable=False, default=60)  # minutes
    last_sync_date = Column(DateTime(timezone=True))
    config = Column(JSON)
    created_by = Column(String(36), ForeignKey("users.id"))
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Event(Base):
    """Monitoring event produced from analyzed content"""
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(255), nullable=False)
    content = Column(Text)
    type = Column(SQLEnum(EventType, values_callable=_enum_values), nullable=False, default=EventType.TEXT)
    category = Column(String(100))
    severity = Column(SQLEnum(EventSeverity, values_callable=_enum_values), nullable=False, default=EventSeverity.MEDIUM, index=True)
    confidence = Column(Float, nullable=False, default=0.0)
    source_url = Column(String(500))
    # `metadata` is reserved on declarative classes
    event_metadata = Column("metadata", JSON)
    status = Column(SQLEnum(EventStatus, values_callable=_enum_values), nullable=False, default=EventStatus.NEW, index=True)
    processed_at = Column(DateTime(timezone=True))
    resolved_at = Column(DateTime(timezone=True))
    resolved_by = Column(String(36), ForeignKey("users.id"))
    source_id = Column(String(36), ForeignKey("sources.id"), index=True)
    created_by = Column(String(36), ForeignKey("users.id"))
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    source = relationship("Source", foreign_keys=[source_id])
    resolver = relationship("User", foreign_keys=[resolved_by])
