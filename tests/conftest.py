import os
import tempfile

# Settings are read at import time
os.environ["JWT_SECRET"] = "test-secret-key-with-at-least-32-characters"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["MODEL_DIR"] = tempfile.mkdtemp(prefix="matrix_ai_models_")
os.environ["ENVIRONMENT"] = "test"

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from matrix_ai.auth.gate import Principal, access_gate
from matrix_ai.auth.security import hash_password
from matrix_ai.db.models.common import Source, SourceType, User, UserRole
from matrix_ai.db.session import Base, get_db
from matrix_ai.events.event_bus import EventBus
from matrix_ai.nlp.core.analyzer import get_text_analyzer
from matrix_ai.nlp.core.classifier import ModelConfig, TextClassifier
from matrix_ai.nlp.schemas import (
    AnalysisOutcome, AnalysisResult, ClassificationResult, SentimentLabel, SentimentResult, ThreatLevel,
)

TEST_PASSWORD = "password123"


# === Database ===
@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def make_user(db):
    def _make_user(username: str, role: UserRole = UserRole.USER, is_active: bool = True) -> User:
        user = User(
            username=username,
            email=f"{username}@example.com",
            password_hash=hash_password(TEST_PASSWORD),
            role=role,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make_user


@pytest.fixture
def admin(make_user):
    return make_user("admin", UserRole.ADMIN)

@pytest.fixture
def analyst(make_user):
    return make_user("analyst", UserRole.ANALYST)

@pytest.fixture
def plain_user(make_user):
    return make_user("viewer", UserRole.USER)

@pytest.fixture
def analyst_principal(analyst):
    return Principal.from_user(analyst)


@pytest.fixture
def source(db, admin):
    src = Source(name="Telegram channels", type=SourceType.TELEGRAM, url="https://t.me", created_by=admin.id)
    db.add(src)
    db.commit()
    db.refresh(src)
    return src


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {access_gate.create_access_token(user)}"}


# === Analysis fixtures ===
def make_analysis(
    text: str = "attack on the network",
    top_category: str = "security_threat",
    confidence: float = 0.9,
    threat_level: ThreatLevel = ThreatLevel.HIGH,
) -> AnalysisResult:
    return AnalysisResult(
        text=text,
        classification=ClassificationResult(
            categories={"neutral": round(1 - confidence, 4), top_category: confidence},
            top_category=top_category,
            confidence=confidence,
            is_high_risk=top_category != "neutral" and confidence > 0.7,
        ),
        sentiment=SentimentResult(sentiment=SentimentLabel.NEGATIVE, score=-1.0, positive=0, negative=1),
        threat_level=threat_level,
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


class StubAnalyzer:
    """Returns a fixed outcome and records the texts it was asked about."""

    def __init__(self, outcome: AnalysisOutcome):
        self.outcome = outcome
        self.calls = []

    def analyze(self, text: str) -> AnalysisOutcome:
        self.calls.append(text)
        if self.outcome.success:
            return AnalysisOutcome(success=True, analysis=self.outcome.analysis.model_copy(update={"text": text}))
        return self.outcome


@pytest.fixture
def stub_analyzer():
    return StubAnalyzer(AnalysisOutcome(success=True, analysis=make_analysis()))


# === Classifier ===
@pytest.fixture
def tiny_classifier(tmp_path):
    """A small classifier writing its artifacts under tmp_path."""
    return TextClassifier(
        model_path=str(tmp_path / "text_classifier.pt"),
        vocab_path=str(tmp_path / "vocabulary.json"),
        max_len=12,
        model_config=ModelConfig(vocab_size=64, embedding_dim=8, filters=4, kernel_size=3, hidden_size=8),
    )


# === API ===
@pytest.fixture
def published(monkeypatch):
    messages = []

    async def fake_publish(kind, payload):
        messages.append((kind, payload))

    monkeypatch.setattr(EventBus, "publish_update", staticmethod(fake_publish))
    return messages


@pytest.fixture
def app(db, stub_analyzer, published):
    from src.app import create_app

    application = create_app()

    def override_get_db():
        yield db

    application.dependency_overrides[get_db] = override_get_db
    application.dependency_overrides[get_text_analyzer] = lambda: stub_analyzer
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app):
    # Not used as a context manager: the lifespan (Redis, warmup) stays off
    return TestClient(app)
