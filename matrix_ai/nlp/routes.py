from fastapi import APIRouter, BackgroundTasks, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
import logging

from matrix_ai.auth.gate import Principal, access_gate, get_current_principal, require_admin
from matrix_ai.config.settings import CATEGORIES
from matrix_ai.core.errors import Forbidden, ValidationError
from matrix_ai.db.models.common import UserRole
from matrix_ai.db.session import get_db
from matrix_ai.events.event_bus import EVENT_CREATED, EventBus
from matrix_ai.events.lifecycle import EventLifecycleManager
from matrix_ai.events.schemas import EventOut
from matrix_ai.nlp.core.analyzer import TextAnalyzer, get_text_analyzer
from matrix_ai.nlp.core.trainer import ModelTrainer, get_model_trainer
from matrix_ai.nlp.schemas import AnalyzeInput, EvaluateInput, ModelReport, TrainInput

logger = logging.getLogger(__name__)

router = APIRouter()

EVENT_WRITER_ROLES = (UserRole.ADMIN, UserRole.ANALYST)


@router.post("/analyze")
def analyze_text_route(
    payload: AnalyzeInput,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(get_current_principal),
    analyzer: TextAnalyzer = Depends(get_text_analyzer),
    db: Session = Depends(get_db),
):
    """Analyze text; with a sourceId the analysis is also recorded as an event."""
    if not payload.text or not payload.text.strip():
        raise ValidationError("Text is required")
    if payload.source_id and not access_gate.authorize(principal, EVENT_WRITER_ROLES):
        raise Forbidden("Access denied. Creating events requires the analyst or admin role.")

    outcome = analyzer.analyze(payload.text)
    if not outcome.success:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": outcome.error},
        )

    if not payload.source_id:
        return {"analysis": outcome.analysis}

    event = EventLifecycleManager.create_from_analysis(
        db, payload.source_id, payload.text, outcome.analysis, principal
    )
    event_out = EventOut.from_event(event)
    background_tasks.add_task(
        EventBus.publish_update, EVENT_CREATED, event_out.model_dump(mode="json", by_alias=True)
    )
    return {"analysis": outcome.analysis, "event": event_out}

@router.post("/model/train")
def train_model_route(
    payload: TrainInput,
    principal: Principal = Depends(require_admin),
    trainer: ModelTrainer = Depends(get_model_trainer),
):
    if not payload.training_data:
        raise ValidationError("Training data must be a non-empty array")

    logger.info(f"Training requested by {principal.username} ({len(payload.training_data)} samples)")
    result = trainer.train(payload.training_data, payload.options)
    if not result.success:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": "Model training failed", "error": result.error},
        )
    return {"message": "Model trained successfully", "result": result}

@router.post("/model/evaluate")
def evaluate_model_route(
    payload: EvaluateInput,
    principal: Principal = Depends(require_admin),
    trainer: ModelTrainer = Depends(get_model_trainer),
):
    if not payload.test_data:
        raise ValidationError("Test data must be a non-empty array")

    result = trainer.evaluate(payload.test_data)
    if not result.success:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": "Model evaluation failed", "error": result.error},
        )
    return {"message": "Model evaluated successfully", "result": result}

@router.get("/model/info", response_model=ModelReport)
def model_info_route(
    principal: Principal = Depends(get_current_principal),
    trainer: ModelTrainer = Depends(get_model_trainer),
):
    return trainer.generate_model_report()

@router.get("/categories")
def categories_route(principal: Principal = Depends(get_current_principal)):
    return {"categories": list(CATEGORIES)}
