from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List, Dict, Optional
from datetime import datetime
from enum import Enum


class CamelModel(BaseModel):
    """Snake-case attributes, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SentimentLabel(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"

class ThreatLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# === Analysis ===
class ClassificationResult(CamelModel):
    categories: Dict[str, float]
    top_category: str
    confidence: float
    is_high_risk: bool

class SentimentResult(CamelModel):
    sentiment: SentimentLabel
    score: float = Field(..., ge=-1.0, le=1.0)
    positive: int = 0
    negative: int = 0

class AnalysisResult(CamelModel):
    text: str
    classification: ClassificationResult
    sentiment: SentimentResult
    threat_level: ThreatLevel
    timestamp: datetime

class AnalysisOutcome(CamelModel):
    success: bool
    analysis: Optional[AnalysisResult] = None
    error: Optional[str] = None


# === Training / evaluation ===
class TrainingSample(CamelModel):
    text: str
    category: str

class TrainingOptions(CamelModel):
    epochs: int = Field(10, ge=1, le=1000)
    batch_size: int = Field(32, ge=1)
    validation_split: float = Field(0.2, ge=0.0, lt=1.0)
    learning_rate: float = Field(0.001, gt=0.0)
    save_model: bool = True

class TrainingHistory(CamelModel):
    loss: List[float] = []
    accuracy: List[float] = []
    val_loss: List[float] = []
    val_accuracy: List[float] = []

class TrainingResult(CamelModel):
    success: bool
    epochs: Optional[int] = None
    final_loss: Optional[float] = None
    final_accuracy: Optional[float] = None
    history: Optional[TrainingHistory] = None
    samples_used: int = 0
    skipped: int = 0
    error: Optional[str] = None

class CategoryMetrics(CamelModel):
    precision: float
    recall: float
    f1: float
    samples: int

class EvaluationResult(CamelModel):
    success: bool
    loss: Optional[float] = None
    accuracy: Optional[float] = None
    category_metrics: Dict[str, CategoryMetrics] = {}
    samples_count: int = 0
    error: Optional[str] = None

class ModelFileInfo(CamelModel):
    exists: bool = False
    size: int = 0
    last_modified: Optional[datetime] = None

class ModelReport(CamelModel):
    success: bool
    training_data_count: int = 0
    category_counts: Dict[str, int] = {}
    vocabulary_size: int = 0
    model_info: ModelFileInfo = ModelFileInfo()
    error: Optional[str] = None


# === Request bodies ===
class AnalyzeInput(CamelModel):
    text: str = ""
    source_id: Optional[str] = None

class TrainInput(CamelModel):
    training_data: List[TrainingSample]
    options: Optional[TrainingOptions] = None

class EvaluateInput(CamelModel):
    test_data: List[TrainingSample]
