"""
Text Classifier
PyTorch 1D-CNN over token sequences, loaded once per process
"""
import os
import threading
from dataclasses import dataclass, asdict
from typing import List, Optional, Sequence
import logging

import torch
import torch.nn as nn

from matrix_ai.config.settings import settings, CATEGORIES, NEUTRAL_CATEGORY
from matrix_ai.core.errors import ConfigurationError, ModelLoadError
from matrix_ai.core.storage import atomic_path
from matrix_ai.nlp.core.vocabulary import Vocabulary, PAD_ID
from matrix_ai.nlp.schemas import ClassificationResult

logger = logging.getLogger(__name__)


@dataclass
class ModelConfig:
    vocab_size: int = 10000
    num_classes: int = len(CATEGORIES)
    max_len: int = 100
    embedding_dim: int = 128
    filters: int = 64
    kernel_size: int = 5
    hidden_size: int = 64
    dropout: float = 0.2


class TextCNN(nn.Module):
    """embedding -> dropout -> conv1d -> global max pool -> dense -> dropout -> dense"""

    def __init__(self, config: ModelConfig):
        super().__init__()
        self.config = config

        self.embedding = nn.Embedding(config.vocab_size, config.embedding_dim, padding_idx=PAD_ID)
        self.embedding_dropout = nn.Dropout(config.dropout)
        self.conv = nn.Conv1d(config.embedding_dim, config.filters, config.kernel_size, padding='same')
        self.dense = nn.Linear(config.filters, config.hidden_size)
        self.dropout = nn.Dropout(config.dropout)
        self.output = nn.Linear(config.hidden_size, config.num_classes)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        """
        Args:
            x: token ids [batch_size, max_len]
        Returns:
            logits [batch_size, num_classes] (softmax is applied by callers)
        """
        embedded = self.embedding_dropout(self.embedding(x))        # [B, L, E]
        features = torch.relu(self.conv(embedded.transpose(1, 2)))  # [B, F, L]
        pooled = features.max(dim=2).values                         # [B, F]
        hidden = self.dropout(torch.relu(self.dense(pooled)))
        return self.output(hidden)

    def grow_embedding(self, new_size: int) -> None:
        """Enlarge the embedding table, keeping trained rows."""
        old = self.embedding
        if new_size <= old.num_embeddings:
            return
        grown = nn.Embedding(new_size, old.embedding_dim, padding_idx=PAD_ID)
        with torch.no_grad():
            grown.weight[:old.num_embeddings] = old.weight
        self.embedding = grown
        self.config.vocab_size = new_size
        logger.info(f"Embedding grown: {old.num_embeddings} -> {new_size}")


def clamp_token_ids(x: torch.Tensor, vocab_size: int) -> torch.Tensor:
    """Ids beyond the embedding table are treated as unknown."""
    return torch.where(x < vocab_size, x, torch.full_like(x, PAD_ID))


def save_bundle(model: TextCNN, path: str, categories: Sequence[str] = CATEGORIES) -> None:
    bundle = {
        "config": asdict(model.config),
        "categories": list(categories),
        "state_dict": model.state_dict(),
    }
    with atomic_path(path) as tmp_path:
        torch.save(bundle, tmp_path)


def load_bundle(path: str, categories: Sequence[str] = CATEGORIES) -> TextCNN:
    if not os.path.exists(path):
        raise ModelLoadError(f"Model not found at {path}. Initialize the model first.")
    try:
        bundle = torch.load(path, map_location="cpu", weights_only=True)
        config = ModelConfig(**bundle["config"])
        stored_categories = list(bundle["categories"])
    except Exception as e:
        raise ModelLoadError(f"Model file {path} is unreadable: {e}") from e

    if stored_categories != list(categories):
        raise ModelLoadError(
            f"Model was trained for categories {stored_categories}, expected {list(categories)}. Retrain required."
        )

    model = TextCNN(config)
    try:
        model.load_state_dict(bundle["state_dict"])
    except Exception as e:
        raise ModelLoadError(f"Model weights in {path} do not match its config: {e}") from e
    return model


def build_classification(
    probabilities: Sequence[float],
    categories: Sequence[str] = CATEGORIES,
    threshold: float = 0.7,
    neutral: str = NEUTRAL_CATEGORY,
) -> ClassificationResult:
    """Argmax with first-index-wins on ties; high risk is strictly above the threshold."""
    top_index = 0
    for i in range(1, len(categories)):
        if probabilities[i] > probabilities[top_index]:
            top_index = i

    top_category = categories[top_index]
    confidence = float(probabilities[top_index])
    return ClassificationResult(
        categories={category: float(probabilities[i]) for i, category in enumerate(categories)},
        top_category=top_category,
        confidence=confidence,
        is_high_risk=top_category != neutral and confidence > threshold,
    )


@dataclass(frozen=True)
class _Snapshot:
    model: TextCNN
    vocabulary: Vocabulary


class TextClassifier:
    """
    Owns the process-wide model and vocabulary.

    ensure_loaded() initializes exactly once (concurrent first callers wait on
    the same lock); reload() swaps in a fresh snapshot after training. Readers
    grab the current snapshot reference and never take a lock.
    """

    def __init__(
        self,
        model_path: str,
        vocab_path: str,
        max_len: int = 100,
        high_risk_threshold: float = 0.7,
        categories: Sequence[str] = CATEGORIES,
        model_config: Optional[ModelConfig] = None,
    ):
        self.model_path = model_path
        self.vocab_path = vocab_path
        self.max_len = max_len
        self.high_risk_threshold = high_risk_threshold
        self.categories = tuple(categories)
        self.model_config = model_config or ModelConfig()
        self.model_config.num_classes = len(self.categories)
        self.model_config.max_len = max_len

        self._snapshot: Optional[_Snapshot] = None
        self._init_lock = threading.Lock()
        # Exclusive writer for {vocabulary mutation + model save}
        self.write_lock = threading.RLock()

    @classmethod
    def from_settings(cls, s=settings) -> "TextClassifier":
        return cls(
            model_path=s.MODEL_PATH,
            vocab_path=s.VOCAB_PATH,
            max_len=s.MAX_SEQUENCE_LENGTH,
            high_risk_threshold=s.HIGH_RISK_THRESHOLD,
            model_config=ModelConfig(vocab_size=s.EMBEDDING_VOCAB_SIZE, max_len=s.MAX_SEQUENCE_LENGTH),
        )

    @property
    def is_loaded(self) -> bool:
        return self._snapshot is not None

    @property
    def vocabulary_size(self) -> int:
        return len(self._snapshot.vocabulary) if self._snapshot else 0

    def ensure_loaded(self) -> None:
        if self._snapshot is not None:
            return
        with self._init_lock:
            if self._snapshot is None:
                self._snapshot = self._load_or_bootstrap()

    def reload(self) -> None:
        with self._init_lock:
            self._snapshot = self._load_or_bootstrap()
        logger.info("Classifier reloaded")

    def _load_or_bootstrap(self) -> _Snapshot:
        with self.write_lock:
            if not os.path.exists(self.model_path):
                logger.warning(f"Model not found at {self.model_path}. Bootstrapping a default model.")
                return self._bootstrap()

            model = load_bundle(self.model_path, self.categories)
            try:
                vocabulary = Vocabulary.load(self.vocab_path)
            except ConfigurationError:
                logger.warning("Vocabulary not found. Creating the base vocabulary.")
                vocabulary = Vocabulary.base()
                vocabulary.save(self.vocab_path)

            model.eval()
            logger.info("Model loaded successfully")
            return _Snapshot(model, vocabulary)

    def _bootstrap(self) -> _Snapshot:
        model = TextCNN(ModelConfig(**asdict(self.model_config)))
        model.eval()
        save_bundle(model, self.model_path, self.categories)

        if os.path.exists(self.vocab_path):
            vocabulary = Vocabulary.load(self.vocab_path)
        else:
            vocabulary = Vocabulary.base()
            vocabulary.save(self.vocab_path)

        logger.info(f"Default model saved to {self.model_path}")
        return _Snapshot(model, vocabulary)

    def _current(self) -> _Snapshot:
        self.ensure_loaded()
        return self._snapshot

    def predict(self, sequence: List[int]) -> List[float]:
        """Probability vector over self.categories for one token sequence."""
        return self._predict(self._current().model, sequence)

    @staticmethod
    def _predict(model: TextCNN, sequence: List[int]) -> List[float]:
        x = torch.tensor([sequence], dtype=torch.long)
        x = clamp_token_ids(x, model.embedding.num_embeddings)
        with torch.no_grad():
            probabilities = torch.softmax(model(x), dim=1)
        return probabilities[0].tolist()

    def encode(self, text: str) -> List[int]:
        return self._current().vocabulary.encode(text, self.max_len)

    def classify(self, text: str) -> ClassificationResult:
        # Model and vocabulary always come from the same snapshot
        snapshot = self._current()
        sequence = snapshot.vocabulary.encode(text, self.max_len)
        probabilities = self._predict(snapshot.model, sequence)
        return build_classification(probabilities, self.categories, self.high_risk_threshold)


# Global instance
text_classifier = TextClassifier.from_settings()

def get_text_classifier() -> TextClassifier:
    return text_classifier
