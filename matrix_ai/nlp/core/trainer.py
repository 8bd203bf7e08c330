"""
Classifier training, evaluation and reporting
"""
import os
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple
import logging

import numpy as np
import torch
import torch.nn as nn

from matrix_ai.config.settings import settings
from matrix_ai.core.errors import MatrixError, ValidationError
from matrix_ai.core.storage import read_json, write_json_atomic
from matrix_ai.nlp.core.classifier import (
    TextClassifier, TextCNN, clamp_token_ids, load_bundle, save_bundle, text_classifier,
)
from matrix_ai.nlp.core.vocabulary import Vocabulary
from matrix_ai.nlp.schemas import (
    CategoryMetrics, EvaluationResult, ModelFileInfo, ModelReport,
    TrainingHistory, TrainingOptions, TrainingResult, TrainingSample,
)

logger = logging.getLogger(__name__)


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


def compute_category_metrics(
    predicted: Sequence[int],
    actual: Sequence[int],
    categories: Sequence[str],
) -> Dict[str, CategoryMetrics]:
    """Per-category precision / recall / f1 from argmax indices. Empty ratios are 0."""
    predicted = np.asarray(predicted)
    actual = np.asarray(actual)

    metrics = {}
    for idx, category in enumerate(categories):
        tp = int(np.sum((predicted == idx) & (actual == idx)))
        fp = int(np.sum((predicted == idx) & (actual != idx)))
        fn = int(np.sum((predicted != idx) & (actual == idx)))

        precision = _ratio(tp, tp + fp)
        recall = _ratio(tp, tp + fn)
        f1 = _ratio(2 * precision * recall, precision + recall)

        metrics[category] = CategoryMetrics(
            precision=round(precision, 4),
            recall=round(recall, 4),
            f1=round(f1, 4),
            samples=int(np.sum(actual == idx)),
        )
    return metrics


class ModelTrainer:
    """Fits, evaluates and reports on the classifier's persisted model."""

    def __init__(self, classifier: TextClassifier, training_data_path: str):
        self.classifier = classifier
        self.training_data_path = training_data_path
        self.categories = classifier.categories

    def prepare_training_data(
        self,
        samples: List[TrainingSample],
        vocabulary: Vocabulary,
        grow_vocabulary: bool = True,
    ) -> Tuple[torch.Tensor, torch.Tensor, List[TrainingSample]]:
        """
        Encode samples into (sequences [N, max_len], one-hot labels [N, C]).

        Samples whose category is not in the category set are skipped with a
        warning. Only the training path grows the vocabulary.

        Returns:
            (sequences, labels, used_samples)
        """
        max_len = self.classifier.max_len
        sequences, labels, used = [], [], []

        for sample in samples:
            if sample.category not in self.categories:
                logger.warning(f"Unknown category skipped: {sample.category!r}")
                continue

            if grow_vocabulary:
                sequences.append(vocabulary.encode_for_training(sample.text, max_len))
            else:
                sequences.append(vocabulary.encode(sample.text, max_len))

            label = np.zeros(len(self.categories), dtype=np.float32)
            label[self.categories.index(sample.category)] = 1.0
            labels.append(label)
            used.append(sample)

        if not used:
            return (
                torch.zeros((0, max_len), dtype=torch.long),
                torch.zeros((0, len(self.categories)), dtype=torch.float32),
                used,
            )
        return (
            torch.tensor(np.asarray(sequences, dtype=np.int64)),
            torch.from_numpy(np.stack(labels)),
            used,
        )

    def _fit(self, model: TextCNN, x: torch.Tensor, y: torch.Tensor, options: TrainingOptions) -> TrainingHistory:
        # Validation rows are taken from the tail, before any shuffling
        total = x.shape[0]
        val_count = int(total * options.validation_split)
        if val_count >= total:
            val_count = 0
        train_count = total - val_count

        x_train, y_train = x[:train_count], y[:train_count]
        x_val, y_val = x[train_count:], y[train_count:]

        optimizer = torch.optim.Adam(model.parameters(), lr=options.learning_rate)
        loss_fn = nn.CrossEntropyLoss()
        history = TrainingHistory()

        logger.info(f"Training classifier: {options.epochs} epochs, batch_size={options.batch_size}, "
                    f"train={train_count}, validation={val_count}")

        for epoch in range(options.epochs):
            model.train()
            permutation = torch.randperm(train_count)
            epoch_loss = 0.0
            correct = 0

            for start in range(0, train_count, options.batch_size):
                batch_idx = permutation[start:start + options.batch_size]
                xb, yb = x_train[batch_idx], y_train[batch_idx]

                logits = model(xb)
                loss = loss_fn(logits, yb)

                optimizer.zero_grad()
                loss.backward()
                optimizer.step()

                epoch_loss += loss.item() * len(batch_idx)
                correct += int((logits.argmax(dim=1) == yb.argmax(dim=1)).sum())

            history.loss.append(epoch_loss / train_count)
            history.accuracy.append(correct / train_count)

            if val_count:
                val_loss, val_accuracy = self._score(model, x_val, y_val, loss_fn)
                history.val_loss.append(val_loss)
                history.val_accuracy.append(val_accuracy)

            logger.info(f"Epoch {epoch + 1}/{options.epochs} - loss: {history.loss[-1]:.4f}, "
                        f"accuracy: {history.accuracy[-1]:.4f}")

        return history

    @staticmethod
    def _score(model: TextCNN, x: torch.Tensor, y: torch.Tensor, loss_fn: nn.Module) -> Tuple[float, float]:
        model.eval()
        with torch.no_grad():
            logits = model(x)
            loss = loss_fn(logits, y).item()
            accuracy = float((logits.argmax(dim=1) == y.argmax(dim=1)).float().mean())
        return loss, accuracy

    def train(self, samples: List[TrainingSample], options: Optional[TrainingOptions] = None) -> TrainingResult:
        """
        Fine-tune the persisted model on labeled samples.

        Failures (missing/corrupt model, no usable samples) come back as
        TrainingResult(success=False) rather than raising.
        """
        options = options or TrainingOptions()
        try:
            with self.classifier.write_lock:
                model = load_bundle(self.classifier.model_path, self.categories)
                vocabulary = Vocabulary.load(self.classifier.vocab_path)
                logger.info("Existing model loaded for training")

                x, y, used = self.prepare_training_data(samples, vocabulary, grow_vocabulary=True)
                if not used:
                    raise ValidationError("No training samples with a known category.")

                if len(vocabulary) + 1 > model.embedding.num_embeddings:
                    model.grow_embedding(max(len(vocabulary) + 1, model.embedding.num_embeddings * 2))
                x = clamp_token_ids(x, model.embedding.num_embeddings)

                history = self._fit(model, x, y, options)

                # With save_model the bundle lands before the vocabulary it indexes
                if options.save_model:
                    save_bundle(model, self.classifier.model_path, self.categories)
                    logger.info("Updated model saved")
                vocabulary.save(self.classifier.vocab_path)
                if options.save_model:
                    total = self._append_training_log(used)
                    logger.info(f"Training data saved. Total samples: {total}")

            self.classifier.reload()

            return TrainingResult(
                success=True,
                epochs=options.epochs,
                final_loss=history.loss[-1],
                final_accuracy=history.accuracy[-1],
                history=history,
                samples_used=len(used),
                skipped=len(samples) - len(used),
            )
        except MatrixError as e:
            logger.error(f"Model training failed: {e.message}")
            return TrainingResult(success=False, error=e.message)
        except Exception as e:
            logger.exception("Model training failed")
            return TrainingResult(success=False, error=str(e))

    def _append_training_log(self, used: List[TrainingSample]) -> int:
        existing = read_json(self.training_data_path, default=[])
        existing.extend(sample.model_dump() for sample in used)
        write_json_atomic(self.training_data_path, existing)
        return len(existing)

    def evaluate(self, samples: List[TrainingSample]) -> EvaluationResult:
        """Loss, accuracy and per-category metrics on held-out samples. Never grows the vocabulary."""
        try:
            with self.classifier.write_lock:
                model = load_bundle(self.classifier.model_path, self.categories)
                vocabulary = Vocabulary.load(self.classifier.vocab_path)

            x, y, used = self.prepare_training_data(samples, vocabulary, grow_vocabulary=False)
            if not used:
                raise ValidationError("No test samples with a known category.")
            x = clamp_token_ids(x, model.embedding.num_embeddings)

            model.eval()
            with torch.no_grad():
                logits = model(x)
                loss = nn.CrossEntropyLoss()(logits, y).item()
            predicted = logits.argmax(dim=1).numpy()
            actual = y.argmax(dim=1).numpy()

            return EvaluationResult(
                success=True,
                loss=loss,
                accuracy=float(np.mean(predicted == actual)),
                category_metrics=compute_category_metrics(predicted, actual, self.categories),
                samples_count=len(used),
            )
        except MatrixError as e:
            logger.error(f"Model evaluation failed: {e.message}")
            return EvaluationResult(success=False, error=e.message)
        except Exception as e:
            logger.exception("Model evaluation failed")
            return EvaluationResult(success=False, error=str(e))

    def generate_model_report(self) -> ModelReport:
        """Artifact summary; unreadable files come back as ModelReport(success=False)."""
        if not os.path.exists(self.training_data_path):
            return ModelReport(success=False, error="Training data not found")

        try:
            return self._build_report()
        except Exception as e:
            logger.exception("Model report failed")
            return ModelReport(success=False, error=f"Model artifacts are unreadable: {e}")

    def _build_report(self) -> ModelReport:
        training_data = read_json(self.training_data_path, default=[])
        category_counts = {
            category: sum(1 for item in training_data if item.get("category") == category)
            for category in self.categories
        }

        vocabulary = read_json(self.classifier.vocab_path, default={})

        model_info = ModelFileInfo()
        if os.path.exists(self.classifier.model_path):
            stat = os.stat(self.classifier.model_path)
            model_info = ModelFileInfo(
                exists=True,
                size=stat.st_size,
                last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            )

        return ModelReport(
            success=True,
            training_data_count=len(training_data),
            category_counts=category_counts,
            vocabulary_size=len(vocabulary),
            model_info=model_info,
        )


# Global instance
model_trainer = ModelTrainer(text_classifier, settings.TRAINING_DATA_PATH)

def get_model_trainer() -> ModelTrainer:
    return model_trainer
