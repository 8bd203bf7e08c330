"""
Text Analysis Orchestrator
classification + sentiment -> threat level
"""
from datetime import datetime, timezone
import logging

from matrix_ai.core.errors import MatrixError
from matrix_ai.nlp.core.classifier import TextClassifier, text_classifier
from matrix_ai.nlp.core.sentiment import SentimentAnalyzer, sentiment_analyzer
from matrix_ai.nlp.schemas import (
    AnalysisOutcome, AnalysisResult, ClassificationResult, SentimentLabel, SentimentResult, ThreatLevel,
)

logger = logging.getLogger(__name__)


def decide_threat_level(classification: ClassificationResult, sentiment: SentimentResult) -> ThreatLevel:
    high_risk = classification.is_high_risk
    negative = sentiment.sentiment == SentimentLabel.NEGATIVE
    if high_risk and negative:
        return ThreatLevel.HIGH
    if high_risk or negative:
        return ThreatLevel.MEDIUM
    return ThreatLevel.LOW


class TextAnalyzer:
    def __init__(self, classifier: TextClassifier, sentiment: SentimentAnalyzer):
        self.classifier = classifier
        self.sentiment = sentiment

    def analyze(self, text: str) -> AnalysisOutcome:
        """Classifier failures are returned as AnalysisOutcome(success=False), never raised."""
        try:
            classification = self.classifier.classify(text)
        except MatrixError as e:
            logger.error(f"Text classification failed: {e.message}")
            return AnalysisOutcome(success=False, error=e.message)
        except Exception as e:
            logger.exception("Text classification failed")
            return AnalysisOutcome(success=False, error=str(e))

        sentiment = self.sentiment.score(text)

        return AnalysisOutcome(
            success=True,
            analysis=AnalysisResult(
                text=text,
                classification=classification,
                sentiment=sentiment,
                threat_level=decide_threat_level(classification, sentiment),
                timestamp=datetime.now(timezone.utc),
            ),
        )


# Global instance
text_analyzer = TextAnalyzer(text_classifier, sentiment_analyzer)

def get_text_analyzer() -> TextAnalyzer:
    return text_analyzer
