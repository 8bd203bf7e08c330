from matrix_ai.nlp.core.vocabulary import tokenize
from matrix_ai.nlp.schemas import SentimentLabel, SentimentResult

POSITIVE_WORDS = frozenset({"good", "excellent", "successful", "successfully", "positive", "safe", "secure", "resolved"})
NEGATIVE_WORDS = frozenset({"bad", "threat", "threats", "danger", "dangerous", "negative", "risk", "attack", "attacks"})

POLARITY_THRESHOLD = 0.3


class SentimentAnalyzer:
    """Keyword-count polarity. Pure function of the text; no learned state."""

    def __init__(self, positive_words=POSITIVE_WORDS, negative_words=NEGATIVE_WORDS,
                 threshold: float = POLARITY_THRESHOLD):
        self.positive_words = frozenset(positive_words)
        self.negative_words = frozenset(negative_words)
        self.threshold = threshold

    def score(self, text: str) -> SentimentResult:
        tokens = tokenize(text)
        positive = sum(1 for token in tokens if token in self.positive_words)
        negative = sum(1 for token in tokens if token in self.negative_words)

        score = (positive - negative) / max(positive + negative, 1)

        label = SentimentLabel.NEUTRAL
        if score > self.threshold:
            label = SentimentLabel.POSITIVE
        elif score < -self.threshold:
            label = SentimentLabel.NEGATIVE

        return SentimentResult(sentiment=label, score=score, positive=positive, negative=negative)


sentiment_analyzer = SentimentAnalyzer()
