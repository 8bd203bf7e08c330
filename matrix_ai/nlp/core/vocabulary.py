"""
Vocabulary / Tokenizer
Text -> lowercase word tokens -> fixed-length integer sequence
"""
import os
import re
from typing import Dict, Iterable, List
import logging

from matrix_ai.core.errors import ConfigurationError
from matrix_ai.core.storage import read_json, write_json_atomic

logger = logging.getLogger(__name__)

PAD_ID = 0  # also "unknown"

_WORD_RE = re.compile(r"[^\W_]+", re.UNICODE)
_APOSTROPHE_RE = re.compile(r"['’]")

# Seed words for a freshly bootstrapped model
BASE_WORDS = [
    'threat', 'danger', 'security', 'attack', 'protection', 'system',
    'information', 'data', 'user', 'network', 'hack', 'access',
    'virus', 'vulnerability', 'risk', 'monitoring', 'incident', 'event',
    'finance', 'money', 'economy', 'crisis', 'bank', 'account', 'transfer',
    'social', 'society', 'protest', 'rally', 'conflict', 'tension',
    'extremism', 'terrorism', 'radical', 'weapon', 'violence', 'aggression',
]


def tokenize(text: str) -> List[str]:
    """Lowercase word tokens; apostrophes are dropped, other punctuation splits. No stemming."""
    return _WORD_RE.findall(_APOSTROPHE_RE.sub("", (text or "").lower()))


def to_sequence(tokens: Iterable[str], vocabulary: Dict[str, int], max_len: int) -> List[int]:
    """Map the first `max_len` tokens to ids (0 if absent) and right-pad with 0."""
    sequence = []
    for token in tokens:
        if len(sequence) >= max_len:
            break
        sequence.append(vocabulary.get(token, PAD_ID))
    sequence.extend([PAD_ID] * (max_len - len(sequence)))
    return sequence


class Vocabulary:
    """Token -> id map. Ids are contiguous from 1 and only ever appended."""

    def __init__(self, token_ids: Dict[str, int] = None):
        self._ids: Dict[str, int] = dict(token_ids or {})

    @classmethod
    def base(cls) -> "Vocabulary":
        return cls({word: index + 1 for index, word in enumerate(BASE_WORDS)})

    @classmethod
    def load(cls, path: str) -> "Vocabulary":
        if not os.path.exists(path):
            raise ConfigurationError(f"Vocabulary not found at {path}. Initialize the model first.")
        data = read_json(path)
        logger.info(f"Vocabulary loaded: {len(data)} tokens")
        return cls(data)

    def save(self, path: str) -> None:
        write_json_atomic(path, self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, token: str) -> bool:
        return token in self._ids

    def as_dict(self) -> Dict[str, int]:
        return dict(self._ids)

    def lookup(self, token: str) -> int:
        return self._ids.get(token, PAD_ID)

    def add(self, token: str) -> int:
        if token not in self._ids:
            self._ids[token] = len(self._ids) + 1
        return self._ids[token]

    def encode(self, text: str, max_len: int) -> List[int]:
        """Inference path: never mutates the vocabulary."""
        return to_sequence(tokenize(text), self._ids, max_len)

    def encode_for_training(self, text: str, max_len: int) -> List[int]:
        """Training path: unseen tokens within the first `max_len` get fresh ids."""
        tokens = tokenize(text)[:max_len]
        for token in tokens:
            self.add(token)
        return to_sequence(tokens, self._ids, max_len)
