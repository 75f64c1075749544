# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Moderation filter for complaint text.

Reports a profanity severity and a sentiment score for a piece of text. The
filter only reports signal; accepting, flagging or rejecting is decided by
the validator. Scoring is a pure function of the text and the lexicons the
filter was built with.
"""

import json
import math
import re
import unicodedata
from typing import Dict, List, Optional, Iterable

from models.entities import ModerationResult
from .errors import ContentTooLargeError, ConfigurationError
from .lexicon import (
    PROFANITY_TERMS, POSITIVE_TERMS, NEGATIVE_TERMS,
    NEGATORS, INTENSIFIERS, LEET_SUBSTITUTIONS
)

DEFAULT_MAX_LENGTH = 2000

# Normalisation constant of the sentiment squash function
SENTIMENT_ALPHA = 15.0
NEGATION_SCALAR = -0.74
INTENSIFIER_SCALAR = 1.5
NEGATION_WINDOW = 3

_TOKEN_PATTERN = re.compile(r"[\w@$!|]+", re.UNICODE)
_APOSTROPHES = re.compile(r"['’`]")
_TRIPLE_RUN = re.compile(r"(.)\1{2,}")
_DOUBLE_RUN = re.compile(r"(.)\1+")


def fold_case(text: str) -> str:
    """
    Lowercase text so Turkish and English spellings of a word meet.

    Dotted and dotless i both fold to "i". Plain lower() would turn "İ" into
    "i" plus a combining dot, which splits the token.
    """
    text = unicodedata.normalize("NFC", text).replace("\u0130", "i").lower()
    return text.replace("\u0131", "i").replace("\u0307", "")


def tokenize(text: str) -> List[str]:
    """
    Split text into case-folded word tokens.

    Apostrophes are dropped so contractions stay single tokens ("isn't" ->
    "isnt"). Symbols that double as leetspeak are kept inside tokens and
    trimmed from their edges.
    """
    text = _APOSTROPHES.sub("", fold_case(text))
    tokens = []
    for raw in _TOKEN_PATTERN.findall(text):
        token = raw.strip("!|_")
        if token:
            tokens.append(token)
    return tokens


def deleet(token: str) -> str:
    """Map common leetspeak substitutions back to letters."""
    return "".join(LEET_SUBSTITUTIONS.get(char, char) for char in token)


def token_variants(token: str) -> List[str]:
    """
    Candidate spellings of a token for lexicon lookup, most literal first.
    """
    plain = deleet(token)
    variants = [token, plain, _TRIPLE_RUN.sub(r"\1", plain), _DOUBLE_RUN.sub(r"\1", plain)]
    seen = []
    for variant in variants:
        if variant not in seen:
            seen.append(variant)
    return seen


def squash(score: float, alpha: float = SENTIMENT_ALPHA) -> float:
    """Normalise an unbounded score into [-1, 1]."""
    if score == 0:
        return 0.0
    normalized = score / math.sqrt(score * score + alpha)
    return max(-1.0, min(1.0, normalized))


class ModerationFilter:
    """Lexicon-based profanity and sentiment scorer."""

    def __init__(
        self,
        max_length: int = DEFAULT_MAX_LENGTH,
        profanity_terms: Optional[Dict[str, float]] = None,
        positive_terms: Optional[Dict[str, float]] = None,
        negative_terms: Optional[Dict[str, float]] = None,
        negators: Optional[Iterable[str]] = None,
        intensifiers: Optional[Iterable[str]] = None
    ):
        if max_length <= 0:
            raise ConfigurationError("Moderation max length must be positive")

        self.max_length = max_length
        self.profanity_terms = {fold_case(k): float(v) for k, v in (profanity_terms or PROFANITY_TERMS).items()}
        self.positive_terms = {fold_case(k): float(v) for k, v in (positive_terms or POSITIVE_TERMS).items()}
        self.negative_terms = {fold_case(k): float(v) for k, v in (negative_terms or NEGATIVE_TERMS).items()}
        self.negators = frozenset(fold_case(w) for w in (negators or NEGATORS))
        self.intensifiers = frozenset(fold_case(w) for w in (intensifiers or INTENSIFIERS))

    def screen(self, text: str) -> ModerationResult:
        """
        Screen text for profanity and score its sentiment.

        Args:
            text: Non-empty text to screen

        Returns:
            ModerationResult with profanity flag, severity and sentiment

        Raises:
            ContentTooLargeError: If text exceeds the configured limit
        """
        if len(text) > self.max_length:
            raise ContentTooLargeError(len(text), self.max_length)

        tokens = tokenize(text)

        severity = 0.0
        matched: List[str] = []
        valences: List[float] = []

        for token in tokens:
            term = self.match_profanity(token)
            if term is not None:
                weight = self.profanity_terms[term]
                severity += weight
                matched.append(term)
                valences.append(-weight)
            else:
                valences.append(self.positive_terms.get(token, self.negative_terms.get(token, 0.0)))

        return ModerationResult(
            has_profanity=severity > 0,
            severity=round(severity, 4),
            sentiment=round(self.score_sentiment(tokens, valences), 4),
            matched_terms=sorted(set(matched))
        )

    def match_profanity(self, token: str) -> Optional[str]:
        """Return the lexicon term a token stands for, if any."""
        for variant in token_variants(token):
            if variant in self.profanity_terms:
                return variant
        return None

    def score_sentiment(self, tokens: List[str], valences: List[float]) -> float:
        """Combine per-token valences with negation and intensifier rules."""
        total = 0.0
        for index, valence in enumerate(valences):
            if valence == 0:
                continue

            if index > 0 and tokens[index - 1] in self.intensifiers:
                valence *= INTENSIFIER_SCALAR

            window = tokens[max(0, index - NEGATION_WINDOW):index]
            if any(word in self.negators for word in window):
                valence *= NEGATION_SCALAR

            total += valence

        return squash(total)


def load_lexicon(path: str) -> Dict[str, Dict[str, float]]:
    """
    Load lexicon overrides from a JSON file.

    The file may define any of "profanity", "positive" and "negative", each a
    mapping of term to weight.
    """
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Failed to load moderation lexicon from {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigurationError("Moderation lexicon must be a JSON object")

    lexicon = {}
    for section in ("profanity", "positive", "negative"):
        table = data.get(section)
        if table is None:
            continue
        if not isinstance(table, dict):
            raise ConfigurationError(f"Lexicon section '{section}' must be an object")
        try:
            lexicon[section] = {str(term): float(weight) for term, weight in table.items()}
        except (TypeError, ValueError):
            raise ConfigurationError(f"Lexicon section '{section}' contains a non-numeric weight")

    return lexicon


def create_moderation_filter(max_length: int = DEFAULT_MAX_LENGTH, lexicon_path: Optional[str] = None) -> ModerationFilter:
    """Build a moderation filter, applying lexicon overrides when a path is given."""
    overrides = load_lexicon(lexicon_path) if lexicon_path else {}
    return ModerationFilter(
        max_length=max_length,
        profanity_terms=overrides.get("profanity"),
        positive_terms=overrides.get("positive"),
        negative_terms=overrides.get("negative")
    )
