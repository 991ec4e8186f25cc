"""
Auxiliary intelligence analyzers
Sentiment, topics, entities and communication patterns for one email

None of these feed the threat detectors. The sentiment score is the only one
the risk aggregator looks at (a strongly negative email carries a penalty).
"""

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .email_data import ParsedEmail
from ..utils.config import IntelligenceConfig


@dataclass(frozen=True)
class SentimentResult:
    """Lexicon sentiment: score in [-1, 1] plus the raw word counts"""
    score: float = 0.0
    positive: int = 0
    negative: int = 0
    neutral: int = 0
    label: str = "neutral"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "positive": self.positive,
            "negative": self.negative,
            "neutral": self.neutral,
            "label": self.label,
        }


@dataclass(frozen=True)
class Topic:
    topic: str
    frequency: int

    def to_dict(self) -> Dict[str, Any]:
        return {"topic": self.topic, "frequency": self.frequency}


@dataclass(frozen=True)
class EntityResult:
    """Entities found in an email; every field is an ordered tuple"""
    emails: Tuple[str, ...] = ()
    urls: Tuple[str, ...] = ()
    ips: Tuple[str, ...] = ()
    domains: Tuple[str, ...] = ()
    phone_numbers: Tuple[str, ...] = ()
    organizations: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, List[str]]:
        return {
            "emails": list(self.emails),
            "urls": list(self.urls),
            "ips": list(self.ips),
            "domains": list(self.domains),
            "phone_numbers": list(self.phone_numbers),
            "organizations": list(self.organizations),
        }


@dataclass(frozen=True)
class CommunicationPatterns:
    time_slot: Optional[str] = None
    day_of_week: Optional[str] = None
    is_reply: bool = False
    is_forward: bool = False
    thread_depth: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time_slot": self.time_slot,
            "day_of_week": self.day_of_week,
            "is_reply": self.is_reply,
            "is_forward": self.is_forward,
            "thread_depth": self.thread_depth,
        }


class SentimentAnalyzer:
    """Counts lexicon hits among whitespace-separated words of the body"""

    name = "sentiment"

    VERY_NEGATIVE = -1.0
    NEGATIVE = -0.5
    POSITIVE = 0.5
    VERY_POSITIVE = 1.0

    def __init__(self, config: IntelligenceConfig):
        self.config = config
        self._positive = frozenset(word.lower() for word in config.positive_words)
        self._negative = frozenset(word.lower() for word in config.negative_words)

    def analyze(self, email: ParsedEmail) -> SentimentResult:
        words = email.body.lower().split()
        positive = sum(1 for word in words if word in self._positive)
        negative = sum(1 for word in words if word in self._negative)

        total = len(words)
        score = (positive - negative) / total if total else 0.0
        score = max(-1.0, min(1.0, score))

        return SentimentResult(
            score=score,
            positive=positive,
            negative=negative,
            neutral=total - positive - negative,
            label=self.label_for(score),
        )

    @classmethod
    def label_for(cls, score: float) -> str:
        """Negative bands include their upper edge, positive bands their lower edge"""
        if score <= cls.VERY_NEGATIVE:
            return "very_negative"
        if score <= cls.NEGATIVE:
            return "negative"
        if score < cls.POSITIVE:
            return "neutral"
        if score < cls.VERY_POSITIVE:
            return "positive"
        return "very_positive"


class TopicExtractor:
    """
    Frequency-filtered keyword list

    Words longer than three characters that are not stop words, kept when
    they appear at least ``min_topic_frequency`` times. Ties keep the order
    in which the words first appeared.
    """

    name = "topics"

    MIN_WORD_LENGTH = 4

    def __init__(self, config: IntelligenceConfig):
        self.config = config
        self._stop_words = frozenset(word.lower() for word in config.stop_words)

    def analyze(self, email: ParsedEmail) -> Tuple[Topic, ...]:
        words = [
            word for word in email.body.lower().split()
            if len(word) >= self.MIN_WORD_LENGTH and word not in self._stop_words
        ]
        frequent = [
            (word, count) for word, count in Counter(words).most_common()
            if count >= self.config.min_topic_frequency
        ]
        return tuple(
            Topic(topic=word, frequency=count)
            for word, count in frequent[:self.config.max_topics]
        )


class EntityRecognizer:
    """Regex and heuristic entity extraction (no NER model)"""

    name = "entities"

    PHONE_PATTERN = re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b")

    def __init__(self, config: IntelligenceConfig):
        self.config = config

    def analyze(self, email: ParsedEmail) -> EntityResult:
        metadata = email.metadata
        return EntityResult(
            emails=tuple(sorted(metadata.email_addresses)),
            urls=tuple(sorted(metadata.urls)),
            ips=tuple(sorted(metadata.ip_addresses)),
            domains=tuple(sorted(metadata.domains)),
            phone_numbers=tuple(dict.fromkeys(self.PHONE_PATTERN.findall(email.body))),
            organizations=self._find_organizations(email.body),
        )

    def _find_organizations(self, text: str) -> Tuple[str, ...]:
        """``Acme Corp``: a word followed by one containing a company suffix"""
        words = text.split()
        organizations = []
        for current, following in zip(words, words[1:]):
            lowered = following.lower()
            if any(suffix in lowered for suffix in self.config.organization_suffixes):
                organizations.append(f"{current} {following}")
        return tuple(dict.fromkeys(organizations))


class CommunicationPatternAnalyzer:
    """Projects the timing and threading facts the parser already derived"""

    name = "communication_patterns"

    def analyze(self, email: ParsedEmail) -> CommunicationPatterns:
        metadata = email.metadata
        return CommunicationPatterns(
            time_slot=metadata.time_slot,
            day_of_week=metadata.day_of_week,
            is_reply=metadata.is_reply,
            is_forward=metadata.is_forward,
            thread_depth=metadata.thread_depth,
        )


@dataclass
class IntelligenceAnalyzers:
    """The four auxiliary analyzers, built from one IntelligenceConfig"""
    sentiment: SentimentAnalyzer
    topics: TopicExtractor
    entities: EntityRecognizer
    patterns: CommunicationPatternAnalyzer = field(default_factory=CommunicationPatternAnalyzer)

    @classmethod
    def from_config(cls, config: IntelligenceConfig) -> "IntelligenceAnalyzers":
        return cls(
            sentiment=SentimentAnalyzer(config),
            topics=TopicExtractor(config),
            entities=EntityRecognizer(config),
        )
