"""
Analysis Record Module
Immutable analysis records produced by the intelligence agent
"""

import hashlib
import uuid
from types import MappingProxyType
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Tuple

from .email_data import ParsedEmail
from .intelligence_analyzers import (
    CommunicationPatterns,
    EntityResult,
    SentimentResult,
    Topic,
)
from .threat_detectors import DetectorResult
from ..utils.sanitization import sanitize_for_logging

BODY_PREVIEW_CHARS = 200
VIEW_HEADERS = ("from", "to", "subject", "date")


def compute_fingerprint(email: ParsedEmail, body_chars: int = 1000) -> str:
    """
    SHA-256 hex digest identifying an email for caching.

    Built from the subject, the From header and the first *body_chars*
    characters of the body, NUL-separated. Emails that differ only past that
    prefix share a fingerprint.
    """
    material = "\x00".join((email.subject, email.sender, email.body[:body_chars]))
    return hashlib.sha256(material.encode("utf-8", errors="replace")).hexdigest()


def new_analysis_id(timestamp: datetime) -> str:
    """``analysis_<epoch ms>_<random hex>``"""
    return f"analysis_{int(timestamp.timestamp() * 1000)}_{uuid.uuid4().hex[:9]}"


def freeze(value: Any) -> Any:
    """Read-only copy of nested dicts and lists (dicts become mapping proxies, lists tuples)"""
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    return value


def thaw(value: Any) -> Any:
    """Inverse of :func:`freeze`, giving plain JSON-friendly dicts and lists"""
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [thaw(item) for item in value]
    return value


@dataclass(frozen=True)
class EmailView:
    """What an analysis keeps of the email: sanitized headers and a preview"""
    headers: Mapping[str, str]
    body_preview: str
    attachments: Tuple[Mapping[str, Any], ...]
    metadata: Mapping[str, Any]

    def __post_init__(self):
        object.__setattr__(self, "headers", freeze(self.headers))
        object.__setattr__(self, "attachments", freeze(self.attachments))
        object.__setattr__(self, "metadata", freeze(self.metadata))

    @classmethod
    def from_email(cls, email: ParsedEmail) -> "EmailView":
        headers = {
            key: sanitize_for_logging(email.headers[key])
            for key in VIEW_HEADERS
            if key in email.headers
        }
        attachments = tuple(
            {
                "filename": attachment.filename,
                "size": attachment.size,
                "content_type": attachment.content_type,
            }
            for attachment in email.attachments
        )
        return cls(
            headers=headers,
            body_preview=email.body[:BODY_PREVIEW_CHARS],
            attachments=attachments,
            metadata=email.metadata.to_dict(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "headers": thaw(self.headers),
            "body_preview": self.body_preview,
            "attachments": thaw(self.attachments),
            "metadata": thaw(self.metadata),
        }


@dataclass(frozen=True)
class AnalysisResults:
    threat_assessment: Mapping[str, DetectorResult]
    sentiment_analysis: SentimentResult
    topic_extraction: Tuple[Topic, ...]
    entity_recognition: EntityResult
    communication_patterns: CommunicationPatterns
    risk_score: int
    risk_level: str
    category: str
    confidence: float
    metadata: Mapping[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "threat_assessment", MappingProxyType(dict(self.threat_assessment)))
        object.__setattr__(self, "metadata", freeze(self.metadata))

    @property
    def detected_threats(self) -> Tuple[str, ...]:
        """Names of the detectors that fired, in aggregation order"""
        return tuple(
            name for name, result in self.threat_assessment.items() if result.detected
        )

    @property
    def is_threat(self) -> bool:
        return self.category != "legitimate"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "threat_assessment": {
                name: result.to_dict() for name, result in self.threat_assessment.items()
            },
            "sentiment_analysis": self.sentiment_analysis.to_dict(),
            "topic_extraction": [topic.to_dict() for topic in self.topic_extraction],
            "entity_recognition": self.entity_recognition.to_dict(),
            "communication_patterns": self.communication_patterns.to_dict(),
            "risk_score": self.risk_score,
            "risk_level": self.risk_level,
            "category": self.category,
            "confidence": self.confidence,
            "metadata": thaw(self.metadata),
            "error": self.error,
        }


@dataclass(frozen=True)
class Analysis:
    """One analysed email; never mutated after the agent builds it"""
    id: str
    timestamp: datetime
    fingerprint: str
    email: EmailView
    results: AnalysisResults

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "fingerprint": self.fingerprint,
            "email": self.email.to_dict(),
            "results": self.results.to_dict(),
        }
