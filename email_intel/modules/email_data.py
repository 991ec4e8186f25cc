"""
Email Data Model
Contains the dataclasses for storing parsed email information
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set


@dataclass
class Attachment:
    """Attachment descriptor; payload bytes are not retained"""
    filename: str
    size: int
    content_type: str = "application/octet-stream"


@dataclass
class SecurityIndicators:
    """Parser-level threat hints with a 0-100 risk score"""
    phishing: List[str] = field(default_factory=list)
    suspicious_domains: List[str] = field(default_factory=list)
    malware: List[str] = field(default_factory=list)
    spoofing: List[str] = field(default_factory=list)
    risk_score: int = 0

    @property
    def reply_to_mismatch(self) -> bool:
        return "reply-to-mismatch" in self.spoofing

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phishing": list(self.phishing),
            "suspicious_domains": list(self.suspicious_domains),
            "malware": list(self.malware),
            "spoofing": list(self.spoofing),
            "risk_score": self.risk_score,
        }


@dataclass
class EmailMetadata:
    """
    Lightweight facts derived from an email during enrichment

    The extracted sets are de-duplicated; domains are lower-cased.
    ``time_slot`` and ``day_of_week`` stay ``None`` when the Date header is
    missing or unparseable.
    """
    word_count: int = 0
    character_count: int = 0
    line_count: int = 0
    email_addresses: Set[str] = field(default_factory=set)
    urls: Set[str] = field(default_factory=set)
    ip_addresses: Set[str] = field(default_factory=set)
    domains: Set[str] = field(default_factory=set)
    has_attachments: bool = False
    attachment_count: int = 0
    time_slot: Optional[str] = None
    day_of_week: Optional[str] = None
    is_reply: bool = False
    is_forward: bool = False
    thread_depth: int = 0
    security_indicators: SecurityIndicators = field(default_factory=SecurityIndicators)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "word_count": self.word_count,
            "character_count": self.character_count,
            "line_count": self.line_count,
            "email_addresses": sorted(self.email_addresses),
            "urls": sorted(self.urls),
            "ip_addresses": sorted(self.ip_addresses),
            "domains": sorted(self.domains),
            "has_attachments": self.has_attachments,
            "attachment_count": self.attachment_count,
            "time_slot": self.time_slot,
            "day_of_week": self.day_of_week,
            "is_reply": self.is_reply,
            "is_forward": self.is_forward,
            "thread_depth": self.thread_depth,
            "security_indicators": self.security_indicators.to_dict(),
        }


@dataclass
class ParsedEmail:
    """
    Container for a parsed email

    Header keys are lower-case and trimmed. The body has quoted reply lines
    removed and blank-line runs collapsed.
    """
    headers: Dict[str, str]
    body: str
    attachments: List[Attachment] = field(default_factory=list)
    metadata: EmailMetadata = field(default_factory=EmailMetadata)
    source_name: str = ""

    @property
    def subject(self) -> str:
        return self.headers.get("subject", "")

    @property
    def sender(self) -> str:
        return self.headers.get("from", "")

    @property
    def recipient(self) -> str:
        return self.headers.get("to", "")
