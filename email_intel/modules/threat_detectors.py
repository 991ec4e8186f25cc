"""
Rule-based threat detectors

Five independent detectors (phishing, malware, spam, social engineering,
business email compromise). Each one starts at zero confidence, adds a fixed
increment for every signal it finds, clamps to 1.0 and compares against the
shared confidence threshold.

Keyword matching is case-insensitive, unanchored substring matching: "free"
also matches inside "freelance". Each keyword contributes at most once.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlsplit

import Levenshtein

from .email_data import ParsedEmail
from ..utils.config import ThreatConfig
from ..utils.scoring_utils import ThreatScorer


SENDER_DOMAIN_PATTERN = re.compile(r"@([^>\s]+)")
PUNCTUATION_PATTERN = re.compile(r"[!?.,;:]")


@dataclass(frozen=True)
class DetectorResult:
    """Outcome of one detector for one email"""
    detected: bool
    confidence: float
    indicators: Tuple[str, ...] = ()

    @classmethod
    def empty(cls) -> "DetectorResult":
        """Zero-confidence result, also used when a detector fails"""
        return cls(detected=False, confidence=0.0, indicators=())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detected": self.detected,
            "confidence": self.confidence,
            "indicators": list(self.indicators),
        }


def string_similarity(first: str, second: str) -> float:
    """Levenshtein similarity: 1 - distance / length of the longer string"""
    longer = max(len(first), len(second))
    if longer == 0:
        return 1.0
    return (longer - Levenshtein.distance(first, second)) / longer


def file_extension(filename: str) -> str:
    """Lower-cased text from the last dot onward, or '' without a dot"""
    if not filename or "." not in filename:
        return ""
    return filename[filename.rfind("."):].lower()


def extract_sender_domain(from_header: str) -> Optional[str]:
    match = SENDER_DOMAIN_PATTERN.search(from_header or "")
    return match.group(1).lower() if match else None


class ThreatDetector:
    """Common plumbing for the detectors: config, logger, result assembly"""

    name = "threat"

    def __init__(self, config: ThreatConfig):
        """
        Args:
            config: ThreatConfig object
        """
        self.config = config
        self.logger = logging.getLogger(type(self).__name__)

    def detect(self, email: ParsedEmail) -> DetectorResult:
        raise NotImplementedError

    def _finish(self, scorer: ThreatScorer) -> DetectorResult:
        confidence, detected = scorer.finalize(self.config.confidence_threshold)
        self.logger.debug(
            f"{self.name} detection complete: confidence={confidence:.2f}, detected={detected}"
        )
        return DetectorResult(
            detected=detected,
            confidence=confidence,
            indicators=tuple(scorer.indicators),
        )

    @staticmethod
    def _content(email: ParsedEmail) -> str:
        """Body and subject, lower-cased, as one search string"""
        return f"{email.body} {email.subject}".lower()

    @staticmethod
    def _score_keywords(scorer, content, keywords, increment, label) -> None:
        for keyword in keywords:
            if keyword.lower() in content:
                scorer.add(increment, f"{label}: {keyword}")


class PhishingDetector(ThreatDetector):
    """Credential-harvesting lures: keywords, shady links, lookalike senders"""

    name = "phishing"

    KEYWORD_INCREMENT = 0.10
    SUSPICIOUS_DOMAIN_INCREMENT = 0.15
    SUSPICIOUS_URL_INCREMENT = 0.20
    MALFORMED_URL_INCREMENT = 0.10
    SPOOFED_DOMAIN_INCREMENT = 0.30
    URGENCY_INCREMENT = 0.05

    MAX_HOSTNAME_LABELS = 4
    SPOOF_SIMILARITY_FLOOR = 0.8

    def detect(self, email: ParsedEmail) -> DetectorResult:
        scorer = ThreatScorer()
        content = self._content(email)

        self._score_keywords(
            scorer, content, self.config.phishing_keywords,
            self.KEYWORD_INCREMENT, "Phishing keyword",
        )

        for url in sorted(email.metadata.urls):
            self._check_url(url, scorer)

        sender_domain = extract_sender_domain(email.sender)
        if sender_domain and self.is_spoofed_domain(sender_domain):
            scorer.add(self.SPOOFED_DOMAIN_INCREMENT, f"Potential domain spoofing: {sender_domain}")

        self._score_keywords(
            scorer, content, self.config.urgency_keywords,
            self.URGENCY_INCREMENT, "Urgency indicator",
        )

        return self._finish(scorer)

    def _check_url(self, url: str, scorer: ThreatScorer) -> None:
        try:
            parts = urlsplit(url)
            hostname = parts.hostname
        except ValueError:
            hostname = None

        if not hostname:
            scorer.add(self.MALFORMED_URL_INCREMENT, f"Malformed URL: {url}")
            return

        if hostname in self.config.suspicious_domains:
            scorer.add(self.SUSPICIOUS_DOMAIN_INCREMENT, f"Suspicious domain: {hostname}")

        if self.is_suspicious_url(hostname, parts.path):
            scorer.add(self.SUSPICIOUS_URL_INCREMENT, f"Suspicious URL pattern: {url}")

    @classmethod
    def is_suspicious_url(cls, hostname: str, path: str) -> bool:
        """Punycode host, too many subdomains, or a traversal segment in the path"""
        if "xn--" in hostname:
            return True
        if len(hostname.split(".")) > cls.MAX_HOSTNAME_LABELS:
            return True
        return ".." in path

    def is_spoofed_domain(self, domain: str) -> bool:
        """True when *domain* is close to, but not exactly, a trusted domain"""
        for legitimate in self.config.legitimate_domains:
            similarity = string_similarity(domain, legitimate)
            if self.SPOOF_SIMILARITY_FLOOR < similarity < 1.0:
                return True
        return False


class MalwareDetector(ThreatDetector):
    """Dangerous attachments and install/run instructions"""

    name = "malware"

    EXTENSION_INCREMENT = 0.40
    DOUBLE_EXTENSION_INCREMENT = 0.30
    KEYWORD_INCREMENT = 0.05

    def detect(self, email: ParsedEmail) -> DetectorResult:
        scorer = ThreatScorer()

        for attachment in email.attachments:
            extension = file_extension(attachment.filename)
            if extension in self.config.malware_extensions:
                scorer.add(self.EXTENSION_INCREMENT, f"Suspicious file extension: {extension}")

            if self.has_double_extension(attachment.filename):
                scorer.add(
                    self.DOUBLE_EXTENSION_INCREMENT,
                    f"Double extension detected: {attachment.filename}",
                )

        self._score_keywords(
            scorer, email.body.lower(), self.config.malware_keywords,
            self.KEYWORD_INCREMENT, "Malware keyword",
        )

        return self._finish(scorer)

    def has_double_extension(self, filename: str) -> bool:
        """``invoice.pdf.exe``: more than two dot parts, last one dangerous"""
        if not filename:
            return False
        parts = filename.lower().split(".")
        return len(parts) > 2 and f".{parts[-1]}" in self.config.malware_extensions


class SpamDetector(ThreatDetector):
    """Bulk-mail tells: spam vocabulary, shouting, punctuation abuse"""

    name = "spam"

    KEYWORD_INCREMENT = 0.08
    CAPS_INCREMENT = 0.20
    PUNCTUATION_INCREMENT = 0.15

    CAPS_RATIO_LIMIT = 0.30
    PUNCTUATION_RATIO_LIMIT = 0.10

    def detect(self, email: ParsedEmail) -> DetectorResult:
        scorer = ThreatScorer()

        self._score_keywords(
            scorer, self._content(email), self.config.spam_keywords,
            self.KEYWORD_INCREMENT, "Spam keyword",
        )

        caps_ratio = calculate_caps_ratio(email.body)
        if caps_ratio > self.CAPS_RATIO_LIMIT:
            scorer.add(self.CAPS_INCREMENT, f"Excessive capitalization: {round(caps_ratio * 100)}%")

        punctuation_ratio = calculate_punctuation_ratio(email.body)
        if punctuation_ratio > self.PUNCTUATION_RATIO_LIMIT:
            scorer.add(
                self.PUNCTUATION_INCREMENT,
                f"Excessive punctuation: {round(punctuation_ratio * 100)}%",
            )

        return self._finish(scorer)


class SocialEngineeringDetector(ThreatDetector):
    """Pressure tactics and name-dropping of trusted brands"""

    name = "social_engineering"

    KEYWORD_INCREMENT = 0.10
    AUTHORITY_INCREMENT = 0.15

    def detect(self, email: ParsedEmail) -> DetectorResult:
        scorer = ThreatScorer()
        content = self._content(email)

        self._score_keywords(
            scorer, content, self.config.social_engineering_keywords,
            self.KEYWORD_INCREMENT, "Social engineering keyword",
        )
        self._score_keywords(
            scorer, content, self.config.authority_keywords,
            self.AUTHORITY_INCREMENT, "Authority impersonation",
        )

        return self._finish(scorer)


class BECDetector(ThreatDetector):
    """Business email compromise: payment requests and executive senders"""

    name = "bec"

    KEYWORD_INCREMENT = 0.15
    EXECUTIVE_INCREMENT = 0.20

    def detect(self, email: ParsedEmail) -> DetectorResult:
        scorer = ThreatScorer()
        body = email.body.lower()
        subject = email.subject.lower()

        for keyword in self.config.bec_keywords:
            needle = keyword.lower()
            if needle in body or needle in subject:
                scorer.add(self.KEYWORD_INCREMENT, f"BEC keyword: {keyword}")

        from_field = email.sender.lower()
        for title in self.config.executive_titles:
            if title.lower() in from_field:
                scorer.add(self.EXECUTIVE_INCREMENT, f"Executive impersonation: {title}")

        return self._finish(scorer)


def calculate_caps_ratio(text: str) -> float:
    """Uppercase ASCII letters over all ASCII letters"""
    letters = [ch for ch in text or "" if ch.isascii() and ch.isalpha()]
    if not letters:
        return 0.0
    return sum(1 for ch in letters if ch.isupper()) / len(letters)


def calculate_punctuation_ratio(text: str) -> float:
    """``!?.,;:`` characters over all characters"""
    if not text:
        return 0.0
    return len(PUNCTUATION_PATTERN.findall(text)) / len(text)


def build_detectors(config: ThreatConfig) -> Dict[str, ThreatDetector]:
    """All five detectors keyed by name, in aggregation order"""
    detectors = (
        PhishingDetector(config),
        MalwareDetector(config),
        SocialEngineeringDetector(config),
        SpamDetector(config),
        BECDetector(config),
    )
    return {detector.name: detector for detector in detectors}
