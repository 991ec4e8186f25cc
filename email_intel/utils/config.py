"""
Configuration Management Module
Handles loading and validation of environment variables and settings

Every section is a typed dataclass with explicit defaults that validates
itself on construction, so analyzers can be built from ``ThreatConfig()``
directly in tests without touching the environment.
"""

import math
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dotenv import load_dotenv


DEFAULT_PHISHING_KEYWORDS = [
    "urgent", "immediate", "verify", "suspend", "click here", "act now",
    "limited time", "expires", "confirm", "update", "security alert",
    "account locked", "unusual activity", "verify identity",
]

DEFAULT_URGENCY_KEYWORDS = ["urgent", "immediate", "asap", "expires", "deadline"]

DEFAULT_SUSPICIOUS_DOMAINS = ["bit.ly", "tinyurl.com", "goo.gl", "t.co"]

DEFAULT_LEGITIMATE_DOMAINS = ["google.com", "microsoft.com", "apple.com", "amazon.com"]

DEFAULT_MALWARE_EXTENSIONS = [
    ".exe", ".scr", ".bat", ".cmd", ".com", ".pif", ".vbs", ".js",
    ".jar", ".zip", ".rar", ".7z", ".docm", ".xlsm", ".pptm",
]

DEFAULT_MALWARE_KEYWORDS = ["download", "install", "run", "execute", "macro", "enable"]

DEFAULT_SPAM_KEYWORDS = [
    "free", "win", "winner", "congratulations", "prize", "lottery",
    "money", "cash", "earn", "income", "investment", "guarantee",
    "limited time", "act now", "call now", "click here",
]

DEFAULT_SOCIAL_ENGINEERING_KEYWORDS = [
    "verify", "confirm", "update", "suspend", "locked", "security",
    "unauthorized", "unusual activity", "click here", "login",
]

DEFAULT_AUTHORITY_KEYWORDS = ["bank", "paypal", "amazon", "microsoft", "google", "apple"]

DEFAULT_BEC_KEYWORDS = [
    "wire transfer", "payment", "invoice", "urgent payment", "bank details",
    "account change", "vendor", "supplier", "ceo", "president", "urgent request",
]

DEFAULT_EXECUTIVE_TITLES = ["ceo", "cfo", "president", "director", "manager"]

DEFAULT_POSITIVE_WORDS = [
    "good", "great", "excellent", "amazing", "wonderful", "fantastic",
    "love", "like", "happy", "pleased",
]

DEFAULT_NEGATIVE_WORDS = [
    "bad", "terrible", "awful", "hate", "dislike", "angry",
    "frustrated", "disappointed", "sad", "upset",
]

DEFAULT_STOP_WORDS = [
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "up", "about", "into", "through", "during",
    "before", "after", "above", "below", "between", "among", "this", "that",
    "these", "those", "i", "me", "my", "myself", "we", "our", "ours", "ourselves",
    "you", "your", "yours", "yourself", "yourselves", "he", "him", "his", "himself",
    "she", "her", "hers", "herself", "it", "its", "itself", "they", "them", "their",
    "theirs", "themselves", "what", "which", "who", "whom", "am", "is", "are",
    "was", "were", "be", "been", "being", "have", "has", "had", "having", "do",
    "does", "did", "doing", "if", "because", "as", "until", "while", "against",
    "down", "out", "off", "over", "under", "again", "further", "then", "once",
]

ORGANIZATION_SUFFIXES = ["inc", "corp", "llc", "ltd", "company", "corporation"]


@dataclass
class DetectorWeights:
    """Contribution of each detector to the overall risk score"""
    phishing: float = 0.30
    malware: float = 0.25
    social_engineering: float = 0.20
    spam: float = 0.15
    bec: float = 0.10

    def __post_init__(self):
        for name, weight in self.as_dict().items():
            if weight < 0:
                raise ValueError(f"Weight for {name} must be non-negative, got {weight}")
        total = sum(self.as_dict().values())
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"Detector weights must sum to 1.0, got {total:.4f}")

    def as_dict(self) -> Dict[str, float]:
        """Weights keyed by detector name, in aggregation order"""
        return {
            "phishing": self.phishing,
            "malware": self.malware,
            "social_engineering": self.social_engineering,
            "spam": self.spam,
            "bec": self.bec,
        }


@dataclass
class ThreatConfig:
    """Configuration for the threat detectors"""
    phishing_keywords: List[str] = field(default_factory=lambda: list(DEFAULT_PHISHING_KEYWORDS))
    urgency_keywords: List[str] = field(default_factory=lambda: list(DEFAULT_URGENCY_KEYWORDS))
    suspicious_domains: List[str] = field(default_factory=lambda: list(DEFAULT_SUSPICIOUS_DOMAINS))
    legitimate_domains: List[str] = field(default_factory=lambda: list(DEFAULT_LEGITIMATE_DOMAINS))
    malware_extensions: List[str] = field(default_factory=lambda: list(DEFAULT_MALWARE_EXTENSIONS))
    malware_keywords: List[str] = field(default_factory=lambda: list(DEFAULT_MALWARE_KEYWORDS))
    spam_keywords: List[str] = field(default_factory=lambda: list(DEFAULT_SPAM_KEYWORDS))
    social_engineering_keywords: List[str] = field(
        default_factory=lambda: list(DEFAULT_SOCIAL_ENGINEERING_KEYWORDS)
    )
    authority_keywords: List[str] = field(default_factory=lambda: list(DEFAULT_AUTHORITY_KEYWORDS))
    bec_keywords: List[str] = field(default_factory=lambda: list(DEFAULT_BEC_KEYWORDS))
    executive_titles: List[str] = field(default_factory=lambda: list(DEFAULT_EXECUTIVE_TITLES))
    confidence_threshold: float = 0.7
    weights: DetectorWeights = field(default_factory=DetectorWeights)

    def __post_init__(self):
        if not 0.0 < self.confidence_threshold <= 1.0:
            raise ValueError(
                f"confidence_threshold must be in (0, 1], got {self.confidence_threshold}"
            )
        # Matching is case-insensitive, so normalise the lists once here
        self.suspicious_domains = [d.lower() for d in self.suspicious_domains]
        self.legitimate_domains = [d.lower() for d in self.legitimate_domains]
        self.malware_extensions = [
            ext.lower() if ext.startswith(".") else f".{ext.lower()}"
            for ext in self.malware_extensions
        ]


@dataclass
class IntelligenceConfig:
    """Configuration for the auxiliary analyzers"""
    positive_words: List[str] = field(default_factory=lambda: list(DEFAULT_POSITIVE_WORDS))
    negative_words: List[str] = field(default_factory=lambda: list(DEFAULT_NEGATIVE_WORDS))
    stop_words: List[str] = field(default_factory=lambda: list(DEFAULT_STOP_WORDS))
    organization_suffixes: List[str] = field(default_factory=lambda: list(ORGANIZATION_SUFFIXES))
    min_topic_frequency: int = 3
    max_topics: int = 10
    negative_sentiment_threshold: float = -0.5
    sentiment_penalty: float = 10.0

    def __post_init__(self):
        if self.min_topic_frequency < 1:
            raise ValueError("min_topic_frequency must be at least 1")
        if self.max_topics < 1:
            raise ValueError("max_topics must be at least 1")
        if not -1.0 <= self.negative_sentiment_threshold <= 1.0:
            raise ValueError("negative_sentiment_threshold must be within [-1, 1]")


@dataclass
class PerformanceConfig:
    """Configuration for caching and batch processing"""
    max_cache_size: int = 1000
    cache_ttl_seconds: Optional[int] = None
    cache_sweep_interval: int = 300
    batch_size: int = 50
    body_fingerprint_chars: int = 1000
    max_file_size: int = 10 * 1024 * 1024

    def __post_init__(self):
        if self.max_cache_size <= 0:
            raise ValueError(f"max_cache_size must be positive, got {self.max_cache_size}")
        if self.cache_ttl_seconds is not None and self.cache_ttl_seconds <= 0:
            raise ValueError("cache_ttl_seconds must be positive when set")
        if self.cache_sweep_interval <= 0:
            raise ValueError("cache_sweep_interval must be positive")
        if self.batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {self.batch_size}")
        if self.body_fingerprint_chars <= 0:
            raise ValueError("body_fingerprint_chars must be positive")


@dataclass
class AlertConfig:
    """Configuration for alert system"""
    console: bool = True
    webhook_enabled: bool = False
    webhook_url: Optional[str] = None
    min_risk_score: int = 50


@dataclass
class SystemConfig:
    """Configuration for system settings"""
    log_level: str = "INFO"
    log_file: str = "logs/email_intel.log"
    log_format: str = "text"

    def __post_init__(self):
        if self.log_format not in ("text", "json"):
            raise ValueError(f"log_format must be 'text' or 'json', got {self.log_format!r}")


class Config:
    """Main configuration class"""

    def __init__(self, env_file: str = ".env"):
        """
        Initialize configuration from environment file

        Args:
            env_file: Path to environment file (default: .env)
        """
        load_dotenv(env_file)

        self.threats = self._load_threat_config()
        self.intelligence = self._load_intelligence_config()
        self.performance = self._load_performance_config()
        self.alerts = self._load_alert_config()
        self.system = self._load_system_config()

    def _load_threat_config(self) -> ThreatConfig:
        """Load detector configuration"""
        weights = DetectorWeights(
            phishing=float(os.getenv("WEIGHT_PHISHING", "0.30")),
            malware=float(os.getenv("WEIGHT_MALWARE", "0.25")),
            social_engineering=float(os.getenv("WEIGHT_SOCIAL_ENGINEERING", "0.20")),
            spam=float(os.getenv("WEIGHT_SPAM", "0.15")),
            bec=float(os.getenv("WEIGHT_BEC", "0.10")),
        )
        return ThreatConfig(
            phishing_keywords=self._get_list("PHISHING_KEYWORDS", DEFAULT_PHISHING_KEYWORDS),
            urgency_keywords=self._get_list("URGENCY_KEYWORDS", DEFAULT_URGENCY_KEYWORDS),
            suspicious_domains=self._get_list("SUSPICIOUS_DOMAINS", DEFAULT_SUSPICIOUS_DOMAINS),
            legitimate_domains=self._get_list("LEGITIMATE_DOMAINS", DEFAULT_LEGITIMATE_DOMAINS),
            malware_extensions=self._get_list("MALWARE_EXTENSIONS", DEFAULT_MALWARE_EXTENSIONS),
            malware_keywords=self._get_list("MALWARE_KEYWORDS", DEFAULT_MALWARE_KEYWORDS),
            spam_keywords=self._get_list("SPAM_KEYWORDS", DEFAULT_SPAM_KEYWORDS),
            social_engineering_keywords=self._get_list(
                "SOCIAL_ENGINEERING_KEYWORDS", DEFAULT_SOCIAL_ENGINEERING_KEYWORDS
            ),
            authority_keywords=self._get_list("AUTHORITY_KEYWORDS", DEFAULT_AUTHORITY_KEYWORDS),
            bec_keywords=self._get_list("BEC_KEYWORDS", DEFAULT_BEC_KEYWORDS),
            executive_titles=self._get_list("EXECUTIVE_TITLES", DEFAULT_EXECUTIVE_TITLES),
            confidence_threshold=float(os.getenv("THREAT_CONFIDENCE_THRESHOLD", "0.7")),
            weights=weights,
        )

    def _load_intelligence_config(self) -> IntelligenceConfig:
        """Load auxiliary analyzer configuration"""
        return IntelligenceConfig(
            positive_words=self._get_list("POSITIVE_WORDS", DEFAULT_POSITIVE_WORDS),
            negative_words=self._get_list("NEGATIVE_WORDS", DEFAULT_NEGATIVE_WORDS),
            stop_words=self._get_list("STOP_WORDS", DEFAULT_STOP_WORDS),
            min_topic_frequency=int(os.getenv("MIN_TOPIC_FREQUENCY", "3")),
            max_topics=int(os.getenv("MAX_TOPICS", "10")),
            negative_sentiment_threshold=float(os.getenv("NEGATIVE_SENTIMENT_THRESHOLD", "-0.5")),
            sentiment_penalty=float(os.getenv("SENTIMENT_PENALTY", "10")),
        )

    def _load_performance_config(self) -> PerformanceConfig:
        """Load cache and batch configuration"""
        ttl = os.getenv("CACHE_TTL_SECONDS")
        return PerformanceConfig(
            max_cache_size=int(os.getenv("MAX_CACHE_SIZE", "1000")),
            cache_ttl_seconds=int(ttl) if ttl else None,
            cache_sweep_interval=int(os.getenv("CACHE_SWEEP_INTERVAL", "300")),
            batch_size=int(os.getenv("MAX_ANALYSIS_BATCH_SIZE", "50")),
            body_fingerprint_chars=int(os.getenv("BODY_FINGERPRINT_CHARS", "1000")),
            max_file_size=int(os.getenv("MAX_FILE_SIZE", str(10 * 1024 * 1024))),
        )

    def _load_alert_config(self) -> AlertConfig:
        """Load alert configuration"""
        return AlertConfig(
            console=self._get_bool("ALERT_CONSOLE", True),
            webhook_enabled=self._get_bool("ALERT_WEBHOOK_ENABLED", False),
            webhook_url=os.getenv("ALERT_WEBHOOK_URL"),
            min_risk_score=int(os.getenv("ALERT_MIN_RISK_SCORE", "50")),
        )

    def _load_system_config(self) -> SystemConfig:
        """Load system configuration"""
        return SystemConfig(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_file=os.getenv("LOG_FILE", "logs/email_intel.log"),
            log_format=os.getenv("LOG_FORMAT", "text").lower(),
        )

    @staticmethod
    def _get_list(key: str, default: List[str]) -> List[str]:
        """Read a comma or newline separated list, falling back to *default*"""
        value = os.getenv(key)
        if not value:
            return list(default)

        items = [
            item.strip()
            for item in value.replace("\n", ",").split(",")
            if item.strip()
        ]
        return items or list(default)

    @staticmethod
    def _get_bool(key: str, default: bool = False) -> bool:
        """Convert environment variable to boolean"""
        value = os.getenv(key, str(default)).lower()
        return value in ('true', '1', 'yes', 'on')

    def validate(self) -> bool:
        """
        Validate cross-section configuration rules

        Returns:
            True if configuration is valid

        Raises:
            ValueError: If configuration is invalid
        """
        if self.alerts.webhook_enabled and not self.alerts.webhook_url:
            raise ValueError("Webhook enabled but no URL provided")

        if not 0 <= self.alerts.min_risk_score <= 100:
            raise ValueError("ALERT_MIN_RISK_SCORE must be within [0, 100]")

        return True
