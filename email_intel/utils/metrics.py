"""
Metrics Collection Module
Tracks pipeline throughput, cache efficiency and threat detection statistics
"""

from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, Dict

import numpy as np


@dataclass
class Metrics:
    """
    Collects operational metrics for the intelligence agent.

    PATTERN RECOGNITION: Counters for discrete events (emails, threats,
    errors, cache hits) plus a bounded window of raw processing times, from
    which any percentile can be derived at export time.
    """

    emails_processed: int = 0

    # threats_detected['phishing'] and threats_detected['phishing_high']
    threats_detected: Counter = field(default_factory=Counter)

    # SECURITY STORY: Bounded deque so a long-running process cannot grow
    # this without limit.
    processing_time_ms: Deque[float] = field(default_factory=lambda: deque(maxlen=1000))

    errors_count: Counter = field(default_factory=Counter)

    cache_hits: int = 0
    cache_misses: int = 0

    start_time: datetime = field(default_factory=datetime.now)

    def record_email_processed(self):
        """Record that an email was analysed (cache misses only)."""
        self.emails_processed += 1

    def record_threat(self, threat_type: str, severity: str = "unknown"):
        """
        Record that a threat was detected.

        Args:
            threat_type: Threat category (e.g., "phishing", "malware")
            severity: Risk level (e.g., "low", "medium", "high", "critical")
        """
        self.threats_detected[threat_type] += 1
        self.threats_detected[f"{threat_type}_{severity}"] += 1

    def record_processing_time(self, time_ms: float):
        self.processing_time_ms.append(time_ms)

    def record_error(self, error_type: str):
        """
        Record that an error occurred.

        Args:
            error_type: Type of error (e.g., "detector_phishing", "batch_chunk")
        """
        self.errors_count[error_type] += 1

    def record_cache_hit(self):
        self.cache_hits += 1

    def record_cache_miss(self):
        self.cache_misses += 1

    @property
    def cache_hit_rate(self) -> float:
        lookups = self.cache_hits + self.cache_misses
        return self.cache_hits / lookups if lookups else 0.0

    def get_summary(self) -> Dict:
        """
        Get a summary of all metrics.

        Returns:
            Dictionary suitable for logging or export
        """
        stats = {}
        if self.processing_time_ms:
            times = np.fromiter(self.processing_time_ms, dtype=float)
            p50, p95, p99 = np.percentile(times, [50, 95, 99])
            stats = {
                "avg_ms": float(times.mean()),
                "min_ms": float(times.min()),
                "max_ms": float(times.max()),
                "p50_ms": float(p50),
                "p95_ms": float(p95),
                "p99_ms": float(p99),
            }

        return {
            "uptime_seconds": (datetime.now() - self.start_time).total_seconds(),
            "emails_processed": self.emails_processed,
            "threats_detected": dict(self.threats_detected),
            "processing_time_stats": stats,
            "errors": dict(self.errors_count),
            "cache": {
                "hits": self.cache_hits,
                "misses": self.cache_misses,
                "hit_rate": self.cache_hit_rate,
            },
            "sample_count": len(self.processing_time_ms),
        }
