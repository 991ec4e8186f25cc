"""
Email Intelligence Agent
Runs the detectors and analyzers over parsed emails, caches the resulting
analyses and answers aggregate queries over them
"""

import logging
import threading
import time
from collections import Counter, deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional

import numpy as np

from .alert_system import AlertSystem
from .analysis import (
    Analysis,
    AnalysisResults,
    EmailView,
    compute_fingerprint,
    new_analysis_id,
)
from .email_data import ParsedEmail
from .errors import DetectorError
from .intelligence_analyzers import (
    CommunicationPatterns,
    EntityResult,
    IntelligenceAnalyzers,
    SentimentResult,
)
from .risk_aggregator import calculate_overall_assessment
from .threat_detectors import (
    DetectorResult,
    build_detectors,
    calculate_caps_ratio,
    calculate_punctuation_ratio,
)
from ..utils.caching import AnalysisCache
from ..utils.metrics import Metrics
from ..utils.sanitization import sanitize_for_logging
from ..utils.threat_scoring import RISK_LEVELS

TIME_RANGES = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
}
DEFAULT_TIME_RANGE = "7d"

LEARNING_SAMPLE_LIMIT = 1000

# Report thresholds
THREAT_REPORT_SCORE = 50
PHISHING_TREND_MIN = 3
INSIGHT_EMAIL_SAMPLE = 5


def resolve_time_range(time_range: str) -> str:
    """Return *time_range* if known, otherwise the 7 day default"""
    if time_range in TIME_RANGES:
        return time_range
    logging.getLogger("EmailIntelAgent").warning(
        f"Unknown time range {sanitize_for_logging(str(time_range))!r}; using {DEFAULT_TIME_RANGE}"
    )
    return DEFAULT_TIME_RANGE


def time_range_cutoff(time_range: str, now: Optional[datetime] = None) -> datetime:
    """Earliest timestamp inside *time_range*, counted back from *now*"""
    now = now or datetime.now()
    return now - TIME_RANGES[resolve_time_range(time_range)]


@dataclass(frozen=True)
class LearningSample:
    """Feature snapshot kept for offline model training"""
    analysis_id: str
    timestamp: datetime
    features: Dict[str, Any]
    category: str
    risk_score: int


class EmailIntelAgent:
    """
    Per-email threat scoring with a bounded in-memory analysis cache.

    The agent owns its cache, metrics and learning samples. Analyses are keyed
    by the email fingerprint: re-analysing an email already in the cache
    returns the stored Analysis object untouched.

    Usage::

        with EmailIntelAgent(Config()) as agent:
            analysis = agent.analyze_email(parsed)
            report = agent.generate_intelligence_report("24h")
    """

    def __init__(
        self,
        config,
        cache: Optional[AnalysisCache] = None,
        alert_system: Optional[AlertSystem] = None,
        metrics: Optional[Metrics] = None,
    ):
        """
        Args:
            config: Config object (threats, intelligence, performance, alerts)
            cache: Analysis cache; built from the performance config if omitted
            alert_system: Alert dispatcher; built from the alert config if omitted
            metrics: Metrics collector; a fresh one if omitted
        """
        self.config = config
        self.logger = logging.getLogger("EmailIntelAgent")

        performance = config.performance
        self.cache = cache if cache is not None else AnalysisCache(
            max_size=performance.max_cache_size,
            ttl_seconds=performance.cache_ttl_seconds,
        )
        self.alert_system = alert_system if alert_system is not None else AlertSystem(config.alerts)
        self.metrics = metrics if metrics is not None else Metrics()

        self.detectors = build_detectors(config.threats)
        self.analyzers = IntelligenceAnalyzers.from_config(config.intelligence)

        self._learning_samples: Deque[LearningSample] = deque(maxlen=LEARNING_SAMPLE_LIMIT)
        self._metrics_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        """Start the background cache sweeper (no-op if already running)"""
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop_event.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop, name="AnalysisCacheSweeper", daemon=True
        )
        self._sweeper.start()
        self.logger.info(
            f"Cache sweeper started (every {self.config.performance.cache_sweep_interval}s)"
        )

    def stop(self, timeout: float = 5.0):
        """Stop the background cache sweeper"""
        self._stop_event.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout)
            self._sweeper = None
            self.logger.info("Cache sweeper stopped")

    def __enter__(self) -> "EmailIntelAgent":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()

    def _sweep_loop(self):
        interval = self.config.performance.cache_sweep_interval
        while not self._stop_event.wait(interval):
            self.sweep_cache()

    def sweep_cache(self) -> int:
        """Run one cache sweep; returns how many entries were dropped"""
        try:
            removed = self.cache.sweep()
        except Exception as e:
            self.logger.error(f"Cache sweep failed: {e}", exc_info=True)
            self._record_error("cache_sweep")
            return 0
        if removed:
            self.logger.debug(f"Cache sweep removed {removed} entries")
        return removed

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def analyze_email(self, email: ParsedEmail) -> Analysis:
        """
        Analyse one parsed email, or return its cached analysis.

        A failing detector or analyzer does not abort the analysis: its
        result falls back to the empty one and the failure is summarised in
        ``results.error``. Degraded analyses are cached like any other, so a
        repeat of the same email returns the same record.

        Args:
            email: ParsedEmail to analyse

        Returns:
            Analysis record
        """
        fingerprint = compute_fingerprint(email, self.config.performance.body_fingerprint_chars)

        cached = self.cache.get(fingerprint)
        if cached is not None:
            with self._metrics_lock:
                self.metrics.record_cache_hit()
            self.logger.debug(f"Cache hit for {cached.id}")
            return cached

        with self._metrics_lock:
            self.metrics.record_cache_miss()

        started = time.perf_counter()
        analysis = self._build_analysis(email, fingerprint, started)

        stored = self.cache.setdefault(fingerprint, analysis)
        if stored is not analysis:
            # Another thread finished the same email first
            return stored

        self._record_metrics(analysis)
        self._add_learning_sample(email, analysis)
        if analysis.results.is_threat:
            self._dispatch_alert(analysis)

        self.logger.info(
            f"Analysis complete: id={analysis.id}, category={analysis.results.category}, "
            f"risk={analysis.results.risk_level} ({analysis.results.risk_score})"
        )
        return analysis

    def analyze_email_batch(
        self,
        emails: Iterable[ParsedEmail],
        chunk_size: Optional[int] = None,
    ) -> List[Analysis]:
        """
        Analyse many emails, one chunk at a time.

        Emails inside a chunk are analysed concurrently. If any email in a
        chunk raises, the whole chunk is logged and left out of the result;
        the remaining chunks still run. Results keep input order.

        Args:
            emails: Parsed emails
            chunk_size: Emails per chunk (default: performance.batch_size)

        Returns:
            Analyses of every email in the chunks that succeeded
        """
        size = chunk_size if chunk_size is not None else self.config.performance.batch_size
        if size <= 0:
            raise ValueError(f"chunk_size must be positive, got {size}")

        emails = list(emails)
        analyses: List[Analysis] = []

        for chunk_index, start in enumerate(range(0, len(emails), size)):
            chunk = emails[start:start + size]
            try:
                with ThreadPoolExecutor(max_workers=len(chunk)) as executor:
                    chunk_results = list(executor.map(self.analyze_email, chunk))
            except Exception as e:
                self.logger.error(
                    f"Batch chunk {chunk_index} failed, omitting {len(chunk)} emails: "
                    f"{type(e).__name__}: {sanitize_for_logging(str(e))}"
                )
                self._record_error("batch_chunk")
                continue
            analyses.extend(chunk_results)

        self.logger.info(f"Batch complete: {len(analyses)}/{len(emails)} emails analysed")
        return analyses

    def _build_analysis(self, email: ParsedEmail, fingerprint: str, started: float) -> Analysis:
        failures: List[str] = []

        threats = {
            name: self._run_isolated(name, detector.detect, email, DetectorResult.empty(), failures)
            for name, detector in self.detectors.items()
        }
        sentiment = self._run_isolated(
            "sentiment", self.analyzers.sentiment.analyze, email, SentimentResult(), failures
        )
        topics = self._run_isolated(
            "topics", self.analyzers.topics.analyze, email, (), failures
        )
        entities = self._run_isolated(
            "entities", self.analyzers.entities.analyze, email, EntityResult(), failures
        )
        patterns = self._run_isolated(
            "communication_patterns", self.analyzers.patterns.analyze, email,
            CommunicationPatterns(), failures
        )

        intelligence = self.config.intelligence
        assessment = calculate_overall_assessment(
            threats,
            sentiment.score,
            self.config.threats.weights,
            negative_sentiment_threshold=intelligence.negative_sentiment_threshold,
            sentiment_penalty=intelligence.sentiment_penalty,
        )

        processing_time_ms = (time.perf_counter() - started) * 1000
        timestamp = datetime.now()

        results = AnalysisResults(
            threat_assessment=threats,
            sentiment_analysis=sentiment,
            topic_extraction=topics,
            entity_recognition=entities,
            communication_patterns=patterns,
            risk_score=assessment.risk_score,
            risk_level=assessment.risk_level,
            category=assessment.category,
            confidence=assessment.confidence,
            metadata={"processing_time_ms": processing_time_ms},
            error="; ".join(failures) or None,
        )
        return Analysis(
            id=new_analysis_id(timestamp),
            timestamp=timestamp,
            fingerprint=fingerprint,
            email=EmailView.from_email(email),
            results=results,
        )

    def _run_isolated(
        self,
        component: str,
        func: Callable[[ParsedEmail], Any],
        email: ParsedEmail,
        fallback: Any,
        failures: List[str],
    ) -> Any:
        try:
            return func(email)
        except Exception as e:
            error = DetectorError(component, e)
            self.logger.error(sanitize_for_logging(str(error)), exc_info=True)
            self._record_error(f"component_{component}")
            failures.append(f"{component}: {type(e).__name__}")
            return fallback

    def _record_metrics(self, analysis: Analysis):
        results = analysis.results
        with self._metrics_lock:
            self.metrics.record_email_processed()
            self.metrics.record_processing_time(results.metadata["processing_time_ms"])
            if results.is_threat:
                self.metrics.record_threat(results.category, results.risk_level)

    def _record_error(self, error_type: str):
        with self._metrics_lock:
            self.metrics.record_error(error_type)

    def _add_learning_sample(self, email: ParsedEmail, analysis: Analysis):
        try:
            features = {
                "word_count": email.metadata.word_count,
                "has_attachments": email.metadata.has_attachments,
                "url_count": len(email.metadata.urls),
                "email_count": len(email.metadata.email_addresses),
                "caps_ratio": calculate_caps_ratio(email.body),
                "punctuation_ratio": calculate_punctuation_ratio(email.body),
            }
            self._learning_samples.append(LearningSample(
                analysis_id=analysis.id,
                timestamp=analysis.timestamp,
                features=features,
                category=analysis.results.category,
                risk_score=analysis.results.risk_score,
            ))
        except Exception as e:
            self.logger.error(f"Failed to record learning sample for {analysis.id}: {e}")
            self._record_error("learning_sample")

    def _dispatch_alert(self, analysis: Analysis):
        try:
            self.alert_system.send_alert(analysis)
        except Exception as e:
            self.logger.error(f"Alert dispatch failed for {analysis.id}: {e}", exc_info=True)
            self._record_error("alert")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def learning_samples(self) -> List[LearningSample]:
        """Most recent learning samples, oldest first"""
        return list(self._learning_samples)

    def get_cached_analysis(self, analysis_id: str) -> Optional[Analysis]:
        """Look up a cached analysis by its id"""
        for analysis in self.cache.values():
            if analysis.id == analysis_id:
                return analysis
        return None

    def list_recent_analyses(
        self,
        time_range: str = DEFAULT_TIME_RANGE,
        since: Optional[datetime] = None,
    ) -> List[Analysis]:
        """
        Cached analyses newer than a cutoff, newest first.

        Args:
            time_range: One of 1h, 24h, 7d, 30d, 90d (unknown values mean 7d)
            since: Explicit cutoff; overrides *time_range*
        """
        cutoff = since if since is not None else time_range_cutoff(time_range)
        recent = [a for a in self.cache.values() if a.timestamp >= cutoff]
        return sorted(recent, key=lambda a: a.timestamp, reverse=True)

    def get_analysis_stats(self) -> Dict[str, Any]:
        """Aggregate statistics over every cached analysis"""
        analyses = self.cache.values()
        return {
            "total_analyzed": len(analyses),
            **self._summarise(analyses),
            "cache": {
                "size": len(self.cache),
                "max_size": self.cache.max_size,
                "hits": self.metrics.cache_hits,
                "misses": self.metrics.cache_misses,
            },
        }

    def generate_intelligence_report(self, time_range: str = DEFAULT_TIME_RANGE) -> Dict[str, Any]:
        """
        Summary, trends and insights for the analyses inside *time_range*.

        Args:
            time_range: One of 1h, 24h, 7d, 30d, 90d (unknown values mean 7d)
        """
        time_range = resolve_time_range(time_range)
        recent = self.list_recent_analyses(time_range)
        summary = self._summarise(recent)

        top_threats = Counter({
            category: count
            for category, count in summary["threats_by_category"].items()
            if category != "legitimate"
        }).most_common(INSIGHT_EMAIL_SAMPLE)

        return {
            "time_range": time_range,
            "generated_at": datetime.now().isoformat(),
            "summary": {
                "total_emails": len(recent),
                "threats_detected": sum(
                    1 for a in recent if a.results.risk_score > THREAT_REPORT_SCORE
                ),
                "average_risk_score": summary["average_risk_score"],
                "top_threats": [
                    {"category": category, "count": count} for category, count in top_threats
                ],
            },
            "trends": {
                "volume_by_day": self._volume_by_day(recent),
                "threats_by_type": summary["threats_by_type"],
                "risk_distribution": summary["risk_distribution"],
                "sentiment_trend": self._sentiment_trend(recent),
            },
            "insights": self._generate_insights(recent),
        }

    def clear_cache(self):
        """Drop every cached analysis"""
        self.cache.clear()
        self.logger.info("Analysis cache cleared")

    @staticmethod
    def _summarise(analyses: List[Analysis]) -> Dict[str, Any]:
        by_category: Counter = Counter()
        by_type: Counter = Counter()
        risk_distribution = {level: 0 for level in RISK_LEVELS}

        for analysis in analyses:
            results = analysis.results
            by_category[results.category] += 1
            by_type.update(results.detected_threats)
            risk_distribution[results.risk_level] += 1

        if analyses:
            risk_scores = np.array([a.results.risk_score for a in analyses], dtype=float)
            sentiments = np.array(
                [a.results.sentiment_analysis.score for a in analyses], dtype=float
            )
            average_risk = float(risk_scores.mean())
            average_sentiment = float(sentiments.mean())
        else:
            average_risk = 0.0
            average_sentiment = 0.0

        return {
            "threats_by_category": dict(by_category),
            "threats_by_type": dict(by_type),
            "risk_distribution": risk_distribution,
            "average_risk_score": average_risk,
            "average_sentiment": average_sentiment,
        }

    @staticmethod
    def _volume_by_day(analyses: List[Analysis]) -> Dict[str, int]:
        volume = Counter(a.timestamp.date().isoformat() for a in analyses)
        return dict(sorted(volume.items()))

    @staticmethod
    def _sentiment_trend(analyses: List[Analysis]) -> List[Dict[str, Any]]:
        by_day: Dict[str, List[float]] = {}
        for analysis in analyses:
            day = analysis.timestamp.date().isoformat()
            by_day.setdefault(day, []).append(analysis.results.sentiment_analysis.score)
        return [
            {"date": day, "sentiment": float(np.mean(scores))}
            for day, scores in sorted(by_day.items())
        ]

    @staticmethod
    def _generate_insights(analyses: List[Analysis]) -> List[Dict[str, Any]]:
        insights = []

        high_risk = [a for a in analyses if a.results.risk_level in ("high", "critical")]
        if high_risk:
            insights.append({
                "type": "threat",
                "priority": "high",
                "title": f"{len(high_risk)} High-Risk Emails Detected",
                "description": "Emails with high threat indicators require immediate attention.",
                "action": "Review and quarantine suspicious emails",
                "emails": [
                    a.email.headers.get("subject") or "No Subject"
                    for a in high_risk[:INSIGHT_EMAIL_SAMPLE]
                ],
            })

        phishing = [a for a in analyses if "phishing" in a.results.detected_threats]
        if len(phishing) > PHISHING_TREND_MIN:
            insights.append({
                "type": "trend",
                "priority": "medium",
                "title": "Increased Phishing Activity",
                "description": (
                    f"{len(phishing)} phishing attempts detected in the selected time period."
                ),
                "action": "Enhance user training and email filtering",
                "trend": "increasing",
            })

        return insights
