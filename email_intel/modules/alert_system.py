"""
Alert and Response System
Notifies operators about risky analyses on the console and via webhook
"""

import logging
from typing import List

import requests

from .analysis import Analysis
from ..utils.colors import Colors
from ..utils.sanitization import sanitize_for_logging

WEBHOOK_TIMEOUT_SECONDS = 10

RECOMMENDATIONS = {
    "phishing": "Potential phishing: do not click links or provide credentials",
    "malware": "Dangerous attachment detected: do not open attachments",
    "social_engineering": "Pressure tactics detected: take time to verify before acting",
    "spam": "Likely spam: move to the spam folder",
    "bec": "Payment or transfer request: confirm with the sender by phone",
}


class AlertSystem:
    """Manages alerts and notifications"""

    def __init__(self, config):
        """
        Initialize alert system

        Args:
            config: AlertConfig object
        """
        self.config = config
        self.logger = logging.getLogger("AlertSystem")

    def send_alert(self, analysis: Analysis) -> bool:
        """
        Send alert through configured channels

        Args:
            analysis: Analysis to alert on

        Returns:
            True if the analysis was at or above the alert threshold
        """
        results = analysis.results
        if results.risk_score < self.config.min_risk_score:
            self.logger.debug(f"Risk score too low to alert: {results.risk_score}")
            return False

        if self.config.console:
            self._console_alert(analysis)

        if self.config.webhook_enabled and self.config.webhook_url:
            self._webhook_alert(analysis)

        return True

    def _console_alert(self, analysis: Analysis):
        """Print alert to console"""
        results = analysis.results
        headers = analysis.email.headers
        risk_color = Colors.get_risk_color(results.risk_level)
        header_bar = Colors.colorize("=" * 80, risk_color)

        print("\n" + header_bar)
        print(Colors.colorize(
            f"SECURITY ALERT - {results.risk_level.upper()} RISK", risk_color + Colors.BOLD
        ))
        print(header_bar)

        print(f"{Colors.BOLD}Analysis:{Colors.RESET}  {analysis.id}")
        print(f"{Colors.BOLD}Timestamp:{Colors.RESET} {analysis.timestamp.isoformat()}")
        print(f"{Colors.BOLD}Subject:{Colors.RESET}   {sanitize_for_logging(headers.get('subject', ''))}")
        print(f"{Colors.BOLD}From:{Colors.RESET}      {sanitize_for_logging(headers.get('from', ''))}")
        print(f"{Colors.BOLD}Category:{Colors.RESET}  {results.category}")
        print(f"{Colors.BOLD}Score:{Colors.RESET}     {results.risk_score}")

        for name, result in results.threat_assessment.items():
            if not result.detected:
                continue
            print(f"\n{Colors.BOLD}--- {name.upper()} ({result.confidence:.2f}) ---{Colors.RESET}")
            for indicator in result.indicators[:5]:
                print(f"  {Colors.colorize('*', Colors.CYAN)} {sanitize_for_logging(indicator)}")

        print(f"\n{Colors.BOLD}--- RECOMMENDATIONS ---{Colors.RESET}")
        for recommendation in generate_recommendations(analysis):
            print(f"  {Colors.colorize('>', Colors.GREEN)} {recommendation}")

        print(header_bar + "\n")

    def _webhook_alert(self, analysis: Analysis):
        """Send alert via webhook"""
        try:
            response = requests.post(
                self.config.webhook_url,
                json=analysis.to_dict(),
                headers={'Content-Type': 'application/json'},
                timeout=WEBHOOK_TIMEOUT_SECONDS
            )

            if response.status_code == 200:
                self.logger.info("Webhook alert sent successfully")
            else:
                self.logger.warning(f"Webhook alert failed: {response.status_code}")

        except requests.RequestException as e:
            self.logger.error(f"Failed to send webhook alert: {type(e).__name__}")


def generate_recommendations(analysis: Analysis) -> List[str]:
    """Actionable advice for each detected threat type"""
    recommendations = [
        RECOMMENDATIONS[name]
        for name in analysis.results.detected_threats
        if name in RECOMMENDATIONS
    ]
    if analysis.results.sentiment_analysis.label in ("negative", "very_negative"):
        recommendations.append("Hostile or alarming tone: verify the sender before acting")
    if not recommendations:
        recommendations.append("Review email carefully before taking action")
    return recommendations
