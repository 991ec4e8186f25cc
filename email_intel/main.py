#!/usr/bin/env python3
"""
Email Intelligence Pipeline
Command-line entry point: parse email files, score them and print verdicts
"""

import argparse
import json
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from .modules.alert_system import AlertSystem
from .modules.analysis import Analysis
from .modules.email_data import ParsedEmail
from .modules.email_parser import EmailParser
from .modules.errors import EmailIntelError
from .modules.intelligence_agent import EmailIntelAgent
from .utils.colors import Colors
from .utils.config import Config
from .utils.logging_utils import setup_logging
from .utils.sanitization import sanitize_for_logging


class EmailIntelPipeline:
    """Main pipeline orchestrator"""

    def __init__(self, config_file: str = ".env"):
        """
        Initialize pipeline

        Args:
            config_file: Path to configuration file
        """
        self.config = Config(config_file)
        self.config.validate()

        setup_logging(self.config.system)

        self.logger = logging.getLogger("EmailIntelPipeline")
        self.logger.info("Initializing Email Intelligence Pipeline")

        self.parser = EmailParser(threats=self.config.threats)
        self.agent = EmailIntelAgent(
            self.config,
            alert_system=AlertSystem(self.config.alerts),
        )

    def load_emails(self, paths: List[str]) -> List[ParsedEmail]:
        """
        Parse every file in *paths*; unreadable or unsupported files are skipped

        Args:
            paths: Email files (.eml, .msg, .txt, .mbox)

        Returns:
            Parsed emails (an mbox file may contribute several)
        """
        emails: List[ParsedEmail] = []
        for path in paths:
            safe_path = sanitize_for_logging(path)
            try:
                size = Path(path).stat().st_size
                if size > self.config.performance.max_file_size:
                    self.logger.warning(f"Skipping {safe_path}: {size} bytes exceeds size limit")
                    continue
                parsed = self.parser.parse_file(path)
            except (EmailIntelError, OSError) as e:
                self.logger.error(f"Could not parse {safe_path}: {e}")
                continue

            batch = parsed if isinstance(parsed, list) else [parsed]
            for item in batch:
                self._inspect(item, safe_path)
            emails.extend(batch)

        self.logger.info(f"Loaded {len(emails)} emails from {len(paths)} files")
        return emails

    def _inspect(self, parsed: ParsedEmail, safe_path: str):
        problems = self.parser.validate_email(parsed)
        if problems:
            self.logger.warning(f"{safe_path}: {'; '.join(problems)}")
        summary = self.parser.get_email_summary(parsed, preview_chars=60)
        self.logger.debug(
            f"Parsed {safe_path}: subject={sanitize_for_logging(summary['subject'])!r}, "
            f"words={summary['word_count']}, parser risk={summary['risk_score']}"
        )

    def run(self, paths: List[str]) -> List[Analysis]:
        """Analyse the given files and print a verdict per email"""
        emails = self.load_emails(paths)
        if not emails:
            self.logger.info("No emails to analyze")
            return []

        with self.agent:
            analyses = self.agent.analyze_email_batch(emails)

        for analysis in analyses:
            print(format_verdict(analysis))

        print()
        print(Colors.header("Statistics"))
        print(json.dumps(self.agent.get_analysis_stats(), indent=2, default=str))
        print(Colors.header("Metrics"))
        print(json.dumps(self.agent.metrics.get_summary(), indent=2, default=str))
        return analyses


def format_verdict(analysis: Analysis) -> str:
    """One coloured line: risk level, score, category and subject"""
    results = analysis.results
    color = Colors.get_risk_color(results.risk_level)
    subject = sanitize_for_logging(analysis.email.headers.get("subject", ""), max_length=60)
    level = Colors.colorize(f"{results.risk_level.upper():<8}", color + Colors.BOLD)
    return f"{level} {results.risk_score:>3}  {results.category:<18} {subject}"


def signal_handler(signum, frame):
    """Handle shutdown signals"""
    print("\nReceived shutdown signal, stopping gracefully...")
    sys.exit(0)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="email-intel",
        description="Score email files for phishing, malware, spam, social engineering and BEC",
    )
    parser.add_argument("paths", nargs="+", help="Email files (.eml, .msg, .txt, .mbox)")
    parser.add_argument("--env", default=".env", help="Configuration file (default: .env)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    args = build_arg_parser().parse_args(argv)

    try:
        pipeline = EmailIntelPipeline(args.env)
    except ValueError as e:
        print(f"Error: invalid configuration: {e}")
        return 1

    pipeline.run(args.paths)
    return 0


if __name__ == "__main__":
    sys.exit(main())
