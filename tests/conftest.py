"""Pytest configuration.

The `email_intel` package lives at the repository root. Depending on how
pytest is invoked and the active import mode, the repository root may not be
on `sys.path`, which breaks imports like `from email_intel.modules...`.

This file makes test imports robust by explicitly adding the repo root to
`sys.path` during test collection, and provides shared fixtures.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]

# NOTE: Insert at the front so local imports win over any similarly named
# third-party packages.
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from email_intel.modules.email_data import Attachment, EmailMetadata, ParsedEmail  # noqa: E402
from email_intel.modules.email_parser import EmailParser  # noqa: E402
from email_intel.utils.config import (  # noqa: E402
    AlertConfig,
    IntelligenceConfig,
    PerformanceConfig,
    SystemConfig,
    ThreatConfig,
)


class StubConfig:
    """Config-shaped container that skips reading the environment"""

    def __init__(self, threats=None, intelligence=None, performance=None, alerts=None, system=None):
        self.threats = threats or ThreatConfig()
        self.intelligence = intelligence or IntelligenceConfig()
        self.performance = performance or PerformanceConfig()
        self.alerts = alerts or AlertConfig(console=False)
        self.system = system or SystemConfig(log_file="")


def make_email(body="", subject="", sender="", attachments=None, headers=None, **metadata):
    """Build a ParsedEmail directly, bypassing the parser"""
    all_headers = {}
    if subject:
        all_headers["subject"] = subject
    if sender:
        all_headers["from"] = sender
    all_headers.update(headers or {})
    attachments = [
        a if isinstance(a, Attachment) else Attachment(filename=a, size=1024)
        for a in (attachments or [])
    ]
    meta = EmailMetadata(
        has_attachments=bool(attachments),
        attachment_count=len(attachments),
        **metadata,
    )
    return ParsedEmail(headers=all_headers, body=body, attachments=attachments, metadata=meta)


@pytest.fixture
def stub_config():
    return StubConfig()


@pytest.fixture
def parser():
    return EmailParser()
