"""
Email Parser Module
Turns raw email files (EML, MSG, TXT, MBOX) into structured ParsedEmail objects

PATTERN RECOGNITION: This follows the Parser pattern - it takes unstructured
data (raw file bytes) and transforms it into a structured object (ParsedEmail).
Every format funnels into the same enrichment step, so the detectors never
need to know where an email came from.

SECURITY STORY: Email files are untrusted input. The parser caps the number of
MIME parts walked, the number of attachments kept and the subject length, and
sanitises attachment filenames before anything downstream sees them.
"""

import email
import html
import logging
import os
import re
from datetime import datetime
from email.header import decode_header, make_header
from email.message import Message
from email.utils import parsedate_to_datetime
from typing import Dict, List, Optional, Tuple, Union
from urllib.parse import urlsplit

from .email_data import Attachment, EmailMetadata, ParsedEmail, SecurityIndicators
from .errors import EmptyContentError, MalformedDateError, UnsupportedFormatError
from .threat_detectors import extract_sender_domain, file_extension
from ..utils.config import ThreatConfig
from ..utils.sanitization import sanitize_for_logging
from ..utils.security_validators import (
    MAX_ATTACHMENT_COUNT,
    MAX_MIME_PARTS,
    MAX_SUBJECT_LENGTH,
    sanitize_filename,
    truncate_subject,
)


DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def get_file_extension(filename: str) -> str:
    """Return the lower-cased extension of *filename*, including the dot"""
    return file_extension(filename or "")


def classify_time_slot(hour: int) -> str:
    """Bucket an hour of the day into morning/afternoon/evening/night"""
    if 6 <= hour < 12:
        return "morning"
    if 12 <= hour < 18:
        return "afternoon"
    if 18 <= hour < 22:
        return "evening"
    return "night"


def parse_email_date(value: str) -> datetime:
    """
    Parse an RFC 2822 Date header

    Raises:
        MalformedDateError: If the value cannot be parsed
    """
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError, OverflowError) as e:
        raise MalformedDateError(value) from e
    if parsed is None:
        raise MalformedDateError(value)
    return parsed


class EmailParser:
    """
    Parses raw email files into ParsedEmail objects

    MAINTENANCE WISDOM: Keep parsing logic separate from I/O. The parser takes
    bytes plus the original filename, so tests can feed it literal strings.
    """

    SUPPORTED_FORMATS = (".eml", ".msg", ".txt", ".mbox")

    # Parser-level indicator weights; the detectors do the real scoring
    PHISHING_INDICATOR_POINTS = 10
    SUSPICIOUS_DOMAIN_POINTS = 15
    MALWARE_INDICATOR_POINTS = 25
    SPOOFING_INDICATOR_POINTS = 20

    # Headers recognised when scanning the top of a plain-text export
    TEXT_HEADER_KEYS = ("from", "to", "subject", "date", "cc", "bcc")
    TEXT_HEADER_SCAN_LINES = 20

    EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
    URL_PATTERN = re.compile(r"https?://\S+")
    IP_PATTERN = re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b")

    MSG_FIELD_PATTERNS = {
        "subject": re.compile(r"Subject:\s*(.+)", re.IGNORECASE),
        "from": re.compile(r"From:\s*(.+)", re.IGNORECASE),
        "to": re.compile(r"To:\s*(.+)", re.IGNORECASE),
        "date": re.compile(r"Date:\s*(.+)", re.IGNORECASE),
    }

    MBOX_SEPARATOR = re.compile(r"^From ", re.MULTILINE)
    REPLY_PREFIX = re.compile(r"re:")
    FORWARD_PREFIX = re.compile(r"fwd?:")
    HTML_TAG_PATTERN = re.compile(r"<[^>]{0,2000}>")
    BLANK_RUN_PATTERN = re.compile(r"\n{3,}")

    def __init__(
        self,
        max_body_size: int = 1024 * 1024,
        max_attachment_count: int = MAX_ATTACHMENT_COUNT,
        threats: Optional[ThreatConfig] = None,
    ):
        """
        Initialize email parser

        Args:
            max_body_size: Maximum number of body characters kept
            max_attachment_count: Maximum number of attachments kept per email
            threats: Keyword, domain and extension lists for security indicators
        """
        self.max_body_size = max_body_size
        self.max_attachment_count = max_attachment_count
        self.threats = threats or ThreatConfig()
        self.logger = logging.getLogger("EmailParser")

    def parse(self, raw_bytes: bytes, filename: str) -> Union[ParsedEmail, List[ParsedEmail]]:
        """
        Parse a raw email file, dispatching on its extension

        Args:
            raw_bytes: File content
            filename: Original filename; only its extension is used

        Returns:
            A ParsedEmail, or a list of them for an mbox holding several messages

        Raises:
            UnsupportedFormatError: Extension is not .eml/.msg/.txt/.mbox
            EmptyContentError: The file (or every message in it) is empty
        """
        extension = get_file_extension(filename)
        if extension not in self.SUPPORTED_FORMATS:
            raise UnsupportedFormatError(extension)

        if not raw_bytes or not raw_bytes.strip():
            raise EmptyContentError(f"File {sanitize_for_logging(filename)} is empty")

        if extension == ".eml":
            return self._parse_eml(raw_bytes, filename)
        if extension == ".msg":
            return self._parse_msg(raw_bytes, filename)
        if extension == ".txt":
            return self._parse_txt(raw_bytes, filename)
        return self._parse_mbox(raw_bytes, filename)

    def parse_file(self, path: str) -> Union[ParsedEmail, List[ParsedEmail]]:
        """Read *path* from disk and parse it"""
        with open(path, "rb") as f:
            raw_bytes = f.read()
        return self.parse(raw_bytes, os.path.basename(path))

    # ------------------------------------------------------------------
    # Format-specific parsing
    # ------------------------------------------------------------------

    def _parse_eml(self, raw_bytes: bytes, source_name: str) -> ParsedEmail:
        """Parse an RFC 2822 message"""
        return self._parse_message(email.message_from_bytes(raw_bytes), source_name)

    def _parse_message(self, msg: Message, source_name: str) -> ParsedEmail:
        headers = self._extract_headers(msg)
        if "subject" in headers:
            headers["subject"] = self._check_subject(headers["subject"], source_name)
        body, attachments = self._extract_content(msg, sanitize_for_logging(source_name))
        return self._build_email(headers, body, attachments, source_name)

    def _parse_msg(self, raw_bytes: bytes, source_name: str) -> ParsedEmail:
        """
        Best-effort Outlook .msg handling

        No OLE parsing is attempted: the file is decoded as text and the
        common header fields are picked out with regexes.
        """
        content = self._decode_bytes(raw_bytes, None)
        headers: Dict[str, str] = {}
        for key, pattern in self.MSG_FIELD_PATTERNS.items():
            match = pattern.search(content)
            if match:
                headers[key] = match.group(1).strip()
        if "subject" in headers:
            headers["subject"] = self._check_subject(headers["subject"], source_name)
        return self._build_email(headers, content, [], source_name)

    def _parse_txt(self, raw_bytes: bytes, source_name: str) -> ParsedEmail:
        """Plain-text export: the whole file is the body, headers are optional"""
        content = self._decode_bytes(raw_bytes, None)
        headers: Dict[str, str] = {}
        for line in content.split("\n")[:self.TEXT_HEADER_SCAN_LINES]:
            colon_index = line.find(":")
            if colon_index > 0:
                key = line[:colon_index].strip().lower()
                if key in self.TEXT_HEADER_KEYS:
                    headers[key] = line[colon_index + 1:].strip()
        if "subject" in headers:
            headers["subject"] = self._check_subject(headers["subject"], source_name)
        return self._build_email(headers, content, [], source_name)

    def _parse_mbox(self, raw_bytes: bytes, source_name: str) -> Union[ParsedEmail, List[ParsedEmail]]:
        """
        Split an mbox on ``From `` separator lines and parse each message

        Text before the first separator is ignored. A message that fails to
        parse is logged and skipped.
        """
        content = self._decode_bytes(raw_bytes, None)
        sections = self.MBOX_SEPARATOR.split(content)
        safe_name = sanitize_for_logging(source_name)

        emails: List[ParsedEmail] = []
        for index, section in enumerate(sections[1:], start=1):
            try:
                msg = email.message_from_string("From " + section)
                emails.append(self._parse_message(msg, f"{source_name}#{index}"))
            except Exception as e:
                self.logger.warning(f"Skipping message {index} in mbox {safe_name}: {e}")

        if not emails:
            raise EmptyContentError(f"No parseable messages in mbox {safe_name}")

        self.logger.debug(f"Parsed {len(emails)} messages from mbox {safe_name}")
        return emails[0] if len(emails) == 1 else emails

    # ------------------------------------------------------------------
    # Header and MIME helpers
    # ------------------------------------------------------------------

    def _extract_headers(self, msg: Message) -> Dict[str, str]:
        """
        Extract headers with lower-cased, trimmed keys

        Folded continuation lines are joined with a single space. When a
        header repeats, the last occurrence wins.
        """
        headers: Dict[str, str] = {}
        for key, value in msg.items():
            decoded = self._decode_header_value(value)
            headers[key.strip().lower()] = self._unfold(decoded)
        return headers

    def _check_subject(self, subject: str, source_name: str) -> str:
        if len(subject) > MAX_SUBJECT_LENGTH:
            self.logger.warning(
                f"Subject truncated to {MAX_SUBJECT_LENGTH} chars for "
                f"{sanitize_for_logging(source_name)}"
            )
        return truncate_subject(subject)

    def _extract_content(self, msg: Message, safe_name: str) -> Tuple[str, List[Attachment]]:
        """
        Extract body text and attachment descriptors

        SECURITY STORY: The walk stops after MAX_MIME_PARTS parts so a MIME
        bomb cannot pin the parser.
        """
        if not msg.is_multipart():
            return self._extract_singlepart_body(msg), []

        text_parts: List[str] = []
        html_parts: List[str] = []
        attachments: List[Attachment] = []

        for part_count, part in enumerate(msg.walk(), start=1):
            if part_count > MAX_MIME_PARTS:
                self.logger.warning(
                    f"Email {safe_name} exceeds max MIME parts ({MAX_MIME_PARTS}). "
                    f"Truncating remaining parts."
                )
                break

            if part.is_multipart():
                continue

            content_type = part.get_content_type()
            disposition = str(part.get("Content-Disposition", "")).lower()
            filename = part.get_filename()

            if "attachment" in disposition or filename:
                attachment = self._extract_attachment(part, filename, len(attachments), safe_name)
                if attachment:
                    attachments.append(attachment)
            elif content_type == "text/plain":
                text_parts.append(self._decode_part_payload(part))
            elif content_type == "text/html":
                html_parts.append(self._decode_part_payload(part))

        body = "".join(text_parts)
        if not body.strip() and html_parts:
            body = self._html_to_text("".join(html_parts))
        return body, attachments

    def _extract_singlepart_body(self, msg: Message) -> str:
        payload = msg.get_payload(decode=True)
        if not payload:
            return ""
        decoded = self._decode_bytes(payload, msg.get_content_charset())
        if msg.get_content_type() == "text/html":
            return self._html_to_text(decoded)
        return decoded

    def _extract_attachment(
        self,
        part: Message,
        raw_filename: Optional[str],
        current_count: int,
        safe_name: str,
    ) -> Optional[Attachment]:
        """Describe one attachment part; None once the count limit is reached"""
        if current_count >= self.max_attachment_count:
            self.logger.warning(
                f"Max attachment count ({self.max_attachment_count}) reached "
                f"for email {safe_name}. Skipping remaining attachments."
            )
            return None

        filename = sanitize_filename(self._decode_header_value(raw_filename or ""))
        payload = part.get_payload(decode=True) or b""
        return Attachment(
            filename=filename,
            size=len(payload),
            content_type=part.get_content_type(),
        )

    # ------------------------------------------------------------------
    # Enrichment
    # ------------------------------------------------------------------

    def _build_email(
        self,
        headers: Dict[str, str],
        body: str,
        attachments: List[Attachment],
        source_name: str,
    ) -> ParsedEmail:
        """Validate content, then derive metadata and clean the body"""
        body = body.replace("\r\n", "\n").replace("\r", "\n")
        if len(body) > self.max_body_size:
            self.logger.warning(
                f"Body truncated to {self.max_body_size} chars for {sanitize_for_logging(source_name)}"
            )
            body = body[:self.max_body_size]

        if not body.strip() and not attachments:
            raise EmptyContentError(
                f"Email {sanitize_for_logging(source_name)} has no body content or attachments"
            )

        metadata = self._extract_metadata(body, attachments)
        self._extract_communication_patterns(headers, metadata, source_name)
        metadata.security_indicators = self._extract_security_indicators(
            headers, body, attachments, metadata
        )

        return ParsedEmail(
            headers=headers,
            body=self.clean_body(body),
            attachments=attachments,
            metadata=metadata,
            source_name=source_name,
        )

    def _extract_metadata(self, body: str, attachments: List[Attachment]) -> EmailMetadata:
        metadata = EmailMetadata()

        if body:
            metadata.word_count = len(body.split())
            metadata.character_count = len(body)
            metadata.line_count = len(body.split("\n"))
            metadata.email_addresses = set(self.EMAIL_PATTERN.findall(body))
            metadata.urls = set(self.URL_PATTERN.findall(body))
            metadata.ip_addresses = set(self.IP_PATTERN.findall(body))
            metadata.domains = self._extract_domains(metadata.email_addresses, metadata.urls)

        if attachments:
            metadata.has_attachments = True
            metadata.attachment_count = len(attachments)

        return metadata

    @staticmethod
    def _extract_domains(email_addresses, urls) -> set:
        domains = set()
        for address in email_addresses:
            domain = address.rsplit("@", 1)[-1].strip().lower()
            if domain:
                domains.add(domain)
        for url in urls:
            try:
                hostname = urlsplit(url).hostname
            except ValueError:
                # Malformed URL, skip
                continue
            if hostname:
                domains.add(hostname.lower())
        return domains

    def _extract_communication_patterns(
        self,
        headers: Dict[str, str],
        metadata: EmailMetadata,
        source_name: str,
    ) -> None:
        date_value = headers.get("date")
        if date_value:
            try:
                sent_at = parse_email_date(date_value)
                metadata.time_slot = classify_time_slot(sent_at.hour)
                metadata.day_of_week = DAY_NAMES[sent_at.weekday()]
            except MalformedDateError as e:
                self.logger.warning(
                    f"{sanitize_for_logging(str(e))} in {sanitize_for_logging(source_name)}"
                )

        subject = headers.get("subject", "").lower()
        metadata.is_reply = subject.startswith("re:")
        metadata.is_forward = subject.startswith("fwd:") or subject.startswith("fw:")
        metadata.thread_depth = (
            len(self.REPLY_PREFIX.findall(subject)) + len(self.FORWARD_PREFIX.findall(subject))
        )

    def _extract_security_indicators(
        self,
        headers: Dict[str, str],
        body: str,
        attachments: List[Attachment],
        metadata: EmailMetadata,
    ) -> SecurityIndicators:
        """
        Cheap parser-level hints: keyword hits, shortener domains, risky
        attachment extensions and a From/Reply-To domain mismatch.

        SECURITY STORY: A Reply-To pointing at a different domain than From is
        the classic way to hijack the reply of a spoofed executive email, so
        it is flagged even when the body looks harmless.
        """
        indicators = SecurityIndicators()
        content = (body + " " + " ".join(headers.values())).lower()

        for keyword in self.threats.phishing_keywords:
            if keyword.lower() in content:
                indicators.phishing.append(keyword)
                indicators.risk_score += self.PHISHING_INDICATOR_POINTS

        for domain in sorted(metadata.domains):
            if domain in self.threats.suspicious_domains:
                indicators.suspicious_domains.append(domain)
                indicators.risk_score += self.SUSPICIOUS_DOMAIN_POINTS

        for attachment in attachments:
            extension = get_file_extension(attachment.filename)
            if extension in self.threats.malware_extensions:
                indicators.malware.append(extension)
                indicators.risk_score += self.MALWARE_INDICATOR_POINTS

        from_domain = extract_sender_domain(headers.get("from", ""))
        reply_to_domain = extract_sender_domain(headers.get("reply-to", ""))
        if from_domain and reply_to_domain and from_domain != reply_to_domain:
            indicators.spoofing.append("reply-to-mismatch")
            indicators.risk_score += self.SPOOFING_INDICATOR_POINTS

        indicators.risk_score = min(100, indicators.risk_score)
        return indicators

    @classmethod
    def clean_body(cls, body: str) -> str:
        """Drop quoted reply lines and collapse runs of blank lines"""
        if not body:
            return ""
        lines = [line for line in body.split("\n") if not line.strip().startswith(">")]
        return cls.BLANK_RUN_PATTERN.sub("\n\n", "\n".join(lines)).strip()

    # ------------------------------------------------------------------
    # Inspection helpers
    # ------------------------------------------------------------------

    @staticmethod
    def validate_email(parsed: ParsedEmail) -> List[str]:
        """Structural problems with a parsed email; an empty list means valid"""
        errors = []
        if not parsed.headers.get("from"):
            errors.append("Missing From header")
        if not parsed.headers.get("subject"):
            errors.append("Missing Subject header")
        if not parsed.body and not parsed.attachments:
            errors.append("Email has no body content or attachments")
        return errors

    @staticmethod
    def get_email_summary(parsed: ParsedEmail, preview_chars: int = 200) -> Dict[str, object]:
        """Short, display-ready description of a parsed email"""
        headers = parsed.headers
        return {
            "from": headers.get("from") or "Unknown",
            "to": headers.get("to") or "Unknown",
            "subject": headers.get("subject") or "No Subject",
            "date": headers.get("date") or "Unknown Date",
            "body_preview": parsed.body[:preview_chars] + "..." if parsed.body else "No content",
            "risk_score": parsed.metadata.security_indicators.risk_score,
            "has_attachments": parsed.metadata.has_attachments,
            "word_count": parsed.metadata.word_count,
        }

    # ------------------------------------------------------------------
    # Decoding helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _unfold(value: str) -> str:
        """Join folded header lines with single spaces"""
        return " ".join(part.strip() for part in value.splitlines() if part.strip())

    @classmethod
    def _html_to_text(cls, markup: str) -> str:
        return html.unescape(cls.HTML_TAG_PATTERN.sub(" ", markup))

    @staticmethod
    def _decode_header_value(value) -> str:
        """
        Decode RFC 2047 encoded header value

        Falls back to the raw value when the encoded words are malformed.
        """
        if not value:
            return ""
        try:
            return str(make_header(decode_header(value)))
        except Exception:
            return str(value)

    @staticmethod
    def _decode_part_payload(part: Message) -> str:
        payload = part.get_payload(decode=True)
        if not payload:
            return ""
        return EmailParser._decode_bytes(payload, part.get_content_charset())

    @staticmethod
    def _decode_bytes(data: bytes, charset: Optional[str]) -> str:
        """
        Decode bytes to string with charset fallback

        SECURITY STORY: 'replace' error handling keeps malformed input from
        aborting the parse.
        """
        encoding = charset or "utf-8"
        try:
            return data.decode(encoding, errors="replace")
        except LookupError:
            # Unknown charset, fallback to UTF-8
            return data.decode("utf-8", errors="replace")
