"""
Sanitization Utility Module
Makes untrusted email text safe to log, print, or embed in an analysis view.
"""

import re
import unicodedata

ANSI_ESCAPE_PATTERN = re.compile(r'\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])')


def strip_control_characters(text: str, keep_newlines: bool = False) -> str:
    """
    Remove ANSI escape sequences and C0/C1 control characters.

    Tabs are always kept; newlines only when *keep_newlines* is set.
    """
    if not text:
        return ""

    text = ANSI_ESCAPE_PATTERN.sub('', text)
    allowed = {'\t', '\n'} if keep_newlines else {'\t'}
    return "".join(
        ch for ch in text
        if ch in allowed or not (ord(ch) < 32 or 127 <= ord(ch) <= 159)
    )


def truncate_text(text: str, max_length: int, suffix: str = "...") -> str:
    """Cut *text* to *max_length* characters, marking the cut with *suffix*"""
    if not text or len(text) <= max_length:
        return text or ""
    return text[:max_length] + suffix


def sanitize_for_logging(text: str, max_length: int = 255) -> str:
    """
    Sanitize text for safe logging to prevent Log Injection (CRLF) and terminal manipulation.

    Args:
        text: The input string to sanitize.
        max_length: Maximum allowed length for the log entry (truncates if longer).

    Returns:
        Sanitized string safe for logging.
    """
    if not text:
        return ""

    text = unicodedata.normalize('NFKC', str(text))

    # Escape line breaks so a subject cannot forge a second log record
    text = text.replace('\n', '\\n').replace('\r', '\\r')

    text = strip_control_characters(text)
    return truncate_text(text, max_length)
