"""
Security Validators Module
Centralizes the limits the parser enforces on untrusted email files

SECURITY STORY: These validators protect against various attacks:
- MAX_SUBJECT_LENGTH: Prevents DoS from extremely long subjects
- MAX_MIME_PARTS: Prevents MIME bomb attacks (deeply nested MIME structures)
- MAX_ATTACHMENT_COUNT: Bounds the attachment list kept per email
- sanitize_filename: Prevents path traversal through attachment names
"""

import re

MAX_SUBJECT_LENGTH = 1024
MAX_MIME_PARTS = 100
MAX_ATTACHMENT_COUNT = 10
MAX_FILENAME_LENGTH = 255

# Whitelist: word characters, whitespace, hyphen and dot
FILENAME_SANITIZE_PATTERN = re.compile(r"[^\w\s\-\.]")
FILENAME_COLLAPSE_DOTS_PATTERN = re.compile(r"\.{2,}")

WINDOWS_RESERVED_NAMES = {
    "CON", "PRN", "AUX", "NUL",
    "COM1", "COM2", "COM3", "COM4", "COM5", "COM6", "COM7", "COM8", "COM9",
    "LPT1", "LPT2", "LPT3", "LPT4", "LPT5", "LPT6", "LPT7", "LPT8", "LPT9"
}


def sanitize_filename(filename: str) -> str:
    """
    Sanitize an attachment filename (CWE-22)

    Path components are dropped, unsafe characters removed, and dot runs
    collapsed. Extensions are preserved so the malware detector still sees
    ``invoice.pdf.exe`` as a double extension.

    Example:
        >>> sanitize_filename("../../etc/passwd")
        'passwd'
        >>> sanitize_filename("invoice.pdf.exe")
        'invoice.pdf.exe'
    """
    if not filename:
        return "unnamed_attachment"

    filename = filename.split("/")[-1].split("\\")[-1]
    sanitized = FILENAME_SANITIZE_PATTERN.sub("", filename)
    sanitized = FILENAME_COLLAPSE_DOTS_PATTERN.sub(".", sanitized)
    sanitized = sanitized.strip(" ")

    if not sanitized or sanitized in (".", ".."):
        return "unnamed_attachment"

    stem = sanitized.split(".")[0].upper()
    if stem in WINDOWS_RESERVED_NAMES:
        sanitized = f"_{sanitized}"

    if len(sanitized) > MAX_FILENAME_LENGTH:
        # Keep the final extension visible after truncation
        if "." in sanitized:
            stem_part, ext = sanitized.rsplit(".", 1)
            keep = MAX_FILENAME_LENGTH - len(ext) - 1
            sanitized = f"{stem_part[:keep]}.{ext}" if keep > 0 else sanitized[:MAX_FILENAME_LENGTH]
        else:
            sanitized = sanitized[:MAX_FILENAME_LENGTH]

    return sanitized


def truncate_subject(subject: str) -> str:
    """Return *subject* cut to MAX_SUBJECT_LENGTH characters"""
    if len(subject) > MAX_SUBJECT_LENGTH:
        return subject[:MAX_SUBJECT_LENGTH]
    return subject
