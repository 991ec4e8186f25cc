"""
Error taxonomy for the email intelligence pipeline

Parse-time errors are raised to the caller of the single-email API.
MalformedDateError and DetectorError are recoverable: they are logged and the
analysis continues with a degraded result.
"""


class EmailIntelError(Exception):
    """Base exception for every error raised by this package"""


class UnsupportedFormatError(EmailIntelError):
    """The file extension is not one of the supported email formats"""

    def __init__(self, extension: str):
        self.extension = extension
        super().__init__(f"Unsupported file format: {extension or '<none>'}")


class EmptyContentError(EmailIntelError):
    """The file, or the email inside it, has no body and no attachments"""


class MalformedDateError(EmailIntelError):
    """The Date header could not be parsed"""

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Unparseable Date header: {value!r}")


class DetectorError(EmailIntelError):
    """A detector or analyzer failed while processing one email"""

    def __init__(self, component: str, cause: Exception):
        self.component = component
        self.cause = cause
        super().__init__(f"{component} failed: {type(cause).__name__}: {cause}")
