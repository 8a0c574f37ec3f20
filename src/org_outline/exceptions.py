"""Custom exceptions for the Org outline engine."""

from typing import Optional


class OrgError(Exception):
    """Base class for all errors raised by org_outline."""


class OrgParseError(OrgError):
    """Raised when the structural parser cannot turn text into a document.

    Parsing never partially succeeds: when this is raised no OrgFile exists.

    Attributes:
        stage: Parsing stage that failed ("preamble" or "headings")
        fragment: First line of the remaining input where matching stopped
        offset: Offset of that line in the original text
        reason: Optional detail about the underlying failure
    """

    def __init__(
        self,
        stage: str,
        fragment: str,
        offset: int = 0,
        reason: Optional[str] = None,
    ):
        """Initialize OrgParseError.

        Args:
            stage: Parsing stage that failed
            fragment: Offending input (only its first line is kept)
            offset: Offset of the fragment in the original text
            reason: Optional detail about the failure
        """
        self.stage = stage
        self.fragment = fragment.split("\n", 1)[0]
        self.offset = offset
        self.reason = reason

        message = f"parse error in {stage}: at {self.fragment!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class InvalidTimestampError(OrgError, ValueError):
    """Raised when timestamp numerals do not form a valid calendar date or time."""
