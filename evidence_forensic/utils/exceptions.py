"""
Custom exception classes for evidence forensic analysis.

This module defines the exception hierarchy for all error conditions
that can occur while hashing, scoring, recording and exchanging evidence.
"""


class EvidenceForensicError(Exception):
    """
    Base exception class for all evidence forensic toolkit errors.

    All custom exceptions in this module inherit from this base class,
    allowing for broad exception handling when needed.

    Attributes:
        message: Human-readable error description
        details: Optional dictionary containing additional error context
    """

    def __init__(self, message: str, details: dict = None):
        """
        Initialize the base exception.

        Args:
            message: Error message describing what went wrong
            details: Optional dictionary with additional context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return a string representation of the exception."""
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


class EvidenceIOError(EvidenceForensicError):
    """
    Raised when an evidence file or bundled asset cannot be read.

    Attributes:
        path: Path (or logical asset name) that could not be read
        reason: Specific reason for the failure
        cause: Optional underlying exception (e.g., OSError)
    """

    def __init__(self, path: str, reason: str = None, cause: Exception = None):
        self.path = str(path)
        self.reason = reason or "Unable to read file"
        self.cause = cause

        details = {"path": self.path}
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        super().__init__(f"Cannot read {self.path}: {self.reason}", details)


class IntegrityError(EvidenceForensicError):
    """
    Raised when a computed hash does not match the expected value.

    Attributes:
        subject: What was being verified (asset path, ledger line, packet)
        expected: Expected hex digest
        actual: Computed hex digest
    """

    def __init__(self, subject: str, expected: str = None, actual: str = None):
        self.subject = subject
        self.expected = expected
        self.actual = actual

        details = {}
        if expected:
            details["expected"] = expected[:12]
        if actual:
            details["actual"] = actual[:12]

        super().__init__(f"Integrity check failed for {subject}", details)


class ParseError(EvidenceForensicError):
    """
    Raised when a rule document, ledger line or mesh packet is malformed.

    Attributes:
        source: Where the malformed content came from
        cause: Optional underlying exception
    """

    def __init__(self, message: str, source: str = None, cause: Exception = None):
        self.source = source
        self.cause = cause

        details = {}
        if source:
            details["source"] = source
        if cause:
            details["cause"] = str(cause)

        super().__init__(f"Parse error: {message}", details)


class RuleLoadFailure(EvidenceForensicError):
    """
    Raised by a rule source when the detection rules cannot be loaded.

    Non-fatal: the risk scorer catches it and keeps the built-in lexicon.
    """

    def __init__(self, source: str, reason: str = None, cause: Exception = None):
        self.source = source
        self.reason = reason or "Rule document could not be loaded"
        self.cause = cause

        details = {"source": source}
        if cause:
            details["cause"] = str(cause)

        super().__init__(f"Failed to load detection rules: {self.reason}", details)


class SealingError(EvidenceForensicError):
    """
    Raised when the sealing service cannot produce an attested document.

    Attributes:
        file_path: File that was being sealed
        cause: Optional underlying exception
    """

    def __init__(self, file_path: str, reason: str = None, cause: Exception = None):
        self.file_path = str(file_path)
        self.reason = reason or "Sealing failed"
        self.cause = cause

        details = {"file_path": self.file_path}
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        super().__init__(f"Failed to seal {self.file_path}. {self.reason}", details)


class ManifestError(EvidenceForensicError):
    """Raised when the integrity manifest itself cannot be enumerated."""

    def __init__(self, reason: str, cause: Exception = None):
        self.reason = reason
        self.cause = cause

        details = {}
        if cause:
            details["cause"] = str(cause)

        super().__init__(f"Integrity manifest error: {reason}", details)


class TransportError(EvidenceForensicError):
    """
    Raised by a mailer when a signed packet cannot be delivered.

    Attributes:
        recipient: Intended recipient address
        cause: Optional underlying exception
    """

    def __init__(self, recipient: str, reason: str = None, cause: Exception = None):
        self.recipient = recipient
        self.reason = reason or "Delivery failed"
        self.cause = cause

        details = {"recipient": recipient}
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        super().__init__(f"Transport error: {self.reason}", details)


class ConfigError(EvidenceForensicError):
    """Raised when a configuration file is missing or invalid."""

    def __init__(self, message: str, config_path: str = None):
        self.config_path = config_path

        details = {}
        if config_path:
            details["config_path"] = config_path

        super().__init__(message, details)
