"""
Custom Exception Hierarchy - Domain-specific error types

Provides typed exceptions for the failure modes of a reconciliation run.
All custom exceptions inherit from CivicLedgerError for easy catching.

Most failures never escape a public operation: orchestrators catch them per
item and report them in the aggregate result. Only failing to open the store
(DatabaseConnectionError) is fatal to a run.
"""

from typing import Optional, Dict, Any


def _context(**values: Any) -> Dict[str, Any]:
    """Keep only the context values that were actually supplied"""
    return {key: value for key, value in values.items() if value is not None}


class CivicLedgerError(Exception):
    """Base exception for all civicledger errors

    Carries a context dict rendered into str() so that a message stored in a
    result's errors list still says which meeting, number or URL failed.
    """

    # Default: errors are not retryable (permanent failure)
    _retryable: bool = False

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """True for transient failures (network, locked database)"""
        return self._retryable

    def __str__(self):
        base_msg = super().__str__()
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{base_msg} (context: {context_str})"
        return base_msg


# ========== Database Errors ==========


class DatabaseError(CivicLedgerError):
    """Store operation failures (query errors, rolled back transactions)"""
    pass


class DatabaseConnectionError(DatabaseError):
    """Failed to open or use the database connection"""
    _retryable = True


class DataIntegrityError(DatabaseError):
    """A constraint rejected a write

    e.g. an agenda item for an unknown meeting, or a duplicate ordinance number
    """

    def __init__(self, message: str, table: Optional[str] = None, constraint: Optional[str] = None):
        self.table = table
        self.constraint = constraint
        super().__init__(message, _context(table=table, constraint=constraint))


# ========== Source Errors ==========


class SourceUnavailableError(CivicLedgerError):
    """An external source (vote portal, minutes host, extractor) could not answer

    Caught per meeting by the vote reconciler and reported in the meeting's
    errors list; the run moves on.
    """

    _retryable = True

    def __init__(
        self,
        message: str,
        source: str,
        meeting_id: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        self.source = source
        self.meeting_id = meeting_id
        self.original_error = original_error
        super().__init__(
            message,
            _context(
                source=source,
                meeting_id=meeting_id,
                original_error=str(original_error) if original_error else None,
            ),
        )


class SourceHTTPError(SourceUnavailableError):
    """HTTP request to an external source failed

    5xx answers and transport failures (no status code) are retryable;
    4xx answers are not.
    """

    def __init__(
        self,
        message: str,
        source: str,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        meeting_id: Optional[str] = None,
    ):
        super().__init__(message, source, meeting_id=meeting_id)
        self.status_code = status_code
        self.url = url
        self.context.update(_context(status_code=status_code, url=url))

    @property
    def is_retryable(self) -> bool:
        if self.status_code is None:
            return True
        return self.status_code >= 500


class SourceParsingError(SourceUnavailableError):
    """Source answered with something that is not a vote payload (HTML, wrong JSON shape)"""
    _retryable = False


# ========== Extraction Errors ==========


class ExtractionError(CivicLedgerError):
    """The document extractor failed or returned nothing usable"""

    def __init__(
        self,
        message: str,
        document_ref: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        self.document_ref = document_ref
        self.original_error = original_error
        super().__init__(
            message,
            _context(
                document_ref=document_ref,
                original_error=str(original_error) if original_error else None,
            ),
        )


# ========== Configuration Errors ==========


class ConfigurationError(CivicLedgerError):
    """Invalid CIVICLEDGER_* environment value"""

    def __init__(self, message: str, config_key: Optional[str] = None):
        self.config_key = config_key
        super().__init__(message, _context(config_key=config_key))


# ========== Validation Errors ==========


class ValidationError(CivicLedgerError):
    """Data validation failures

    Examples:
    - Unknown status or action value
    - Missing required field
    - Malformed date
    """

    def __init__(self, message: str, field: Optional[str] = None, value: Optional[Any] = None):
        self.field = field
        self.value = value
        super().__init__(
            message,
            _context(field=field, value=str(value) if value is not None else None),
        )
