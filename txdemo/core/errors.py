"""Error Hierarchy — typed, categorized exceptions for every failure of a run.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Every error is terminal: nothing in txdemo retries or recovers locally
    - log_extra() is the extra dict attached to the one log record each error gets

Design Decisions:
    - Single hierarchy with TxDemoError base: the entry routine catches one type
    - DatabaseConnectionError instead of ConnectionError: never shadow the builtin
    - ErrorContext as dataclass: rich observability without coupling to logging framework
"""

from dataclasses import dataclass, field
from enum import Enum
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability."""
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories, one per stage of a run."""
    CONNECTION = "connection"
    TRANSACTION = "transaction"
    STATEMENT = "statement"
    DECODE = "decode"


@dataclass
class ErrorContext:
    """Where in the run the error happened."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    step: str | None = None


class TxDemoError(Exception):
    """Base exception for all txdemo errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()

    def log_extra(self) -> dict:
        """Fields surfaced by the JSON log formatter."""
        return {
            "error_code": self.code,
            "severity": self.severity.value,
            "step": self.context.step,
        }


class DatabaseConnectionError(TxDemoError):
    """Network, authentication or protocol negotiation failure."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database connection failed: {message}",
            "CONNECTION_ERROR", ErrorCategory.CONNECTION,
            ErrorSeverity.CRITICAL, context,
        )


class TransactionStartError(TxDemoError):
    """Connection already inside a transaction, closed, or failed."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.step = ctx.step or "begin"
        super().__init__(
            f"Could not start transaction: {message}",
            "TRANSACTION_START", ErrorCategory.TRANSACTION,
            ErrorSeverity.ERROR, ctx,
        )


class StatementError(TxDemoError):
    """Execute failed: constraint violation, bad parameter, connection loss."""
    def __init__(self, message: str, step: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.step = step
        super().__init__(
            f"Statement '{step}' failed: {message}",
            "STATEMENT_ERROR", ErrorCategory.STATEMENT,
            ErrorSeverity.ERROR, ctx,
        )
        self.step = step


class DecodeError(TxDemoError):
    """A selected row did not decode into the expected column types."""
    def __init__(self, message: str, column: int | None = None,
                 context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.step = ctx.step or "select"
        super().__init__(
            f"Row decoding failed: {message}",
            "DECODE_ERROR", ErrorCategory.DECODE,
            ErrorSeverity.ERROR, ctx,
        )
        self.column = column


class CommitError(TxDemoError):
    """The server rejected the commit."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.step = "commit"
        super().__init__(
            f"Commit rejected: {message}",
            "COMMIT_ERROR", ErrorCategory.TRANSACTION,
            ErrorSeverity.CRITICAL, ctx,
        )
