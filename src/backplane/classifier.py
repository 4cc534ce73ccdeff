"""Driver error extraction and classification.

Database drivers raise errors of many shapes: psycopg exposes ``sqlstate``
and a ``diag`` block, SQLAlchemy wraps the driver error in ``orig``, socket
failures are ``OSError`` with an ``errno``, and timeouts carry no message
at all.  This module reduces all of them to a flat ``DriverErrorInfo`` and
then buckets the failure into one of the named kinds from
``backplane.errors``.

Extraction runs an ordered list of strategies, each filling only the
fields still empty:

1. direct fields on the error itself
2. the nested original error (``orig`` / ``original_error`` / ``original``)
3. the ``__cause__`` chain
4. stringified fallback (``str(error)`` or the exception class name)

Classification checks, in this exact order:

1. connection / timeout / refused / ``ECONNREFUSED``  -> ``ConnectionError``
2. authentication / password / permission / ``28P01`` -> ``ConnectionError``
3. database / schema / does not exist / ``3D000`` / ``42P01`` -> ``DatabaseError``
4. anything else -> ``DatabaseError``

Usage:
    from backplane.classifier import classify_error

    try:
        graph = await introspect_database(client)
    except Exception as e:
        raise classify_error(e) from e
"""

import errno
import logging
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError, StatementError

from backplane import errors
from backplane.errors import BackplaneError

logger = logging.getLogger(__name__)

CONNECTION_KEYWORDS = ("connection", "timeout", "refused", "econnrefused")
CONNECTION_CODES = frozenset({"ECONNREFUSED"})

AUTHENTICATION_KEYWORDS = ("authentication", "password", "permission")
AUTHENTICATION_CODES = frozenset({"28P01"})

NOT_FOUND_KEYWORDS = ("database", "schema", "does not exist")
NOT_FOUND_CODES = frozenset({"3D000", "42P01"})

_NESTED_ATTRS = ("orig", "original_error", "original")
_MAX_CAUSE_DEPTH = 10


@dataclass
class DriverErrorInfo:
    """Flattened view of a driver error.

    Example:
        >>> info = DriverErrorInfo(message="boom", code="42P01")
        >>> info.display_message
        'boom. Error code: 42P01'
    """

    message: str = ""
    code: str = ""
    detail: str = ""
    hint: str = ""

    @property
    def display_message(self) -> str:
        """Message, detail, hint and code joined into one sentence chain."""
        parts = [
            self.message,
            self.detail,
            self.hint,
            f"Error code: {self.code}" if self.code else "",
        ]
        return ". ".join(part for part in parts if part)

    def merge(self, other: "DriverErrorInfo") -> None:
        """Fill empty fields from *other*, keeping fields already set."""
        self.message = self.message or other.message
        self.code = self.code or other.code
        self.detail = self.detail or other.detail
        self.hint = self.hint or other.hint


# ------------------------------------------------------------------
# Field readers
# ------------------------------------------------------------------


def _text(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


def _is_wrapper(error: BaseException) -> bool:
    """SQLAlchemy statement errors embed the SQL text in ``str()``."""
    return isinstance(error, StatementError) and error.orig is not None


def _message_of(error: BaseException) -> str:
    message = _text(getattr(error, "message", None))
    if message:
        return message
    return _text(str(error))


def _code_of(error: BaseException) -> str:
    for attr in ("sqlstate", "pgcode"):
        code = _text(getattr(error, attr, None))
        if code:
            return code
    if isinstance(error, OSError) and error.errno in errno.errorcode:
        return errno.errorcode[error.errno]
    # SQLAlchemy's own ``code`` is a docs link slug, not a driver code
    if not isinstance(error, SQLAlchemyError):
        return _text(getattr(error, "code", None))
    return ""


def _diag_field(error: BaseException, name: str) -> str:
    diag = getattr(error, "diag", None)
    return _text(getattr(diag, name, None)) if diag is not None else ""


def _read_fields(error: BaseException) -> DriverErrorInfo:
    return DriverErrorInfo(
        message="" if _is_wrapper(error) else _message_of(error),
        code=_code_of(error),
        detail=_text(getattr(error, "detail", None))
        or _diag_field(error, "message_detail"),
        hint=_text(getattr(error, "hint", None)) or _diag_field(error, "message_hint"),
    )


# ------------------------------------------------------------------
# Extraction strategies
# ------------------------------------------------------------------


def _from_direct_fields(error: BaseException, info: DriverErrorInfo) -> None:
    info.merge(_read_fields(error))


def _from_original_error(error: BaseException, info: DriverErrorInfo) -> None:
    for attr in _NESTED_ATTRS:
        nested = getattr(error, attr, None)
        if isinstance(nested, BaseException) and nested is not error:
            info.merge(_read_fields(nested))


def _from_cause_chain(error: BaseException, info: DriverErrorInfo) -> None:
    seen = {id(error)}
    cause = error.__cause__
    depth = 0
    while cause is not None and id(cause) not in seen and depth < _MAX_CAUSE_DEPTH:
        info.merge(_read_fields(cause))
        seen.add(id(cause))
        cause = cause.__cause__
        depth += 1


def _from_string_fallback(error: BaseException, info: DriverErrorInfo) -> None:
    if not info.message:
        info.message = _text(str(error)) or type(error).__name__


EXTRACTION_STRATEGIES: tuple[Callable[[BaseException, DriverErrorInfo], None], ...] = (
    _from_direct_fields,
    _from_original_error,
    _from_cause_chain,
    _from_string_fallback,
)


def extract_error_info(error: BaseException) -> DriverErrorInfo:
    """Extract message, code, detail and hint from any exception.

    Pure function: no logging, no I/O.

    Args:
        error: Exception raised by a driver, SQLAlchemy or the event loop.

    Returns:
        ``DriverErrorInfo`` with every field a (possibly empty) string and
        ``message`` always non-empty.
    """
    info = DriverErrorInfo()
    for strategy in EXTRACTION_STRATEGIES:
        strategy(error, info)
    return info


# ------------------------------------------------------------------
# Classification
# ------------------------------------------------------------------


def _matches(text: str, code: str, keywords: tuple[str, ...], codes: frozenset[str]) -> bool:
    return any(keyword in text for keyword in keywords) or code in codes


def classify_error(
    error: BaseException,
    action: str = "introspecting the database",
) -> BackplaneError:
    """Convert an opaque driver error into a named failure kind.

    Errors that are already classified are returned unchanged.

    Args:
        error: The exception to classify.
        action: Gerund phrase used in the generic failure message.

    Returns:
        A ``ConnectionError`` or ``DatabaseError`` whose ``details`` keep
        the original message, code and detail.

    Example:
        >>> e = classify_error(Exception("password authentication failed for user x"))
        >>> type(e).__name__, "authentication failed" in e.message
        ('ConnectionError', True)
    """
    if isinstance(error, BackplaneError):
        return error

    info = extract_error_info(error)
    display = info.display_message
    lowered = display.lower()
    details = {
        "originalError": info.message,
        "errorCode": info.code,
        "errorDetail": info.detail,
        "errorHint": info.hint,
    }

    if _matches(lowered, info.code, CONNECTION_KEYWORDS, CONNECTION_CODES):
        return errors.ConnectionError(
            f"Failed to connect to database: {display}. "
            "Please check your connection string and ensure the database is accessible.",
            details,
        )

    if _matches(lowered, info.code, AUTHENTICATION_KEYWORDS, AUTHENTICATION_CODES):
        return errors.ConnectionError(
            f"Database authentication failed: {display}. Please check your credentials.",
            details,
        )

    if _matches(lowered, info.code, NOT_FOUND_KEYWORDS, NOT_FOUND_CODES):
        return errors.DatabaseError(
            f"Database or schema not found: {display}. "
            "Please verify the database name and schema.",
            details,
        )

    logger.debug(f"Unclassified database error ({type(error).__name__}): {info.message}")
    return errors.DatabaseError(
        f"An error occurred while {action}: {display}",
        details,
    )
