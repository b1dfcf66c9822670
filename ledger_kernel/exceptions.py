"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
TYPED EXCEPTIONS
===============================================================================

Every error the ledger surfaces is a typed class carrying:
  1. a CODE class attribute (machine-readable, API-safe)
  2. structured DATA as instance attributes (not just a message string)

Example - fragile handling:
    try:
        posting.post(...)
    except Exception as e:
        if "closed" in str(e):
            ...

Example - typed handling:
    try:
        posting.post(...)
    except PeriodLockedError as e:
        api_response(code=e.code, period=e.period_name)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerError (base)
    |
    +-- ValidationError
    |   +-- UnbalancedEntryError
    |   +-- InsufficientLinesError
    |   +-- InvalidLineAmountError
    |   +-- InvalidParentError
    |   +-- InvalidReportRangeError
    |   +-- RoleBindingError
    |   +-- ReservedSourceTypeError
    |   +-- DocumentTypeMismatchError
    |
    +-- AccountError
    |   +-- AccountNotFoundError
    |   +-- AccountInactiveError
    |   +-- AccountLockedError
    |   +-- DuplicateAccountCodeError
    |   +-- SystemAccountProtectedError
    |   +-- AccountInUseError
    |
    +-- PeriodError
    |   +-- PeriodNotFoundError
    |   +-- PeriodLockedError
    |   +-- PeriodAlreadyClosedError
    |   +-- PeriodNotClosedError
    |   +-- PeriodOverlapError
    |   +-- PeriodGapError
    |   +-- FiscalYearOverlapError
    |   +-- FiscalYearNotFoundError
    |
    +-- SequenceError
    |   +-- SequenceContentionError
    |   +-- SequenceExhaustedError
    |
    +-- ReversalError
    |   +-- EntryNotFoundError
    |   +-- EntryNotPostedError
    |   +-- CannotReverseReversalError
    |   +-- EntryAlreadyReversedError
    |
    +-- AuthorizationError
    |   +-- CapabilityDeniedError
    |
    +-- StrategyNotFoundError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | UNBALANCED_ENTRY            | Debits != Credits, or zero total
                | INSUFFICIENT_LINES          | Fewer than two lines
                | INVALID_LINE_AMOUNT         | Negative, two-sided or over-precise
                | INVALID_PARENT              | Missing/foreign parent, or a cycle
                | INVALID_REPORT_RANGE        | from_date after to_date
                | ROLE_BINDING_MISSING        | Posting role has no account code
                | RESERVED_SOURCE_TYPE        | Source type belongs to the kernel
                | DOCUMENT_TYPE_MISMATCH      | Document does not fit its strategy
----------------|-----------------------------|-----------------------------------------
Account         | ACCOUNT_NOT_FOUND           | No such account in the tenant
                | ACCOUNT_INACTIVE            | Account is deactivated
                | ACCOUNT_LOCKED              | Account is locked for posting
                | DUPLICATE_ACCOUNT_CODE      | Code already used in the tenant
                | SYSTEM_ACCOUNT_PROTECTED    | Deactivating/deleting a system account
                | ACCOUNT_IN_USE              | History blocks deactivation/deletion
----------------|-----------------------------|-----------------------------------------
Period          | NO_PERIOD_DEFINED           | No period covers this date
                | PERIOD_LOCKED               | Posting into a closed period
                | PERIOD_ALREADY_CLOSED       | Closing a closed period
                | PERIOD_NOT_CLOSED           | Reopening an open period
                | PERIOD_OVERLAP              | Date range conflicts
                | PERIOD_GAP                  | Period does not continue the calendar
                | FISCAL_YEAR_OVERLAP         | Fiscal years overlap
                | FISCAL_YEAR_NOT_FOUND       | No such fiscal year in the tenant
----------------|-----------------------------|-----------------------------------------
Sequence        | SEQUENCE_CONTENTION         | Lock contention on a counter (retried)
                | SEQUENCE_EXHAUSTED          | Retries exhausted
----------------|-----------------------------|-----------------------------------------
Reversal        | ENTRY_NOT_FOUND             | No such entry in the tenant
                | ENTRY_NOT_POSTED            | Can only reverse posted entries
                | CANNOT_REVERSE_REVERSAL     | Target is itself a reversal
                | ENTRY_ALREADY_REVERSED      | Entry was already reversed
----------------|-----------------------------|-----------------------------------------
Authorization   | CAPABILITY_DENIED           | Actor lacks the capability
----------------|-----------------------------|-----------------------------------------
Strategy        | STRATEGY_NOT_FOUND          | No posting strategy for document type

Integrity violations found by the auditor are NOT exceptions. They are
returned as Anomaly records and never raised during normal operation.

===============================================================================
HANDLING PATTERNS
===============================================================================

1. CATCH SPECIFIC EXCEPTIONS:

    try:
        posting.post(...)
    except PeriodLockedError as e:
        notify_user(f"Period {e.period_name} is closed")
    except ValidationError as e:
        log.error("posting_rejected", extra={"code": e.code})

2. USE STRUCTURED DATA:

    except UnbalancedEntryError as e:
        return {"error": e.code, "debits": e.debits, "credits": e.credits}

3. RETRY ONLY TRANSIENT FAILURES:

    SequenceContentionError is retried inside the sequencer. Everything
    else is a caller input error and is surfaced unchanged.
"""

from datetime import date
from decimal import Decimal


class LedgerError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_ERROR"


# Validation exceptions


class ValidationError(LedgerError):
    """Base exception for caller input that fails ledger validation."""

    code: str = "VALIDATION_ERROR"


class UnbalancedEntryError(ValidationError):
    """Journal entry debits do not equal credits (or both are zero)."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, debits: Decimal, credits: Decimal):
        self.debits = debits
        self.credits = credits
        if debits == credits:
            message = f"entry debits {debits} = credits {credits} but total is zero"
        else:
            message = f"entry debits {debits} ≠ credits {credits}"
        super().__init__(message)


class InsufficientLinesError(ValidationError):
    """A journal entry needs at least two lines."""

    code: str = "INSUFFICIENT_LINES"

    def __init__(self, line_count: int):
        self.line_count = line_count
        super().__init__(
            f"entry has {line_count} line(s); at least 2 are required"
        )


class InvalidLineAmountError(ValidationError):
    """Line amounts are negative, two-sided, zero, or too precise."""

    code: str = "INVALID_LINE_AMOUNT"

    def __init__(self, line_number: int, reason: str):
        self.line_number = line_number
        self.reason = reason
        super().__init__(f"line {line_number}: {reason}")


class InvalidParentError(ValidationError):
    """Parent account is missing, foreign, or would create a cycle."""

    code: str = "INVALID_PARENT"

    def __init__(self, account_code: str, parent_id: str, reason: str):
        self.account_code = account_code
        self.parent_id = parent_id
        self.reason = reason
        super().__init__(
            f"Invalid parent {parent_id} for account {account_code}: {reason}"
        )


class InvalidReportRangeError(ValidationError):
    """Report date range is inverted."""

    code: str = "INVALID_REPORT_RANGE"

    def __init__(self, from_date: date, to_date: date):
        self.from_date = from_date
        self.to_date = to_date
        super().__init__(
            f"Report range starts {from_date} after it ends {to_date}"
        )


class RoleBindingError(ValidationError):
    """A posting role has no account bound for the document type."""

    code: str = "ROLE_BINDING_MISSING"

    def __init__(self, document_type: str, role: str, detail: str | None = None):
        self.document_type = document_type
        self.role = role
        self.detail = detail
        message = f"No account bound to role '{role}' for {document_type}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ReservedSourceTypeError(ValidationError):
    """The source type is posted only by the kernel itself."""

    code: str = "RESERVED_SOURCE_TYPE"

    def __init__(self, source_type: str):
        self.source_type = source_type
        super().__init__(f"Source type '{source_type}' is reserved")


class DocumentTypeMismatchError(ValidationError):
    """The document object is not the type the strategy posts."""

    code: str = "DOCUMENT_TYPE_MISMATCH"

    def __init__(self, document_type: str, expected: str, actual: str):
        self.document_type = document_type
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{document_type} posting expects {expected}, got {actual}"
        )


# Account-related exceptions


class AccountError(LedgerError):
    """Base exception for account-related errors."""

    code: str = "ACCOUNT_ERROR"


class AccountNotFoundError(AccountError):
    """Account does not exist in the tenant."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_ref: str):
        self.account_ref = account_ref
        super().__init__(f"Account not found: {account_ref}")


class AccountInactiveError(AccountError):
    """Account is inactive and rejects new postings."""

    code: str = "ACCOUNT_INACTIVE"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account is inactive: {account_code}")


class AccountLockedError(AccountError):
    """Account is locked and rejects new postings."""

    code: str = "ACCOUNT_LOCKED"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account is locked: {account_code}")


class DuplicateAccountCodeError(AccountError):
    """Account code already exists in the tenant."""

    code: str = "DUPLICATE_ACCOUNT_CODE"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account code already exists: {account_code}")


class SystemAccountProtectedError(AccountError):
    """System accounts cannot be deactivated or deleted."""

    code: str = "SYSTEM_ACCOUNT_PROTECTED"

    def __init__(self, account_code: str, operation: str):
        self.account_code = account_code
        self.operation = operation
        super().__init__(f"Cannot {operation} system account {account_code}")


class AccountInUseError(AccountError):
    """Posting history or child accounts block the operation."""

    code: str = "ACCOUNT_IN_USE"

    def __init__(self, account_code: str, operation: str, reason: str):
        self.account_code = account_code
        self.operation = operation
        self.reason = reason
        super().__init__(
            f"Cannot {operation} account {account_code}: {reason}"
        )


# Period-related exceptions


class PeriodError(LedgerError):
    """Base exception for fiscal calendar errors."""

    code: str = "PERIOD_ERROR"


class PeriodNotFoundError(PeriodError):
    """No fiscal period covers the date (or the period id is unknown)."""

    code: str = "NO_PERIOD_DEFINED"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"No fiscal period defined for {reference}")


class PeriodLockedError(PeriodError):
    """Attempted to post into a closed period."""

    code: str = "PERIOD_LOCKED"

    def __init__(self, period_name: str, entry_date: str):
        self.period_name = period_name
        self.entry_date = entry_date
        super().__init__(
            f"Cannot post to closed period {period_name} for date {entry_date}"
        )


class PeriodAlreadyClosedError(PeriodError):
    """Period is already closed."""

    code: str = "PERIOD_ALREADY_CLOSED"

    def __init__(self, period_name: str):
        self.period_name = period_name
        super().__init__(f"Period is already closed: {period_name}")


class PeriodNotClosedError(PeriodError):
    """Only closed periods can be reopened."""

    code: str = "PERIOD_NOT_CLOSED"

    def __init__(self, period_name: str):
        self.period_name = period_name
        super().__init__(f"Period is not closed: {period_name}")


class PeriodOverlapError(PeriodError):
    """Period date range overlaps an existing period or leaves its year."""

    code: str = "PERIOD_OVERLAP"

    def __init__(
        self,
        new_period: str,
        existing_period: str,
        start_date: str,
        end_date: str,
    ):
        self.new_period = new_period
        self.existing_period = existing_period
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(
            f"Period {new_period} ({start_date} to {end_date}) "
            f"overlaps {existing_period}"
        )


class PeriodGapError(PeriodError):
    """Period does not start the day after the previous period ends."""

    code: str = "PERIOD_GAP"

    def __init__(self, new_period: str, expected_start: str, start_date: str):
        self.new_period = new_period
        self.expected_start = expected_start
        self.start_date = start_date
        super().__init__(
            f"Period {new_period} starts {start_date}; the calendar continues "
            f"on {expected_start}"
        )


class FiscalYearOverlapError(PeriodError):
    """Fiscal year date range overlaps another year of the tenant."""

    code: str = "FISCAL_YEAR_OVERLAP"

    def __init__(self, new_year: str, existing_year: str):
        self.new_year = new_year
        self.existing_year = existing_year
        super().__init__(
            f"Fiscal year {new_year} overlaps fiscal year {existing_year}"
        )


class FiscalYearNotFoundError(PeriodError):
    """Fiscal year does not exist in the tenant."""

    code: str = "FISCAL_YEAR_NOT_FOUND"

    def __init__(self, fiscal_year_id: str):
        self.fiscal_year_id = fiscal_year_id
        super().__init__(f"Fiscal year not found: {fiscal_year_id}")


# Sequence exceptions


class SequenceError(LedgerError):
    """Base exception for document sequence errors."""

    code: str = "SEQUENCE_ERROR"


class SequenceContentionError(SequenceError):
    """
    Transient lock contention on a counter row.

    Raised between retry attempts inside the sequencer; callers normally
    see SequenceExhaustedError instead.
    """

    code: str = "SEQUENCE_CONTENTION"

    def __init__(self, document_type: str, attempt: int):
        self.document_type = document_type
        self.attempt = attempt
        super().__init__(
            f"Contention allocating {document_type} number (attempt {attempt})"
        )


class SequenceExhaustedError(SequenceError):
    """Sequence allocation failed after all retry attempts."""

    code: str = "SEQUENCE_EXHAUSTED"

    def __init__(self, document_type: str, attempts: int):
        self.document_type = document_type
        self.attempts = attempts
        super().__init__(
            f"Could not allocate {document_type} number after {attempts} attempts"
        )


# Reversal exceptions


class ReversalError(LedgerError):
    """Base exception for reversal errors."""

    code: str = "REVERSAL_ERROR"


class EntryNotFoundError(ReversalError):
    """Journal entry does not exist in the tenant."""

    code: str = "ENTRY_NOT_FOUND"

    def __init__(self, journal_entry_id: str):
        self.journal_entry_id = journal_entry_id
        super().__init__(f"Journal entry not found: {journal_entry_id}")


class EntryNotPostedError(ReversalError):
    """Journal entry is not posted and cannot be reversed."""

    code: str = "ENTRY_NOT_POSTED"

    def __init__(self, journal_entry_id: str):
        self.journal_entry_id = journal_entry_id
        super().__init__(f"Journal entry {journal_entry_id} is not posted")


class CannotReverseReversalError(ReversalError):
    """A reversal entry cannot itself be reversed."""

    code: str = "CANNOT_REVERSE_REVERSAL"

    def __init__(self, journal_entry_id: str, reversed_entry_id: str):
        self.journal_entry_id = journal_entry_id
        self.reversed_entry_id = reversed_entry_id
        super().__init__(
            f"Journal entry {journal_entry_id} reverses {reversed_entry_id} "
            "and cannot be reversed"
        )


class EntryAlreadyReversedError(ReversalError):
    """Journal entry has already been reversed."""

    code: str = "ENTRY_ALREADY_REVERSED"

    def __init__(self, journal_entry_id: str, reversal_entry_id: str):
        self.journal_entry_id = journal_entry_id
        self.reversal_entry_id = reversal_entry_id
        super().__init__(
            f"Journal entry {journal_entry_id} already reversed by {reversal_entry_id}"
        )


# Authorization exceptions


class AuthorizationError(LedgerError):
    """Base exception for capability checks."""

    code: str = "AUTHORIZATION_ERROR"


class CapabilityDeniedError(AuthorizationError):
    """Actor lacks the capability required for the operation."""

    code: str = "CAPABILITY_DENIED"

    def __init__(self, actor_id: str, capability: str):
        self.actor_id = actor_id
        self.capability = capability
        super().__init__(f"Actor {actor_id} lacks capability {capability}")


class StrategyNotFoundError(LedgerError):
    """No posting strategy registered for the document type."""

    code: str = "STRATEGY_NOT_FOUND"

    def __init__(self, document_type: str):
        self.document_type = document_type
        super().__init__(f"No posting strategy for document type: {document_type}")
