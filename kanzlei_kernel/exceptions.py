"""
Typed Exception Hierarchy for the Kanzlei ledger kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Cash-ledger and export errors must be handled precisely. Callers catch by
type, never by message:

    try:
        service.run_one_click_export(workspace_id, "2025-01-01", "2025-01-31")
    except ComplianceBlockedError as e:
        show_to_user(e.message_lines)          # itemized, user-actionable
    except InvalidDateRangeError as e:
        api_response(code=e.code, period_from=e.period_from)

Every exception carries:
  1. A TYPED class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA as instance attributes

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from KanzleiLedgerError:

    KanzleiLedgerError (base)
    |
    +-- IntegrityError
    |   +-- CryptoUnavailableError
    |   +-- ChainVerificationFailedError
    |
    +-- ComplianceError
    |   +-- ComplianceBlockedError
    |   +-- OrganizationProfileMissingError
    |
    +-- ExportError
    |   +-- InvalidDateRangeError
    |   +-- UnsupportedExportFormatError
    |   +-- ExportConfigNotFoundError
    |   +-- ExportRunNotFoundError
    |   +-- ExportRunNotReadyError
    |
    +-- ReceiptError
    |   +-- NotACashPaymentError
    |   +-- InvalidReceiptAmountError
    |
    +-- ConcurrencyError
    |   +-- ChainForkError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Integrity       | CRYPTO_UNAVAILABLE          | No SHA-256 primitive (fatal, no retry)
                | CHAIN_VERIFICATION_FAILED   | Stored chain does not re-verify
----------------|-----------------------------|-----------------------------------------
Compliance      | COMPLIANCE_BLOCKED          | Missing profile fields / tax violations
                | ORGANIZATION_PROFILE_MISSING| No profile for the workspace
----------------|-----------------------------|-----------------------------------------
Export          | INVALID_DATE_RANGE          | from > to, or not YYYY-MM-DD
                | UNSUPPORTED_EXPORT_FORMAT   | Unknown format identifier
                | EXPORT_CONFIG_NOT_FOUND     | Config ID doesn't exist
                | EXPORT_RUN_NOT_FOUND        | Run ID doesn't exist
                | EXPORT_RUN_NOT_READY        | Run ended in a non-ready state
----------------|-----------------------------|-----------------------------------------
Receipt         | NOT_A_CASH_PAYMENT          | Receipt requested for non-cash payment
                | INVALID_RECEIPT_AMOUNT      | Payment amount <= 0
----------------|-----------------------------|-----------------------------------------
Concurrency     | CHAIN_FORK                  | Two appends claimed the same link
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | UPDATE/DELETE on an append-only record

===============================================================================
HANDLING GUIDANCE
===============================================================================

1. FATAL (abort, surface, do not retry):
    CryptoUnavailableError -- the chain cannot be sealed.

2. USER-ACTIONABLE (raised before any write):
    ComplianceBlockedError, InvalidDateRangeError

3. REPORTED, NEVER AUTO-CORRECTED:
    ChainVerificationFailedError -- manual reconciliation required.

4. RETRYABLE:
    ChainForkError -- the losing transaction was rolled back; re-run it.
"""


class KanzleiLedgerError(Exception):
    """
    Base exception for all kanzlei ledger errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "KANZLEI_LEDGER_ERROR"


# Integrity exceptions


class IntegrityError(KanzleiLedgerError):
    """Base exception for hash-chain integrity errors."""

    code: str = "INTEGRITY_ERROR"


class CryptoUnavailableError(IntegrityError):
    """No cryptographic digest primitive is available; nothing may be appended."""

    code: str = "CRYPTO_UNAVAILABLE"

    def __init__(self, algorithm: str, detail: str = ""):
        self.algorithm = algorithm
        self.detail = detail
        super().__init__(
            f"Digest algorithm {algorithm} is unavailable"
            + (f": {detail}" if detail else "")
        )


class ChainVerificationFailedError(IntegrityError):
    """A stored hash chain does not re-verify."""

    code: str = "CHAIN_VERIFICATION_FAILED"

    def __init__(
        self,
        ledger: str,
        scope_id: str,
        entry_id: str,
        expected_hash: str,
        actual_hash: str,
    ):
        self.ledger = ledger
        self.scope_id = scope_id
        self.entry_id = entry_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"{ledger} chain for {scope_id} broken at {entry_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


# Compliance exceptions


class ComplianceError(KanzleiLedgerError):
    """Base exception for compliance gate errors."""

    code: str = "COMPLIANCE_ERROR"


class ComplianceBlockedError(ComplianceError):
    """Export rejected by the jurisdiction/provider compliance gate."""

    code: str = "COMPLIANCE_BLOCKED"

    def __init__(
        self,
        jurisdiction: str,
        provider: str,
        missing_fields: tuple[str, ...],
        rule_violations: tuple[str, ...],
    ):
        self.jurisdiction = jurisdiction
        self.provider = provider
        self.missing_fields = tuple(missing_fields)
        self.rule_violations = tuple(rule_violations)
        parts = []
        if self.missing_fields:
            parts.append("Missing fields: " + ", ".join(self.missing_fields))
        if self.rule_violations:
            parts.append("Rule violations: " + " | ".join(self.rule_violations))
        super().__init__(
            f"Export blocked for {jurisdiction}/{provider}: " + "; ".join(parts)
        )

    @property
    def message_lines(self) -> tuple[str, ...]:
        return self.missing_fields + self.rule_violations


class OrganizationProfileMissingError(ComplianceError):
    """No organization profile is available for the workspace."""

    code: str = "ORGANIZATION_PROFILE_MISSING"

    def __init__(self, workspace_id: str):
        self.workspace_id = workspace_id
        super().__init__(f"No organization profile for workspace {workspace_id}")


# Export exceptions


class ExportError(KanzleiLedgerError):
    """Base exception for accounting-export errors."""

    code: str = "EXPORT_ERROR"


class InvalidDateRangeError(ExportError):
    """Export window is not a pair of calendar dates with from <= to."""

    code: str = "INVALID_DATE_RANGE"

    def __init__(self, period_from: str, period_to: str, reason: str):
        self.period_from = period_from
        self.period_to = period_to
        self.reason = reason
        super().__init__(
            f"Invalid export date range {period_from!r}..{period_to!r}: {reason}"
        )


class UnsupportedExportFormatError(ExportError):
    """Export format identifier is not known to the generator."""

    code: str = "UNSUPPORTED_EXPORT_FORMAT"

    def __init__(self, export_format: str):
        self.export_format = export_format
        super().__init__(f"Unsupported export format: {export_format}")


class ExportConfigNotFoundError(ExportError):
    """Export config with given ID was not found."""

    code: str = "EXPORT_CONFIG_NOT_FOUND"

    def __init__(self, config_id: str):
        self.config_id = config_id
        super().__init__(f"Export config not found: {config_id}")


class ExportRunNotFoundError(ExportError):
    """Export run with given ID was not found."""

    code: str = "EXPORT_RUN_NOT_FOUND"

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Export run not found: {run_id}")


class ExportRunNotReadyError(ExportError):
    """Export run did not reach the ready state."""

    code: str = "EXPORT_RUN_NOT_READY"

    def __init__(self, run_id: str, status: str, error_message: str | None = None):
        self.run_id = run_id
        self.status = status
        self.error_message = error_message
        super().__init__(
            f"Export run {run_id} is {status}"
            + (f": {error_message}" if error_message else "")
        )


# Receipt exceptions


class ReceiptError(KanzleiLedgerError):
    """Base exception for cash receipt errors."""

    code: str = "RECEIPT_ERROR"


class NotACashPaymentError(ReceiptError):
    """A Kassenbeleg was requested for a payment that is not cash."""

    code: str = "NOT_A_CASH_PAYMENT"

    def __init__(self, payment_id: str, method: str):
        self.payment_id = payment_id
        self.method = method
        super().__init__(
            f"Payment {payment_id} uses method {method!r}; receipts are only issued for cash"
        )


class InvalidReceiptAmountError(ReceiptError):
    """Payment amount must be strictly positive."""

    code: str = "INVALID_RECEIPT_AMOUNT"

    def __init__(self, payment_id: str, amount: str):
        self.payment_id = payment_id
        self.amount = amount
        super().__init__(f"Payment {payment_id} has non-positive amount {amount}")


# Concurrency exceptions


class ConcurrencyError(KanzleiLedgerError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ChainForkError(ConcurrencyError):
    """Two appends to the same scope claimed the same predecessor."""

    code: str = "CHAIN_FORK"

    def __init__(self, ledger: str, scope_id: str, previous_hash: str):
        self.ledger = ledger
        self.scope_id = scope_id
        self.previous_hash = previous_hash
        super().__init__(
            f"{ledger} chain for {scope_id} would fork at {previous_hash}: "
            "another writer appended first"
        )


# Immutability exceptions


class ImmutabilityError(KanzleiLedgerError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an append-only record.

    FiscalSignature and ExportJournalEntry are immutable from creation;
    Kassenbeleg only permits the one-way flip to voided.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
