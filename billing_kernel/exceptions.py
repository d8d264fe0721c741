"""
Typed Exception Hierarchy for the Billing Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the lifecycle operations must react differently to a rejected
request, a lost race, and a broken invariant.  Parsing message strings for
that is fragile, so every error carries:

  1. A TYPED exception class (catch by type, not message)
  2. A CODE attribute (machine-readable, API-safe)
  3. A CATEGORY attribute (validation / conflict / consistency / side_effect)
  4. Structured DATA as attributes (ids, expected vs actual row counts)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BillingKernelError (base)
    |
    +-- BillingValidationError                      category = "validation"
    |   +-- MissingRequiredFieldError
    |   +-- MissingOperatingDateError
    |   +-- EmptyReceiptError
    |   +-- NegativeTotalError
    |   +-- InvalidBillingPeriodError
    |   +-- UnsafeArtifactPathError
    |   +-- InvalidIdentifierError
    |
    +-- BillingConflictError                        category = "conflict"
    |   +-- ReceiptNotFoundError
    |   +-- ReceiptNotAvailableError
    |   +-- DocumentLockHeldError
    |   +-- DuplicateMonthlyChargeError
    |   +-- CancellationNotRequestedError
    |   +-- CashCutNotFoundError
    |   +-- StudentNotFoundError
    |   +-- ArtifactNotAvailableError
    |
    +-- ConsistencyError                            category = "consistency"
    |   +-- UnexpectedRowCountError
    |   +-- PostCommitVerificationError
    |   +-- DocumentStateChangedError
    |
    +-- SideEffectError                             category = "side_effect"
    |   +-- DocumentGenerationError
    |   +-- InvalidArtifactReferenceError
    |
    +-- ConfigurationError                          category = "configuration"

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                         | When Raised
-------------|------------------------------|-------------------------------------
validation   | MISSING_REQUIRED_FIELD       | Student/campus/cashier/date missing
             | MISSING_OPERATING_DATE       | Pricing a receipt with no date
             | EMPTY_RECEIPT                | Issue with no Draft line items
             | NEGATIVE_TOTAL               | Receipt total below zero
             | INVALID_BILLING_PERIOD       | Month outside 1-12 / year out of range
             | UNSAFE_ARTIFACT_PATH         | Name/path with traversal segments
             | INVALID_IDENTIFIER           | Malformed receipt or cut id
-------------|------------------------------|-------------------------------------
conflict     | RECEIPT_NOT_FOUND            | No receipt with that id
             | RECEIPT_NOT_AVAILABLE        | Receipt not in the required status
             | DOCUMENT_LOCK_HELD           | Document generation in progress
             | DUPLICATE_MONTHLY_CHARGE     | Monthly product already issued
             | CANCELLATION_NOT_REQUESTED   | Cancel without approved request
             | CASH_CUT_NOT_FOUND           | No cash-cut bucket with that id
             | STUDENT_NOT_FOUND            | No student with that id
             | ARTIFACT_NOT_AVAILABLE       | Entity has no published document
-------------|------------------------------|-------------------------------------
consistency  | UNEXPECTED_ROW_COUNT         | Guarded UPDATE hit != expected rows
             | POST_COMMIT_VERIFICATION     | Committed state not visible on read
             | DOCUMENT_STATE_CHANGED       | Entity changed during generation
-------------|------------------------------|-------------------------------------
side_effect  | DOCUMENT_GENERATION_FAILED   | Render or upload failed
             | INVALID_ARTIFACT_REFERENCE   | Stored reference outside the bucket
-------------|------------------------------|-------------------------------------
configuration| CONFIGURATION_ERROR          | Missing or invalid settings

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        result = lifecycle.issue(receipt_id, document_name="R-0001")
    except BillingConflictError as e:
        # Expected contention: retry with backoff or report "already processed"
        respond(409, code=e.code)
    except BillingValidationError as e:
        respond(400, code=e.code)
    except ConsistencyError as e:
        # Broken invariant: page an operator, never retry blindly
        respond(500, code=e.code)
"""


class BillingKernelError(Exception):
    """
    Base exception for all billing kernel errors.

    All subclasses carry a ``code`` and a ``category`` class attribute.
    """

    code: str = "BILLING_KERNEL_ERROR"
    category: str = "internal"


# Validation errors (caller's fault)


class BillingValidationError(BillingKernelError):
    """Base exception for rejected requests."""

    code: str = "VALIDATION_ERROR"
    category: str = "validation"


class MissingRequiredFieldError(BillingValidationError):
    """Receipt lacks one or more mandatory fields."""

    code: str = "MISSING_REQUIRED_FIELD"

    def __init__(self, receipt_id: str, fields: list[str]):
        self.receipt_id = receipt_id
        self.fields = fields
        super().__init__(
            f"Receipt {receipt_id} is missing required fields: {', '.join(fields)}"
        )


class MissingOperatingDateError(BillingValidationError):
    """Receipt has no operating date, so it cannot be priced."""

    code: str = "MISSING_OPERATING_DATE"

    def __init__(self, receipt_id: str):
        self.receipt_id = receipt_id
        super().__init__(f"Receipt {receipt_id} has no operating date")


class EmptyReceiptError(BillingValidationError):
    """Receipt has no Draft line items to issue."""

    code: str = "EMPTY_RECEIPT"

    def __init__(self, receipt_id: str):
        self.receipt_id = receipt_id
        super().__init__(f"Receipt {receipt_id} has no line items to issue")


class NegativeTotalError(BillingValidationError):
    """Receipt total is below zero."""

    code: str = "NEGATIVE_TOTAL"

    def __init__(self, receipt_id: str, total: str):
        self.receipt_id = receipt_id
        self.total = total
        super().__init__(f"Receipt {receipt_id} has a negative total: {total}")


class InvalidBillingPeriodError(BillingValidationError):
    """Month or year outside the accepted range."""

    code: str = "INVALID_BILLING_PERIOD"

    def __init__(self, month: int, year: int, reason: str):
        self.month = month
        self.year = year
        self.reason = reason
        super().__init__(f"Invalid billing period {year}-{month}: {reason}")


class UnsafeArtifactPathError(BillingValidationError):
    """Artifact name or path contains traversal or separator segments."""

    code: str = "UNSAFE_ARTIFACT_PATH"

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Unsafe artifact path: {path!r}")


class InvalidIdentifierError(BillingValidationError):
    """Identifier does not match the expected format."""

    code: str = "INVALID_IDENTIFIER"

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"Invalid {kind} identifier: {identifier!r}")


# Conflict errors (expected concurrent contention or state preconditions)


class BillingConflictError(BillingKernelError):
    """Base exception for requests that lost a race or hit a state guard."""

    code: str = "CONFLICT"
    category: str = "conflict"


class ReceiptNotFoundError(BillingConflictError):
    """Receipt with the given id does not exist."""

    code: str = "RECEIPT_NOT_FOUND"

    def __init__(self, receipt_id: str):
        self.receipt_id = receipt_id
        super().__init__(f"Receipt not found: {receipt_id}")


class ReceiptNotAvailableError(BillingConflictError):
    """Receipt is not in a status that allows the requested transition."""

    code: str = "RECEIPT_NOT_AVAILABLE"

    def __init__(self, receipt_id: str, required: str, actual: str | None = None):
        self.receipt_id = receipt_id
        self.required = required
        self.actual = actual
        super().__init__(
            f"Receipt {receipt_id} is not available: required status "
            f"{required}, found {actual or 'none'} (already processed?)"
        )


class DocumentLockHeldError(BillingConflictError):
    """Another operation is generating the entity's document."""

    code: str = "DOCUMENT_LOCK_HELD"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"Document generation already in progress for {entity_id}")


class DuplicateMonthlyChargeError(BillingConflictError):
    """The student already has an Issued line for this monthly product."""

    code: str = "DUPLICATE_MONTHLY_CHARGE"

    def __init__(
        self,
        receipt_id: str,
        student_id: str,
        product_id: str,
        month: int,
        year: int,
        existing_receipt_id: str,
    ):
        self.receipt_id = receipt_id
        self.student_id = student_id
        self.product_id = product_id
        self.month = month
        self.year = year
        self.existing_receipt_id = existing_receipt_id
        super().__init__(
            f"Student {student_id} already has an issued receipt "
            f"({existing_receipt_id}) for product {product_id} in {year}-{month:02d}"
        )


class CancellationNotRequestedError(BillingConflictError):
    """Cancel attempted without an approved cancellation request."""

    code: str = "CANCELLATION_NOT_REQUESTED"

    def __init__(self, receipt_id: str):
        self.receipt_id = receipt_id
        super().__init__(f"Receipt {receipt_id} has no approved cancellation request")


class CashCutNotFoundError(BillingConflictError):
    """Cash-cut bucket with the given id does not exist."""

    code: str = "CASH_CUT_NOT_FOUND"

    def __init__(self, cash_cut_id: str):
        self.cash_cut_id = cash_cut_id
        super().__init__(f"Cash cut not found: {cash_cut_id}")


class StudentNotFoundError(BillingConflictError):
    """Student with the given id does not exist."""

    code: str = "STUDENT_NOT_FOUND"

    def __init__(self, student_id: str):
        self.student_id = student_id
        super().__init__(f"Student not found: {student_id}")


class ArtifactNotAvailableError(BillingConflictError):
    """Entity has no published document to serve."""

    code: str = "ARTIFACT_NOT_AVAILABLE"

    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"No document available for {kind} {entity_id}")


# Consistency faults (should never happen)


class ConsistencyError(BillingKernelError):
    """Base exception for broken invariants. Always logged at CRITICAL."""

    code: str = "CONSISTENCY_ERROR"
    category: str = "consistency"


class UnexpectedRowCountError(ConsistencyError):
    """A guarded UPDATE affected a different number of rows than expected."""

    code: str = "UNEXPECTED_ROW_COUNT"

    def __init__(self, entity_id: str, statement: str, expected: int, actual: int):
        self.entity_id = entity_id
        self.statement = statement
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{statement} on {entity_id} affected {actual} rows, expected "
            f"{expected} (concurrent state change?)"
        )


class PostCommitVerificationError(ConsistencyError):
    """The transaction committed but the committed state is not readable."""

    code: str = "POST_COMMIT_VERIFICATION"

    def __init__(self, receipt_id: str, expected_status: str, cash_cut_id: str | None):
        self.receipt_id = receipt_id
        self.expected_status = expected_status
        self.cash_cut_id = cash_cut_id
        super().__init__(
            f"Transaction reported success but receipt {receipt_id} is not "
            f"{expected_status} in cash cut {cash_cut_id}"
        )


class DocumentStateChangedError(ConsistencyError):
    """Entity left the expected state while its document was generated."""

    code: str = "DOCUMENT_STATE_CHANGED"

    def __init__(self, entity_id: str, expected_status: str | None):
        self.entity_id = entity_id
        self.expected_status = expected_status
        super().__init__(
            f"{entity_id} changed state during document generation "
            f"(expected {expected_status or 'unchanged'} with lock held)"
        )


# Side-effect failures (document render/upload)


class SideEffectError(BillingKernelError):
    """Base exception for document render/upload failures."""

    code: str = "SIDE_EFFECT_ERROR"
    category: str = "side_effect"


class DocumentGenerationError(SideEffectError):
    """Rendering or uploading a document failed."""

    code: str = "DOCUMENT_GENERATION_FAILED"

    def __init__(self, entity_id: str, reason: str):
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Document generation failed for {entity_id}: {reason}")


class InvalidArtifactReferenceError(SideEffectError):
    """A stored artifact reference does not belong to the configured bucket."""

    code: str = "INVALID_ARTIFACT_REFERENCE"

    def __init__(self, reference: str, expected_prefix: str):
        self.reference = reference
        self.expected_prefix = expected_prefix
        super().__init__(
            f"Artifact reference {reference!r} does not start with {expected_prefix!r}"
        )


class ConfigurationError(BillingKernelError):
    """Configuration is missing required keys or holds invalid values."""

    code: str = "CONFIGURATION_ERROR"
    category: str = "configuration"

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("Invalid configuration: " + "; ".join(problems))
