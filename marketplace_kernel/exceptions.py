"""
Typed Exception Hierarchy for the Marketplace Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Contract and money movement errors must be handled precisely. Callers
(deal CRUD, UI handlers, CLIs) branch on the *kind* of failure, never on
message text:

    try:
        engine.execute_payment(deal_id, "pm_card_visa")
    except PayoutAccountNotConfiguredError as e:
        prompt_onboarding(e.payee_id)
    except GatewayDeclinedError as e:
        show_card_error(e.failure_code)

Every exception carries:
  1. a class-level ``code``  -- specific, machine-readable, API-safe
  2. a class-level ``kind``  -- the stable category exposed at the API
     boundary (see ``marketplace_services.api``)
  3. structured attributes   -- ids, statuses, amounts

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    MarketplaceError (base)
    |
    +-- NotFoundError                       kind=NOT_FOUND
    |   +-- DealNotFoundError
    |   +-- ContractNotFoundError
    |   +-- SignatureNotFoundError
    |   +-- PaymentNotFoundError
    |   +-- PayoutNotFoundError
    |   +-- PayoutAccountNotFoundError
    |
    +-- InvalidStatusError                  kind=INVALID_STATUS
    |
    +-- AlreadyProcessedError               kind=ALREADY_PROCESSED
    |   +-- SignatureAlreadyProcessedError
    |   +-- AlreadyVoidedError
    |   +-- PaymentInFlightError
    |
    +-- PayoutAccountNotConfiguredError     kind=PAYOUT_ACCOUNT_NOT_CONFIGURED
    +-- PayoutsNotEnabledError              kind=PAYOUTS_NOT_ENABLED
    +-- InsufficientFundsError              kind=INSUFFICIENT_FUNDS
    |
    +-- GatewayError
    |   +-- GatewayDeclinedError            kind=GATEWAY_DECLINED
    |   |   +-- PayoutRejectedError
    |   +-- GatewayUnavailableError         kind=GATEWAY_UNAVAILABLE
    |       +-- StoreUnavailableError
    |
    +-- InvalidInputError                   kind=INVALID_INPUT
    +-- WebhookSignatureError               kind=WEBHOOK_SIGNATURE_INVALID

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Expected outcomes are raised inside the kernel and converted into a
   ``ServiceResult`` error envelope by ``MarketplaceAPI``.  Nothing in this
   module ever reaches an external caller as a raw exception.

2. ``AlreadyProcessedError`` from the webhook path is NOT raised: the
   reconciler treats a duplicate notification as an acknowledged no-op.

3. ``GatewayUnavailableError`` during payment confirmation is an ambiguous
   outcome.  The Payment stays ``pending`` and the reconciler supplies the
   eventual truth.
"""


class MarketplaceError(Exception):
    """
    Base exception for all marketplace kernel errors.

    All subclasses define a ``code`` (specific) and inherit or define a
    ``kind`` (category exposed to callers).
    """

    code: str = "MARKETPLACE_ERROR"
    kind: str = "MARKETPLACE_ERROR"


# Not found


class NotFoundError(MarketplaceError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"
    kind: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class DealNotFoundError(NotFoundError):
    """Deal with given ID was not found."""

    code: str = "DEAL_NOT_FOUND"

    def __init__(self, deal_id: str):
        self.deal_id = deal_id
        super().__init__("Deal", deal_id)


class ContractNotFoundError(NotFoundError):
    """Contract with given ID was not found."""

    code: str = "CONTRACT_NOT_FOUND"

    def __init__(self, contract_id: str):
        self.contract_id = contract_id
        super().__init__("Contract", contract_id)


class SignatureNotFoundError(NotFoundError):
    """No signature record exists for the (contract, party) pair."""

    code: str = "SIGNATURE_NOT_FOUND"

    def __init__(self, contract_id: str, party_type: str):
        self.contract_id = contract_id
        self.party_type = party_type
        super().__init__("ContractSignature", f"{contract_id}/{party_type}")


class PaymentNotFoundError(NotFoundError):
    """Payment with given ID or gateway reference was not found."""

    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__("Payment", reference)


class PayoutNotFoundError(NotFoundError):
    """Payout with given ID or gateway reference was not found."""

    code: str = "PAYOUT_NOT_FOUND"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__("Payout", reference)


class PayoutAccountNotFoundError(NotFoundError):
    """Connected payout account was not found."""

    code: str = "PAYOUT_ACCOUNT_NOT_FOUND"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__("ConnectedPayoutAccount", reference)


# Invalid status


class InvalidStatusError(MarketplaceError):
    """
    Operation attempted from a state that does not permit it.

    Also raised when a conditional (compare-and-set) status write loses a
    race: the row moved on between read and write.
    """

    code: str = "INVALID_STATUS"
    kind: str = "INVALID_STATUS"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_status: str,
        allowed: tuple[str, ...] | list[str],
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_status = current_status
        self.allowed = tuple(allowed)
        super().__init__(
            f"{entity_type} {entity_id} is '{current_status}'; "
            f"operation requires one of {', '.join(self.allowed)}"
        )


# Already processed


class AlreadyProcessedError(MarketplaceError):
    """Base exception for duplicate or repeated operations."""

    code: str = "ALREADY_PROCESSED"
    kind: str = "ALREADY_PROCESSED"


class SignatureAlreadyProcessedError(AlreadyProcessedError):
    """The party has already signed or declined."""

    code: str = "SIGNATURE_ALREADY_PROCESSED"

    def __init__(self, contract_id: str, party_type: str, signature_status: str):
        self.contract_id = contract_id
        self.party_type = party_type
        self.signature_status = signature_status
        super().__init__(
            f"Party '{party_type}' on contract {contract_id} has already "
            f"{signature_status}"
        )


class AlreadyVoidedError(AlreadyProcessedError):
    """Contract is already voided."""

    code: str = "ALREADY_VOIDED"

    def __init__(self, contract_id: str):
        self.contract_id = contract_id
        super().__init__(f"Contract {contract_id} is already voided")


class PaymentInFlightError(AlreadyProcessedError):
    """A non-failed payment already exists for the deal."""

    code: str = "PAYMENT_IN_FLIGHT"

    def __init__(self, deal_id: str):
        self.deal_id = deal_id
        super().__init__(
            f"Deal {deal_id} already has a pending or completed payment"
        )


# Payee account state


class PayoutAccountNotConfiguredError(MarketplaceError):
    """Payee has no connected payout account able to accept charges."""

    code: str = "PAYOUT_ACCOUNT_NOT_CONFIGURED"
    kind: str = "PAYOUT_ACCOUNT_NOT_CONFIGURED"

    def __init__(self, payee_id: str, reason: str):
        self.payee_id = payee_id
        self.reason = reason
        super().__init__(f"Payout account not configured for payee {payee_id}: {reason}")


class PayoutsNotEnabledError(MarketplaceError):
    """Connected payout account cannot issue payouts yet."""

    code: str = "PAYOUTS_NOT_ENABLED"
    kind: str = "PAYOUTS_NOT_ENABLED"

    def __init__(self, payee_id: str):
        self.payee_id = payee_id
        super().__init__(f"Payouts are not enabled for payee {payee_id}")


class InsufficientFundsError(MarketplaceError):
    """Requested payout exceeds the available balance."""

    code: str = "INSUFFICIENT_FUNDS"
    kind: str = "INSUFFICIENT_FUNDS"

    def __init__(self, payee_id: str, requested: int, available: int):
        self.payee_id = payee_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Payout of {requested} exceeds available balance {available} "
            f"for payee {payee_id}"
        )


# Gateway


class GatewayError(MarketplaceError):
    """Base exception for payment processor failures."""

    code: str = "GATEWAY_ERROR"
    kind: str = "GATEWAY_UNAVAILABLE"


class GatewayDeclinedError(GatewayError):
    """Card / payment-method level failure reported by the processor."""

    code: str = "GATEWAY_DECLINED"
    kind: str = "GATEWAY_DECLINED"
    summary: str = "Payment declined"

    def __init__(self, message: str, failure_code: str | None = None):
        self.failure_code = failure_code
        self.failure_message = message
        super().__init__(f"{self.summary}: {message}")


class PayoutRejectedError(GatewayDeclinedError):
    """The processor refused a payout request outright; nothing was sent."""

    code: str = "PAYOUT_REJECTED"
    summary: str = "Payout rejected"


class GatewayUnavailableError(GatewayError):
    """Transient infrastructure failure or ambiguous timeout."""

    code: str = "GATEWAY_UNAVAILABLE"
    kind: str = "GATEWAY_UNAVAILABLE"

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        self.detail = detail
        super().__init__(
            f"Payment gateway unavailable during {operation}"
            + (f": {detail}" if detail else "")
        )


class StoreUnavailableError(GatewayUnavailableError):
    """The ledger store could not be reached; no state was changed."""

    code: str = "STORE_UNAVAILABLE"

    def __init__(self, operation: str):
        super().__init__(operation, "ledger store unreachable")


# Validation


class InvalidInputError(MarketplaceError):
    """Caller supplied arguments that can never succeed."""

    code: str = "INVALID_INPUT"
    kind: str = "INVALID_INPUT"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class WebhookSignatureError(MarketplaceError):
    """Gateway notification failed signature verification."""

    code: str = "WEBHOOK_SIGNATURE_INVALID"
    kind: str = "WEBHOOK_SIGNATURE_INVALID"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Webhook signature verification failed: {detail}")
