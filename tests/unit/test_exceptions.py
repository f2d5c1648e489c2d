"""Tests for the exception hierarchy's codes and kinds."""

import pytest

from marketplace_kernel.exceptions import (
    AlreadyProcessedError,
    AlreadyVoidedError,
    ContractNotFoundError,
    GatewayDeclinedError,
    GatewayUnavailableError,
    InsufficientFundsError,
    InvalidStatusError,
    MarketplaceError,
    NotFoundError,
    PaymentInFlightError,
    PayoutAccountNotConfiguredError,
    PayoutRejectedError,
    PayoutsNotEnabledError,
    SignatureAlreadyProcessedError,
    StoreUnavailableError,
)


@pytest.mark.parametrize(
    "exc, kind",
    [
        (ContractNotFoundError("c1"), "NOT_FOUND"),
        (InvalidStatusError("Deal", "d1", "pending", ["accepted"]), "INVALID_STATUS"),
        (SignatureAlreadyProcessedError("c1", "athlete", "signed"), "ALREADY_PROCESSED"),
        (AlreadyVoidedError("c1"), "ALREADY_PROCESSED"),
        (PaymentInFlightError("d1"), "ALREADY_PROCESSED"),
        (PayoutAccountNotConfiguredError("p1", "missing"), "PAYOUT_ACCOUNT_NOT_CONFIGURED"),
        (PayoutsNotEnabledError("p1"), "PAYOUTS_NOT_ENABLED"),
        (InsufficientFundsError("p1", 500, 100), "INSUFFICIENT_FUNDS"),
        (GatewayDeclinedError("declined", "card_declined"), "GATEWAY_DECLINED"),
        (PayoutRejectedError("balance too low"), "GATEWAY_DECLINED"),
        (GatewayUnavailableError("confirm_payment_intent"), "GATEWAY_UNAVAILABLE"),
        (StoreUnavailableError("sign_contract"), "GATEWAY_UNAVAILABLE"),
    ],
)
def test_kind_is_stable(exc, kind):
    assert isinstance(exc, MarketplaceError)
    assert exc.kind == kind


def test_specific_codes_refine_the_kind():
    assert ContractNotFoundError("c1").code == "CONTRACT_NOT_FOUND"
    assert isinstance(ContractNotFoundError("c1"), NotFoundError)
    assert StoreUnavailableError("x").code == "STORE_UNAVAILABLE"
    assert isinstance(AlreadyVoidedError("c1"), AlreadyProcessedError)
    assert PayoutRejectedError("closed").code == "PAYOUT_REJECTED"
    assert str(PayoutRejectedError("closed")) == "Payout rejected: closed"


def test_structured_attributes():
    exc = InsufficientFundsError("p1", requested=500, available=100)
    assert (exc.payee_id, exc.requested, exc.available) == ("p1", 500, 100)

    exc = InvalidStatusError("Contract", "c1", "voided", ("draft",))
    assert exc.current_status == "voided"
    assert exc.allowed == ("draft",)
    assert "voided" in str(exc)
