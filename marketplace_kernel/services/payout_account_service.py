"""
PayoutAccountService -- connected payout account onboarding.

Creates a payee's account at the processor and its local
ConnectedPayoutAccount row, pushes profile changes to the processor, and
applies capability updates (charges / payouts enabled) reported by
``account.updated`` notifications, ignoring snapshots older than the last
one applied.

One account per payee is enforced by a unique constraint; a concurrent
second onboarding returns the winner's account.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from marketplace_kernel.db.store import LedgerSession, LedgerStore
from marketplace_kernel.db.types import normalize_currency
from marketplace_kernel.domain.clock import Clock
from marketplace_kernel.domain.dtos import PayoutAccountInfo
from marketplace_kernel.domain.policy import SettlementPolicy
from marketplace_kernel.exceptions import InvalidInputError, PayoutAccountNotFoundError
from marketplace_kernel.gateway.base import GatewayAccount, PaymentGateway
from marketplace_kernel.logging_config import LogContext, get_logger
from marketplace_kernel.models.payout_account import ConnectedPayoutAccount
from marketplace_kernel.services.base import BaseService

logger = get_logger("services.payout_account_service")

_CAPABILITY_FIELDS = ("charges_enabled", "payouts_enabled", "details_submitted")


class PayoutAccountService(BaseService):
    """Connected payout account lifecycle."""

    def __init__(
        self,
        store: LedgerStore,
        gateway: PaymentGateway,
        clock: Clock | None = None,
        policy: SettlementPolicy | None = None,
    ):
        super().__init__(store, clock, policy)
        self.gateway = gateway

    def onboard_payee(
        self,
        payee_id: UUID,
        *,
        email: str | None = None,
        country: str = "US",
        currency: str | None = None,
    ) -> PayoutAccountInfo:
        """Return the payee's account, creating it at the processor if needed."""
        if not country or len(country) != 2:
            raise InvalidInputError("country", "must be a two-letter country code")
        account_currency = normalize_currency(currency or self.policy.default_currency)

        with LogContext.bind(payee_id=payee_id):
            with self.store.unit_of_work("onboard_payee.check") as uow:
                existing = uow.find_one(ConnectedPayoutAccount, payee_id=payee_id)
                if existing is not None:
                    return PayoutAccountInfo.from_model(existing)

            remote = self.gateway.create_connected_account(
                email=email,
                country=country.upper(),
                metadata={"payee_id": str(payee_id)},
            )

            try:
                with self.store.unit_of_work("onboard_payee.insert") as uow:
                    account = uow.add(
                        ConnectedPayoutAccount(
                            payee_id=payee_id,
                            external_account_ref=remote.ref,
                            email=email,
                            country=country.upper(),
                            currency=account_currency,
                            charges_enabled=remote.charges_enabled,
                            payouts_enabled=remote.payouts_enabled,
                            details_submitted=remote.details_submitted,
                            capabilities_as_of=self.clock.now_utc(),
                        )
                    )
                    info = PayoutAccountInfo.from_model(account)
            except IntegrityError:
                # Lost a concurrent onboarding; the processor account just
                # created is left unused.
                logger.warning(
                    "connected_account_orphaned", extra={"external_account_ref": remote.ref}
                )
                with self.store.unit_of_work("onboard_payee.reload") as uow:
                    return PayoutAccountInfo.from_model(
                        uow.find_one(ConnectedPayoutAccount, payee_id=payee_id)
                    )

            logger.info(
                "payee_onboarded",
                extra={
                    "external_account_ref": remote.ref,
                    "charges_enabled": remote.charges_enabled,
                    "payouts_enabled": remote.payouts_enabled,
                },
            )
        return info

    def update_payout_account(self, payee_id: UUID, **fields: Any) -> PayoutAccountInfo:
        """Push profile changes (e.g. email) to the processor and mirror them locally."""
        if not fields:
            raise InvalidInputError("fields", "nothing to update")

        with self.store.unit_of_work("update_payout_account.load") as uow:
            account = uow.find_one(ConnectedPayoutAccount, payee_id=payee_id)
            if account is None:
                raise PayoutAccountNotFoundError(str(payee_id))
            ref = account.external_account_ref

        remote = self.gateway.update_connected_account(ref, **fields)

        with self.store.unit_of_work("update_payout_account.apply") as uow:
            account = uow.find_one(ConnectedPayoutAccount, external_account_ref=ref)
            if "email" in fields:
                account.email = fields["email"]
            self._set_capabilities(uow, account, remote)
            info = PayoutAccountInfo.from_model(account)
        logger.info(
            "payout_account_updated",
            extra={"payee_id": str(payee_id), "fields": sorted(fields)},
        )
        return info

    def apply_capabilities(
        self,
        uow: LedgerSession,
        external_ref: str,
        flags: dict[str, Any],
        as_of: datetime | None = None,
    ) -> bool:
        """
        Mirror capability flags reported by the processor.

        Each report is a full snapshot taken at ``as_of``.  A snapshot older
        than the last one applied is ignored, so a delayed notification
        cannot switch a capability back.  Without ``as_of`` the flags are
        applied unconditionally.

        Returns False when nothing changed.

        Raises:
            PayoutAccountNotFoundError: no local account for ``external_ref``.
        """
        account = uow.find_one(ConnectedPayoutAccount, external_account_ref=external_ref)
        if account is None:
            raise PayoutAccountNotFoundError(external_ref)
        account = uow.get_for_update(ConnectedPayoutAccount, account.id)

        applied_at = account.capabilities_as_of
        if as_of is not None and applied_at is not None and as_of < applied_at:
            logger.info(
                "stale_account_snapshot_ignored",
                extra={
                    "external_account_ref": external_ref,
                    "snapshot_at": as_of,
                    "applied_at": applied_at,
                },
            )
            return False

        changed = {
            name: bool(flags[name])
            for name in _CAPABILITY_FIELDS
            if name in flags and bool(flags[name]) != getattr(account, name)
        }
        if as_of is not None:
            account.capabilities_as_of = as_of
        for name, value in changed.items():
            setattr(account, name, value)
        uow.session.flush()
        if not changed:
            return False
        logger.info(
            "payout_account_capabilities_updated",
            extra={"external_account_ref": external_ref, **changed},
        )
        return True

    def _set_capabilities(
        self, uow: LedgerSession, account: ConnectedPayoutAccount, remote: GatewayAccount
    ) -> None:
        account.charges_enabled = remote.charges_enabled
        account.payouts_enabled = remote.payouts_enabled
        account.details_submitted = remote.details_submitted
        account.capabilities_as_of = self.clock.now_utc()
        uow.session.flush()

    def get_payout_account(self, payee_id: UUID) -> PayoutAccountInfo:
        with self.store.unit_of_work("get_payout_account") as uow:
            account = uow.find_one(ConnectedPayoutAccount, payee_id=payee_id)
            if account is None:
                raise PayoutAccountNotFoundError(str(payee_id))
            return PayoutAccountInfo.from_model(account)
