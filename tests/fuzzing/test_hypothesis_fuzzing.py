"""
Hypothesis-based property tests.

Properties checked:
- Fee split: fee + net == gross, fee is the ceiling of gross * percent
- Contract status: independent of signing order, monotone while signing
- Payout requests: any sequence of amounts never overdraws available
"""

from decimal import ROUND_CEILING, Decimal
from itertools import permutations

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from marketplace_kernel.domain.contract_status import derive_contract_status, required_parties
from marketplace_kernel.domain.fees import compute_fee_split
from marketplace_kernel.domain.statuses import ContractStatus, PartyType, SignatureStatus
from marketplace_kernel.exceptions import InsufficientFundsError, InvalidInputError

amounts = st.integers(min_value=0, max_value=10**12)
percents = st.decimals(min_value=0, max_value=100, places=2, allow_nan=False, allow_infinity=False)


class TestFeeSplitProperties:

    @given(gross=amounts, percent=percents)
    @settings(max_examples=500)
    def test_split_is_exact(self, gross, percent):
        split = compute_fee_split(gross, percent)
        assert split.fee + split.net == gross
        assert 0 <= split.fee <= gross
        assert split.net >= 0

    @given(gross=amounts, percent=percents)
    @settings(max_examples=500)
    def test_fee_is_rounded_up(self, gross, percent):
        split = compute_fee_split(gross, percent)
        exact = Decimal(gross) * percent / 100
        assert split.fee == int(exact.to_integral_value(rounding=ROUND_CEILING))
        assert split.fee - 1 < exact <= split.fee

    @given(gross=amounts, low=percents, high=percents)
    def test_fee_monotone_in_percent(self, gross, low, high):
        if low > high:
            low, high = high, low
        assert compute_fee_split(gross, low).fee <= compute_fee_split(gross, high).fee

    @given(gross=st.integers(max_value=-1))
    def test_negative_gross_rejected(self, gross):
        try:
            compute_fee_split(gross, Decimal("12"))
        except InvalidInputError as exc:
            assert exc.field == "gross"
        else:
            raise AssertionError("negative gross accepted")


class TestContractStatusProperties:

    @given(guardian=st.booleans(), witness=st.booleans())
    def test_signing_order_independent(self, guardian, witness):
        parties = sorted(required_parties(guardian, witness), key=lambda p: p.value)
        for order in permutations(parties):
            signed: dict[str, str] = {p.value: SignatureStatus.PENDING.value for p in parties}
            history = []
            for party in order:
                signed[party.value] = SignatureStatus.SIGNED.value
                history.append(derive_contract_status(signed, guardian, witness))
            assert history[-1] is ContractStatus.FULLY_SIGNED
            assert all(s is ContractStatus.PARTIALLY_SIGNED for s in history[:-1])

    @given(
        guardian=st.booleans(),
        witness=st.booleans(),
        statuses=st.dictionaries(
            st.sampled_from([p.value for p in PartyType]),
            st.sampled_from([s.value for s in SignatureStatus]),
        ),
    )
    def test_fully_signed_iff_every_required_party_signed(self, guardian, witness, statuses):
        status = derive_contract_status(statuses, guardian, witness)
        required = required_parties(guardian, witness)
        everyone = all(statuses.get(p.value) == SignatureStatus.SIGNED.value for p in required)
        assert (status is ContractStatus.FULLY_SIGNED) == everyone
        assert status not in (ContractStatus.CANCELLED, ContractStatus.VOIDED)


class TestPayoutProperties:

    @given(requests=st.lists(st.integers(min_value=100, max_value=20000), min_size=1, max_size=8))
    @settings(
        max_examples=25,
        deadline=None,
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    )
    def test_payouts_never_overdraw(self, payouts, settlement, make_account, requests):
        payee_id = make_account(available=30000)
        paid_out = 0
        for amount in requests:
            try:
                paid_out += payouts.request_payout(payee_id, amount).amount
            except InsufficientFundsError:
                pass
        available = settlement.get_athlete_balance(payee_id).available
        assert available >= 0
        assert available + paid_out == 30000
