"""
Tests for stake accounting and the in-memory token.
"""
import pytest

from agent_registry import InMemoryToken, InvalidAmountError, LedgerStore, StakeAccounting, TransferFailedError
from agent_registry.models import Identity, Vouch
from conftest import fund

PRINCIPAL = "0x1234567890123456789012345678901234567890"
OTHER = "0x0987654321098765432109876543210987654321"


@pytest.fixture
def funded_token():
    token = InMemoryToken()
    fund(token, PRINCIPAL, 1_000)
    return token


@pytest.fixture
def accounting(funded_token):
    return StakeAccounting(LedgerStore(), funded_token)


class TestInMemoryToken:

    def test_pull_moves_funds_and_consumes_allowance(self, funded_token):
        funded_token.pull(PRINCIPAL, 400)

        assert funded_token.balance_of(PRINCIPAL) == 600
        assert funded_token.balance_of(funded_token.custody_address) == 400
        assert funded_token.allowance(PRINCIPAL) == 600

    def test_pull_requires_allowance(self, funded_token):
        funded_token.approve(PRINCIPAL, 10)
        with pytest.raises(TransferFailedError, match="allowance"):
            funded_token.pull(PRINCIPAL, 11)
        assert funded_token.balance_of(PRINCIPAL) == 1_000

    def test_pull_requires_balance(self, funded_token):
        funded_token.approve(PRINCIPAL, 5_000)
        with pytest.raises(TransferFailedError, match="balance"):
            funded_token.pull(PRINCIPAL, 1_001)

    def test_push_requires_custody_funds(self, funded_token):
        with pytest.raises(TransferFailedError):
            funded_token.push(OTHER, 1)

    def test_push_pays_out(self, funded_token):
        funded_token.pull(PRINCIPAL, 400)
        funded_token.push(OTHER, 150)

        assert funded_token.balance_of(OTHER) == 150
        assert funded_token.balance_of(funded_token.custody_address) == 250
        assert funded_token.total_supply == 1_000

    def test_negative_values_rejected(self, funded_token):
        with pytest.raises(ValueError):
            funded_token.mint(PRINCIPAL, -1)
        with pytest.raises(ValueError):
            funded_token.approve(PRINCIPAL, -1)


class TestStakeAccounting:

    def test_deposit_and_release_track_custody(self, accounting, funded_token):
        accounting.deposit(PRINCIPAL, 300)
        assert accounting.store.custodied_total == 300

        accounting.release(OTHER, 100)
        assert accounting.store.custodied_total == 200
        assert funded_token.balance_of(OTHER) == 100

    def test_failed_deposit_leaves_custody_unchanged(self, accounting):
        with pytest.raises(TransferFailedError):
            accounting.deposit(PRINCIPAL, 5_000)
        assert accounting.store.custodied_total == 0

    def test_release_beyond_custody_rejected(self, accounting):
        accounting.deposit(PRINCIPAL, 100)
        with pytest.raises(InvalidAmountError):
            accounting.release(PRINCIPAL, 101)

    def test_negative_amounts_rejected(self, accounting):
        with pytest.raises(InvalidAmountError):
            accounting.deposit(PRINCIPAL, -1)
        with pytest.raises(InvalidAmountError):
            accounting.release(PRINCIPAL, -1)

    def test_zero_amounts_do_not_touch_funding(self, accounting, funded_token):
        funded_token.approve(PRINCIPAL, 0)
        accounting.deposit(PRINCIPAL, 0)
        accounting.release(PRINCIPAL, 0)
        assert accounting.store.custodied_total == 0

    def test_audit(self, accounting):
        store = accounting.store
        key = "0x" + "11" * 32
        store.put_identity(Identity(identity_key=key, owner=PRINCIPAL, signing_key=OTHER, name="a", staked_amount=70))
        store.append_vouch(key, Vouch(voucher=OTHER, amount=30, timestamp=1))
        store.append_vouch(key, Vouch(voucher=PRINCIPAL, amount=0, timestamp=2))
        store.custodied_total = 100

        assert accounting.expected_custody() == 100
        assert accounting.audit()

        store.custodied_total = 99
        assert not accounting.audit()
