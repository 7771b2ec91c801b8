"""
Pytest fixtures for the agent identity registry tests.
"""
import pytest
from eth_account import Account

from agent_registry import AgentIdentityRegistry, InMemoryToken, ManualClock, RegistryConfig
from agent_registry._rate_limited_log import reset_rate_limits

# Constants for testing
START_TIME = 1_700_000_000
DAY = 24 * 60 * 60
COOLDOWN = 7 * DAY
MIN_STAKE = 1_000_000
STARTING_BALANCE = 100_000_000

ALICE_KEY = "0x" + "a1" * 32
BOB_KEY = "0x" + "b2" * 32
CAROL_KEY = "0x" + "c3" * 32
ADMIN_KEY = "0x" + "d4" * 32
SIGNER_KEY = "0x" + "e5" * 32
ROTATED_SIGNER_KEY = "0x" + "f6" * 32

TEST_DIGEST = bytes.fromhex("7d5a99f603f231d53a4f39d1521f98d2e8bb279cf29bebfd0687dc98458e7f89")


def fund(token: InMemoryToken, address: str, amount: int = STARTING_BALANCE) -> None:
    """Mint ``amount`` to ``address`` and approve it all for custody."""
    token.mint(address, amount)
    token.approve(address, amount)


@pytest.fixture(autouse=True)
def _reset_log_rate_limits():
    reset_rate_limits()
    yield
    reset_rate_limits()


@pytest.fixture
def alice():
    return Account.from_key(ALICE_KEY)


@pytest.fixture
def bob():
    return Account.from_key(BOB_KEY)


@pytest.fixture
def carol():
    return Account.from_key(CAROL_KEY)


@pytest.fixture
def admin():
    return Account.from_key(ADMIN_KEY)


@pytest.fixture
def signer():
    """Signing key holder, distinct from every owner"""
    return Account.from_key(SIGNER_KEY)


@pytest.fixture
def rotated_signer():
    return Account.from_key(ROTATED_SIGNER_KEY)


@pytest.fixture
def clock():
    return ManualClock(START_TIME)


@pytest.fixture
def token(alice, bob, carol):
    """In-memory USDC with every test principal funded and approved"""
    token = InMemoryToken()
    for account in (alice, bob, carol):
        fund(token, account.address)
    return token


@pytest.fixture
def config(admin):
    return RegistryConfig(min_stake=MIN_STAKE, deactivation_cooldown=COOLDOWN, admin=admin.address)


@pytest.fixture
def registry(token, config, clock):
    return AgentIdentityRegistry(token, config=config, clock=clock)


@pytest.fixture
def alice_identity(registry, alice, signer):
    """Identity key of a registered, active identity owned by alice"""
    return registry.register(alice.address, "alice", "ipfs://alice-profile", signer.address, MIN_STAKE)
