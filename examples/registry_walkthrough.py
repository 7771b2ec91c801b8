#!/usr/bin/env python3
"""
Walk an agent identity through its whole lifecycle.

Runs against an in-memory token by default. Set AGENT_REGISTRY_NETWORK and
CUSTODY_PRIVATE_KEY to settle stakes against the ERC-20 token of a network
listed in networks.json instead.
"""
import hashlib
import logging
import os

from eth_account import Account

from agent_registry import (
    AgentIdentityRegistry, ERC20FundingSource, InMemoryToken, ManualClock,
    RegistryConfig, RegistryError, sign_digest,
)


def main():
    """
    Demonstrate the registry.

    This example shows how to:
    1. Register an identity with a stake and a separate signing key
    2. Link platforms and collect a vouch
    3. Verify a message signed by the agent
    4. Deactivate, wait out the cooldown and withdraw
    """
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))

    owner = Account.create()
    voucher = Account.create()
    agent_key = Account.create()

    network = os.environ.get("AGENT_REGISTRY_NETWORK")
    if network:
        custody_key = os.environ.get("CUSTODY_PRIVATE_KEY")
        if not custody_key:
            print("ERROR: CUSTODY_PRIVATE_KEY environment variable is required")
            return
        funding = ERC20FundingSource.from_network(network, custody_key)
    else:
        funding = InMemoryToken()
        for account in (owner, voucher):
            funding.mint(account.address, 10_000_000)
            funding.approve(account.address, 10_000_000)

    config = RegistryConfig.from_env()
    clock = ManualClock(1_700_000_000)
    registry = AgentIdentityRegistry.from_config(config, funding, clock=clock)

    try:
        identity_key = registry.register(
            owner.address, "research-agent", "ipfs://profile", agent_key.address, registry.min_stake
        )
        print(f"Registered identity: {identity_key}")

        registry.link_platform(owner.address, "github:research-agent")
        registry.vouch(voucher.address, identity_key, 500_000)
        identity = registry.get_identity(identity_key)
        print(f"Stake: {identity.staked_amount}, vouched: {identity.total_vouches_received}")

        digest = hashlib.sha256(b"I am research-agent").digest()
        signature = sign_digest(agent_key.key, digest)
        print(f"Agent signature valid: {registry.verify_signature(identity_key, digest, signature)}")

        registry.deactivate(owner.address)
        clock.advance(registry.deactivation_cooldown)
        print(f"Withdrawn stake: {registry.withdraw_stake(owner.address)}")
        print(f"Vouch returned: {registry.withdraw_vouch(voucher.address, identity_key)}")

        for event in registry.events:
            print(f"#{event.sequence} {event.event_type.value}")

    except RegistryError as e:
        print(f"Registry rejected the operation: {e}")


if __name__ == "__main__":
    main()
