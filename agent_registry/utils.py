"""
Utility functions for the agent identity registry.
"""
from typing import Union

from web3 import Web3

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
ZERO_KEY = "0x" + "00" * 32


def normalize_address(address: str) -> str:
    """
    Validate an Ethereum-style address and return its checksum form.

    Args:
        address: Hex address with 0x prefix, any casing

    Returns:
        EIP-55 checksummed address

    Raises:
        ValueError: If the value is not a 20-byte hex address
    """
    if not isinstance(address, str) or not Web3.is_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    return Web3.to_checksum_address(address)


def derive_identity_key(name: str, owner: str, registered_at: int, nonce: int) -> str:
    """
    Derive an identity key from the registration parameters.

    The key is keccak256 over the packed (name, owner, timestamp, nonce)
    tuple. The nonce is a ledger-wide registration counter, so two
    registrations in the same second with the same name and owner still
    get distinct keys.

    Returns:
        0x-prefixed 32-byte hex string
    """
    digest = Web3.solidity_keccak(
        ["string", "address", "uint256", "uint256"],
        [name, normalize_address(owner), registered_at, nonce],
    )
    return Web3.to_hex(digest)


def to_bytes32(value: Union[str, bytes]) -> bytes:
    """
    Convert a 32-byte value given as bytes or hex string to bytes.

    Raises:
        ValueError: If the value is not exactly 32 bytes
    """
    raw = hex_to_bytes(value)
    if len(raw) != 32:
        raise ValueError(f"Expected 32 bytes, got {len(raw)}")
    return raw


def hex_to_bytes(value: Union[str, bytes]) -> bytes:
    """
    Accept raw bytes or a hex string (with or without 0x) and return bytes.

    Raises:
        ValueError: If the string is not valid hex
        TypeError: For any other input type
    """
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        if value.startswith("0x") or value.startswith("0X"):
            value = value[2:]
        return bytes.fromhex(value)
    raise TypeError(f"Expected bytes or hex string, got {type(value).__name__}")


def short_key(identity_key: str) -> str:
    """Truncate an identity key for log lines."""
    return f"{identity_key[:10]}…"
