"""
Signature verification against registered signing keys.

Digests are wrapped in the EIP-191 personal-message prefix
("\\x19Ethereum Signed Message:\\n32") before recovery, so a signature over
a registry digest can never be replayed as a raw transaction signature.
"""
import logging
from typing import Optional, Union

from eth_account import Account
from eth_account.messages import encode_defunct

from ._rate_limited_log import rate_limited_log
from .store import LedgerStore
from .utils import hex_to_bytes, short_key, to_bytes32

logger = logging.getLogger(__name__)

BytesLike = Union[str, bytes]


def sign_digest(private_key: BytesLike, message_digest: BytesLike) -> bytes:
    """
    Sign a 32-byte digest the way the verifier expects.

    Args:
        private_key: Signing key's private key
        message_digest: 32-byte digest as bytes or hex string

    Returns:
        65-byte recoverable signature
    """
    signable = encode_defunct(primitive=to_bytes32(message_digest))
    signed = Account.sign_message(signable, private_key=private_key)
    return bytes(signed.signature)


def recover_signer(message_digest: BytesLike, signature: BytesLike) -> str:
    """
    Recover the checksummed address that signed a prefixed digest.

    Raises:
        ValueError: If the digest or signature is malformed
    """
    signable = encode_defunct(primitive=to_bytes32(message_digest))
    return Account.recover_message(signable, signature=hex_to_bytes(signature))


class SignatureVerifier:
    """Pure query layer: checks signatures against the ledger's signing keys."""

    def __init__(self, store: LedgerStore):
        self.store = store

    def verify(self, identity_key: str, message_digest: BytesLike, signature: BytesLike) -> bool:
        """
        Check that ``signature`` over ``message_digest`` comes from the
        identity's current signing key.

        Unknown identities, malformed digests and malformed signatures all
        return False rather than raising.
        """
        identity = self.store.get_identity(identity_key)
        if identity is None:
            rate_limited_log(
                f"Signature check against unknown identity {short_key(str(identity_key))}",
                level="debug",
                logger_instance=logger
            )
            return False

        signer = self._recover(identity_key, message_digest, signature)
        if signer is None:
            return False
        return signer == identity.signing_key

    def _recover(self, identity_key: str, message_digest: BytesLike, signature: BytesLike) -> Optional[str]:
        try:
            return recover_signer(message_digest, signature)
        except Exception as e:
            rate_limited_log(
                f"Malformed signature input for {short_key(identity_key)}: {e}",
                level="debug",
                logger_instance=logger
            )
            return None
