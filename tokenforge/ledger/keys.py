"""
ed25519 keypairs used to sign transactions.

The public verify key bytes are the account address.
"""

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey
from solders.pubkey import Pubkey


class Keypair:
    """
    Wraps a NaCl signing key
    """

    def __init__(self, signing_key: SigningKey | bytes | None = None):
        """
        :param signing_key: If not specified, then a new key is generated.
            A 32 byte seed may be supplied instead of a SigningKey.
        """
        if signing_key is None:
            signing_key = SigningKey.generate()
        elif isinstance(signing_key, bytes):
            signing_key = SigningKey(signing_key)
        self.__signing_key = signing_key

    @property
    def pubkey(self) -> Pubkey:
        return Pubkey(bytes(self.__signing_key.verify_key))

    def sign(self, message: bytes) -> bytes:
        """
        :return: 64 byte detached signature
        """
        return self.__signing_key.sign(message).signature

    def __repr__(self) -> str:
        return f"Keypair({self.pubkey})"


def verify_signature(pubkey: Pubkey, message: bytes, signature: bytes) -> bool:
    """
    :return: True if the signature was produced by the private key for `pubkey`
    """
    try:
        VerifyKey(bytes(pubkey)).verify(message, signature)
        return True
    except (BadSignatureError, ValueError):
        return False
