from ecdsa import SigningKey, VerifyingKey, SECP256k1, BadSignatureError, MalformedPointError # type: ignore
from ecdsa.util import sigencode_string, sigdecode_string # type: ignore
from typing import Tuple

from .addresses import DEFAULT_PREFIX, address_from_pubkey

SIGNATURE_SIZE = 64


def generate_private_key() -> bytes:
    """Generates a 32-byte secp256k1 private key (always below the curve order)."""
    return SigningKey.generate(curve=SECP256k1).to_string()


def public_key_from_private(priv_bytes: bytes) -> bytes:
    """Returns compressed 33-byte public key from private key."""
    sk = SigningKey.from_string(priv_bytes, curve=SECP256k1)
    return sk.get_verifying_key().to_string("compressed")


def generate_account(prefix: str = DEFAULT_PREFIX) -> Tuple[bytes, bytes, str]:
    """Returns (private_key, public_key, address) for a fresh key."""
    priv = generate_private_key()
    pub = public_key_from_private(priv)
    return priv, pub, address_from_pubkey(pub, prefix=prefix)


def sign(message_hash: bytes, priv_bytes: bytes) -> bytes:
    """Signs a 32-byte digest. Returns the 64-byte r || s signature."""
    sk = SigningKey.from_string(priv_bytes, curve=SECP256k1)
    return sk.sign_digest_deterministic(message_hash, sigencode=sigencode_string)


def verify(message_hash: bytes, signature: bytes, pub_bytes: bytes) -> bool:
    """Verifies an r || s signature over a digest. Malformed keys or signatures verify False."""
    if len(signature) != SIGNATURE_SIZE:
        return False
    try:
        vk = VerifyingKey.from_string(pub_bytes, curve=SECP256k1)
        return vk.verify_digest(signature, message_hash, sigdecode=sigdecode_string)
    except (BadSignatureError, MalformedPointError, ValueError):
        return False
