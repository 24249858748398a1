"""
PKCE (RFC 7636, S256 only) plus the random values a login request carries.
"""
import hashlib
import secrets
from base64 import urlsafe_b64encode
from typing import NamedTuple

# 32 random bytes -> 43 base64url chars, the RFC 7636 minimum verifier length
_ENTROPY_BYTES = 32


class PkcePair(NamedTuple):
    verifier: str
    challenge: str


def generate_state() -> str:
    """Echoed back on the callback; also keys the pending flow."""
    return secrets.token_urlsafe(_ENTROPY_BYTES)


def generate_nonce() -> str:
    return secrets.token_urlsafe(_ENTROPY_BYTES)


def s256_challenge(code_verifier: str) -> str:
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce() -> PkcePair:
    verifier = secrets.token_urlsafe(_ENTROPY_BYTES)
    return PkcePair(verifier, s256_challenge(verifier))
