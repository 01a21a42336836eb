"""
Identity -- Re-authentication collaborator.

Responsibility:
    Opening the till is a privileged action: the administrator re-enters
    their password even though they are already signed in.  The kernel only
    needs a yes/no answer, so it depends on the IdentityVerifier interface
    and never on a particular identity provider.

Architecture position:
    Kernel > Domain.  StaticIdentityVerifier is an in-process implementation
    for local installs and tests; production wires the hosted identity
    service behind the same interface.
"""

import hashlib
import hmac
import os
from abc import ABC, abstractmethod

PBKDF2_ITERATIONS = 200_000
_SALT_BYTES = 16


class IdentityVerifier(ABC):
    """Answers whether ``password`` is the current password of ``user_id``."""

    @abstractmethod
    def reverify_password(self, user_id: str, password: str) -> bool:
        ...


def hash_password(password: str, salt: bytes | None = None) -> str:
    """
    Hash a password for StaticIdentityVerifier.

    Returns:
        ``"<salt hex>$<digest hex>"``.
    """
    salt = salt if salt is not None else os.urandom(_SALT_BYTES)
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS
    )
    return f"{salt.hex()}${digest.hex()}"


class StaticIdentityVerifier(IdentityVerifier):
    """
    Verifier backed by a fixed mapping of user id to PBKDF2 hash.

    Unknown users and empty passwords never verify.
    """

    def __init__(self, password_hashes: dict[str, str]):
        self._hashes = dict(password_hashes)

    @classmethod
    def from_plaintext(cls, passwords: dict[str, str]) -> "StaticIdentityVerifier":
        return cls({user: hash_password(pw) for user, pw in passwords.items()})

    def reverify_password(self, user_id: str, password: str) -> bool:
        stored = self._hashes.get(user_id)
        if not stored or not password:
            return False
        salt_hex, _, digest_hex = stored.partition("$")
        try:
            salt = bytes.fromhex(salt_hex)
        except ValueError:
            return False
        candidate = hash_password(password, salt).partition("$")[2]
        return hmac.compare_digest(candidate, digest_hex)
