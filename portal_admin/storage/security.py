"""Password hashing and password policy for admin identities.

Hashes are stored as ``pbkdf2_sha256$<rounds>$<salt>$<digest>``. Hashes
written with fewer rounds than ``PBKDF2_ROUNDS`` still verify and are
upgraded on the next successful login.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
import hashlib
import hmac
import os
from typing import Optional


HASH_ALGORITHM = "pbkdf2_sha256"
PBKDF2_ROUNDS = 260_000
MIN_PASSWORD_LENGTH = 8


@dataclass(frozen=True)
class _EncodedHash:
    rounds: int
    salt: bytes
    digest: bytes


def _decode(encoded_hash: str) -> Optional[_EncodedHash]:
    try:
        algorithm, rounds_str, salt_b64, digest_b64 = encoded_hash.split("$", 3)
        if algorithm != HASH_ALGORITHM:
            return None
        return _EncodedHash(
            rounds=int(rounds_str),
            salt=base64.b64decode(salt_b64.encode("ascii"), validate=True),
            digest=base64.b64decode(digest_b64.encode("ascii"), validate=True),
        )
    except (ValueError, TypeError):
        return None


def _derive(password: str, salt: bytes, rounds: int) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, rounds)


def password_policy_error(password: str) -> Optional[str]:
    if len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
    return None


def hash_password(password: str, *, rounds: int = PBKDF2_ROUNDS) -> str:
    salt = os.urandom(16)
    digest = _derive(password, salt, rounds)
    return "$".join(
        [
            HASH_ALGORITHM,
            str(rounds),
            base64.b64encode(salt).decode("ascii"),
            base64.b64encode(digest).decode("ascii"),
        ]
    )


def verify_password(password: str, encoded_hash: str) -> bool:
    decoded = _decode(encoded_hash)
    if decoded is None:
        return False
    return hmac.compare_digest(_derive(password, decoded.salt, decoded.rounds), decoded.digest)


def needs_rehash(encoded_hash: str) -> bool:
    decoded = _decode(encoded_hash)
    return decoded is None or decoded.rounds < PBKDF2_ROUNDS
