"""
auth/hasher.py -- Password hashing with per-account salts (PBKDF2-HMAC).

Security design decisions:
  Format: base64(PBKDF2-HMAC-<digest>(password, salt, iterations, key_length)).
       With the default KdfParams (SHA-512, 1250 iterations, 64 bytes) this is
       byte-compatible with hashes written by the legacy membership site, so
       existing accounts keep working. The salt's base64 text is the PBKDF2
       salt input, exactly as the legacy site fed it.

  Salts: secrets.token_bytes(salt_bytes), base64-encoded. 2048 bytes by
       default. One live salt per account; see AccountStore.replace_credentials.

  Comparison: hmac.compare_digest on the decoded bytes. A plain == on the
       base64 text leaks the length of the matching prefix through timing.

  Event loop: PBKDF2 is CPU-bound. Async callers use hash_async/verify_async,
       which run in Starlette's worker thread pool, never inline in a route.

Layer rule: no imports from api/, notify/, or blobs/. Import from core/ is
allowed.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import secrets
from dataclasses import dataclass

from starlette.concurrency import run_in_threadpool

from core.config import Settings


@dataclass(frozen=True)
class KdfParams:
    iterations: int = 1250
    key_length: int = 64
    digest: str = "sha512"
    salt_bytes: int = 2048

    @classmethod
    def from_settings(cls, settings: Settings) -> "KdfParams":
        return cls(
            iterations=settings.kdf_iterations,
            key_length=settings.kdf_key_length,
            digest=settings.kdf_digest,
            salt_bytes=settings.salt_bytes,
        )


class CredentialHasher:
    """Derive salts, hash passwords, and verify them in constant time.

    Usage:
        hasher = CredentialHasher(KdfParams())
        salt = hasher.derive_salt()
        stored = hasher.hash("secret", salt)
        hasher.verify("secret", salt, stored)   # True
    """

    def __init__(self, params: KdfParams | None = None) -> None:
        self.params = params or KdfParams()
        # Fail at startup rather than on the first login.
        hashlib.new(self.params.digest)

    def derive_salt(self) -> str:
        return base64.b64encode(secrets.token_bytes(self.params.salt_bytes)).decode("ascii")

    def _derive(self, password: str, salt: str) -> bytes:
        return hashlib.pbkdf2_hmac(
            self.params.digest,
            password.encode("utf-8"),
            salt.encode("utf-8"),
            self.params.iterations,
            dklen=self.params.key_length,
        )

    def hash(self, password: str, salt: str) -> str:
        """Return the base64-encoded derived key for (password, salt)."""
        return base64.b64encode(self._derive(password, salt)).decode("ascii")

    def verify(self, password: str, salt: str, stored_hash: str) -> bool:
        """Return True if password hashes to stored_hash under salt.

        Never raises on a mismatch or on a stored value that is not valid
        base64; both simply fail verification.
        """
        try:
            expected = base64.b64decode(stored_hash, validate=True)
        except (binascii.Error, ValueError):
            return False
        return hmac.compare_digest(self._derive(password, salt), expected)

    async def hash_async(self, password: str, salt: str) -> str:
        return await run_in_threadpool(self.hash, password, salt)

    async def verify_async(self, password: str, salt: str, stored_hash: str) -> bool:
        return await run_in_threadpool(self.verify, password, salt, stored_hash)


def generate_temp_password(num_bytes: int = 12) -> str:
    """Random temporary password for the recovery flow (URL-safe, no padding)."""
    return secrets.token_urlsafe(num_bytes)
