# Vault - Passcode Gate
#
# 6-digit passcode → salted PBKDF2-SHA256 hash in device secure storage.
# The hash never leaves the device; only a "setup completed" marker is
# recorded in shared storage so the partner can see readiness.
#
# Unlocking is in-memory only and resets on process restart. There is no
# attempt counter, lockout or reset path: losing local storage loses
# vault access.

import base64
import hmac
import logging
import os
import threading
from typing import Callable, Optional, Set, Tuple

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..core import EventSeverity, EventType, get_audit_logger
from ..exceptions import ValidationError
from .secure_storage import SecureStorage

logger = logging.getLogger(__name__)

PASSCODE_KEY_PREFIX = "vault_passcode_"
PASSCODE_LENGTH = 6


def validate_passcode(passcode: str) -> None:
    """Raise ValidationError unless ``passcode`` is exactly 6 ASCII digits."""
    if not isinstance(passcode, str):
        raise ValidationError("Passcode must be a string of 6 digits")
    if len(passcode) != PASSCODE_LENGTH:
        raise ValidationError(f"Passcode must be exactly {PASSCODE_LENGTH} digits")
    # str.isdigit() accepts non-ASCII digits such as "٣"
    if not all("0" <= c <= "9" for c in passcode):
        raise ValidationError("Passcode must contain digits only")


class PasscodeHasher:
    """
    One-way passcode hashing with PBKDF2-HMAC-SHA256.

    Encoded form: ``pbkdf2_sha256$<iterations>$<salt_b64>$<hash_b64>``.
    Iterations are stored with the hash, so verification keeps working if
    the default changes.
    """

    ALGORITHM = "pbkdf2_sha256"
    PBKDF2_ITERATIONS = 600_000  # OWASP 2023: 600k iterations for PBKDF2-SHA256
    KEY_LENGTH = 32
    SALT_LENGTH = 16

    def __init__(self, iterations: Optional[int] = None):
        self.iterations = iterations or self.PBKDF2_ITERATIONS

    @classmethod
    def _derive(cls, passcode: str, salt: bytes, iterations: int) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=cls.KEY_LENGTH,
            salt=salt,
            iterations=iterations,
        )
        return kdf.derive(passcode.encode("utf-8"))

    def hash(self, passcode: str) -> str:
        salt = os.urandom(self.SALT_LENGTH)
        digest = self._derive(passcode, salt, self.iterations)
        return "$".join([
            self.ALGORITHM,
            str(self.iterations),
            base64.b64encode(salt).decode("ascii"),
            base64.b64encode(digest).decode("ascii"),
        ])

    def verify(self, passcode: str, encoded: str) -> bool:
        """Return True if ``passcode`` matches ``encoded``; False otherwise."""
        try:
            algorithm, iterations, salt_b64, digest_b64 = encoded.split("$")
            if algorithm != self.ALGORITHM:
                return False
            salt = base64.b64decode(salt_b64)
            expected = base64.b64decode(digest_b64)
            candidate = self._derive(passcode, salt, int(iterations))
        except (ValueError, TypeError) as e:
            logger.warning("Unreadable passcode hash in secure storage: %s", e)
            return False
        # Constant-time comparison to prevent timing attacks
        return hmac.compare_digest(candidate, expected)


class PasscodeManager:
    """
    Local passcode setup/verification and unlock state, per party per capsule.

    Each party of a capsule holds their own passcode; one party unlocking
    (or setting up) never affects the other.

    Args:
        storage: Device secure storage (authoritative for setup state).
        hasher: Passcode hasher (default PBKDF2 with 600k iterations).
        record_setup: Optional callback ``(capsule_id, user_id)`` that
            writes the shared "setup completed" marker. Failures are
            logged and ignored.
    """

    def __init__(
        self,
        storage: SecureStorage,
        hasher: Optional[PasscodeHasher] = None,
        record_setup: Optional[Callable[[str, str], None]] = None,
        audit=None,
    ):
        self.storage = storage
        self.hasher = hasher or PasscodeHasher()
        self.record_setup = record_setup
        self.audit = audit or get_audit_logger()

        self._unlocked: Set[Tuple[str, str]] = set()
        self._lock = threading.Lock()

    @staticmethod
    def _storage_key(capsule_id: str, user_id: str) -> str:
        return f"{PASSCODE_KEY_PREFIX}{capsule_id}_{user_id}"

    def has_local_passcode(self, capsule_id: str, user_id: str) -> bool:
        """True if ``user_id`` has a passcode hash stored for the capsule."""
        return self.storage.get_item(self._storage_key(capsule_id, user_id)) is not None

    def setup_passcode(self, capsule_id: str, user_id: str, passcode: str) -> bool:
        """
        Hash and store the caller's passcode, replacing their previous one.

        Raises:
            ValidationError: passcode is not exactly 6 digits, or no user
        """
        if not user_id:
            raise ValidationError("user_id is required")
        validate_passcode(passcode)

        encoded = self.hasher.hash(passcode)
        self.storage.set_item(self._storage_key(capsule_id, user_id), encoded)

        if self.record_setup is not None:
            try:
                self.record_setup(capsule_id, user_id)
            except Exception as e:
                # Local storage is authoritative; the shared marker is advisory
                logger.warning(
                    "Could not record vault setup for capsule %s: %s", capsule_id, e
                )

        self.audit.log_vault_event(
            EventType.VAULT_PASSCODE_SET,
            "Passcode set up",
            details={"capsule_id": capsule_id, "user_id": user_id},
        )
        return True

    def verify_passcode(self, capsule_id: str, user_id: str, passcode: str) -> bool:
        """
        Check a passcode against the caller's stored hash.

        Returns False on mismatch, malformed input or when the caller has
        not set up a passcode. On success the capsule is unlocked for this
        caller only, until ``lock()`` or process exit.
        """
        encoded = self.storage.get_item(self._storage_key(capsule_id, user_id))
        if encoded is None:
            return False

        try:
            validate_passcode(passcode)
        except ValidationError:
            valid = False
        else:
            valid = self.hasher.verify(passcode, encoded)

        if not valid:
            self.audit.log_vault_event(
                EventType.VAULT_UNLOCK_FAILED,
                "Unlock failed: incorrect passcode",
                details={"capsule_id": capsule_id, "user_id": user_id},
                severity=EventSeverity.INVESTIGATE,
            )
            return False

        with self._lock:
            self._unlocked.add((capsule_id, user_id))

        self.audit.log_vault_event(
            EventType.VAULT_UNLOCKED,
            "Vault unlocked",
            details={"capsule_id": capsule_id, "user_id": user_id},
        )
        return True

    def is_unlocked(self, capsule_id: str, user_id: str) -> bool:
        with self._lock:
            return (capsule_id, user_id) in self._unlocked

    def lock(self, capsule_id: str, user_id: str) -> None:
        with self._lock:
            was_unlocked = (capsule_id, user_id) in self._unlocked
            self._unlocked.discard((capsule_id, user_id))
        if was_unlocked:
            self.audit.log_vault_event(
                EventType.VAULT_LOCKED,
                "Vault locked",
                details={"capsule_id": capsule_id, "user_id": user_id},
            )

    def lock_all(self) -> int:
        """Lock every unlocked capsule (shutdown). Returns how many were open."""
        with self._lock:
            count = len(self._unlocked)
            self._unlocked.clear()
        return count
