# Vault Module - Two-Party Shared Secrets
#
# Passcode-gated access (per device, per capsule) plus a mutual-approval
# rule: an item's content is visible only after both parties approve it.

from .blob_store import BlobStorageError, LocalBlobStore
from .models import Capsule, FileRef, VaultItem, VaultItemStatus, VaultItemType
from .passcode import PasscodeHasher, PasscodeManager, validate_passcode
from .secure_storage import FileSecureStorage, SecureStorage
from .store import VaultStore
from .vault_manager import VaultManager

__all__ = [
    "BlobStorageError",
    "Capsule",
    "FileRef",
    "FileSecureStorage",
    "LocalBlobStore",
    "PasscodeHasher",
    "PasscodeManager",
    "SecureStorage",
    "VaultItem",
    "VaultItemStatus",
    "VaultItemType",
    "VaultManager",
    "VaultStore",
    "validate_passcode",
]
