"""
CLO Core Exception Classes

Every error raised by the vault engine, the integration cache and the
fetchers derives from ``CloError``. The API layer maps each class to an
HTTP status code (see ``api/main.py``).
"""


class CloError(Exception):
    """Base exception for CLO core operations"""
    pass


class ValidationError(CloError):
    """Raised when caller input is malformed (empty title, bad passcode, ...)"""
    pass


class NotFoundError(CloError):
    """Raised when a vault item or capsule does not exist"""
    pass


class UnauthorizedError(CloError):
    """Raised when a caller is not allowed to act, or an OAuth session expired

    For integrations this means "please reconnect": the stored token could
    not be refreshed and no retry is attempted.
    """
    pass


class UpstreamError(CloError):
    """Raised when a third-party API answers with a non-2xx status"""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


class NotConfiguredError(CloError):
    """Raised when an integration has no usable credential"""
    pass


class VaultLockedError(CloError):
    """Raised when vault content is requested before the passcode is verified"""
    pass
