# storefront_sync/errors.py


class SyncError(Exception):
    """A sync step failed and will not succeed by retrying in-process."""


class ValidationError(SyncError):
    """Incoming payload or arguments are malformed. Never retried."""


class ProductNotSyncedYet(SyncError):
    """A price arrived before its owning product document exists."""


class SignatureError(Exception):
    pass


class ContentStoreError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TransientWriteError(ContentStoreError):
    pass
