# =============================================================================
# core/errors.py - Error taxonomy for sync runs
# =============================================================================

from typing import Optional


class ScimSyncError(Exception):
    """Base class for sync errors"""


class ConfigurationError(ScimSyncError):
    """Required settings are missing or invalid"""


class PreconditionError(ScimSyncError):
    """A reconciliation phase ran before its state was loaded"""


class LoadError(ScimSyncError):
    """Source or target data could not be fetched"""


class DataIntegrityError(LoadError):
    """Loaded target data cannot be correlated safely"""


class RequestError(ScimSyncError):
    """A single create/patch/delete call against the target failed"""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        message = super().__str__()
        if self.status_code is None:
            return message
        detail = f"HTTP {self.status_code}"
        if self.body:
            detail += f": {self.body[:200]}"
        return f"{message} ({detail})"
