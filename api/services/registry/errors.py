"""Error taxonomy for registry operations.

Every error carries the HTTP status it maps to, so routers can translate
them into ``HTTPException`` without a per-endpoint lookup table.
"""

from typing import Any


class RegistryError(Exception):
    """Base class for all registry failures."""

    status_code: int = 500
    label: str = "Registry operation failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.label
        super().__init__(self.message)

    def to_detail(self) -> dict[str, Any]:
        """Build the JSON error body returned to API clients."""
        detail: dict[str, Any] = {"error": self.label}
        if self.message != self.label:
            detail["details"] = self.message
        return detail


class InputValidationError(RegistryError):
    """Malformed platform, date, identifier or missing required field."""

    status_code = 400
    label = "Invalid input"

    def __init__(self, message: str, field: str):
        self.field = field
        super().__init__(message)

    def to_detail(self) -> dict[str, Any]:
        return {"error": self.message, "field": self.field}


class InvalidIdentifierError(InputValidationError):
    """Identifier does not follow the BVC ID grammar."""

    def __init__(self, message: str, field: str = "id"):
        super().__init__(message, field)


class VulnerabilityNotFoundError(RegistryError):
    """The ledger has no vulnerability under the given identifier."""

    status_code = 404
    label = "Vulnerability not found"


class VersionNotFoundError(RegistryError):
    """The vulnerability exists but the requested version does not."""

    status_code = 404
    label = "Version not found"


class ConflictError(RegistryError):
    """The ledger rejected a write that violates a uniqueness constraint."""

    status_code = 409
    label = "Vulnerability already exists"


class CollaboratorUnavailableError(RegistryError):
    """The ledger or the content store could not be reached."""

    label = "Collaborator unavailable"

    def __init__(self, collaborator: str, message: str | None = None):
        self.collaborator = collaborator
        super().__init__(message or f"{collaborator} is unreachable")

    def to_detail(self) -> dict[str, Any]:
        return {
            "error": self.label,
            "collaborator": self.collaborator,
            "details": self.message,
        }


class ContentUnavailableError(CollaboratorUnavailableError):
    """A record body could not be uploaded to or fetched from the content store."""

    label = "Content store unavailable"

    def __init__(self, message: str | None = None):
        super().__init__("content_store", message)


class LedgerRevertError(RegistryError):
    """Contract-level rejection for a reason the taxonomy does not model.

    The raw revert reason is kept for diagnostics.
    """

    label = "Ledger rejected the transaction"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)
