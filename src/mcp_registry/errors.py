"""Exception hierarchy for the tool server registry."""

from typing import Optional

from mcp_registry.response import ErrorCodes


class RegistryError(Exception):
    """Base class for every error raised by mcp-registry."""

    code = ErrorCodes.UNEXPECTED_EXCEPTION


class ValidationError(RegistryError):
    """A server record or request failed validation before any network call."""

    code = ErrorCodes.VALIDATION_ERROR


class RemovalNotConfirmed(ValidationError):
    """A removal was requested without explicit confirmation."""


class UnsavedChangesError(ValidationError):
    """Starting a new edit would drop unsaved changes in the edit session."""


class UnsupportedAuthError(RegistryError):
    """The declared authentication type cannot be turned into request headers."""

    code = ErrorCodes.UNSUPPORTED_AUTH

    def __init__(self, auth_type: str):
        self.auth_type = auth_type
        super().__init__(f"Authentication type '{auth_type}' is not supported")


class TransportError(RegistryError):
    """Network-level failure: no HTTP status was obtained."""

    code = ErrorCodes.TRANSPORT_ERROR


class ProbeTimeoutError(RegistryError):
    """A probe exceeded its time bound."""

    code = ErrorCodes.TIMEOUT


class ProtocolError(RegistryError):
    """A response was received but held zero usable tool descriptors."""

    code = ErrorCodes.PROTOCOL_ERROR


class NotFoundError(RegistryError):
    """The named server is not in the registry."""

    code = ErrorCodes.NOT_FOUND


class PersistenceError(RegistryError):
    """The backend rejected (or never answered) a CRUD call."""

    code = ErrorCodes.PERSISTENCE_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)
