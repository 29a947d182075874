from fastapi import status


class AccountError(Exception):
    """Base class for failures surfaced to the administrator who initiated an action."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Account operation failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AccountError):
    """Caller input failed a local precondition. Never reaches the identity provider."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request."


class ProvisioningError(AccountError):
    """The identity provider rejected the request. Carries the provider message verbatim."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "The identity provider rejected the request."


class IncompleteProviderResponse(ProvisioningError):
    """The identity provider accepted the request but returned no usable user record."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "User could not be created."


class ConfigurationError(AccountError):
    """A required deployment secret or setting is absent."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Server configuration error."


class AccountNotFound(AccountError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "User not found."


class VersionConflict(AccountError):
    """The stored profile changed since the caller last read it."""

    status_code = status.HTTP_409_CONFLICT
    default_message = "User was modified by someone else. Reload and try again."
