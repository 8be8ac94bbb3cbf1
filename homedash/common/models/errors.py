"""Custom errors and exceptions."""


class HomeDashError(Exception):
    """Custom Exception for all errors."""

    error_code = 0

    def __init_subclass__(cls, *args, **kwargs) -> None:  # type: ignore[no-untyped-def]
        """Register a subclass."""
        super().__init_subclass__(*args, **kwargs)
        ERROR_MAP[cls.error_code] = cls


# mapping from error_code to Exception class
ERROR_MAP: dict[int, type] = {0: HomeDashError, 999: HomeDashError}


class ProviderUnavailableError(HomeDashError):
    """Error raised when the audio provider can not be reached or answers garbage."""

    error_code = 1


class ProviderConnectionError(ProviderUnavailableError):
    """Error raised when the connection to the audio provider is refused or unresolvable."""

    error_code = 2


class InvalidDataError(HomeDashError):
    """Error raised when an object has invalid data."""

    error_code = 3


class SetupFailedError(HomeDashError):
    """Error raised when setup of a controller failed."""

    error_code = 5


class CompanionStartError(SetupFailedError):
    """Error raised when the companion process could not be (re)started."""

    error_code = 6


class PlayerUnavailableError(HomeDashError):
    """Error raised when trying to access non-existing or unavailable device or group."""

    error_code = 10


class DeviceNotFoundError(PlayerUnavailableError):
    """Error raised when a device id is not part of the current topology."""

    error_code = 14


class GroupNotFoundError(PlayerUnavailableError):
    """Error raised when a group id is not part of the current topology."""

    error_code = 15


class PlayerCommandFailed(HomeDashError):
    """Error raised when a command to a device failed execution."""

    error_code = 11

    def __init__(self, message: str, status_code: int | None = None) -> None:
        """Initialize the error with the (optional) status code of the provider."""
        super().__init__(message)
        self.status_code = status_code


class InvalidCommand(HomeDashError):
    """Error raised when an unknown or malformed command is requested on the API."""

    error_code = 12


class GroupFormationFailed(PlayerCommandFailed):
    """Error raised when one of the steps of a group formation failed."""

    error_code = 16
