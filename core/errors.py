"""Exception taxonomy for huestatus.

Every failure the core can produce is a HueStatusError subclass carrying a
user-facing message, a remediation hint and the process exit code the CLI
should use. Nothing in the core returns None to signal failure.
"""

from models.utils import truncate_for_display

EXIT_CONFIG = 1
EXIT_NETWORK = 2
EXIT_AUTH = 3
EXIT_SCENE = 4
EXIT_STORAGE = 5
EXIT_OTHER = 6

# Bridge v1 error types
ERROR_UNAUTHORIZED = 1
ERROR_RESOURCE_NOT_AVAILABLE = 3
ERROR_INVALID_VALUE = 7
ERROR_TOO_MANY_ITEMS = 11
ERROR_LINK_BUTTON_NOT_PRESSED = 101
ERROR_SCENE_TABLE_FULL = 301

SETUP_HINT = "Run 'huestatus setup' to repair the configuration."


class HueStatusError(Exception):
    """Base class for all huestatus errors."""

    exit_code = EXIT_OTHER
    hint: str | None = None

    def __init__(self, message: str, hint: str | None = None):
        super().__init__(message)
        self.message = message
        if hint is not None:
            self.hint = hint


# Configuration

class ConfigError(HueStatusError):
    exit_code = EXIT_CONFIG


class ConfigNotFound(ConfigError):
    hint = "Run 'huestatus setup' to configure your bridge and scenes."

    def __init__(self, path: str):
        super().__init__(f"No configuration found at {truncate_for_display(path)}")
        self.path = path


class ConfigInvalid(ConfigError):
    hint = SETUP_HINT


class StorageError(HueStatusError):
    """Reading or writing the configuration file failed."""
    exit_code = EXIT_STORAGE
    hint = "Check the permissions of the configuration directory."


# Transport

class TransportError(HueStatusError):
    exit_code = EXIT_NETWORK
    hint = "Check your network connection, or raise the limit with --timeout <seconds>."

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message)
        self.url = url


class Unreachable(TransportError):
    """No connection could be established (refused, no route, DNS)."""
    hint = "Ensure the bridge is powered on and on the same network as this machine."


class Timeout(TransportError):
    """The request did not complete within the configured timeout."""


class MalformedResponse(TransportError):
    """A response arrived but its body is not a protocol envelope."""
    hint = "Verify that the configured address belongs to a Hue bridge."


# Discovery

class DiscoveryError(HueStatusError):
    exit_code = EXIT_NETWORK


class AllMethodsFailed(DiscoveryError):
    hint = "Enter the bridge IP manually with 'huestatus setup --bridge-ip <address>'."

    def __init__(self, reasons: dict[str, str]):
        detail = '; '.join(f"{name}: {reason}" for name, reason in reasons.items())
        super().__init__(f"No Hue bridge found ({truncate_for_display(detail, 200)})")
        self.reasons = reasons


# Authentication

class AuthError(HueStatusError):
    exit_code = EXIT_AUTH
    hint = "Run 'huestatus setup' again and press the link button when prompted."


class AuthTimedOut(AuthError):
    def __init__(self, elapsed: float):
        super().__init__(f"Link button was not confirmed within {elapsed:.0f} seconds")
        self.elapsed = elapsed


class AuthRejected(AuthError):
    pass


class LinkButtonNotPressed(AuthError):
    """Error 101, expected while waiting for the button and never terminal."""


class InvalidTransition(AuthError):
    hint = None


# Bridge API

class ApiError(HueStatusError):
    """An error envelope returned by the bridge."""

    def __init__(self, message: str, error_type: int | None = None, address: str | None = None,
                 hint: str | None = None):
        super().__init__(message, hint)
        self.error_type = error_type
        self.address = address


class Unauthorized(ApiError):
    exit_code = EXIT_AUTH
    hint = "The bridge no longer accepts the stored credential. " + SETUP_HINT


class SceneNotFound(ApiError):
    exit_code = EXIT_SCENE
    hint = ("The scene was removed from the bridge. Run 'huestatus setup' to recreate it, "
            "or 'huestatus setup --force' to start over.")


class ValidationRejected(ApiError):
    exit_code = EXIT_SCENE
    hint = SETUP_HINT


class CapacityExceeded(ApiError):
    exit_code = EXIT_SCENE
    hint = "Delete unused scenes with the Hue app to free bridge storage, then run setup again."


def error_from_envelope(error: dict) -> HueStatusError:
    """Map a bridge error envelope to the matching ApiError subclass.

    Args:
        error: The inner dict of an ``{"error": {...}}`` envelope entry

    Returns:
        The exception instance to raise (an ApiError, or LinkButtonNotPressed)
    """
    error_type = error.get('type')
    address = str(error.get('address', ''))
    description = truncate_for_display(str(error.get('description', 'unknown error')), 200)
    message = f"Bridge error {error_type}: {description}"

    if error_type == ERROR_UNAUTHORIZED:
        return Unauthorized(message, error_type, address)
    if error_type == ERROR_LINK_BUTTON_NOT_PRESSED:
        return LinkButtonNotPressed(message)
    if error_type == ERROR_RESOURCE_NOT_AVAILABLE and '/scenes' in address:
        return SceneNotFound(message, error_type, address)
    if error_type == ERROR_INVALID_VALUE:
        # Recalling a scene id the bridge does not know is reported as an invalid value
        if address.endswith('/scene'):
            return SceneNotFound(message, error_type, address)
        return ValidationRejected(message, error_type, address)
    if error_type in (ERROR_TOO_MANY_ITEMS, ERROR_SCENE_TABLE_FULL):
        return CapacityExceeded(message, error_type, address)
    return ApiError(message, error_type, address)


def format_error(error: HueStatusError) -> str:
    """Render an error for display on stderr."""
    return truncate_for_display(error.message, 500)
