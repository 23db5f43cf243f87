"""Configuration file management.

This module handles:
- Locating the configuration file (~/.huestatus/config.json by default)
- Loading/saving the persisted state with owner-only permissions
- Migrating older configuration versions
- Validating loaded values and applying environment overrides
"""

import ipaddress
import json
import os
import re
import shutil
from dataclasses import replace
from pathlib import Path

from core.errors import ConfigInvalid, ConfigNotFound, StorageError
from models.types import CONFIG_VERSION, PATTERN_NAMES, PersistedState, Settings, utc_now
from models.utils import truncate_for_display

# Configuration file paths
CONFIG_DIR = Path.home() / '.huestatus'
USER_CONFIG_FILE = CONFIG_DIR / 'config.json'
BACKUP_SUFFIX = '.backup'

MAX_PATH_LENGTH = 4096

TIMEOUT_RANGE = (1, 300)
RETRY_ATTEMPTS_RANGE = (1, 10)
RETRY_DELAY_RANGE = (0, 60)

MIN_CREDENTIAL_LENGTH = 10
MAX_CREDENTIAL_LENGTH = 100
MAX_SCENE_NAME_LENGTH = 32
RESERVED_SCENE_PREFIXES = ('hue_', 'Hue_')

CREDENTIAL_PATTERN = re.compile(r'^[A-Za-z0-9-]+$')
HOSTNAME_PATTERN = re.compile(r'^(?=.{1,253}$)[A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?'
                              r'(\.[A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?)*$')

# Environment variables that override file values
ENV_CONFIG = 'HUESTATUS_CONFIG'
ENV_BRIDGE_IP = 'HUESTATUS_BRIDGE_IP'
ENV_TIMEOUT = 'HUESTATUS_TIMEOUT'
ENV_RETRY_ATTEMPTS = 'HUESTATUS_RETRY_ATTEMPTS'
ENV_RETRY_DELAY = 'HUESTATUS_RETRY_DELAY'
ENV_VERBOSE = 'HUESTATUS_VERBOSE'
ENV_QUIET = 'HUESTATUS_QUIET'


def validate_path_length(path: Path) -> Path:
    """Reject paths too long to be a real configuration location.

    Raises:
        ConfigInvalid: If the path exceeds MAX_PATH_LENGTH characters
    """
    if len(str(path)) > MAX_PATH_LENGTH:
        raise ConfigInvalid(f"Configuration path is too long ({len(str(path))} characters): "
                            f"{truncate_for_display(path)}")
    return path


def config_path(override: str | Path | None = None) -> Path:
    """Resolve the configuration file: explicit override, then $HUESTATUS_CONFIG, then default."""
    value = override or os.getenv(ENV_CONFIG)
    path = Path(value).expanduser() if value else USER_CONFIG_FILE
    return validate_path_length(path)


def env_flag(name: str) -> bool:
    return os.getenv(name, '').strip().lower() in ('1', 'true', 'yes', 'on')


def _env_number(name: str, cast):
    value = os.getenv(name)
    if value is None or value.strip() == '':
        return None
    try:
        return cast(value)
    except ValueError:
        raise ConfigInvalid(f"Invalid value for {name}: {truncate_for_display(value, 40)}") from None


def apply_env_overrides(settings: Settings) -> Settings:
    """Return settings with HUESTATUS_TIMEOUT / _RETRY_ATTEMPTS / _RETRY_DELAY applied."""
    overrides = {}
    timeout = _env_number(ENV_TIMEOUT, float)
    if timeout is not None:
        overrides['timeout'] = timeout
    attempts = _env_number(ENV_RETRY_ATTEMPTS, int)
    if attempts is not None:
        overrides['retry_attempts'] = attempts
    delay = _env_number(ENV_RETRY_DELAY, float)
    if delay is not None:
        overrides['retry_delay'] = delay
    return replace(settings, **overrides) if overrides else settings


def migrate(data: dict) -> dict:
    """Upgrade configuration data from older versions to CONFIG_VERSION.

    1.0 had no per-scene auto_created flag and 1.1 had no validation
    timestamps; both are filled in.
    """
    version = str(data.get('version', '1.0'))
    if version == CONFIG_VERSION:
        return data
    if version not in ('1.0', '1.1'):
        raise ConfigInvalid(f"Unsupported configuration version: {truncate_for_display(version, 20)}")

    migrated = dict(data)
    scenes = {}
    for name, scene in (data.get('scenes') or {}).items():
        scene = dict(scene)
        scene.setdefault('auto_created', True)
        scene.setdefault('last_validated', None)
        scenes[name] = scene
    migrated['scenes'] = scenes
    migrated['version'] = CONFIG_VERSION
    return migrated


def validation_issues(state: PersistedState) -> list[str]:
    """Check a loaded state and describe every problem found."""
    issues = []

    host = state.address.host
    try:
        ipaddress.ip_address(host)
    except ValueError:
        if not HOSTNAME_PATTERN.match(host):
            issues.append(f"Bridge address is not a valid IP address or hostname: {truncate_for_display(host, 40)}")
    if state.address.port is not None and not 0 < state.address.port < 65536:
        issues.append(f"Bridge port {state.address.port} is out of range")

    credential = state.credential
    if not MIN_CREDENTIAL_LENGTH <= len(credential) <= MAX_CREDENTIAL_LENGTH:
        issues.append(f"Application key must be {MIN_CREDENTIAL_LENGTH}-{MAX_CREDENTIAL_LENGTH} characters")
    elif not CREDENTIAL_PATTERN.match(credential):
        issues.append("Application key may only contain letters, digits and '-'")

    for pattern in PATTERN_NAMES:
        handle = state.handle(pattern)
        if handle is None:
            issues.append(f"No '{pattern}' scene configured")
            continue
        if not handle.id:
            issues.append(f"The '{pattern}' scene has no id")
        name = handle.name
        if not 1 <= len(name) <= MAX_SCENE_NAME_LENGTH:
            issues.append(f"Scene name for '{pattern}' must be 1-{MAX_SCENE_NAME_LENGTH} characters")
        if any(char in name for char in '\n\r\t'):
            issues.append(f"Scene name for '{pattern}' contains control characters")
        if name.startswith(RESERVED_SCENE_PREFIXES):
            issues.append(f"Scene name for '{pattern}' uses a reserved prefix")

    success, failure = state.handle('success'), state.handle('failure')
    if success and failure:
        if success.id == failure.id:
            issues.append("Success and failure scenes have the same id")
        if success.name == failure.name:
            issues.append("Success and failure scenes have the same name")

    settings = state.settings
    if not TIMEOUT_RANGE[0] <= settings.timeout <= TIMEOUT_RANGE[1]:
        issues.append(f"Timeout must be between {TIMEOUT_RANGE[0]} and {TIMEOUT_RANGE[1]} seconds")
    if not RETRY_ATTEMPTS_RANGE[0] <= settings.retry_attempts <= RETRY_ATTEMPTS_RANGE[1]:
        issues.append(f"Retry attempts must be between {RETRY_ATTEMPTS_RANGE[0]} and {RETRY_ATTEMPTS_RANGE[1]}")
    if not RETRY_DELAY_RANGE[0] <= settings.retry_delay <= RETRY_DELAY_RANGE[1]:
        issues.append(f"Retry delay must be between {RETRY_DELAY_RANGE[0]} and {RETRY_DELAY_RANGE[1]} seconds")
    if settings.scene_validation_interval_hours < 0:
        issues.append("Scene validation interval cannot be negative")

    return issues


def validate_state(state: PersistedState) -> PersistedState:
    """Raise ConfigInvalid listing every problem, or return the state unchanged."""
    issues = validation_issues(state)
    if issues:
        raise ConfigInvalid("Invalid configuration: " + '; '.join(issues))
    return state


def load_state(path: Path | None = None) -> PersistedState:
    """Load and validate the persisted state.

    Args:
        path: Configuration file (defaults to config_path())

    Returns:
        The validated state with environment overrides applied

    Raises:
        ConfigNotFound: If the file does not exist
        ConfigInvalid: If it cannot be parsed or fails validation
        StorageError: If it cannot be read
    """
    path = path or config_path()
    if not path.exists():
        raise ConfigNotFound(str(path))

    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigInvalid(f"Configuration file {truncate_for_display(path)} is not valid JSON: {e}") from e
    except OSError as e:
        raise StorageError(f"Failed to read {truncate_for_display(path)}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigInvalid("Configuration file must contain a JSON object")

    try:
        state = PersistedState.from_dict(migrate(data))
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise ConfigInvalid(f"Configuration file is incomplete or malformed: {e!r}") from e

    bridge_ip = os.getenv(ENV_BRIDGE_IP)
    if bridge_ip:
        state.address = replace(state.address, host=bridge_ip.strip())
    state.settings = apply_env_overrides(state.settings)
    return validate_state(state)


def backup_config(path: Path) -> Path | None:
    """Copy the current configuration aside before it is overwritten."""
    if not path.exists():
        return None
    backup = path.with_name(path.name + BACKUP_SUFFIX)
    try:
        shutil.copy2(path, backup)
        os.chmod(backup, 0o600)
    except OSError as e:
        raise StorageError(f"Failed to back up {truncate_for_display(path)}: {e}") from e
    return backup


def save_state(state: PersistedState, path: Path | None = None) -> Path:
    """Write the state to disk with permissions 600 (user read/write only).

    Raises:
        StorageError: If the file cannot be written
    """
    path = path or config_path()
    state.last_verified = utc_now() if state.dirty else state.last_verified

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(state.to_dict(), f, indent=2)
        os.chmod(path, 0o600)
    except OSError as e:
        raise StorageError(f"Failed to save configuration to {truncate_for_display(path)}: {e}") from e

    state.dirty = False
    return path
