"""Type definitions for huestatus.

This module provides the dataclasses passed between the core components and
TypedDict definitions for the JSON shapes exchanged with the bridge and the
discovery service.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TypedDict

# Bridges serve the v1 API over HTTPS on this port
BRIDGE_TLS_PORT = 443

# Current persisted configuration format
CONFIG_VERSION = '1.2'

DEFAULT_TIMEOUT = 10
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 1
DEFAULT_VALIDATION_INTERVAL_HOURS = 24
DEFAULT_DISCOVERY_WINDOW = 3.0

PATTERN_NAMES = ('success', 'failure')


class DiscoveredBridge(TypedDict, total=False):
    """Bridge entry returned by the remote discovery service."""
    id: str
    internalipaddress: str
    port: int


class SceneRequest(TypedDict):
    """Body of a scene creation request."""
    name: str
    lights: list[str]
    recycle: bool
    lightstates: dict[str, dict]


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value) -> datetime | None:
    """Parse a stored ISO timestamp; one without a timezone is taken as UTC."""
    if not value:
        return None
    if not isinstance(value, str):
        raise ValueError(f"Timestamp must be a string, got {value!r}")
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _typed(data: dict, key: str, default, kind):
    value = data.get(key, default)
    # bool is an int subclass but never a valid count or duration
    if isinstance(value, bool) or not isinstance(value, kind):
        raise ValueError(f"'{key}' has the wrong type: {value!r}")
    return value


@dataclass(frozen=True)
class BridgeAddress:
    """Network location of a bridge, immutable once accepted."""
    host: str
    port: int | None = None

    @property
    def url_host(self) -> str:
        """Host as it appears in a URL; IPv6 literals are bracketed."""
        if ':' in self.host and not self.host.startswith('['):
            return f"[{self.host}]"
        return self.host

    @property
    def base_url(self) -> str:
        """Root URL for API requests (without the /api suffix)."""
        scheme = 'https' if self.port == BRIDGE_TLS_PORT else 'http'
        if self.port and self.port not in (80, BRIDGE_TLS_PORT):
            return f"{scheme}://{self.url_host}:{self.port}"
        return f"{scheme}://{self.url_host}"

    def __str__(self) -> str:
        if self.port and self.port not in (80, BRIDGE_TLS_PORT):
            return f"{self.url_host}:{self.port}"
        return self.host


@dataclass(frozen=True)
class LightRef:
    """Capability snapshot of a single light.

    Built fresh from the bridge every time capabilities are resolved and never
    persisted between invocations.
    """
    id: str
    name: str
    reachable: bool = True
    supports_colour: bool = False
    supports_brightness: bool = False
    supports_colour_temperature: bool = False
    gamut_type: str | None = None
    gamut: tuple[tuple[float, float], ...] | None = None
    effects: tuple[str, ...] = ()

    def supports_effect(self, effect: str) -> bool:
        """Return True only when the light explicitly confirms the effect."""
        return effect in self.effects


@dataclass(frozen=True)
class BridgeLimits:
    """Bridge-wide storage limits reported by the capabilities endpoint."""
    max_scenes: int = 200
    available_scenes: int = 200
    max_lightstates: int = 2048
    available_lightstates: int = 2048


@dataclass(frozen=True)
class BridgeCapabilities:
    """Result of a capability query: light inventory plus storage limits."""
    lights: list[LightRef]
    limits: BridgeLimits

    @property
    def colour_lights(self) -> list[LightRef]:
        return [light for light in self.lights if light.supports_colour]


@dataclass
class SceneHandle:
    """Bridge-issued scene identifier stored for reuse."""
    id: str
    name: str
    auto_created: bool = True
    last_validated: datetime | None = None

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'auto_created': self.auto_created,
            'last_validated': self.last_validated.isoformat() if self.last_validated else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'SceneHandle':
        return cls(
            id=str(data['id']),
            name=str(data['name']),
            auto_created=bool(data.get('auto_created', True)),
            last_validated=parse_timestamp(data.get('last_validated')),
        )


@dataclass
class Settings:
    """Timeout, retry and validation settings carried in the persisted state."""
    timeout: float = DEFAULT_TIMEOUT
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    retry_delay: float = DEFAULT_RETRY_DELAY
    scene_validation_interval_hours: float = DEFAULT_VALIDATION_INTERVAL_HOURS
    discovery_window: float = DEFAULT_DISCOVERY_WINDOW

    def to_dict(self) -> dict:
        return {
            'timeout_seconds': self.timeout,
            'retry_attempts': self.retry_attempts,
            'retry_delay_seconds': self.retry_delay,
            'scene_validation_interval_hours': self.scene_validation_interval_hours,
            'discovery_window_seconds': self.discovery_window,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Settings':
        return cls(
            timeout=_typed(data, 'timeout_seconds', DEFAULT_TIMEOUT, (int, float)),
            retry_attempts=_typed(data, 'retry_attempts', DEFAULT_RETRY_ATTEMPTS, int),
            retry_delay=_typed(data, 'retry_delay_seconds', DEFAULT_RETRY_DELAY, (int, float)),
            scene_validation_interval_hours=_typed(
                data, 'scene_validation_interval_hours', DEFAULT_VALIDATION_INTERVAL_HOURS, (int, float)),
            discovery_window=_typed(data, 'discovery_window_seconds', DEFAULT_DISCOVERY_WINDOW, (int, float)),
        )


@dataclass
class PersistedState:
    """Everything setup produces and status invocations consume.

    The core treats this purely as data; reading and writing the file is
    handled by core.config.
    """
    address: BridgeAddress
    credential: str
    patterns: dict[str, SceneHandle]
    settings: Settings = field(default_factory=Settings)
    bridge_id: str | None = None
    version: str = CONFIG_VERSION
    created_at: datetime = field(default_factory=utc_now)
    last_verified: datetime = field(default_factory=utc_now)
    # Set when a status call refreshed a handle and the file should be rewritten
    dirty: bool = field(default=False, compare=False)

    def handle(self, pattern: str) -> SceneHandle | None:
        return self.patterns.get(pattern)

    def to_dict(self) -> dict:
        return {
            'version': self.version,
            'bridge': {
                'ip': self.address.host,
                'port': self.address.port,
                'id': self.bridge_id,
                'application_key': self.credential,
                'last_verified': self.last_verified.isoformat(),
            },
            'scenes': {name: handle.to_dict() for name, handle in self.patterns.items()},
            'settings': self.settings.to_dict(),
            'created_at': self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'PersistedState':
        bridge = data['bridge']
        port = bridge.get('port')
        if port is not None:
            port = _typed(bridge, 'port', None, int)
        return cls(
            address=BridgeAddress(_typed(bridge, 'ip', None, str), port),
            credential=_typed(bridge, 'application_key', None, str),
            patterns={
                name: SceneHandle.from_dict(handle)
                for name, handle in _typed(data, 'scenes', {}, dict).items()
            },
            settings=Settings.from_dict(_typed(data, 'settings', {}, dict)),
            bridge_id=bridge.get('id'),
            version=data.get('version', CONFIG_VERSION),
            created_at=parse_timestamp(data.get('created_at')) or utc_now(),
            last_verified=parse_timestamp(bridge.get('last_verified')) or utc_now(),
        )
