"""Top-level flows used by the CLI.

run_setup() chains discovery, authentication, capability resolution and
scene creation; apply_status() recalls a stored scene. Every step depends on
the previous step's output, so both run strictly in sequence.
"""

import time
from dataclasses import replace
from typing import Callable, Protocol

from core.auth import Authenticator
from core.bridge import BridgeClient
from core.capabilities import CapabilityResolver, select_status_lights
from core.discovery import Discovery, ManualDiscovery, default_strategies
from core.errors import ConfigInvalid, SceneNotFound, ValidationRejected
from core.scenes import SceneEngine, needs_validation
from core.transport import RetryPolicy, Transport
from models.colour import TEMPLATES
from models.types import BridgeAddress, LightRef, PersistedState, SceneHandle, Settings, utc_now


class InputProvider(Protocol):
    """Human interaction needed during setup, supplied by the caller."""

    def wait_for_button(self) -> None:
        """Block until the user reports the link button was pressed."""

    def manual_address(self) -> str | None:
        """Ask for a bridge address once automatic discovery has failed."""

    def select_lights(self, lights: list[LightRef]) -> list[LightRef]:
        """Choose which of the usable lights show the status."""

    def report(self, message: str) -> None:
        """Show a progress message."""


def build_transport(settings: Settings, verbose: bool = False,
                    sleep: Callable[[float], None] = time.sleep) -> Transport:
    """Create a Transport configured from persisted settings."""
    policy = RetryPolicy(max_attempts=settings.retry_attempts, delay=settings.retry_delay)
    return Transport(timeout=settings.timeout, policy=policy, sleep=sleep, verbose=verbose)


def run_setup(provider: InputProvider, settings: Settings | None = None,
              existing: PersistedState | None = None, bridge_ip: str | None = None,
              transport: Transport | None = None,
              clock: Callable[[], float] = time.monotonic,
              sleep: Callable[[float], None] = time.sleep,
              verbose: bool = False) -> PersistedState:
    """Configure huestatus from scratch.

    Args:
        provider: Source of human input (button press, light choice, address)
        settings: Timeout and retry settings to use and persist
        existing: Previous configuration; its scenes are reused when they
            still exist on the same bridge
        bridge_ip: Skip automatic discovery and use this address
        transport: Transport to use instead of one built from settings
        clock: Monotonic clock for the link button deadline
        sleep: Sleep function for polling and the discovery window
        verbose: Print progress details

    Returns:
        The state to persist

    Raises:
        HueStatusError: Any discovery, authentication, API or transport
            failure, unchanged
    """
    settings = settings or Settings()
    if transport is None:
        with build_transport(settings, verbose, sleep) as transport:
            return _setup(provider, settings, existing, bridge_ip, transport, clock, sleep, verbose)
    return _setup(provider, settings, existing, bridge_ip, transport, clock, sleep, verbose)


def _setup(provider: InputProvider, settings: Settings, existing: PersistedState | None,
           bridge_ip: str | None, transport: Transport, clock: Callable[[], float],
           sleep: Callable[[float], None], verbose: bool) -> PersistedState:
    # 1. Discovery
    provider.report("Searching for Hue bridge...")
    if bridge_ip:
        strategies = [ManualDiscovery(bridge_ip)]
    else:
        strategies = default_strategies(transport, provider.manual_address,
                                        settings.discovery_window, sleep)
    discovery = Discovery(strategies, transport, verbose)
    address = discovery.discover()
    provider.report(f"Found bridge at {address}")

    # 2. Link button handshake
    client = BridgeClient(address, transport)
    authenticator = Authenticator(client, clock=clock, sleep=sleep, verbose=verbose)
    credential = authenticator.authenticate(provider.wait_for_button)
    client.credential = credential
    provider.report("Authenticated with bridge")

    # 3. Capabilities and light selection
    capabilities = CapabilityResolver(client, verbose).resolve()
    candidates = select_status_lights(capabilities.lights)
    if not candidates:
        raise ValidationRejected("No reachable colour lights were found on the bridge")
    lights = provider.select_lights(candidates)
    if not lights:
        raise ValidationRejected("No lights were selected")

    # 4. Scenes
    reusable = {}
    if existing is not None and same_bridge(existing, address, discovery.bridge_id):
        reusable = existing.patterns

    engine = SceneEngine(client, verbose)
    limits = capabilities.limits
    patterns: dict[str, SceneHandle] = {}
    for pattern, template in TEMPLATES.items():
        previous = reusable.get(pattern)
        handle = engine.create_pattern(template.scene_name, lights, template, limits, previous)
        if handle is not previous:
            # Later capacity checks must account for the scene just stored
            limits = replace(limits, available_scenes=limits.available_scenes - 1,
                             available_lightstates=limits.available_lightstates - len(lights))
        patterns[pattern] = handle
        provider.report(f"Scene '{handle.name}' ready ({handle.id})")

    now = utc_now()
    return PersistedState(
        address=address,
        credential=credential,
        patterns=patterns,
        settings=settings,
        bridge_id=discovery.bridge_id,
        created_at=now,
        last_verified=now,
    )


def same_bridge(state: PersistedState, address: BridgeAddress, bridge_id: str | None) -> bool:
    if state.bridge_id and bridge_id:
        return state.bridge_id == bridge_id
    return state.address == address


def apply_status(pattern: str, state: PersistedState, transport: Transport | None = None,
                 verbose: bool = False):
    """Show a status on the lights by recalling its stored scene.

    The scene is only re-validated when it has not been verified within the
    configured interval. When that happens the handle's timestamp changes and
    ``state.dirty`` is set so the caller can persist it.

    Raises:
        ConfigInvalid: If the state has no scene for this pattern
        SceneNotFound: If the scene no longer exists on the bridge
        Unauthorized: If the bridge rejects the stored credential
        TransportError: If the bridge cannot be reached after retries
    """
    if pattern not in TEMPLATES:
        raise ConfigInvalid(f"Unknown status pattern: {pattern}")
    handle = state.handle(pattern)
    if handle is None:
        raise ConfigInvalid(f"No scene configured for '{pattern}'")

    if transport is None:
        with build_transport(state.settings, verbose) as transport:
            _recall(handle, state, transport, verbose)
    else:
        _recall(handle, state, transport, verbose)


def _recall(handle: SceneHandle, state: PersistedState, transport: Transport, verbose: bool):
    client = BridgeClient(state.address, transport, state.credential)
    engine = SceneEngine(client, verbose)

    if needs_validation(handle, state.settings.scene_validation_interval_hours):
        if not engine.validate_pattern(handle):
            raise SceneNotFound(f"Scene '{handle.name}' ({handle.id}) was not found on the bridge")
        state.dirty = True

    engine.execute_pattern(handle)
