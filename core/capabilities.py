"""Capability resolution.

Queries the bridge for its light inventory and storage limits and reduces
each light descriptor to a LightRef. Results are snapshots for the current
run only and are never written to the configuration.
"""

from core.bridge import BridgeClient
from models.types import BridgeCapabilities, BridgeLimits, LightRef
from models.utils import report

PRECISE_GAMUT_TYPES = ('A', 'B', 'C')


def _parse_gamut(value) -> tuple[tuple[float, float], ...] | None:
    if not isinstance(value, list) or len(value) != 3:
        return None
    try:
        return tuple((float(point[0]), float(point[1])) for point in value)
    except (TypeError, ValueError, IndexError):
        return None


def light_from_descriptor(light_id: str, descriptor: dict) -> LightRef:
    """Reduce a v1 light descriptor to a LightRef.

    Colour support is read from capabilities.control (colorgamut/ct) with the
    state fields as a fallback for older firmware. An effect is only listed
    when the light reports an effect field and can show colour.

    Args:
        light_id: Key of the light in the /lights map
        descriptor: The light object returned by the bridge

    Returns:
        The capability snapshot
    """
    state = descriptor.get('state') or {}
    control = (descriptor.get('capabilities') or {}).get('control') or {}

    gamut = _parse_gamut(control.get('colorgamut'))
    gamut_type = control.get('colorgamuttype')
    supports_colour = gamut is not None or gamut_type is not None or (
        'hue' in state and 'sat' in state) or 'xy' in state
    supports_brightness = 'bri' in state or 'mindimlevel' in control
    supports_ct = 'ct' in control or 'ct' in state

    effects = ()
    if 'effect' in state and supports_colour:
        effects = ('none', 'colorloop')

    return LightRef(
        id=str(light_id),
        name=str(descriptor.get('name') or f"Light {light_id}"),
        reachable=bool(state.get('reachable', True)),
        supports_colour=supports_colour,
        supports_brightness=supports_brightness,
        supports_colour_temperature=supports_ct,
        gamut_type=gamut_type,
        gamut=gamut,
        effects=effects,
    )


def limits_from_capabilities(capabilities: dict) -> BridgeLimits:
    """Read scene storage limits, falling back to the documented maximums."""
    defaults = BridgeLimits()
    scenes = capabilities.get('scenes') or {}
    lightstates = scenes.get('lightstates') or {}
    max_scenes = scenes.get('total', defaults.max_scenes)
    max_lightstates = lightstates.get('total', defaults.max_lightstates)
    return BridgeLimits(
        max_scenes=max_scenes,
        available_scenes=scenes.get('available', max_scenes),
        max_lightstates=max_lightstates,
        available_lightstates=lightstates.get('available', max_lightstates),
    )


def is_suitable(light: LightRef) -> bool:
    """A light can show a status colour when it is reachable and supports colour."""
    return light.reachable and light.supports_colour


def select_status_lights(lights: list[LightRef]) -> list[LightRef]:
    """Default light selection: every reachable colour light."""
    return [light for light in lights if is_suitable(light)]


class CapabilityResolver:
    """Fetch light and bridge capabilities.

    Unauthorized from the bridge propagates unchanged so the caller can ask
    for a new link button handshake; it is never retried here.
    """

    def __init__(self, client: BridgeClient, verbose: bool = False):
        self.client = client
        self.verbose = verbose

    def resolve(self) -> BridgeCapabilities:
        lights = [
            light_from_descriptor(light_id, descriptor)
            for light_id, descriptor in self.client.lights().items()
            if isinstance(descriptor, dict)
        ]
        lights.sort(key=lambda light: (len(light.id), light.id))
        limits = limits_from_capabilities(self.client.capabilities())

        report(f"Found {len(lights)} light(s), {sum(is_suitable(light) for light in lights)} usable for status; "
               f"{limits.available_scenes}/{limits.max_scenes} scene slots free", self.verbose)
        return BridgeCapabilities(lights=lights, limits=limits)
