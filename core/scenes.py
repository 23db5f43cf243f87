"""Scene engine: create, validate and recall the status scenes.

Each status pattern becomes one bridge scene. Colour states are tailored to
every light's capabilities before anything is sent, so the bridge never sees
a field a light cannot accept.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta

import click

from core.bridge import BridgeClient
from core.errors import CapacityExceeded, SceneNotFound, ValidationRejected
from core.capabilities import PRECISE_GAMUT_TYPES
from models.colour import ColourMode, ColourState, PatternTemplate
from models.types import BridgeLimits, LightRef, SceneHandle, SceneRequest, utc_now
from models.utils import report

MAX_SCENE_NAME_LENGTH = 32


def resolve_colour_mode(light: LightRef) -> ColourMode | None:
    """Pick the colour representation for a light.

    xy is preferred when the light reports a precise gamut (type A, B or C
    with its three gamut points); other colour lights get hue/saturation.

    Returns:
        The representation, or None if the light cannot show colour
    """
    if not light.supports_colour:
        return None
    if light.gamut_type in PRECISE_GAMUT_TYPES and light.gamut:
        return ColourMode.XY
    return ColourMode.HUE_SAT


@dataclass
class ScenePattern:
    """A template applied to concrete lights, ready to be stored as a scene."""
    name: str
    template: PatternTemplate
    lights: list[LightRef] = field(default_factory=list)
    states: dict[str, ColourState] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    def to_request(self) -> SceneRequest:
        return {
            'name': self.name,
            'lights': [light.id for light in self.lights],
            'recycle': True,
            'lightstates': {light_id: state.to_lightstate() for light_id, state in self.states.items()},
        }


def build_pattern(name: str, lights: list[LightRef], template: PatternTemplate) -> ScenePattern:
    """Build one colour state per light, dropping lights that cannot show it.

    A dropped light is recorded in ``warnings``; it never fails the pattern.
    The template's effect is only kept for lights that confirm it.
    """
    pattern = ScenePattern(name=name, template=template)

    for light in lights:
        if not light.reachable:
            pattern.warnings.append(f"Light '{light.name}' ({light.id}) is unreachable and was skipped")
            continue
        mode = resolve_colour_mode(light)
        if mode is None:
            pattern.warnings.append(f"Light '{light.name}' ({light.id}) does not support colour and was skipped")
            continue

        effect = template.effect if template.effect and light.supports_effect(template.effect) else None
        pattern.lights.append(light)
        pattern.states[light.id] = template.state_for(mode, effect)

    return pattern


def check_capacity(pattern: ScenePattern, limits: BridgeLimits):
    """Refuse to create a scene the bridge has no room for.

    Raises:
        CapacityExceeded: If no scene slot or not enough light states are free
    """
    if limits.available_scenes < 1:
        raise CapacityExceeded(
            f"The bridge scene table is full ({limits.max_scenes} scenes stored)")
    if limits.available_lightstates < len(pattern.states):
        raise CapacityExceeded(
            f"Scene '{pattern.name}' needs {len(pattern.states)} light states but only "
            f"{limits.available_lightstates} of {limits.max_lightstates} are free")


def validate_scene_name(name: str) -> str:
    if not name or len(name) > MAX_SCENE_NAME_LENGTH:
        raise ValidationRejected(f"Scene name must be 1-{MAX_SCENE_NAME_LENGTH} characters: {name!r}")
    return name


def needs_validation(handle: SceneHandle, interval_hours: float, now: datetime | None = None) -> bool:
    """Return True when the handle has not been verified within the interval."""
    if handle.last_validated is None:
        return True
    now = now or utc_now()
    return now - handle.last_validated >= timedelta(hours=interval_hours)


class SceneEngine:
    """Create, validate and execute status scenes on one bridge.

    One engine instance corresponds to one setup run or status call; it
    creates each pattern at most once.
    """

    def __init__(self, client: BridgeClient, verbose: bool = False):
        self.client = client
        self.verbose = verbose
        self._created: dict[str, SceneHandle] = {}

    def invalidate(self, name: str):
        """Forget a handle so the next create_pattern() call recreates it."""
        self._created.pop(name, None)

    def create_pattern(self, name: str, lights: list[LightRef], template: PatternTemplate,
                       limits: BridgeLimits | None = None,
                       existing: SceneHandle | None = None) -> SceneHandle:
        """Create (or reuse) the scene for a pattern.

        Args:
            name: Scene name on the bridge
            lights: Lights selected for the status display
            template: Colour intent (success/failure)
            limits: Bridge limits from the capability resolver
            existing: Handle from a previous setup, reused if still on the bridge

        Returns:
            Handle of the stored scene

        Raises:
            ValidationRejected: If no selected light can show the pattern
            CapacityExceeded: If the bridge has no room for the scene
        """
        if name in self._created:
            return self._created[name]

        if existing is not None and existing.name == name and self.validate_pattern(existing):
            report(f"Reusing scene '{name}' ({existing.id})", self.verbose)
            self._created[name] = existing
            return existing

        validate_scene_name(name)
        pattern = build_pattern(name, lights, template)
        for warning in pattern.warnings:
            click.secho(f"⚠ {warning}", fg='yellow', err=True)
        if not pattern.states:
            raise ValidationRejected(f"None of the selected lights can display the '{template.pattern}' colour")
        if limits is not None:
            check_capacity(pattern, limits)

        scene_id = self.client.create_scene(pattern.to_request())
        report(f"Created scene '{name}' ({scene_id}) on {len(pattern.lights)} light(s)", self.verbose)

        handle = SceneHandle(id=scene_id, name=name, auto_created=True, last_validated=utc_now())
        self._created[name] = handle
        return handle

    def execute_pattern(self, handle: SceneHandle):
        """Recall the scene on all lights (group 0).

        Recall is idempotent, so transport failures are retried. A scene the
        bridge no longer knows raises SceneNotFound without retrying.
        """
        self.client.recall_scene(handle.id)
        report(f"Recalled scene '{handle.name}' ({handle.id})", self.verbose)

    def validate_pattern(self, handle: SceneHandle) -> bool:
        """Return True if the scene still exists on the bridge.

        Updates ``last_validated`` on success. Errors other than not-found
        (Unauthorized, transport failures) propagate.
        """
        try:
            self.client.scene(handle.id)
        except SceneNotFound:
            report(f"Scene '{handle.name}' ({handle.id}) no longer exists", self.verbose, fg='yellow')
            return False
        handle.last_validated = utc_now()
        return True

    def delete_pattern(self, handle: SceneHandle) -> bool:
        """Delete an auto-created scene; returns False if it was already gone."""
        if not handle.auto_created:
            return False
        try:
            self.client.delete_scene(handle.id)
        except SceneNotFound:
            return False
        self.invalidate(handle.name)
        return True
