"""Colour representations and status templates.

A light is driven either by hue/saturation or by CIE xy coordinates, never
both. ColourMode is the closed set of representations and ColourState
enforces that exactly one of them is populated.
"""

from dataclasses import dataclass
from enum import Enum

from core.errors import ValidationRejected

MIN_BRIGHTNESS = 1
MAX_BRIGHTNESS = 254
MAX_HUE = 65535
MAX_SATURATION = 254

# Effects the bridge accepts on a lightstate
KNOWN_EFFECTS = ('none', 'colorloop')

SUCCESS_SCENE_NAME = 'huestatus-success'
FAILURE_SCENE_NAME = 'huestatus-failure'


class ColourMode(Enum):
    HUE_SAT = 'hs'
    XY = 'xy'


@dataclass(frozen=True)
class ColourState:
    """Desired state of one light.

    Raises:
        ValidationRejected: If both or neither colour representations are
            given, or a value is out of range
    """
    on: bool = True
    brightness: int = MAX_BRIGHTNESS
    hue: int | None = None
    saturation: int | None = None
    xy: tuple[float, float] | None = None
    effect: str | None = None

    def __post_init__(self):
        has_hue_sat = self.hue is not None or self.saturation is not None
        has_xy = self.xy is not None

        if has_hue_sat and has_xy:
            raise ValidationRejected("A colour state cannot mix hue/saturation with xy")
        if not has_hue_sat and not has_xy:
            raise ValidationRejected("A colour state needs either hue/saturation or xy")
        if has_hue_sat and (self.hue is None or self.saturation is None):
            raise ValidationRejected("Hue and saturation must be given together")

        if not MIN_BRIGHTNESS <= self.brightness <= MAX_BRIGHTNESS:
            raise ValidationRejected(f"Brightness {self.brightness} is outside 1-254")
        if has_hue_sat:
            if not 0 <= self.hue <= MAX_HUE:
                raise ValidationRejected(f"Hue {self.hue} is outside 0-65535")
            if not 0 <= self.saturation <= MAX_SATURATION:
                raise ValidationRejected(f"Saturation {self.saturation} is outside 0-254")
        else:
            if len(self.xy) != 2 or not all(0.0 <= v <= 1.0 for v in self.xy):
                raise ValidationRejected(f"xy {self.xy} must be two values between 0 and 1")
        if self.effect is not None and self.effect not in KNOWN_EFFECTS:
            raise ValidationRejected(f"Unknown effect: {self.effect}")

    @property
    def mode(self) -> ColourMode:
        return ColourMode.XY if self.xy is not None else ColourMode.HUE_SAT

    def to_lightstate(self) -> dict:
        """Serialise to the bridge's lightstate format.

        Only the active representation is emitted and ``effect`` is omitted
        entirely when unset.
        """
        state = {'on': self.on, 'bri': self.brightness}
        if self.mode is ColourMode.XY:
            state['xy'] = [round(self.xy[0], 4), round(self.xy[1], 4)]
        else:
            state['hue'] = self.hue
            state['sat'] = self.saturation
        if self.effect is not None:
            state['effect'] = self.effect
        return state


@dataclass(frozen=True)
class PatternTemplate:
    """Colour intent of a status pattern, independent of any light."""
    pattern: str
    scene_name: str
    hue: int
    saturation: int
    xy: tuple[float, float]
    brightness: int = MAX_BRIGHTNESS
    effect: str | None = None

    def state_for(self, mode: ColourMode, effect: str | None = None) -> ColourState:
        """Build the ColourState for a light using the given representation."""
        if mode is ColourMode.XY:
            return ColourState(brightness=self.brightness, xy=self.xy, effect=effect)
        return ColourState(brightness=self.brightness, hue=self.hue,
                           saturation=self.saturation, effect=effect)


SUCCESS_TEMPLATE = PatternTemplate(
    pattern='success',
    scene_name=SUCCESS_SCENE_NAME,
    hue=21845,
    saturation=254,
    xy=(0.409, 0.518),
)

FAILURE_TEMPLATE = PatternTemplate(
    pattern='failure',
    scene_name=FAILURE_SCENE_NAME,
    hue=0,
    saturation=254,
    xy=(0.675, 0.322),
)

TEMPLATES = {
    'success': SUCCESS_TEMPLATE,
    'failure': FAILURE_TEMPLATE,
}
