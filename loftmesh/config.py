"""
Default parameters for the lathe mesh engine.

Edit the CONFIG block below to change what a fresh session starts with.
Everything else reads these values through LatheParams.
"""

from dataclasses import dataclass, replace, fields
from enum import Enum

# ──────────────────────────────────────────────────────────────────────────────
# CONFIG  ← edit these values
# ──────────────────────────────────────────────────────────────────────────────

# Tessellation.  Rings run along the revolution axis, segments around it.
# 300 × 300 gives smooth prints; 40 × 48 is plenty for a quick preview.
RINGS = 300
SEGMENTS = 300

# Smallest grid that still closes into a solid.
MIN_RINGS = 2
MIN_SEGMENTS = 3

# Nominal radius of a new profile (world units).  Also the radius returned
# when the anchors are out of height order.
BASE_RADIUS = 2.0

# Total height along the revolution axis (world units).
HEIGHT = 5.0

# Twist of the top ring relative to the bottom ring, in degrees.
TWIST_DEG = 0.0

# Radius multiplier reached at the top ring.  1.0 = no taper.
TAPER = 1.0

# No vertex may come closer than this to the axis.
MIN_RADIUS = 0.1

# Number of anchors in a new profile.
DEFAULT_ANCHOR_COUNT = 5

# Length of the handles on a new / inserted anchor.
DEFAULT_HANDLE_LENGTH = 0.1

# Bisection search for the Bézier parameter at a given height.
BISECTION_ITERATIONS = 20
BISECTION_TOLERANCE = 1e-4

# ── Displacement ──────────────────────────────────────────────────────────────
# displacement = red_channel * DISPLACEMENT_SCALE + DISPLACEMENT_BIAS
DISPLACEMENT_SCALE = 0.5
DISPLACEMENT_BIAS = -0.1

# Direction vertices move in: "vertex", "face" or "horizontal".
NORMAL_MODE = "horizontal"

# Fade displacement out near the bottom / top of the body.
# Zone sizes are fractions of the total height, power shapes the curve
# (1 = linear, 2 = quadratic, ...).
FALLOFF_ENABLED = True
FALLOFF_TOP = 0.2
FALLOFF_BOTTOM = 0.2
FALLOFF_POWER = 2.0
# The two zones together may cover at most this much of the height; a
# larger sum is taken off the top zone.
FALLOFF_MAX_TOTAL = 0.95

# ── Smoothing ─────────────────────────────────────────────────────────────────
# Passes applied to the bare lathe grid (works without displacement).
GEOMETRY_SMOOTHING = 5
# Passes applied after displacement.
SMOOTHING_PASSES = 5
ENABLE_SMOOTHING = True
# Displacement smoothing only kicks in above this |scale|.
SMOOTHING_MIN_SCALE = 0.01

# ── Texture ───────────────────────────────────────────────────────────────────
TEXTURE_REPEAT_U = 1.0
TEXTURE_REPEAT_V = 1.0
# Progressive UV rotation reached at the top ring, in degrees.
TEXTURE_ROTATION_DEG = 0.0
# Influence of the texture on the preview colour (0–1).
TEXTURE_OPACITY = 1.0

# ── Interaction ───────────────────────────────────────────────────────────────
# Displacement scale/bias multiplier while an anchor is being dragged.
DRAG_DISPLACEMENT_FACTOR = 0.3

# ── Export ────────────────────────────────────────────────────────────────────
# Scale applied to every exported coordinate.
EXPORT_SCALE = 10.0
# Swap Y and Z so the revolution axis becomes the printer's vertical axis.
EXPORT_SWAP_YZ = True

# ──────────────────────────────────────────────────────────────────────────────


class NormalMode(str, Enum):
    VERTEX = "vertex"
    FACE = "face"
    HORIZONTAL = "horizontal"


@dataclass(frozen=True)
class LatheParams:
    """One immutable parameter set.  A change means a full rebuild."""

    rings: int = RINGS
    segments: int = SEGMENTS
    radius: float = BASE_RADIUS
    height: float = HEIGHT
    twist: float = TWIST_DEG
    taper: float = TAPER
    min_radius: float = MIN_RADIUS

    displacement_scale: float = DISPLACEMENT_SCALE
    displacement_bias: float = DISPLACEMENT_BIAS
    normal_mode: NormalMode = NormalMode(NORMAL_MODE)

    falloff_enabled: bool = FALLOFF_ENABLED
    falloff_top: float = FALLOFF_TOP
    falloff_bottom: float = FALLOFF_BOTTOM
    falloff_power: float = FALLOFF_POWER

    enable_smoothing: bool = ENABLE_SMOOTHING
    geometry_smoothing: int = GEOMETRY_SMOOTHING
    smoothing_passes: int = SMOOTHING_PASSES

    texture_repeat_u: float = TEXTURE_REPEAT_U
    texture_repeat_v: float = TEXTURE_REPEAT_V
    texture_rotation: float = TEXTURE_ROTATION_DEG
    texture_opacity: float = TEXTURE_OPACITY

    export_scale: float = EXPORT_SCALE
    swap_yz: bool = EXPORT_SWAP_YZ

    def __post_init__(self):
        # Accept plain strings ("face") as well as NormalMode members.
        object.__setattr__(self, "normal_mode", NormalMode(self.normal_mode))
        bottom = min(max(0.0, float(self.falloff_bottom)), FALLOFF_MAX_TOTAL)
        top = min(max(0.0, float(self.falloff_top)), FALLOFF_MAX_TOTAL - bottom)
        object.__setattr__(self, "falloff_bottom", bottom)
        object.__setattr__(self, "falloff_top", top)

    @property
    def ring_count(self) -> int:
        return max(MIN_RINGS, int(self.rings))

    @property
    def segment_count(self) -> int:
        return max(MIN_SEGMENTS, int(self.segments))

    def with_changes(self, **changes) -> "LatheParams":
        return replace(self, **changes)

    @classmethod
    def field_names(cls):
        return [f.name for f in fields(cls)]
