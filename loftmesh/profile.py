"""
Bézier profile that maps a height on the revolution axis to a radius.

Anchors are plain data: a position (radius, height), two handle offsets
and a smooth flag.  Whatever draws them on screen keeps its own table
keyed by anchor index; nothing visual lives here.
"""

import json
import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from . import config

logger = logging.getLogger(__name__)

Vec2 = Tuple[float, float]


@dataclass
class Anchor:
    position: Vec2                       # (radius, height)
    handle_in: Vec2 = (0.0, 0.0)
    handle_out: Vec2 = (0.0, 0.0)
    smooth: bool = False

    @property
    def radius(self) -> float:
        return self.position[0]

    @property
    def height(self) -> float:
        return self.position[1]

    def to_dict(self) -> dict:
        return {
            "position": list(self.position),
            "handle_in": list(self.handle_in),
            "handle_out": list(self.handle_out),
            "smooth": self.smooth,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Anchor":
        return cls(
            position=_vec2(data["position"]),
            handle_in=_vec2(data.get("handle_in", (0.0, 0.0))),
            handle_out=_vec2(data.get("handle_out", (0.0, 0.0))),
            smooth=bool(data.get("smooth", False)),
        )


def _vec2(v) -> Vec2:
    return (float(v[0]), float(v[1]))


def _neg(v: Vec2) -> Vec2:
    return (-v[0], -v[1])


def _len_sq(v: Vec2) -> float:
    return v[0] * v[0] + v[1] * v[1]


def bezier_point(p0: Vec2, p1: Vec2, p2: Vec2, p3: Vec2, t: float) -> Vec2:
    u = 1.0 - t
    b0 = u * u * u
    b1 = 3.0 * u * u * t
    b2 = 3.0 * u * t * t
    b3 = t * t * t
    return (
        b0 * p0[0] + b1 * p1[0] + b2 * p2[0] + b3 * p3[0],
        b0 * p0[1] + b1 * p1[1] + b2 * p2[1] + b3 * p3[1],
    )


def default_anchors(radius: float = config.BASE_RADIUS,
                    height: float = config.HEIGHT,
                    count: int = config.DEFAULT_ANCHOR_COUNT) -> List[Anchor]:
    """Evenly spaced anchors at a uniform radius; the two ends are corners."""
    count = max(2, int(count))
    h = config.DEFAULT_HANDLE_LENGTH
    anchors = []
    for i in range(count):
        t = i / (count - 1)
        anchors.append(Anchor(position=(radius, t * height),
                              handle_in=(0.0, -h), handle_out=(0.0, h),
                              smooth=True))
    anchors[0].smooth = False
    anchors[0].handle_in = (0.0, 0.0)
    anchors[-1].smooth = False
    anchors[-1].handle_out = (0.0, 0.0)
    return anchors


@dataclass
class Profile:
    anchors: List[Anchor] = field(default_factory=default_anchors)
    height: float = config.HEIGHT
    base_radius: float = config.BASE_RADIUS
    min_radius: float = config.MIN_RADIUS
    iterations: int = config.BISECTION_ITERATIONS
    tolerance: float = config.BISECTION_TOLERANCE

    @classmethod
    def from_params(cls, params: config.LatheParams,
                    count: int = config.DEFAULT_ANCHOR_COUNT) -> "Profile":
        return cls(anchors=default_anchors(params.radius, params.height, count),
                   height=params.height, base_radius=params.radius,
                   min_radius=params.min_radius)

    # ── evaluation ──────────────────────────────────────────────────────────

    def radius_at_height(self, h: float) -> float:
        """
        Radius of the profile at height ``h``.

        Each anchor pair is treated as one cubic Bézier segment and the
        curve parameter is found by bisection on the height component.
        A segment whose height is not monotonic in t (an S-curve drawn
        back on itself) converges to one of its roots, whichever the
        bisection happens to land on.
        """
        anchors = self.anchors
        if h <= 0.0:
            return max(self.min_radius, anchors[0].radius)
        if h >= self.height:
            return max(self.min_radius, anchors[-1].radius)

        for a, b in zip(anchors, anchors[1:]):
            if not (a.height <= h <= b.height):
                continue
            p0 = a.position
            p1 = (p0[0] + a.handle_out[0], p0[1] + a.handle_out[1])
            p3 = b.position
            p2 = (p3[0] + b.handle_in[0], p3[1] + b.handle_in[1])

            t_min, t_max, t = 0.0, 1.0, 0.5
            for _ in range(self.iterations):
                x, y = bezier_point(p0, p1, p2, p3, t)
                error = y - h
                if abs(error) < self.tolerance:
                    return max(self.min_radius, x)
                if error > 0:
                    t_max = t
                else:
                    t_min = t
                t = 0.5 * (t_min + t_max)
            x, _ = bezier_point(p0, p1, p2, p3, t)
            return max(self.min_radius, x)

        # Anchors out of height order: no segment brackets h.
        return self.base_radius

    def sample(self, count: int) -> List[Vec2]:
        """(radius, height) pairs at ``count`` evenly spaced heights."""
        count = max(2, int(count))
        step = self.height / (count - 1)
        return [(self.radius_at_height(i * step), i * step) for i in range(count)]

    # ── editing ─────────────────────────────────────────────────────────────

    def _valid(self, index: int) -> bool:
        return 0 <= index < len(self.anchors)

    def _is_endpoint(self, index: int) -> bool:
        return index == 0 or index == len(self.anchors) - 1

    def insert_anchor(self, index: int, anchor: Anchor) -> int:
        """Insert at ``index`` (kept strictly between the two pinned ends)."""
        index = max(1, min(len(self.anchors) - 1, int(index)))
        r, y = anchor.position
        anchor.position = (max(self.min_radius, r), max(0.0, min(self.height, y)))
        self.anchors.insert(index, anchor)
        return index

    def insert_at_height(self, radius: float, height: float) -> int:
        """New smooth anchor placed by height order, as a click on the curve does."""
        index = 1
        for i, a in enumerate(self.anchors):
            if height < a.height or i == len(self.anchors) - 1:
                index = i
                break
        h = config.DEFAULT_HANDLE_LENGTH
        anchor = Anchor(position=(radius, height), handle_in=(0.0, -h),
                        handle_out=(0.0, h), smooth=True)
        return self.insert_anchor(index, anchor)

    def delete_anchor(self, index: int) -> bool:
        if not self._valid(index) or self._is_endpoint(index):
            return False
        del self.anchors[index]
        return True

    def move_anchor(self, index: int, radius: float, height: float) -> None:
        if not self._valid(index):
            return
        radius = max(self.min_radius, radius)
        if index == 0:
            height = 0.0
        elif index == len(self.anchors) - 1:
            height = self.height
        else:
            height = max(0.0, min(self.height, height))
        self.anchors[index].position = (radius, height)

    def set_handle(self, index: int, which: str, offset: Vec2) -> None:
        if not self._valid(index):
            return
        anchor = self.anchors[index]
        offset = _vec2(offset)
        if which == "in":
            anchor.handle_in = offset
            if anchor.smooth:
                anchor.handle_out = _neg(offset)
        elif which == "out":
            anchor.handle_out = offset
            if anchor.smooth:
                anchor.handle_in = _neg(offset)
        else:
            raise ValueError(f"handle must be 'in' or 'out', got {which!r}")

    def toggle_smooth(self, index: int) -> Optional[bool]:
        """Flip smooth/corner.  Turning smooth mirrors the longer handle."""
        if not self._valid(index):
            return None
        anchor = self.anchors[index]
        anchor.smooth = not anchor.smooth
        if anchor.smooth:
            if _len_sq(anchor.handle_in) > _len_sq(anchor.handle_out):
                anchor.handle_out = _neg(anchor.handle_in)
            else:
                anchor.handle_in = _neg(anchor.handle_out)
        return anchor.smooth

    def set_total_height(self, height: float) -> None:
        """Stretch every anchor so the ends stay pinned at 0 and ``height``."""
        if self.height > 0:
            k = height / self.height
            for a in self.anchors:
                a.position = (a.position[0], a.position[1] * k)
        self.height = height
        self.anchors[0].position = (self.anchors[0].radius, 0.0)
        self.anchors[-1].position = (self.anchors[-1].radius, height)

    def is_height_ordered(self) -> bool:
        return all(a.height <= b.height for a, b in zip(self.anchors, self.anchors[1:]))

    # ── persistence ─────────────────────────────────────────────────────────

    def to_dict(self) -> dict:
        return {
            "height": self.height,
            "base_radius": self.base_radius,
            "min_radius": self.min_radius,
            "anchors": [a.to_dict() for a in self.anchors],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Profile":
        anchors = [Anchor.from_dict(a) for a in data["anchors"]]
        if len(anchors) < 2:
            raise ValueError("a profile needs at least two anchors")
        profile = cls(
            anchors=anchors,
            height=float(data.get("height", anchors[-1].height)),
            base_radius=float(data.get("base_radius", config.BASE_RADIUS)),
            min_radius=float(data.get("min_radius", config.MIN_RADIUS)),
        )
        if not profile.is_height_ordered():
            logger.warning("[profile] anchors are not in height order; "
                           "unbracketed heights fall back to radius %.3f",
                           profile.base_radius)
        for i, (a, b) in enumerate(zip(anchors, anchors[1:])):
            if not segment_heights_monotonic(a, b):
                logger.warning("[profile] segment %d folds back in height; "
                               "radius lookups there are ambiguous", i)
        return profile


def load_profile(path) -> Profile:
    with open(path, "r", encoding="utf-8") as f:
        profile = Profile.from_dict(json.load(f))
    logger.info("[profile] %s: %d anchors, height %.3f",
                path, len(profile.anchors), profile.height)
    return profile


def save_profile(profile: Profile, path) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(profile.to_dict(), f, indent=2)


def segment_heights_monotonic(a: Anchor, b: Anchor, samples: int = 32) -> bool:
    """True when height never decreases along the Bézier segment a→b."""
    p0 = a.position
    p1 = (p0[0] + a.handle_out[0], p0[1] + a.handle_out[1])
    p3 = b.position
    p2 = (p3[0] + b.handle_in[0], p3[1] + b.handle_in[1])
    prev = -math.inf
    for i in range(samples + 1):
        _, y = bezier_point(p0, p1, p2, p3, i / samples)
        if y < prev - 1e-12:
            return False
        prev = y
    return True
