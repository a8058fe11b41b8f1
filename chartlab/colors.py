"""
COLOR GRADIENTS — Paradigm: PIECEWISE-LINEAR COLOR RAMPS

===============================================================
WHAT IT IS (THE CORE IDEA)
===============================================================

Map a SCALAR to a COLOR by walking along a list of stops:

    stops:   s_0 < s_1 < ... < s_k
    colors:  c_0,  c_1, ...,  c_k     (RGB triples)

For a value between two stops, blend their colors channel by channel:

    t = (value - s_i) / (s_{i+1} - s_i)
    color = c_i + (c_{i+1} - c_i) · t

Each channel is rounded half-up to the nearest byte.

===============================================================
OUTSIDE THE STOPS
===============================================================

CLAMP (default):
    below s_0 → c_0, above s_k → c_k

EXTRAPOLATE:
    Keep going along the first (or last) segment's slope.
    Channels are clamped to [0, 255] so the result is still a color.

MISSING VALUES:
    None / NaN / non-numbers never touch the gradient.
    They are drawn in a fixed neutral gray.

===============================================================
DISCRETE COLORING
===============================================================

Categorical values get palette colors in order of first appearance,
cycling when there are more categories than palette entries.
"""

import colorsys
import copy
import math
from bisect import bisect_right
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from matplotlib.colors import to_rgb

from .errors import ValidationError
from .records import numeric_value

RGB = Tuple[int, int, int]

MISSING_COLOR = "#cccccc"
DEFAULT_NODE_COLOR = "#3498db"

# Category palette for discrete node colors (tab10)
CATEGORY_PALETTE = [
    "#1f77b4", "#ff7f0e", "#2ca02c", "#d62728", "#9467bd",
    "#8c564b", "#e377c2", "#7f7f7f", "#bcbd22", "#17becf",
]

# Network graph palette; hues beyond it follow the golden angle
GRAPH_PALETTE = [
    "#e74c3c", "#3498db", "#2ecc71", "#f39c12", "#9b59b6",
    "#1abc9c", "#34495e", "#e67e22", "#95a5a6", "#d35400",
    "#c0392b", "#2980b9", "#27ae60", "#8e44ad", "#16a085",
]

DEFAULT_GRADIENT_STOPS = {-2.0: "#FF0000", 0.0: "#FFFFFF", 2.0: "#0000FF"}


def parse_color(color: str) -> RGB:
    """Parse any matplotlib color spec ('#RRGGBB', '#RGB', 'red', ...) to byte RGB."""
    try:
        r, g, b = to_rgb(color)
    except (ValueError, TypeError):
        raise ValidationError(f"Invalid color: {color!r}")
    return _round_byte(r * 255), _round_byte(g * 255), _round_byte(b * 255)


def to_hex(rgb: Sequence[float]) -> str:
    r, g, b = (min(255, max(0, _round_byte(c))) for c in rgb)
    return f"#{r:02x}{g:02x}{b:02x}"


def _round_byte(x: float) -> int:
    # Half-up, so 127.5 → 128 (mid-gray is #808080)
    return int(math.floor(x + 0.5))


class ColorGradient:
    """
    Continuous color scale over sorted (stop, color) pairs.

    Parameters:
    -----------
    stops : mapping {stop: color} or sequence of (stop, color)
        At least 2 entries with distinct stop values.
    extrapolate : bool
        Extend the end segments beyond the stops instead of clamping.
    strict : bool
        Reject a sequence whose stops are not already ascending.
    """

    def __init__(self, stops: Union[Mapping[float, str], Sequence[Tuple[float, str]]],
                 extrapolate: bool = False, strict: bool = False):
        pairs = list(stops.items()) if isinstance(stops, Mapping) else list(stops)
        if len(pairs) < 2:
            raise ValidationError("A color gradient must have at least 2 stops")

        parsed = []
        for stop, color in pairs:
            value = numeric_value(stop)
            if value is None:
                raise ValidationError(f"Gradient stop {stop!r} is not a finite number")
            parsed.append((value, parse_color(color)))

        values = [s for s, _ in parsed]
        if len(set(values)) != len(values):
            raise ValidationError(f"Gradient stops must be distinct, got {values}")
        if strict and values != sorted(values):
            raise ValidationError(f"Gradient stops must be ascending, got {values}")

        parsed.sort(key=lambda p: p[0])
        self.stops: List[float] = [s for s, _ in parsed]
        self.colors: List[RGB] = [c for _, c in parsed]
        self.extrapolate = extrapolate

    def __repr__(self):
        body = ", ".join(f"{s:g}: {to_hex(c)}" for s, c in zip(self.stops, self.colors))
        return f"ColorGradient({{{body}}}, extrapolate={self.extrapolate})"

    def with_extrapolate(self, extrapolate: bool) -> "ColorGradient":
        """Same stops and colors with a different end policy."""
        clone = copy.copy(self)
        clone.extrapolate = extrapolate
        return clone

    def rgb(self, value: float) -> RGB:
        """Interpolated byte RGB for a finite value."""
        stops, colors = self.stops, self.colors

        if value < stops[0]:
            if not self.extrapolate:
                return colors[0]
            t = (value - stops[0]) / (stops[1] - stops[0])
            return _blend(colors[0], colors[1], t)

        if value > stops[-1]:
            if not self.extrapolate:
                return colors[-1]
            t = (value - stops[-1]) / (stops[-1] - stops[-2])
            return _blend(colors[-1], colors[-2], -t)

        i = min(bisect_right(stops, value) - 1, len(stops) - 2)
        t = (value - stops[i]) / (stops[i + 1] - stops[i])
        return _blend(colors[i], colors[i + 1], t)

    def interpolate(self, value: Any) -> str:
        """Hex color for ``value``; missing or non-numeric values give MISSING_COLOR."""
        number = numeric_value(value)
        if number is None:
            return MISSING_COLOR
        return to_hex(self.rgb(number))

    __call__ = interpolate

    def interpolate_many(self, values: Iterable[Any]) -> List[str]:
        return [self.interpolate(v) for v in values]


def _blend(c1: RGB, c2: RGB, t: float) -> RGB:
    return tuple(
        min(255, max(0, _round_byte(a + (b - a) * t)))
        for a, b in zip(c1, c2)
    )


def interpolate(value: Any, gradient: Union[ColorGradient, Mapping[float, str]],
                extrapolate: Optional[bool] = None) -> str:
    """
    Functional form: ``interpolate(0.5, {0: '#000000', 1: '#FFFFFF'}) == '#808080'``.

    ``extrapolate=None`` keeps a ColorGradient's own setting (clamp for a mapping);
    True or False overrides it.
    """
    if not isinstance(gradient, ColorGradient):
        gradient = ColorGradient(gradient, extrapolate=bool(extrapolate))
    elif extrapolate is not None and extrapolate != gradient.extrapolate:
        gradient = gradient.with_extrapolate(extrapolate)
    return gradient.interpolate(value)


class ColourMap:
    """
    User-supplied continuous coloring: one global gradient, or one per variable.

    ``{0.0: '#000', 1.0: '#fff'}``               → global
    ``{'score': {0.0: '#000', 1.0: '#fff'}}``   → per variable

    Variables without a gradient of their own use DEFAULT_GRADIENT_STOPS.
    """

    def __init__(self, colour_map: Optional[Mapping] = None, extrapolate: bool = False):
        self.extrapolate = extrapolate
        self.global_gradient: Optional[ColorGradient] = None
        self.per_variable: Dict[str, ColorGradient] = {}
        self.default = ColorGradient(DEFAULT_GRADIENT_STOPS, extrapolate=extrapolate)

        if colour_map is None:
            return
        if not isinstance(colour_map, Mapping):
            raise ValidationError("colour_map must be a mapping of stops to colors "
                                  "or of variable names to such mappings")
        if not colour_map:
            raise ValidationError("colour_map must have at least 2 gradient stops")

        if all(isinstance(v, Mapping) for v in colour_map.values()):
            for name, stops in colour_map.items():
                if len(stops) < 2:
                    raise ValidationError(
                        f"colour_map gradient for variable '{name}' must have at least 2 stops")
                self.per_variable[str(name)] = ColorGradient(stops, extrapolate=extrapolate)
        elif all(isinstance(v, str) for v in colour_map.values()):
            if len(colour_map) < 2:
                raise ValidationError("colour_map must have at least 2 gradient stops")
            self.global_gradient = ColorGradient(colour_map, extrapolate=extrapolate)
        else:
            raise ValidationError("colour_map must map stops to colors, "
                                  "or variable names to {stop: color} mappings")

    def gradient_for(self, variable: str) -> ColorGradient:
        if self.global_gradient is not None:
            return self.global_gradient
        return self.per_variable.get(variable, self.default)


def discrete_color_map(values: Iterable[Any],
                       palette: Sequence[str] = CATEGORY_PALETTE) -> Dict[Any, str]:
    """Assign palette colors to values in first-appearance order, cycling."""
    mapping: Dict[Any, str] = {}
    for value in values:
        if value not in mapping:
            mapping[value] = palette[len(mapping) % len(palette)]
    return mapping


def generate_colors(n: int) -> List[str]:
    """n distinct colors: GRAPH_PALETTE first, then golden-angle hues."""
    if n <= len(GRAPH_PALETTE):
        return GRAPH_PALETTE[:n]
    result = list(GRAPH_PALETTE)
    for i in range(len(GRAPH_PALETTE), n):
        hue = (i * 137.508) % 360
        r, g, b = colorsys.hls_to_rgb(hue / 360.0, 0.5, 0.7)
        result.append(to_hex((r * 255, g * 255, b * 255)))
    return result
