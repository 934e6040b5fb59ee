"""CartoCSS templating for legend-backed raster layers.

Style templates use ``{{key}}`` tokens from a closed key set. The bucket
threshold comes from the legend query; the color comes from the crop
palette below.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_TOKEN_RE = re.compile(r"{{\s*([A-Za-z_][A-Za-z0-9_]*)\s*}}")

STYLE_KEYS = frozenset({"bucket", "color"})


@dataclass(frozen=True)
class CropOption:
    value: str
    label: str
    color: str


CROP_OPTIONS: tuple[CropOption, ...] = (
    CropOption("banana", "Banana", "#f5a623"),
    CropOption("barley", "Barley", "#d4b483"),
    CropOption("beans", "Beans", "#8c564b"),
    CropOption("cassava", "Cassava", "#c49c94"),
    CropOption("chickpeas", "Chickpeas", "#e6c229"),
    CropOption("coffee", "Coffee", "#6f4e37"),
    CropOption("cotton", "Cotton", "#9fb7d9"),
    CropOption("groundnut", "Groundnut", "#b5651d"),
    CropOption("maize", "Maize", "#f1c40f"),
    CropOption("millet", "Millet", "#c9a66b"),
    CropOption("potatoes", "Potatoes", "#a0522d"),
    CropOption("rice", "Rice", "#2ca02c"),
    CropOption("sorghum", "Sorghum", "#d62728"),
    CropOption("soybeans", "Soybeans", "#7f9c3b"),
    CropOption("sugarbeet", "Sugar beet", "#c71585"),
    CropOption("sugarcane", "Sugarcane", "#17becf"),
    CropOption("wheat", "Wheat", "#e8a33d"),
)

CROP_PALETTE: dict[str, str] = {c.value: c.color for c in CROP_OPTIONS}


class StyleTemplateError(ValueError):
    """Raised when a style template uses a token outside STYLE_KEYS."""


class UnknownCropError(KeyError):
    """Raised when a crop has no entry in the palette.

    A misconfigured layer or filter, not a runtime condition; callers are
    not expected to handle it.
    """


def crop_color(crop: str) -> str:
    try:
        return CROP_PALETTE[crop]
    except KeyError:
        raise UnknownCropError(crop) from None


class StyleTemplate:
    """A validated CartoCSS template.

    Usage:
        tpl = StyleTemplate("#layer { [value >= {{bucket}}] { polygon-fill: {{color}}; } }")
        css = tpl.render(bucket=12.5, crop="maize")
    """

    def __init__(self, text: str) -> None:
        self.text = text
        self.keys = frozenset(_TOKEN_RE.findall(text))
        unknown = self.keys - STYLE_KEYS
        if unknown:
            raise StyleTemplateError(
                f"Unknown style tokens: {', '.join(sorted(unknown))}"
            )

    def render(self, *, bucket: float | int | str, crop: str) -> str:
        values = {"bucket": str(bucket), "color": crop_color(crop)}
        return _TOKEN_RE.sub(lambda m: values[m.group(1)], self.text)
