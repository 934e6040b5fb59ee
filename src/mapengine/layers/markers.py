"""Zoom-dependent ranking of point markers.

At low zooms only the biggest producers are shown; the full set appears
when zoomed out to the world view or zoomed in far enough to separate the
clusters.
"""

from __future__ import annotations

import math
from typing import Any, Sequence

MIN_RANKED_ZOOM = 1
MAX_RANKED_ZOOM = 5
MAX_RANKED_MARKERS = 5


def marker_value(feature: dict[str, Any]) -> float:
    """Numeric ``properties.value`` of a feature (-inf when not a number)."""
    try:
        value = float((feature.get("properties") or {}).get("value"))
    except (TypeError, ValueError):
        return -math.inf
    return -math.inf if math.isnan(value) else value


def markers_by_zoom(features: Sequence[dict[str, Any]], zoom: float) -> list[dict[str, Any]]:
    """Visible subset of ``features`` at ``zoom``.

    Strictly between MIN_RANKED_ZOOM and MAX_RANKED_ZOOM the features are
    sorted by descending value (ties keep their order) and truncated to
    MAX_RANKED_MARKERS. Everywhere else the full collection is returned in
    its original order. The input is never mutated.
    """
    if not MIN_RANKED_ZOOM < zoom < MAX_RANKED_ZOOM:
        return list(features)
    ranked = sorted(features, key=marker_value, reverse=True)
    return ranked[:MAX_RANKED_MARKERS]
