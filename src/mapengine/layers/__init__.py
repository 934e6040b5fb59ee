"""Map layer system — Carto-backed raster and marker layers.

LayerManager owns the layers on a map surface and the remote queries that
produce them.
"""

from mapengine.layers.carto import CartoClient, QueryError
from mapengine.layers.filters import FilterState
from mapengine.layers.layer import LayerConfig, LayerSpec, LegendConfig
from mapengine.layers.loading import LoadingTracker
from mapengine.layers.manager import LayerManager
from mapengine.layers.markers import markers_by_zoom
from mapengine.layers.styles import StyleTemplate, StyleTemplateError, UnknownCropError
from mapengine.layers.surface import InMemorySurface, MapSurface, MarkerLayer, TileLayer

__all__ = [
    "CartoClient",
    "FilterState",
    "InMemorySurface",
    "LayerConfig",
    "LayerManager",
    "LayerSpec",
    "LegendConfig",
    "LoadingTracker",
    "MapSurface",
    "MarkerLayer",
    "QueryError",
    "StyleTemplate",
    "StyleTemplateError",
    "TileLayer",
    "UnknownCropError",
    "markers_by_zoom",
]
