"""MapView — the dashboard map: desired layers, filters, zoom and spinner.

Keeps the layer manager in sync with what the dashboard asks for:

- layer set changes remove the dropped layers and (re-)add new or changed ones,
- filter changes re-query every layer,
- zoom changes only re-rank the cached markers.

``loading`` drives the single map spinner; it turns false on the manager's
all-clear.
"""

from __future__ import annotations

from typing import Any, Iterable

from loguru import logger

from mapengine.layers.carto import CartoClient
from mapengine.layers.filters import FilterState
from mapengine.layers.layer import CARTO_PROVIDERS, FOOD, WATER, LayerSpec
from mapengine.layers.manager import LayerManager
from mapengine.layers.styles import crop_color
from mapengine.layers.surface import TILE_EVENTS, InMemorySurface, TileLayer


class MapView:
    """Dashboard map state bound to a LayerManager."""

    def __init__(
        self,
        client: CartoClient,
        surface: InMemorySurface | None = None,
        filters: FilterState | None = None,
    ) -> None:
        self.surface = surface or InMemorySurface()
        self.filters = filters or FilterState()
        self.loading = False
        self.manager = LayerManager(self.surface, client, on_all_clear=self._on_all_clear)
        self._specs: dict[str, LayerSpec] = {}

    @property
    def zoom(self) -> float:
        return self.surface.get_zoom()

    @property
    def specs(self) -> list[LayerSpec]:
        return list(self._specs.values())

    def set_layers(self, specs: Iterable[LayerSpec]) -> None:
        specs = list(specs)
        self._check_palette(specs, self.filters)

        wanted = {spec.id: spec for spec in specs}
        for layer_id in list(self._specs):
            if layer_id not in wanted:
                self.manager.remove_layer(layer_id)

        changed = [spec for spec in specs if self._specs.get(spec.id) != spec]
        self._specs = wanted
        for spec in changed:
            self._add(spec)

    def remove_layer(self, layer_id: str) -> bool:
        if self._specs.pop(layer_id, None) is None:
            return False
        self.manager.remove_layer(layer_id)
        return True

    def clear(self) -> None:
        self._specs.clear()
        self.manager.remove_layers()
        self.loading = self.manager.is_loading

    def set_filters(self, **changes: Any) -> FilterState:
        filters = self.filters.update(**changes)
        self._check_palette(self._specs.values(), filters)
        if filters == self.filters:
            return filters
        self.filters = filters
        logger.info(f"Map filters changed: {changes}")
        for spec in self._specs.values():
            self._add(spec)
        return filters

    def set_zoom(self, zoom: float) -> None:
        if zoom == self.surface.get_zoom():
            return
        self.surface.set_zoom(zoom)
        self.manager.set_zoom(zoom)

    def report_tile_event(self, layer_id: str, event: str) -> bool:
        """Forward a browser-side tile event. Returns False for unknown layers."""
        handle = self.manager.layers.get(layer_id)
        if event not in TILE_EVENTS or not isinstance(handle, TileLayer):
            return False
        handle.fire(event)
        return True

    def state(self) -> dict[str, Any]:
        return {
            "filters": self.filters.as_dict(),
            "zoom": self.zoom,
            "loading": self.loading,
            "loading_layers": sorted(self.manager.loading),
            "layers": [handle.to_dict() for handle in self.surface.layers()],
        }

    def _add(self, spec: LayerSpec) -> None:
        self.manager.add_layer(spec, self.filters.as_dict())
        self.loading = self.manager.is_loading

    def _on_all_clear(self) -> None:
        self.loading = False

    @staticmethod
    def _check_palette(specs: Iterable[LayerSpec], filters: FilterState) -> None:
        for spec in specs:
            if (
                spec.provider in CARTO_PROVIDERS
                and spec.category not in (WATER, FOOD)
                and spec.has_legend_query
            ):
                crop_color(filters.crop)
