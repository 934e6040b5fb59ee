"""Rendering surface interface and the layer handles placed on it.

The surface is the map widget. The layer manager only ever calls
add_layer / remove_layer / set_z_index / get_zoom and subscribes to
``load`` / ``tileerror`` on tile handles.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Callable

TILE_EVENTS = ("load", "tileerror")


class RenderedLayer:
    """Handle of a layer attached to a surface."""

    kind = "layer"

    def __init__(self, layer_id: str) -> None:
        self.layer_id = layer_id
        self.z_index = 0
        self._handlers: dict[str, list[Callable[[], None]]] = defaultdict(list)

    def on(self, event: str, callback: Callable[[], None]) -> "RenderedLayer":
        self._handlers[event].append(callback)
        return self

    def fire(self, event: str) -> None:
        for callback in list(self._handlers.get(event, ())):
            callback()

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.layer_id, "kind": self.kind, "z_index": self.z_index}


class TileLayer(RenderedLayer):
    """Raster tile layer (``{z}/{x}/{y}`` URL template)."""

    kind = "tile"

    def __init__(self, layer_id: str, url: str) -> None:
        super().__init__(layer_id)
        self.url = url

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["url"] = self.url
        return data


class MarkerLayer(RenderedLayer):
    """Clustered point layer built from GeoJSON features."""

    kind = "markers"

    def __init__(self, layer_id: str, features: list[dict[str, Any]]) -> None:
        super().__init__(layer_id)
        self.features = features

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["features"] = self.features
        return data


class MapSurface(ABC):
    """What the layer manager needs from a map widget."""

    @abstractmethod
    def add_layer(self, handle: RenderedLayer) -> RenderedLayer:
        """Attach ``handle`` and return it."""

    @abstractmethod
    def remove_layer(self, handle: RenderedLayer) -> None:
        """Detach ``handle``. Unknown handles are ignored."""

    @abstractmethod
    def set_z_index(self, handle: RenderedLayer, z_index: int) -> None:
        """Set the draw order of ``handle`` (higher = on top)."""

    @abstractmethod
    def get_zoom(self) -> float:
        """Current zoom level."""


class InMemorySurface(MapSurface):
    """Surface that keeps attached handles in memory.

    Serves as the map model of the dashboard service: the browser renders
    what ``layers()`` reports and reports tile events back.
    """

    def __init__(self, zoom: float = 3) -> None:
        self._zoom = zoom
        self._handles: list[RenderedLayer] = []

    def add_layer(self, handle: RenderedLayer) -> RenderedLayer:
        if handle not in self._handles:
            self._handles.append(handle)
        return handle

    def remove_layer(self, handle: RenderedLayer) -> None:
        if handle in self._handles:
            self._handles.remove(handle)

    def set_z_index(self, handle: RenderedLayer, z_index: int) -> None:
        handle.z_index = z_index

    def get_zoom(self) -> float:
        return self._zoom

    def set_zoom(self, zoom: float) -> None:
        self._zoom = zoom

    def layers(self) -> list[RenderedLayer]:
        """Attached handles, bottom to top."""
        return sorted(self._handles, key=lambda h: h.z_index)

    def find(self, layer_id: str) -> RenderedLayer | None:
        for handle in self._handles:
            if handle.layer_id == layer_id:
                return handle
        return None
