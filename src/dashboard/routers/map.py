"""Map view API — desired layers, filters, zoom and tile events.

The browser renders whatever ``GET /api/map/state`` reports and reports
tile ``load`` / ``tileerror`` events back, which is what clears the loading
state of raster layers.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from fastapi import APIRouter, HTTPException, Request
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from mapengine.layers.layer import LayerSpec
from mapengine.layers.styles import UnknownCropError
from mapengine.map_view import MapView

router = APIRouter(prefix="/api/map", tags=["map"])


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class LayerDocument(BaseModel):
    """A layer as stored in the dashboard's layer catalog."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    provider: str
    category: str
    name: str = ""
    layer_config: dict[str, Any] = Field(default_factory=dict, alias="layerConfig")
    legend_config: dict[str, Any] = Field(default_factory=dict, alias="legendConfig")

    def to_spec(self) -> LayerSpec:
        return LayerSpec.from_dict(self.model_dump(by_alias=True))


class LayersRequest(BaseModel):
    layers: list[LayerDocument]
    wait: bool = False


class FiltersRequest(BaseModel):
    """SET_FILTERS payload; unset fields keep their value."""
    crop: Optional[str] = None
    scope: Optional[str] = None
    country: Optional[str] = None
    country_name: Optional[str] = None
    period: Optional[str] = None
    period_value: Optional[str] = None
    year: Optional[str] = None
    food: Optional[str] = None
    indicator: Optional[str] = None
    irrigation: Optional[str] = None
    type: Optional[str] = None
    iso: Optional[str] = None
    wait: bool = False


class ZoomRequest(BaseModel):
    zoom: float = Field(ge=0, le=22)


class TileEventRequest(BaseModel):
    event: Literal["load", "tileerror"]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

def _view(request: Request) -> MapView:
    return request.app.state.map_view


@router.get("/state")
async def get_state(request: Request):
    """Filters, zoom, spinner flag and the layers currently on the map."""
    return _view(request).state()


@router.put("/layers")
async def set_layers(body: LayersRequest, request: Request):
    """Replace the desired layer set.

    With ``wait`` the response is sent once every layer query resolved.
    """
    view = _view(request)
    try:
        view.set_layers(doc.to_spec() for doc in body.layers)
    except UnknownCropError as e:
        raise HTTPException(status_code=422, detail=f"Unknown crop: {e.args[0]}")
    if body.wait:
        await view.manager.wait_idle()
    return view.state()


@router.delete("/layers/{layer_id}")
async def remove_layer(layer_id: str, request: Request):
    view = _view(request)
    if not view.remove_layer(layer_id):
        raise HTTPException(status_code=404, detail=f"Layer not found: {layer_id}")
    return view.state()


@router.delete("/layers")
async def remove_layers(request: Request):
    view = _view(request)
    view.clear()
    return view.state()


@router.patch("/filters")
async def set_filters(body: FiltersRequest, request: Request):
    view = _view(request)
    changes = body.model_dump(exclude_unset=True, exclude={"wait"})
    try:
        view.set_filters(**changes)
    except UnknownCropError as e:
        raise HTTPException(status_code=422, detail=f"Unknown crop: {e.args[0]}")
    if body.wait:
        await view.manager.wait_idle()
    return view.state()


@router.put("/zoom")
async def set_zoom(body: ZoomRequest, request: Request):
    view = _view(request)
    view.set_zoom(body.zoom)
    return view.state()


@router.post("/layers/{layer_id}/events")
async def tile_event(layer_id: str, body: TileEventRequest, request: Request):
    """The browser painted the first tiles of a layer (or failed to)."""
    view = _view(request)
    if not view.report_tile_event(layer_id, body.event):
        raise HTTPException(status_code=404, detail=f"No tile layer: {layer_id}")
    logger.debug(f"Tile event {body.event} for {layer_id}")
    return view.state()
