"""LayerManager — lifecycle of the visual layers on the dashboard map.

Each layer load is one or two remote queries followed by a surface
mutation:

  water      map registration -> tile layer (z 998)
  legend     bucket SQL -> styled map registration -> tile layer (z 999)
  other      map registration -> tile layer (z 999)
  food       marker SQL -> clustered marker layer (zoom-ranked)

At most one request per category is in flight. A new request for a
category cancels the previous one and clears its loading entry at cancel
time; the cancelled task never touches the manager again. Tile layers stay
loading until their first ``load`` or ``tileerror`` event; marker layers
finish as soon as their data arrives.

All methods must be called from the event loop thread. add_layer schedules
its work on the running loop.
"""

from __future__ import annotations

import asyncio
from functools import partial
from typing import Any, Awaitable, Callable, Mapping

from loguru import logger

from mapengine.layers.carto import CartoClient, QueryError, map_config
from mapengine.layers.filters import convert_layer_config, convert_legend_config
from mapengine.layers.layer import CARTO_PROVIDERS, FOOD, WATER, LayerConfig, LayerSpec
from mapengine.layers.loading import LoadingTracker
from mapengine.layers.markers import markers_by_zoom
from mapengine.layers.requests import CategoryRequest, RequestRegistry
from mapengine.layers.styles import StyleTemplate, crop_color
from mapengine.layers.surface import TILE_EVENTS, MapSurface, MarkerLayer, RenderedLayer, TileLayer

RASTER_Z_INDEX = 998
LEGEND_RASTER_Z_INDEX = 999


def parse_carto_layers(config: LayerConfig) -> list[dict[str, Any]]:
    """Carto layer definitions with the account and cartocss version filled in."""
    layers = []
    for layer in config.body.get("layers") or []:
        options = dict(layer.get("options") or {})
        options.update(
            user_name=config.account,
            cartocss_version=options.get("cartocssVersion"),
        )
        layers.append({**layer, "options": options})
    return layers


def _style_template(spec: LayerSpec) -> StyleTemplate:
    layers = spec.layer_config.body.get("layers") or [{}]
    return StyleTemplate((layers[0].get("options") or {}).get("cartocss", ""))


class LayerManager:
    """Adds, replaces and removes layers on a MapSurface."""

    def __init__(
        self,
        surface: MapSurface,
        client: CartoClient,
        on_all_clear: Callable[[], None] | None = None,
    ) -> None:
        self._surface = surface
        self._client = client
        self._layers: dict[str, RenderedLayer] = {}
        self._markers: dict[str, list[dict[str, Any]]] = {}
        self._requests = RequestRegistry()
        self._loading = LoadingTracker(on_all_clear)
        # Tile layers attached but not painted yet, with the request owning
        # their loading entry.
        self._unpainted: dict[str, CategoryRequest] = {}
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def layers(self) -> dict[str, RenderedLayer]:
        """Attached handles keyed by layer ID (a copy)."""
        return dict(self._layers)

    @property
    def loading(self) -> frozenset[str]:
        """IDs of the layers still loading."""
        return self._loading.ids

    @property
    def is_loading(self) -> bool:
        return self._loading.is_loading

    def cached_markers(self, layer_id: str) -> list[dict[str, Any]] | None:
        """Full marker collection of a food layer.

        Args:
            layer_id: ID of the marker layer.

        Returns:
            The cached features in query order, or None if not cached.
        """
        return self._markers.get(layer_id)

    def pending_request(self, category: str) -> CategoryRequest | None:
        """Get the in-flight request of a category.

        Args:
            category: Layer category.

        Returns:
            The request, or None when nothing is in flight.
        """
        request = self._requests.get(category)
        return request if request is not None and request.pending else None

    # ------------------------------------------------------------------
    # Public lifecycle
    # ------------------------------------------------------------------

    def add_layer(self, spec: LayerSpec, options: Mapping[str, Any] | None = None) -> None:
        """Load ``spec`` with the given filter ``options``.

        Supersedes the pending request of the same category. The work runs
        as a task on the running loop; this call returns immediately.

        Args:
            spec: Layer to load.
            options: Filter values substituted into the layer's queries.

        Raises:
            UnknownCropError: A legend-backed layer was requested for a crop
                missing from the palette.
            StyleTemplateError: The layer's cartocss uses unknown tokens.
            RuntimeError: Called outside a running event loop.
        """
        options = dict(options or {})
        if spec.provider not in CARTO_PROVIDERS:
            logger.debug(f"Ignoring layer {spec.id}: unsupported provider '{spec.provider}'")
            return

        loader: Callable[[CategoryRequest], Awaitable[None]]
        if spec.category == FOOD:
            loader = partial(self._load_markers, spec=spec, options=options)
        elif spec.category == WATER:
            loader = partial(
                self._load_raster, spec=spec, options=options, z_index=RASTER_Z_INDEX
            )
        elif spec.has_legend_query:
            style = _style_template(spec)
            crop_color(options.get("crop"))
            loader = partial(self._load_legend_raster, spec=spec, options=options, style=style)
        else:
            loader = partial(
                self._load_raster, spec=spec, options=options, z_index=LEGEND_RASTER_Z_INDEX
            )

        loop = asyncio.get_running_loop()
        self._supersede(spec.category)

        request = CategoryRequest(spec.category, spec.id)
        self._loading.begin(spec.id, request)
        self._requests.register(request)
        request.task = loop.create_task(loader(request))
        self._tasks.add(request.task)
        request.task.add_done_callback(lambda task: self._on_task_done(task, request))
        logger.debug(f"Loading layer {spec.id} ({spec.category}) as {request!r}")

    def remove_layer(self, layer_id: str) -> None:
        """Detach ``layer_id`` from the surface. No-op when absent.

        A request still in flight for the layer is cancelled, so it cannot
        attach the layer again afterwards.

        Args:
            layer_id: ID of the layer to remove.
        """
        request = self._requests.cancel_for(layer_id)
        if request is not None:
            logger.debug(f"Cancelled {request!r}")
            self._loading.finish(layer_id, request)
        self._markers.pop(layer_id, None)
        self._detach(layer_id)

    def remove_layers(self) -> None:
        """Detach every layer, cancel every request and clear loading.

        All-clear fires once if anything was loading.
        """
        for layer_id in list(self._layers):
            self._detach(layer_id)
        self._markers.clear()
        for request in self._requests.cancel_all():
            logger.debug(f"Cancelled {request!r}")
        self._unpainted.clear()
        self._loading.reset()

    def set_markers(self, layer_id: str, zoom: float) -> None:
        """Re-derive the visible markers of ``layer_id`` from the cache.

        Args:
            layer_id: ID of a cached marker layer. Unknown IDs are ignored.
            zoom: Map zoom used for ranking.
        """
        features = self._markers.get(layer_id)
        if features is None:
            return
        self._attach(layer_id, MarkerLayer(layer_id, markers_by_zoom(features, zoom)))

    def set_zoom(self, zoom: float) -> None:
        """Re-rank every cached marker layer for ``zoom``. No network access."""
        for layer_id in list(self._markers):
            self.set_markers(layer_id, zoom)

    async def wait_idle(self) -> None:
        """Wait until no request task is running."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Remove every layer and wait for the cancelled tasks to finish."""
        self.remove_layers()
        await self.wait_idle()

    # ------------------------------------------------------------------
    # Request paths
    # ------------------------------------------------------------------

    async def _load_raster(
        self,
        request: CategoryRequest,
        spec: LayerSpec,
        options: Mapping[str, Any],
        z_index: int,
        config: LayerConfig | None = None,
    ) -> None:
        if config is None:
            config = convert_layer_config(spec.layer_config, options, WATER)
        try:
            layergroupid = await self._client.create_map(
                config.account, map_config(parse_carto_layers(config))
            )
        except QueryError as e:
            self._fail(request, e)
            return
        if not self._requests.is_current(request):
            return
        self._requests.discard(request)

        handle = TileLayer(spec.id, self._client.tile_url(config.account, layergroupid))
        for event in TILE_EVENTS:
            handle.on(event, lambda: self._on_painted(spec.id, request))
        self._attach(spec.id, handle, z_index)
        if self._loading.owner(spec.id) is request:
            self._unpainted[spec.id] = request

    async def _load_legend_raster(
        self,
        request: CategoryRequest,
        spec: LayerSpec,
        options: Mapping[str, Any],
        style: StyleTemplate,
    ) -> None:
        legend = convert_legend_config(spec.legend_config, options, WATER)
        try:
            data = await self._client.sql(spec.layer_config.account, legend.sql_query)
        except QueryError as e:
            self._fail(request, e)
            return
        if not self._requests.is_current(request):
            return

        rows = data.get("rows") or [{}]
        bucket = rows[0].get("bucket")
        if not bucket:
            self._fail(request, "No buckets available")
            return

        config = convert_layer_config(spec.layer_config, options, WATER)
        layers = [dict(layer) for layer in config.body.get("layers") or []]
        layers[0]["options"] = {
            **(layers[0].get("options") or {}),
            "cartocss": style.render(bucket=bucket, crop=options["crop"]),
        }
        config = LayerConfig(
            account=config.account,
            body={**config.body, "layers": layers},
            params_config=config.params_config,
            sql_config=config.sql_config,
            decode_params=config.decode_params,
            interaction_config=config.interaction_config,
        )
        await self._load_raster(request, spec, options, LEGEND_RASTER_Z_INDEX, config)

    async def _load_markers(
        self, request: CategoryRequest, spec: LayerSpec, options: Mapping[str, Any],
    ) -> None:
        config = convert_layer_config(spec.layer_config, options, FOOD)
        try:
            data = await self._client.fetch(config.body["url"])
        except QueryError as e:
            self._fail(request, e)
            return
        if not self._requests.is_current(request):
            return
        self._requests.discard(request)

        rows = data.get("rows") or [{}]
        features = ((rows[0].get("data") or {}).get("features")) or []
        self._markers[spec.id] = list(features)
        self.set_markers(spec.id, self._surface.get_zoom())
        self._loading.finish(spec.id, request)
        logger.debug(f"Marker layer {spec.id}: {len(features)} features")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _supersede(self, category: str) -> None:
        request = self._requests.supersede(category)
        if request is None:
            return
        logger.debug(f"Superseded {request!r}")
        self._loading.finish(request.layer_id, request)

    def _fail(self, request: CategoryRequest, error: Exception | str) -> None:
        if not self._requests.is_current(request):
            return
        self._requests.discard(request)
        logger.error(f"Layer {request.layer_id} ({request.category}) failed: {error}")
        self._loading.finish(request.layer_id, request)

    def _on_painted(self, layer_id: str, request: CategoryRequest) -> None:
        if self._unpainted.get(layer_id) is not request:
            return
        del self._unpainted[layer_id]
        self._loading.finish(layer_id, request)

    def _on_task_done(self, task: asyncio.Task, request: CategoryRequest) -> None:
        self._tasks.discard(task)
        if task.cancelled() or task.exception() is None:
            return
        logger.opt(exception=task.exception()).error(f"Unexpected failure in {request!r}")
        self._requests.discard(request)
        self._loading.finish(request.layer_id, request)

    def _attach(self, layer_id: str, handle: RenderedLayer, z_index: int | None = None) -> None:
        self._detach(layer_id)
        self._layers[layer_id] = self._surface.add_layer(handle)
        if z_index is not None:
            self._surface.set_z_index(handle, z_index)

    def _detach(self, layer_id: str) -> None:
        handle = self._layers.pop(layer_id, None)
        if handle is None:
            return
        self._surface.remove_layer(handle)
        request = self._unpainted.pop(layer_id, None)
        if request is not None:
            # The paint event can no longer arrive.
            self._loading.finish(layer_id, request)
