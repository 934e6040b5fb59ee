"""Layer descriptors for the map layer system.

A LayerSpec is what the map view asks for; it is immutable once submitted.
Submitting a new LayerSpec with the same id replaces the previous layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

# Categories with a dedicated request path. Any other category is
# rendered as a Carto raster, legend-backed when a legend query exists.
WATER = "water"
FOOD = "food"

CARTO_PROVIDERS = ("cartodb", "carto")


@dataclass(frozen=True)
class LegendConfig:
    """Legend query used to resolve the bucket threshold of a layer.

    Attributes:
        sql_query: SQL template returning one row with a ``bucket`` column.
        params_config: Keys substituted into ``{{key}}`` tokens.
        sql_config: Where-clause keys, see ``filters.concatenation``.
    """

    sql_query: str | None = None
    params_config: tuple = ()
    sql_config: tuple = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "LegendConfig":
        data = data or {}
        return cls(
            sql_query=data.get("sqlQuery") or data.get("sql_query"),
            params_config=tuple(data.get("paramsConfig") or data.get("params_config") or ()),
            sql_config=tuple(data.get("sqlConfig") or data.get("sql_config") or ()),
        )


@dataclass(frozen=True)
class LayerConfig:
    """Provider configuration of a layer.

    Attributes:
        account: Carto account that owns the tables.
        body: Provider payload. Raster layers carry ``layers`` (Carto layer
            definitions with ``options.sql`` and ``options.cartocss``);
            marker layers carry ``url`` (the data SQL URL).
        params_config: Keys substituted into ``{{key}}`` tokens.
        sql_config: Where-clause keys, see ``filters.concatenation``.
        decode_params: Tile decode parameters, passed through.
        interaction_config: Interactivity configuration, passed through.
    """

    account: str = ""
    body: Mapping[str, Any] = field(default_factory=dict)
    params_config: tuple = ()
    sql_config: tuple = ()
    decode_params: Mapping[str, Any] | None = None
    interaction_config: Mapping[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "LayerConfig":
        data = data or {}
        return cls(
            account=data.get("account", ""),
            body=dict(data.get("body") or {}),
            params_config=tuple(data.get("paramsConfig") or data.get("params_config") or ()),
            sql_config=tuple(data.get("sqlConfig") or data.get("sql_config") or ()),
            decode_params=data.get("decodeParams") or data.get("decode_params"),
            interaction_config=data.get("interactionConfig") or data.get("interaction_config"),
        )


@dataclass(frozen=True)
class LayerSpec:
    """A layer the map should display.

    Attributes:
        id: Unique layer identifier.
        provider: Query backend ("cartodb"); other providers are ignored.
        category: Cancellation group. At most one request per category is
            in flight at any time.
        layer_config: Provider configuration.
        legend_config: Optional legend (bucket) query.
        name: Human-readable display name.
    """

    id: str
    provider: str
    category: str
    layer_config: LayerConfig = field(default_factory=LayerConfig)
    legend_config: LegendConfig = field(default_factory=LegendConfig)
    name: str = ""

    @property
    def has_legend_query(self) -> bool:
        return bool(self.legend_config.sql_query)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LayerSpec":
        """Build a LayerSpec from the dashboard's JSON layer document."""
        return cls(
            id=str(data["id"]),
            provider=data.get("provider", ""),
            category=data.get("category", ""),
            layer_config=LayerConfig.from_dict(
                data.get("layerConfig") or data.get("layer_config")
            ),
            legend_config=LegendConfig.from_dict(
                data.get("legendConfig") or data.get("legend_config")
            ),
            name=data.get("name", ""),
        )
