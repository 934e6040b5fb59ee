"""Dashboard filters and the query converters that consume them.

Layer definitions carry SQL templates with ``{{key}}`` tokens. Two kinds of
tokens exist:

- params tokens, replaced by a single value (``substitution``),
- sql tokens, replaced by a ``WHERE`` clause assembled from several filter
  values (``concatenation``).

Water and food layers map the same filters to different values (the food
tables use 2005 as their baseline year, water tables 2010), hence one
converter per kind.
"""

from __future__ import annotations

import copy
from dataclasses import asdict, dataclass, replace
from typing import Any, Callable, Iterable, Mapping

from mapengine.layers.layer import FOOD, WATER, LayerConfig, LegendConfig


@dataclass(frozen=True)
class FilterState:
    """Global filter selection shared by every map layer and widget."""

    page: str = ""
    crop: str = "all"
    scope: str = "global"
    country: str | None = None
    country_name: str | None = None
    period: str = "year"
    period_value: str = "baseline"
    year: str = "baseline"
    food: str = "none"
    indicator: str = "none"
    irrigation: str = "all"
    type: str = "absolute"
    iso: str | None = None

    def update(self, **changes: Any) -> "FilterState":
        """Return a copy with ``changes`` merged over the current values."""
        return replace(self, **changes)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def _token(key: str) -> str:
    return "{{" + key + "}}"


def _sql_literal(value: Any) -> str:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return "'" + str(value).replace("'", "''") + "'"


def substitution(text: str, params: Iterable[Mapping[str, Any]]) -> str:
    """Replace each ``{{key}}`` token with its param value."""
    for param in params:
        value = param.get("value")
        text = text.replace(_token(param["key"]), "" if value is None else str(value))
    return text


def concatenation(text: str, sql_params: Iterable[Mapping[str, Any]]) -> str:
    """Replace each ``{{key}}`` token with a WHERE clause.

    Every sql param lists ``keyParams``; those with a non-null value become
    ``name = value`` conditions joined with AND. A token whose key params
    are all null is replaced by an empty string.
    """
    for param in sql_params:
        conditions = [
            f"{p['key']} = {_sql_literal(p['value'])}"
            for p in param.get("keyParams", ())
            if p.get("value") is not None
        ]
        clause = ("WHERE " + " AND ".join(conditions)) if conditions else ""
        text = text.replace(_token(param["key"]), clause)
    return text


_WATER_YEARS = {"baseline": 2010, "2020": 2020, "2030": 2030, "2040": 2040, "2050": 2050}
_FOOD_YEARS = {"baseline": 2005, "2020": 2020, "2030": 2030, "2040": 2040, "2050": 2050}
_WATER_COLUMN_YEARS = {"baseline": "bs", "2020": "20", "2030": "30", "2040": "40", "2050": "50"}


def water_column(filters: Mapping[str, Any]) -> str:
    """Name of the water-stress column for the selected year.

    ``ws`` (water stress) + year code + scenario (``00`` for baseline,
    ``28`` for projections) + ``t`` (data type) + ``r`` (suffix).
    """
    year = str(filters.get("year"))
    scenario = "00" if year == "baseline" else "28"
    return f"ws{_WATER_COLUMN_YEARS.get(year, '')}{scenario}tr"


def _key_params(param: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    return list(param.get("keyParams") or param.get("key_params") or ())


def water_converter(
    text: str = "",
    filters: Mapping[str, Any] | None = None,
    params_config: Iterable[Mapping[str, Any]] = (),
    sql_config: Iterable[Mapping[str, Any]] = (),
) -> str:
    filters = filters or {}

    params = []
    for param in params_config:
        if param["key"] == "water_column":
            params.append({"key": param["key"], "value": water_column(filters)})
        else:
            params.append({"key": param["key"], "value": filters.get(param["key"])})

    sql_params = []
    for param in sql_config:
        key_params = []
        for p in _key_params(param):
            if p["key"] == "year":
                value = _WATER_YEARS.get(str(filters.get("year")))
            elif p["key"] == "crop":
                crop = filters.get("crop")
                value = crop if crop != "all" else None
            else:
                value = filters.get(p["key"])
            key_params.append({"key": p["key"], "value": value})
        sql_params.append({"key": param["key"], "keyParams": key_params})

    return concatenation(substitution(text, params), sql_params)


def food_converter(
    text: str = "",
    filters: Mapping[str, Any] | None = None,
    params_config: Iterable[Mapping[str, Any]] = (),
    sql_config: Iterable[Mapping[str, Any]] = (),
) -> str:
    filters = filters or {}

    params = []
    for param in params_config:
        if param["key"] == "year":
            value = _FOOD_YEARS.get(str(filters.get("year")))
        else:
            value = filters.get(param["key"])
        params.append({"key": param["key"], "value": value})

    sql_params = [
        {
            "key": param["key"],
            "keyParams": [
                {"key": p["key"], "value": filters.get(p["key"])}
                for p in _key_params(param)
            ],
        }
        for param in sql_config
    ]

    return concatenation(substitution(text, params), sql_params)


CONVERTERS: dict[str, Callable[..., str]] = {
    WATER: water_converter,
    FOOD: food_converter,
}


def convert_layer_config(
    config: LayerConfig, filters: Mapping[str, Any], kind: str = WATER,
) -> LayerConfig:
    """Apply the ``kind`` converter to every SQL template of a layer config.

    Covers ``body.layers[*].options.sql`` for raster layers and
    ``body.url`` for marker layers. The input config is left untouched.
    """
    convert = CONVERTERS[kind]
    body = copy.deepcopy(dict(config.body))

    for layer in body.get("layers") or []:
        options = layer.get("options") or {}
        if options.get("sql"):
            options["sql"] = convert(
                options["sql"], filters, config.params_config, config.sql_config
            )
    if body.get("url"):
        body["url"] = convert(body["url"], filters, config.params_config, config.sql_config)

    return replace(config, body=body)


def convert_legend_config(
    config: LegendConfig, filters: Mapping[str, Any], kind: str = WATER,
) -> LegendConfig:
    if not config.sql_query:
        return config
    convert = CONVERTERS[kind]
    return replace(
        config,
        sql_query=convert(config.sql_query, filters, config.params_config, config.sql_config),
    )
