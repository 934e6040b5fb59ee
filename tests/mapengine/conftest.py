"""Shared fixtures for map engine tests."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import pytest
from loguru import logger

from mapengine.layers.layer import LayerSpec
from mapengine.layers.surface import InMemorySurface


async def settle(rounds: int = 10) -> None:
    """Let scheduled tasks run until they block again."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@dataclass
class FakeCall:
    kind: str
    kwargs: dict[str, Any]
    future: asyncio.Future = field(repr=False)

    def resolve(self, value: Any) -> None:
        self.future.set_result(value)

    def fail(self, error: BaseException) -> None:
        self.future.set_exception(error)


class FakeCarto:
    """In-memory stand-in for CartoClient.

    Without ``responses`` every query blocks until the test resolves it
    through ``calls``. With ``responses`` (kind -> value, exception or
    callable(**kwargs)) queries answer on their own.
    """

    def __init__(self, responses: dict[str, Any] | None = None) -> None:
        self.responses = responses
        self.calls: list[FakeCall] = []

    def tile_url(self, account: str, layergroupid: str) -> str:
        return f"https://{account}.carto.com/api/v1/map/{layergroupid}/{{z}}/{{x}}/{{y}}.png"

    async def sql(self, account: str, query: str) -> dict:
        return await self._call("sql", account=account, query=query)

    async def fetch(self, url: str) -> dict:
        return await self._call("fetch", url=url)

    async def create_map(self, account: str, config: dict) -> str:
        return await self._call("create_map", account=account, config=config)

    def last(self, kind: str) -> FakeCall:
        return [c for c in self.calls if c.kind == kind][-1]

    async def _call(self, kind: str, **kwargs: Any) -> Any:
        call = FakeCall(kind, kwargs, asyncio.get_running_loop().create_future())
        self.calls.append(call)
        if self.responses is not None and kind in self.responses:
            answer = self.responses[kind]
            if callable(answer):
                answer = answer(**kwargs)
            if isinstance(answer, BaseException):
                call.fail(answer)
            else:
                call.resolve(answer)
        return await call.future


def water_spec(layer_id: str = "water-risk") -> LayerSpec:
    return LayerSpec.from_dict({
        "id": layer_id,
        "provider": "cartodb",
        "category": "water",
        "name": "Water risk",
        "layerConfig": {
            "account": "wri-01",
            "body": {
                "layers": [{
                    "type": "cartodb",
                    "options": {
                        "sql": "SELECT * FROM water_risk_indicators {{where}}",
                        "cartocss": "#layer { polygon-fill: #0099CD; }",
                        "cartocssVersion": "2.3.0",
                    },
                }],
            },
            "sqlConfig": [
                {"key": "where", "keyParams": [{"key": "year"}, {"key": "crop"}]},
            ],
        },
    })


def legend_spec(layer_id: str = "one-crop") -> LayerSpec:
    return LayerSpec.from_dict({
        "id": layer_id,
        "provider": "cartodb",
        "category": "crops",
        "name": "Crop production",
        "layerConfig": {
            "account": "wri-01",
            "body": {
                "layers": [{
                    "type": "cartodb",
                    "options": {
                        "sql": "SELECT * FROM crops WHERE crop = '{{crop}}'",
                        "cartocss": "#layer [value >= {{bucket}}] { marker-fill: {{color}}; }",
                        "cartocssVersion": "2.3.0",
                    },
                }],
            },
            "paramsConfig": [{"key": "crop"}],
        },
        "legendConfig": {
            "sqlQuery": "SELECT max(value) AS bucket FROM crops WHERE crop = '{{crop}}'",
            "paramsConfig": [{"key": "crop"}],
        },
    })


def food_spec(layer_id: str = "food-production") -> LayerSpec:
    return LayerSpec.from_dict({
        "id": layer_id,
        "provider": "cartodb",
        "category": "food",
        "name": "Food production",
        "layerConfig": {
            "account": "wri-rw",
            "body": {
                "url": "https://wri-rw.carto.com/api/v2/sql?q=SELECT * FROM food WHERE year = {{year}}",
            },
            "paramsConfig": [{"key": "year"}],
        },
    })


def marker(name: str, value: Any) -> dict:
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [0.0, 0.0]},
        "properties": {"name": name, "value": value},
    }


def marker_payload(features: list[dict]) -> dict:
    return {"rows": [{"data": {"type": "FeatureCollection", "features": features}}]}


@pytest.fixture
def surface():
    return InMemorySurface(zoom=3)


@pytest.fixture
def carto():
    return FakeCarto()


@pytest.fixture
def error_logs():
    """Records of every loguru message at ERROR or above."""
    records: list[dict] = []
    handler_id = logger.add(lambda message: records.append(message.record), level="ERROR")
    yield records
    logger.remove(handler_id)
