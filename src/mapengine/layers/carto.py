"""Carto query service — SQL API and Maps API (anonymous layergroups).

  SQL:   https://{account}.carto.com/api/v2/sql?q=...
  Maps:  https://{account}.carto.com/api/v1/map?stat_tag=API&config=...
  Tiles: https://{account}.carto.com/api/v1/map/{layergroupid}/{z}/{x}/{y}.png

Every failure (transport, HTTP status, undecodable or incomplete payload)
is raised as QueryError. Cancellation is asyncio task cancellation.
"""

from __future__ import annotations

import json
from typing import Any

import httpx
from loguru import logger

MAP_CONFIG_VERSION = "1.3.0"
STAT_TAG = "API"


class QueryError(Exception):
    """A remote query failed."""


def map_config(layers: list[dict[str, Any]]) -> dict[str, Any]:
    """Anonymous map config for the Maps API."""
    return {"version": MAP_CONFIG_VERSION, "stat_tag": STAT_TAG, "layers": layers}


class CartoClient:
    """Thin async client for the Carto APIs."""

    def __init__(
        self,
        domain: str = "carto.com",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.domain = domain
        self.timeout = timeout
        self._transport = transport

    def base_url(self, account: str) -> str:
        return f"https://{account}.{self.domain}"

    def tile_url(self, account: str, layergroupid: str) -> str:
        return f"{self.base_url(account)}/api/v1/map/{layergroupid}/{{z}}/{{x}}/{{y}}.png"

    async def _get_json(self, url: str, params: dict[str, str] | None = None) -> Any:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                resp = await client.get(url, params=params)
                resp.raise_for_status()
            except httpx.HTTPError as e:
                raise QueryError(f"Carto request failed: {e}") from e
        try:
            return resp.json()
        except ValueError as e:
            raise QueryError(f"Carto returned invalid JSON from {url}") from e

    async def sql(self, account: str, query: str) -> dict[str, Any]:
        """Run ``query`` against the SQL API; returns the ``{rows: [...]}`` payload."""
        logger.debug(f"Carto SQL ({account}): {query}")
        return await self._get_json(f"{self.base_url(account)}/api/v2/sql", {"q": query})

    async def fetch(self, url: str) -> dict[str, Any]:
        """GET a fully-formed data URL (marker layers ship their own SQL URL)."""
        logger.debug(f"Carto fetch: {url}")
        return await self._get_json(url)

    async def create_map(self, account: str, config: dict[str, Any]) -> str:
        """Register an anonymous map and return its layergroupid."""
        data = await self._get_json(
            f"{self.base_url(account)}/api/v1/map",
            {"stat_tag": STAT_TAG, "config": json.dumps(config)},
        )
        layergroupid = data.get("layergroupid") if isinstance(data, dict) else None
        if not layergroupid:
            errors = data.get("errors") if isinstance(data, dict) else None
            raise QueryError(f"Carto map registration returned no layergroupid: {errors or data}")
        return layergroupid
