"""Hosted backend adapter: PostgREST tables, Storage objects and RPC over HTTP."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any
from urllib.parse import quote

import aiohttp

from .base import BackendError, BackendNotFoundError


logger = logging.getLogger(__name__)

SINGLE_OBJECT_MEDIA_TYPE = "application/vnd.pgrst.object+json"
DEFAULT_TIMEOUT_SEC = 15


def _eq(value: str) -> str:
    return f"eq.{value}"


def _error_detail(body: str) -> str:
    try:
        payload = json.loads(body)
    except ValueError:
        return body.strip()[:300]
    if isinstance(payload, dict):
        for key in ("message", "error", "msg", "hint"):
            if payload.get(key):
                return str(payload[key])
    return body.strip()[:300]


class SupabaseBackend:
    backend_name = "supabase"

    def __init__(
        self,
        *,
        url: str,
        api_key: str,
        table: str = "businesses",
        bucket: str = "business-assets",
        timeout_sec: int = DEFAULT_TIMEOUT_SEC,
    ) -> None:
        if not url:
            raise ValueError("Supabase url is required")
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.table = table
        self.bucket = bucket
        self.timeout = aiohttp.ClientTimeout(total=max(1, int(timeout_sec)))

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
        }
        if extra:
            headers.update(extra)
        return headers

    def _table_url(self) -> str:
        return f"{self.url}/rest/v1/{quote(self.table)}"

    def _object_path(self, path: str) -> str:
        return f"{quote(self.bucket)}/{quote(path.lstrip('/'))}"

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
        json_body: Any = None,
        data: bytes | None = None,
    ) -> Any:
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.request(
                method,
                url,
                params=params,
                headers=self._headers(headers),
                json=json_body,
                data=data,
            ) as resp:
                body = await resp.text()
                if resp.status == 404 or resp.status == 406:
                    # 406: PostgREST single-object request matched zero (or many) rows.
                    raise BackendNotFoundError(_error_detail(body) or "Not found", status=resp.status)
                if resp.status >= 400:
                    raise BackendError(
                        f"{method} {url} failed: {_error_detail(body) or resp.reason}",
                        status=resp.status,
                    )
                if not body:
                    return None
                try:
                    return json.loads(body)
                except ValueError as error:
                    raise BackendError(f"{method} {url} returned non-JSON body", status=resp.status) from error

    async def fetch_business(self, business_id: str, columns: Sequence[str]) -> dict[str, Any]:
        row = await self._request(
            "GET",
            self._table_url(),
            params={"select": ",".join(columns) or "*", "id": _eq(business_id)},
            headers={"Accept": SINGLE_OBJECT_MEDIA_TYPE},
        )
        if not isinstance(row, dict):
            raise BackendNotFoundError(f"Business {business_id} not found")
        return row

    async def update_business(self, business_id: str, values: dict[str, Any]) -> dict[str, Any]:
        rows = await self._request(
            "PATCH",
            self._table_url(),
            params={"id": _eq(business_id)},
            headers={"Prefer": "return=representation"},
            json_body=values,
        )
        if not rows:
            raise BackendNotFoundError(f"Business {business_id} not found")
        return dict(rows[0])

    async def delete_business(self, business_id: str) -> None:
        await self._request(
            "DELETE",
            self._table_url(),
            params={"id": _eq(business_id)},
            headers={"Prefer": "return=minimal"},
        )

    async def upload_object(self, path: str, data: bytes, *, content_type: str) -> str:
        result = await self._request(
            "POST",
            f"{self.url}/storage/v1/object/{self._object_path(path)}",
            headers={
                "Content-Type": content_type or "application/octet-stream",
                "x-upsert": "false",
                "cache-control": "max-age=3600",
            },
            data=data,
        )
        logger.debug("Uploaded object %s (%s bytes): %s", path, len(data), result)
        return path

    def public_url(self, path: str) -> str:
        return f"{self.url}/storage/v1/object/public/{self._object_path(path)}"

    async def call_procedure(self, name: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        rows = await self._request(
            "POST",
            f"{self.url}/rest/v1/rpc/{quote(name)}",
            json_body=params or {},
        )
        if rows is None:
            return []
        if isinstance(rows, dict):
            return [rows]
        return [dict(row) for row in rows]
