#!/usr/bin/env python3
"""
Contract smoke test: hosted backend adapter against a local aiohttp server.

Validates request shapes sent by the adapter:
- single-row GET with select/id filters and the object media type;
- PATCH with return=representation, empty result -> not found;
- DELETE by id, storage upload with content type, RPC call;
- auth headers on every request;
- 406 maps to BackendNotFoundError, 5xx to BackendError.

Run:
  python3 scripts/smoke_supabase_backend_contract.py
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any


def _resolve_repo_root() -> Path:
    candidates: list[Path] = []
    try:
        candidates.append(Path(__file__).resolve().parents[1])
    except Exception:
        pass
    candidates.append(Path.cwd())
    for root in candidates:
        if (root / "pyproject.toml").exists() and (root / "src").exists():
            return root
    raise FileNotFoundError("Cannot locate repo root with pyproject.toml and src/")


REPO_ROOT = _resolve_repo_root()
if str(REPO_ROOT / "src") not in sys.path:
    sys.path.insert(0, str(REPO_ROOT / "src"))

API_KEY = "test-service-key"


def _assert(cond: bool, msg: str) -> None:
    if not cond:
        raise AssertionError(msg)


class _FakeHostedApi:
    def __init__(self) -> None:
        self.requests: list[dict[str, Any]] = []

    async def handle(self, request):
        from aiohttp import web

        body = await request.read()
        self.requests.append(
            {
                "method": request.method,
                "path": request.path,
                "query": dict(request.query),
                "headers": request.headers.copy(),
                "body": body,
            }
        )
        business_id = request.query.get("id", "")
        if request.path == "/rest/v1/businesses":
            if business_id == "eq.missing":
                if request.method == "PATCH":
                    return web.json_response([])
                return web.json_response({"message": "JSON object requested, multiple (or no) rows returned"}, status=406)
            if business_id == "eq.broken":
                return web.json_response({"message": "database is down"}, status=500)
            if request.method == "GET":
                return web.json_response({"listing_expired_date": "2026-01-01"})
            if request.method == "PATCH":
                values = json.loads(body)
                return web.json_response([{"id": business_id[3:], **values}])
            if request.method == "DELETE":
                return web.Response(status=204)
        if request.path.startswith("/storage/v1/object/"):
            return web.json_response({"Key": request.path.split("/storage/v1/object/", 1)[1]})
        if request.path == "/rest/v1/rpc/get_pending_businesses_with_emails":
            return web.json_response(
                [{"id": "B1", "name": "Bakery", "user_email": "owner1@example.com", "payment_status": "to_be_confirmed"}]
            )
        return web.json_response({"message": "not found"}, status=404)


async def _run_checks() -> None:
    from aiohttp import web
    from aiohttp.test_utils import TestServer

    from backend import BackendError, BackendNotFoundError, SupabaseBackend

    api = _FakeHostedApi()
    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", api.handle)
    server = TestServer(app)
    await server.start_server()
    try:
        backend = SupabaseBackend(url=f"http://{server.host}:{server.port}/", api_key=API_KEY, timeout_sec=5)

        row = await backend.fetch_business("B1", ("listing_expired_date",))
        _assert(row == {"listing_expired_date": "2026-01-01"}, f"fetch: {row}")
        req = api.requests[-1]
        _assert(req["method"] == "GET" and req["query"] == {"select": "listing_expired_date", "id": "eq.B1"}, f"GET: {req}")
        _assert(req["headers"].get("Accept") == "application/vnd.pgrst.object+json", f"GET headers: {req['headers']}")

        updated = await backend.update_business("B1", {"payment_status": "confirmed"})
        _assert(updated == {"id": "B1", "payment_status": "confirmed"}, f"update: {updated}")
        req = api.requests[-1]
        _assert(req["method"] == "PATCH" and req["query"] == {"id": "eq.B1"}, f"PATCH: {req}")
        _assert(json.loads(req["body"]) == {"payment_status": "confirmed"}, f"PATCH body: {req['body']!r}")
        _assert(req["headers"].get("Prefer") == "return=representation", f"PATCH headers: {req['headers']}")

        await backend.delete_business("B2")
        req = api.requests[-1]
        _assert(req["method"] == "DELETE" and req["query"] == {"id": "eq.B2"}, f"DELETE: {req}")

        path = await backend.upload_object("receipts/B1-abc.pdf", b"%PDF", content_type="application/pdf")
        req = api.requests[-1]
        _assert(path == "receipts/B1-abc.pdf", f"stored path: {path}")
        _assert(req["method"] == "POST" and req["path"] == "/storage/v1/object/business-assets/receipts/B1-abc.pdf", f"upload: {req}")
        _assert(req["body"] == b"%PDF" and req["headers"].get("Content-Type") == "application/pdf", f"upload: {req}")
        _assert(req["headers"].get("x-upsert") == "false", "uploads must not overwrite")
        _assert(
            backend.public_url(path)
            == f"http://{server.host}:{server.port}/storage/v1/object/public/business-assets/receipts/B1-abc.pdf",
            f"public url: {backend.public_url(path)}",
        )

        rows = await backend.call_procedure("get_pending_businesses_with_emails")
        _assert([r["id"] for r in rows] == ["B1"] and rows[0]["user_email"] == "owner1@example.com", f"rpc: {rows}")
        req = api.requests[-1]
        _assert(req["method"] == "POST" and json.loads(req["body"]) == {}, f"rpc: {req}")

        for req in api.requests:
            _assert(req["headers"].get("apikey") == API_KEY, f"apikey header missing: {req}")
            _assert(req["headers"].get("Authorization") == f"Bearer {API_KEY}", f"bearer header missing: {req}")

        for call in (
            lambda: backend.fetch_business("missing", ("id",)),
            lambda: backend.update_business("missing", {"payment_status": "confirmed"}),
            lambda: backend.call_procedure("no_such_procedure"),
        ):
            try:
                await call()
            except BackendNotFoundError:
                pass
            else:
                raise AssertionError("missing rows/procedures must raise BackendNotFoundError")

        try:
            await backend.update_business("broken", {"payment_status": "confirmed"})
        except BackendNotFoundError:
            raise AssertionError("server errors are not 'not found'")
        except BackendError as exc:
            _assert(exc.status == 500 and "database is down" in str(exc), f"error: {exc!r}")
        else:
            raise AssertionError("server error must raise BackendError")
    finally:
        await server.close()


def test_supabase_backend_contract() -> None:
    asyncio.run(_run_checks())


def main() -> None:
    test_supabase_backend_contract()
    print("OK: hosted backend contract smoke passed.")


if __name__ == "__main__":
    main()
