"""
Tests for the aiohttp transport against a local test server.
"""

import asyncio

import pytest
from aiohttp import web
from aiohttp import test_utils

from ticker_viewer.datafeed.transport import AiohttpTransport
from ticker_viewer.errors import TransportError


def make_app() -> web.Application:
    async def summary(request):
        return web.json_response({"market_data": {"current_price": {"usd": 1800.0}}})

    async def slow(request):
        await asyncio.sleep(5)
        return web.json_response({})

    async def missing(request):
        raise web.HTTPNotFound()

    app = web.Application()
    app.router.add_get("/summary", summary)
    app.router.add_get("/slow", slow)
    app.router.add_get("/missing", missing)
    return app


class TestAiohttpFetch:
    @pytest.mark.asyncio
    async def test_decodes_json(self):
        transport = AiohttpTransport()
        async with test_utils.TestServer(make_app()) as server:
            doc = await transport.fetch(str(server.make_url("/summary")))
            await transport.close()
        assert doc["market_data"]["current_price"]["usd"] == 1800.0

    @pytest.mark.asyncio
    async def test_timeout_becomes_transport_error(self):
        transport = AiohttpTransport(fetch_timeout_sec=0.05)
        async with test_utils.TestServer(make_app()) as server:
            with pytest.raises(TransportError) as exc_info:
                await transport.fetch(str(server.make_url("/slow")))
            await transport.close()
        assert "timed out" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_http_error_becomes_transport_error(self):
        transport = AiohttpTransport()
        async with test_utils.TestServer(make_app()) as server:
            with pytest.raises(TransportError):
                await transport.fetch(str(server.make_url("/missing")))
            await transport.close()
