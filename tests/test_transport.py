import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from conftest import sse
from scatterbrain.error_handler import ConnectionFailure, SynthesisHTTPError
from scatterbrain.transport import AiohttpStreamTransport


async def start(handler):
    app = web.Application()
    app.router.add_post('/synthesize', handler)
    server = TestServer(app)
    await server.start_server()
    return server


@pytest.mark.asyncio
async def test_streams_body_chunks():
    received = {}

    async def handler(request):
        received['payload'] = await request.json()
        received['accept'] = request.headers.get('Accept')
        response = web.StreamResponse(headers={'Content-Type': 'text/event-stream'})
        await response.prepare(request)
        await response.write(sse({'type': 'progress', 'data': {'progress': 10}}))
        await response.write(sse({'type': 'complete', 'data': {'ok': True}}))
        await response.write_eof()
        return response

    server = await start(handler)
    try:
        transport = AiohttpStreamTransport(timeout=5)
        async with transport.post_stream(str(server.make_url('/synthesize')), {'input': 'hi', 'stream': True}) as chunks:
            body = b''.join([chunk async for chunk in chunks])
    finally:
        await server.close()

    assert received['payload'] == {'input': 'hi', 'stream': True}
    assert received['accept'] == 'text/event-stream'
    assert b'"type": "complete"' in body


@pytest.mark.asyncio
async def test_error_status_carries_parsed_body():
    async def handler(request):
        return web.json_response(
            {'error': 'Monthly limit reached', 'upgrade_required': True, 'current_tier': 'starter'},
            status=429
        )

    server = await start(handler)
    try:
        transport = AiohttpStreamTransport(timeout=5)
        with pytest.raises(SynthesisHTTPError) as exc_info:
            async with transport.post_stream(str(server.make_url('/synthesize')), {}):
                pass
    finally:
        await server.close()

    assert exc_info.value.status == 429
    assert exc_info.value.upgrade_required


@pytest.mark.asyncio
async def test_non_json_error_body():
    async def handler(request):
        return web.Response(text='upstream exploded', status=502)

    server = await start(handler)
    try:
        with pytest.raises(SynthesisHTTPError) as exc_info:
            async with AiohttpStreamTransport(timeout=5).post_stream(str(server.make_url('/synthesize')), {}):
                pass
    finally:
        await server.close()

    assert exc_info.value.status == 502
    assert exc_info.value.body == {'error': 'upstream exploded'}


@pytest.mark.asyncio
async def test_unreachable_endpoint_is_connection_failure():
    async def handler(request):
        return web.Response()

    server = await start(handler)
    url = str(server.make_url('/synthesize'))
    await server.close()

    with pytest.raises(ConnectionFailure):
        async with AiohttpStreamTransport(timeout=5).post_stream(url, {}):
            pass
