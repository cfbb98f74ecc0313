import sys
from pathlib import Path

import httpx
import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from adapters.base import HttpxTransport, TransportError, TransportResponse


@pytest.mark.asyncio
async def test_send_posts_body_with_headers():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, text='{"value": "created"}')

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    transport = HttpxTransport(client)

    response = await transport.send(
        "https://example.test/api/v3/lk/documents/create",
        '{"docId": "doc123"}',
        {"Content-Type": "application/json", "Signature": "sig"},
    )

    assert response == TransportResponse(201, '{"value": "created"}')
    assert response.is_success
    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "https://example.test/api/v3/lk/documents/create"
    assert request.headers["Signature"] == "sig"
    assert request.headers["Content-Type"] == "application/json"
    assert request.content == b'{"docId": "doc123"}'
    await client.aclose()


@pytest.mark.asyncio
async def test_error_status_is_returned_not_raised():
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(503, text="busy"))
    )
    transport = HttpxTransport(client)

    response = await transport.send("https://example.test/x", "{}", {})

    assert response.status_code == 503
    assert not response.is_success
    await client.aclose()


@pytest.mark.asyncio
async def test_connection_failure_becomes_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    transport = HttpxTransport(client)

    with pytest.raises(TransportError, match="connection refused") as excinfo:
        await transport.send("https://example.test/x", "{}", {})

    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)
    await client.aclose()


@pytest.mark.asyncio
async def test_aclose_only_closes_owned_client():
    injected = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    await HttpxTransport(injected).aclose()
    assert not injected.is_closed
    await injected.aclose()

    owned = HttpxTransport(timeout=1.0)
    await owned.aclose()
    assert owned._client.is_closed


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "handler",
    [
        lambda request: httpx.Response(
            200, headers={"Content-Encoding": "gzip"}, content=b"not gzip"
        ),
        lambda request: httpx.Response(302, headers={"Location": str(request.url)}),
    ],
    ids=["corrupt-gzip-body", "redirect-loop"],
)
async def test_request_errors_become_transport_errors(handler):
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), follow_redirects=True, max_redirects=2
    )
    transport = HttpxTransport(client)

    with pytest.raises(TransportError) as excinfo:
        await transport.send("https://example.test/x", "{}", {})

    assert isinstance(excinfo.value.__cause__, httpx.RequestError)
    await client.aclose()
