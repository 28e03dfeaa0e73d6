import asyncio

import httpx
import pytest

from client.config import ClientSettings
from client.sse_client import ConnectionState, ReconnectingClient


SSE_HEADERS = {"content-type": "text/event-stream"}


def _settings(**overrides) -> ClientSettings:
    values = {"base_url": "http://testserver", "max_reconnect_attempts": 3, "reconnect_base_delay": 0.5}
    values.update(overrides)
    return ClientSettings(**values)


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


async def wait_until(predicate, timeout: float = 2.0) -> None:
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout)


def _scripted(responses):
    """Transport replaying ``responses`` in order; the last entry repeats."""
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        step = responses[min(len(requests) - 1, len(responses) - 1)]
        if isinstance(step, Exception):
            raise step
        if isinstance(step, int):
            return httpx.Response(step)
        return httpx.Response(200, headers=SSE_HEADERS, content=step)

    return httpx.MockTransport(handler), requests


@pytest.mark.asyncio
async def test_backoff_doubles_until_attempts_exhausted():
    transport, requests = _scripted([503])
    sleep = RecordingSleep()
    client = ReconnectingClient(_settings(), transport=transport, sleep=sleep)
    calls = []

    client.subscribe(7, calls.append)
    await asyncio.wait_for(client.connection_task(7), 2)

    assert sleep.delays == [0.5, 1.0, 2.0]
    assert len(requests) == 4
    assert calls == []
    assert client.state(7) == ConnectionState.DISCONNECTED
    await client.aclose()


@pytest.mark.asyncio
async def test_message_resets_backoff_to_base_delay():
    transport, requests = _scripted([503, 503, b'data: {"type":"connected","listId":7}\n\n', 503])
    sleep = RecordingSleep()
    client = ReconnectingClient(_settings(max_reconnect_attempts=5), transport=transport, sleep=sleep)
    calls = []

    client.subscribe(7, calls.append)
    await asyncio.wait_for(client.connection_task(7), 2)

    assert calls == [{"type": "connected", "listId": 7}]
    # two failures, a healthy stream that ends, then five failures from the base again
    assert sleep.delays == [0.5, 1.0, 0.5, 1.0, 2.0, 4.0, 8.0]
    await client.aclose()


@pytest.mark.asyncio
async def test_handshake_failures_then_success_resets_counter():
    request_for_error = httpx.Request("GET", "http://testserver")
    transport, requests = _scripted([
        500,
        httpx.ConnectError("refused", request=request_for_error),
        502,
        b'data: {"type":"connected","listId":7}\n\n',
    ])
    client = ReconnectingClient(_settings(max_reconnect_attempts=5), transport=transport, sleep=RecordingSleep())
    seen = []

    def callback(message):
        seen.append((message, client.attempts(7)))

    unsubscribe = client.subscribe(7, callback)
    await wait_until(lambda: seen)
    unsubscribe()

    assert seen[0] == ({"type": "connected", "listId": 7}, 0)
    assert len(requests) >= 4
    await client.aclose()


@pytest.mark.asyncio
async def test_unsubscribe_is_idempotent():
    transport, _ = _scripted([503])
    client = ReconnectingClient(_settings(), transport=transport, sleep=RecordingSleep())

    unsubscribe = client.subscribe(7, lambda m: None)
    unsubscribe()
    unsubscribe()
    client.subscribe(8, lambda m: None)()

    assert client.state(7) == ConnectionState.DISCONNECTED
    assert client.callback_count(7) == 0
    await client.aclose()


@pytest.mark.asyncio
async def test_connection_shared_until_last_subscriber_leaves():
    feed: asyncio.Queue = asyncio.Queue()
    requests = []

    async def body():
        while True:
            yield await feed.get()

    def handler(request):
        requests.append(request)
        return httpx.Response(200, headers=SSE_HEADERS, content=body())

    client = ReconnectingClient(
        _settings(), transport=httpx.MockTransport(handler), sleep=RecordingSleep(),
        token_provider=lambda: "tok",
    )
    first, second = [], []
    unsubscribe_first = client.subscribe(7, first.append)
    unsubscribe_second = client.subscribe(7, second.append)

    await feed.put(b'data: {"type":"connected","listId":7}\n\n')
    await wait_until(lambda: len(second) == 1)
    assert len(first) == 1

    unsubscribe_first()
    await feed.put(b'data: {"type":"item_created","item":{"id":1}}\n\n')
    await wait_until(lambda: len(second) == 2)
    assert len(first) == 1

    task = client.connection_task(7)
    assert not task.done()
    assert client.state(7) == ConnectionState.STREAMING

    unsubscribe_second()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert task.cancelled()
    assert len(requests) == 1
    assert requests[0].headers["Authorization"] == "Bearer tok"
    assert requests[0].url.path == "/api/v1/lists/7/updates"
    await client.aclose()


@pytest.mark.asyncio
async def test_unsubscribe_cancels_pending_backoff():
    gate = asyncio.Event()
    entered = asyncio.Event()

    async def blocking_sleep(delay):
        entered.set()
        await gate.wait()

    transport, requests = _scripted([503])
    client = ReconnectingClient(_settings(), transport=transport, sleep=blocking_sleep)
    unsubscribe = client.subscribe(7, lambda m: None)
    await asyncio.wait_for(entered.wait(), 2)
    task = client.connection_task(7)

    unsubscribe()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert len(requests) == 1
    await client.aclose()


@pytest.mark.asyncio
async def test_auth_rejection_short_circuits_when_configured():
    transport, requests = _scripted([401])
    sleep = RecordingSleep()
    client = ReconnectingClient(_settings(retry_auth_failures=False), transport=transport, sleep=sleep)

    client.subscribe(7, lambda m: None)
    await asyncio.wait_for(client.connection_task(7), 2)

    assert sleep.delays == []
    assert len(requests) == 1
    assert client.state(7) == ConnectionState.DISCONNECTED
    await client.aclose()


@pytest.mark.asyncio
async def test_auth_rejection_retried_by_default():
    transport, requests = _scripted([403])
    sleep = RecordingSleep()
    client = ReconnectingClient(_settings(), transport=transport, sleep=sleep)

    client.subscribe(7, lambda m: None)
    await asyncio.wait_for(client.connection_task(7), 2)

    assert len(sleep.delays) == 3
    assert len(requests) == 4
    await client.aclose()


@pytest.mark.asyncio
async def test_raising_callback_does_not_affect_others():
    transport, _ = _scripted([b'data: {"type":"connected","listId":7}\n\n', 503])
    client = ReconnectingClient(_settings(), transport=transport, sleep=RecordingSleep())
    received = []

    def broken(message):
        raise RuntimeError("ui exploded")

    client.subscribe(7, broken)
    unsubscribe = client.subscribe(7, received.append)
    await wait_until(lambda: received)
    unsubscribe()

    assert received == [{"type": "connected", "listId": 7}]
    await client.aclose()


def test_subscribe_requires_running_loop():
    client = ReconnectingClient(_settings(), transport=httpx.MockTransport(lambda r: httpx.Response(503)))
    with pytest.raises(RuntimeError):
        client.subscribe(7, lambda m: None)


@pytest.mark.asyncio
async def test_failing_token_provider_takes_reconnect_path():
    transport, requests = _scripted([b'data: {"type":"connected","listId":7}\n\n'])
    sleep = RecordingSleep()
    tokens = iter([RuntimeError("token refresh failed")])

    def token_provider():
        failure = next(tokens, None)
        if failure is not None:
            raise failure
        return "fresh"

    client = ReconnectingClient(_settings(), transport=transport, sleep=sleep, token_provider=token_provider)
    received = []
    unsubscribe = client.subscribe(7, received.append)
    await wait_until(lambda: received)

    assert received == [{"type": "connected", "listId": 7}]
    assert sleep.delays[0] == 0.5
    assert requests[0].headers["Authorization"] == "Bearer fresh"
    assert not client.connection_task(7).done()
    unsubscribe()
    await client.aclose()
