"""Tests for the paced writer."""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from pty_trafficgen.meter import TrafficMeter
from pty_trafficgen.scope import DeadlineExceeded, Scope, Ticker
from pty_trafficgen.session import StreamClosedError
from pty_trafficgen.writer import copy_bytes, write_random_data


def _envelopes(raw: bytes) -> list[dict]:
    decoder = json.JSONDecoder()
    text = raw.decode()
    out, idx = [], 0
    while idx < len(text):
        obj, idx = decoder.raw_decode(text, idx)
        out.append(obj)
    return out


def _mock_stream(side_effect=None):
    stream = AsyncMock()
    stream.write.return_value = 1
    if side_effect is not None:
        stream.write.side_effect = side_effect
    return stream


class TestCopyBytes:
    @pytest.mark.asyncio
    async def test_writes_one_byte_per_call(self):
        stream = _mock_stream()
        scope = Scope()
        n = await copy_bytes(scope, TrafficMeter(stream, scope), b"hello")
        assert n == 5
        assert [c.args[0] for c in stream.write.call_args_list] == [b"h", b"e", b"l", b"l", b"o"]

    @pytest.mark.asyncio
    async def test_stops_when_scope_ends_mid_payload(self):
        scope = Scope()
        calls = 0

        async def write(_data):
            nonlocal calls
            calls += 1
            if calls == 3:
                scope.cancel()
            return 1

        n = await copy_bytes(scope, TrafficMeter(_mock_stream(write), scope), b"abcdef")
        assert n == 3
        assert calls == 3

    @pytest.mark.asyncio
    async def test_done_scope_writes_nothing(self):
        scope = Scope()
        scope.cancel()
        stream = _mock_stream()
        assert await copy_bytes(scope, TrafficMeter(stream, scope), b"abc") == 0
        stream.write.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [StreamClosedError("closed"), EOFError(), BrokenPipeError(), DeadlineExceeded("late")],
    )
    async def test_stream_end_is_clean_stop(self, error):
        scope = Scope()
        stream = _mock_stream([1, 1, error])
        n = await copy_bytes(scope, TrafficMeter(stream, scope), b"abcdef")
        assert n == 2

    @pytest.mark.asyncio
    async def test_unexpected_error_raises(self):
        scope = Scope()
        stream = _mock_stream(OSError("boom"))
        with pytest.raises(OSError, match="boom"):
            await copy_bytes(scope, TrafficMeter(stream, scope), b"abc")

    @pytest.mark.asyncio
    async def test_any_error_after_scope_end_is_clean(self):
        scope = Scope()

        async def write(_data):
            scope.cancel()
            raise ConnectionResetError("reset while closing")

        n = await copy_bytes(scope, TrafficMeter(_mock_stream(write), scope), b"abc")
        assert n == 0


class TestWriteRandomData:
    @pytest.mark.asyncio
    async def test_one_envelope_per_tick(self, sink):
        scope = Scope().with_timeout(0.35)
        meter = TrafficMeter(sink, scope)
        ticker = Ticker(0.1)
        try:
            await asyncio.wait_for(write_random_data(scope, meter, 20, ticker), timeout=2)
        finally:
            ticker.stop()

        envelopes = _envelopes(bytes(sink.written))
        assert 2 <= len(envelopes) <= 4
        for env in envelopes:
            assert env["data"].startswith("#")
            assert len(env["data"]) == 20
        assert meter.bytes_written == len(sink.written)

    @pytest.mark.asyncio
    async def test_returns_when_scope_cancelled(self, sink):
        scope = Scope()
        ticker = Ticker(10)
        task = asyncio.create_task(write_random_data(scope, TrafficMeter(sink, scope), 20, ticker))
        await asyncio.sleep(0.02)
        scope.cancel()
        try:
            assert await asyncio.wait_for(task, timeout=1) is None
        finally:
            ticker.stop()
        assert sink.written == b""

    @pytest.mark.asyncio
    async def test_returns_when_stream_closed(self, sink):
        await sink.close()
        scope = Scope().with_timeout(5)
        ticker = Ticker(0.01)
        try:
            await asyncio.wait_for(
                write_random_data(scope, TrafficMeter(sink, scope), 20, ticker), timeout=1
            )
        finally:
            ticker.stop()
            scope.cancel()

    @pytest.mark.asyncio
    async def test_write_failure_raises(self):
        scope = Scope().with_timeout(5)
        stream = _mock_stream(OSError("boom"))
        ticker = Ticker(0.01)
        try:
            with pytest.raises(OSError, match="boom"):
                await write_random_data(scope, TrafficMeter(stream, scope), 20, ticker)
        finally:
            ticker.stop()
            scope.cancel()
