# Copyright 2025 Vijaykumar Singh <singhvjd@gmail.com>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Unit tests for the buffered tee over a completion production."""

import asyncio

import pytest

from victor_autocomplete.cancellation import AbortController
from victor_autocomplete.listenable import ListenableGenerator


async def _collect(stream):
    return [chunk async for chunk in stream]


class TestListenableGenerator:
    """Test suite for ListenableGenerator."""

    @pytest.mark.asyncio
    async def test_two_readers_see_full_sequence(self, make_source):
        """Test that every tee reader replays history and the live tail."""
        source = make_source(["a", "b", "c"])
        controller = AbortController()
        generator = ListenableGenerator(source.factory(controller.signal), lambda e: None, controller)

        first, second = await asyncio.gather(
            _collect(generator.tee()),
            _collect(generator.tee()),
        )

        assert first == ["a", "b", "c"]
        assert second == ["a", "b", "c"]
        assert source.calls == 1

    @pytest.mark.asyncio
    async def test_late_reader_replays_buffer(self, make_source):
        """Test that a reader created after the end still sees everything."""
        source = make_source(["x", "y"])
        controller = AbortController()
        generator = ListenableGenerator(source.factory(controller.signal), lambda e: None, controller)

        await _collect(generator.tee())

        assert generator.is_ended()
        assert await _collect(generator.tee()) == ["x", "y"]
        assert generator.get_buffer() == ["x", "y"]
        assert generator.get_buffer_size() == 2

    @pytest.mark.asyncio
    async def test_listener_receives_values_then_end(self, make_source):
        """Test that listeners get buffered values, live values and None."""
        source = make_source(["a", "b"])
        controller = AbortController()
        generator = ListenableGenerator(source.factory(controller.signal), lambda e: None, controller)
        received = []
        generator.listen(received.append)

        await _collect(generator.tee())

        assert received == ["a", "b", None]

    @pytest.mark.asyncio
    async def test_source_error_reported_and_raised(self, make_source):
        """Test that a failing source reports the error and ends readers with it."""
        source = make_source(["a"], error=ValueError("backend down"))
        controller = AbortController()
        errors = []
        generator = ListenableGenerator(source.factory(controller.signal), errors.append, controller)

        received = []
        with pytest.raises(ValueError, match="backend down"):
            async for chunk in generator.tee():
                received.append(chunk)

        assert received == ["a"]
        assert len(errors) == 1
        assert generator.is_ended()

    @pytest.mark.asyncio
    async def test_cancel_aborts_signal_and_ends_readers(self, make_source):
        """Test that cancel aborts the production and releases waiting readers."""
        source = make_source(["a"], hold_open=True)
        controller = AbortController()
        generator = ListenableGenerator(source.factory(controller.signal), lambda e: None, controller)

        reader = generator.tee()
        assert await reader.__anext__() == "a"

        generator.cancel()
        generator.cancel()

        with pytest.raises(StopAsyncIteration):
            await reader.__anext__()
        assert controller.signal.aborted
        assert generator.is_ended()

    @pytest.mark.asyncio
    async def test_reader_after_cancel_replays_buffer(self, make_source):
        """Test that a cancelled production still serves its buffered values."""
        source = make_source(["a", "b"], hold_open=True)
        controller = AbortController()
        generator = ListenableGenerator(source.factory(controller.signal), lambda e: None, controller)
        reader = generator.tee()
        assert await reader.__anext__() == "a"
        assert await reader.__anext__() == "b"

        generator.cancel()

        assert await _collect(generator.tee()) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_cancel_after_error_suppresses_it_for_readers(self, make_source):
        """Test that readers of a cancelled production get the buffer without the error."""
        source = make_source(["a"], error=ValueError("backend down"))
        controller = AbortController()
        generator = ListenableGenerator(source.factory(controller.signal), lambda e: None, controller)
        with pytest.raises(ValueError):
            await _collect(generator.tee())

        generator.cancel()

        assert await _collect(generator.tee()) == ["a"]

    @pytest.mark.asyncio
    async def test_dispose_clears_buffer(self, make_source):
        """Test that dispose cancels and drops buffered values."""
        source = make_source(["a", "b"])
        controller = AbortController()
        generator = ListenableGenerator(source.factory(controller.signal), lambda e: None, controller)
        await _collect(generator.tee())

        generator.dispose()

        assert generator.get_buffer() == []
        assert generator.is_ended()
