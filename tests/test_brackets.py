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

"""Tests for bracket balancing of streamed completions."""

import pytest

from victor_autocomplete.brackets import BRACKETS, BRACKETS_REVERSE, BracketBalanceFilter


async def _stream(chunks):
    for chunk in chunks:
        yield chunk


async def _filter(bracket_filter, chunks, prefix="", suffix="", file_id="F", multiline=True):
    stream = bracket_filter.stop_on_unmatched_closing_bracket(
        _stream(chunks), prefix, suffix, file_id, multiline
    )
    return "".join([chunk async for chunk in stream])


class TestBracketTables:
    """Tests for the bracket tables."""

    def test_tables_are_inverse(self):
        assert BRACKETS == {"(": ")", "{": "}", "[": "]"}
        for open_bracket, close_bracket in BRACKETS.items():
            assert BRACKETS_REVERSE[close_bracket] == open_bracket


class TestStopOnUnmatchedClosingBracket:
    """Tests for stream truncation."""

    @pytest.mark.asyncio
    async def test_truncates_at_unmatched_closer(self):
        """Test that the extra closing paren is dropped."""
        assert await _filter(BracketBalanceFilter(), ["foo(bar))"]) == "foo(bar)"

    @pytest.mark.asyncio
    async def test_truncates_across_chunks(self):
        bracket_filter = BracketBalanceFilter()

        assert await _filter(bracket_filter, ["foo(", "bar)", ")baz"]) == "foo(bar)"
        assert bracket_filter.truncations == 1

    @pytest.mark.asyncio
    async def test_mismatched_closer_truncates(self):
        assert await _filter(BracketBalanceFilter(), ["x = (1, 2]"]) == "x = (1, 2"

    @pytest.mark.asyncio
    async def test_balanced_stream_passes_through(self):
        bracket_filter = BracketBalanceFilter()

        assert await _filter(bracket_filter, ["if (a[0]) {", " b(); }"]) == "if (a[0]) { b(); }"
        assert bracket_filter.truncations == 0

    @pytest.mark.asyncio
    async def test_leading_closers_and_whitespace_pass(self):
        """Test that closers before any real text are never truncated."""
        assert await _filter(BracketBalanceFilter(), ["  ", ")}", " x"]) == "  )} x"

    @pytest.mark.asyncio
    async def test_single_line_uses_current_line_context(self):
        """Test that brackets open on the current line may be closed."""
        bracket_filter = BracketBalanceFilter()

        assert await _filter(bracket_filter, ["a, b)"], prefix="foo(", multiline=False) == "a, b)"
        assert await _filter(bracket_filter, ["2]]"], prefix="x = [1, ", multiline=False) == "2]"

    @pytest.mark.asyncio
    async def test_single_line_ignores_previous_lines(self):
        result = await _filter(
            BracketBalanceFilter(), ["x)"], prefix="call(\n    ", multiline=False
        )
        assert result == "x"

    @pytest.mark.asyncio
    async def test_suffix_closers_may_be_overwritten(self):
        """Test that closers right after the cursor are allowed."""
        result = await _filter(
            BracketBalanceFilter(), ["a))"], prefix="foo(", suffix=")", multiline=False
        )
        assert result == "a)"

    @pytest.mark.asyncio
    async def test_suffix_scan_skips_spaces_only(self):
        bracket_filter = BracketBalanceFilter()

        assert await _filter(bracket_filter, ["x})"], suffix=" } )") == "x})"
        assert await _filter(bracket_filter, ["x}"], suffix="\n}") == "x"


class TestAcceptedCompletionContext:
    """Tests for carrying open brackets across accepted completions."""

    @pytest.mark.asyncio
    async def test_carry_over_in_same_file(self):
        """Test that a brace left open by an accepted completion can be closed."""
        bracket_filter = BracketBalanceFilter()
        bracket_filter.handle_accepted_completion("{", "F")

        result = await _filter(bracket_filter, ["}console.log()}}"], file_id="F")

        assert result == "}console.log()}"

    @pytest.mark.asyncio
    async def test_carry_over_closes_after_substantive_text(self):
        bracket_filter = BracketBalanceFilter()
        bracket_filter.handle_accepted_completion("function f() {", "F")

        assert await _filter(bracket_filter, ["return 1;\n}\n}"], file_id="F") == "return 1;\n}\n"

    @pytest.mark.asyncio
    async def test_other_file_discards_context(self):
        """Test that a request in another file drops the carried brackets."""
        bracket_filter = BracketBalanceFilter()
        bracket_filter.handle_accepted_completion("(", "F")

        assert await _filter(bracket_filter, ["x)"], file_id="G") == "x"
        assert await _filter(bracket_filter, ["x)"], file_id="F") == "x"

    @pytest.mark.asyncio
    async def test_single_line_ignores_carried_context(self):
        bracket_filter = BracketBalanceFilter()
        bracket_filter.handle_accepted_completion("(", "F")

        assert await _filter(bracket_filter, ["x)"], file_id="F", multiline=False) == "x"

    @pytest.mark.asyncio
    async def test_accepted_scan_stops_at_unmatched_closer(self):
        """Test that brackets after an unmatched closer are not carried."""
        bracket_filter = BracketBalanceFilter()
        bracket_filter.handle_accepted_completion("(]{", "F")

        assert await _filter(bracket_filter, ["x}"], file_id="F") == "x"

    @pytest.mark.asyncio
    async def test_clear_forgets_context(self):
        bracket_filter = BracketBalanceFilter()
        bracket_filter.handle_accepted_completion("[", "F")
        bracket_filter.clear()

        assert await _filter(bracket_filter, ["x]"], file_id="F") == "x"

    @pytest.mark.asyncio
    async def test_as_transform_binds_file(self):
        bracket_filter = BracketBalanceFilter()
        bracket_filter.handle_accepted_completion("(", "F")
        transform = bracket_filter.as_transform("F")

        stream = transform(_stream(["a)"]), "", "", True, [], lambda: None)

        assert [chunk async for chunk in stream] == ["a)"]


class TestBracketHelpers:
    """Tests for bracket inspection helpers."""

    def test_are_brackets_balanced(self):
        bracket_filter = BracketBalanceFilter()

        assert bracket_filter.are_brackets_balanced("({[]})")
        assert bracket_filter.are_brackets_balanced("no brackets")
        assert not bracket_filter.are_brackets_balanced("(]")
        assert not bracket_filter.are_brackets_balanced("((")
        assert not bracket_filter.are_brackets_balanced(")")

    def test_get_unclosed_brackets(self):
        bracket_filter = BracketBalanceFilter()

        assert bracket_filter.get_unclosed_brackets("({)") == ["(", "{"]
        assert bracket_filter.get_unclosed_brackets("f(a[0])") == []

    def test_get_closing_brackets_needed(self):
        bracket_filter = BracketBalanceFilter()

        assert bracket_filter.get_closing_brackets_needed("foo({[") == "]})"
        assert bracket_filter.get_closing_brackets_needed("done()") == ""
