"""
Tests for src.utils module.

Covers:
    - utc_now() / epoch_ms(): clocks
    - generate_id() / generate_entry_id(): session and entry ids
    - extract_json_object(): first-object extraction from model prose
    - truncate(): log-message capping
    - with_retry(): exponential backoff for coroutines
"""

import re
import time
from datetime import timezone
from unittest.mock import AsyncMock, patch
from uuid import UUID

import pytest

from src.exceptions import RetryExhaustedError
from src.utils import (
    epoch_ms,
    extract_json_object,
    generate_entry_id,
    generate_id,
    truncate,
    utc_now,
    with_retry,
)


# ===========================================================================
# Clocks and ids
# ===========================================================================


def test_utc_now_is_timezone_aware():
    assert utc_now().tzinfo == timezone.utc


def test_epoch_ms_tracks_wall_clock():
    before = int(time.time() * 1000)
    value = epoch_ms()
    after = int(time.time() * 1000)
    assert before <= value <= after


def test_generate_id_is_uuid4_and_unique():
    ids = {generate_id() for _ in range(50)}
    assert len(ids) == 50
    assert all(UUID(value).version == 4 for value in ids)


def test_generate_entry_id_is_time_prefixed():
    entry_id = generate_entry_id()
    assert re.fullmatch(r"\d{13}-[a-z0-9]{7}", entry_id)


# ===========================================================================
# extract_json_object()
# ===========================================================================


class TestExtractJsonObject:
    def test_object_surrounded_by_prose(self):
        text = 'Sure! Here is the plan: {"a": [1, 2], "b": "x"} Hope it helps.'
        assert extract_json_object(text) == {"a": [1, 2], "b": "x"}

    def test_nested_objects(self):
        text = '```json\n{"outer": {"inner": true}}\n```'
        assert extract_json_object(text) == {"outer": {"inner": True}}

    @pytest.mark.parametrize(
        "text",
        [None, "", "no braces at all", "{not json}", '{"a": 1} and {"b": 2}'],
    )
    def test_unusable_input_returns_none(self, text):
        assert extract_json_object(text) is None


# ===========================================================================
# truncate()
# ===========================================================================


def test_truncate_leaves_short_text_alone():
    assert truncate("short", 10) == "short"
    assert truncate("exactly10!", 10) == "exactly10!"


def test_truncate_marks_cut_text():
    assert truncate("abcdefghijkl", 5) == "abcde..."


# ===========================================================================
# with_retry()
# ===========================================================================


@pytest.mark.asyncio
@patch("src.utils.asyncio.sleep", new_callable=AsyncMock)
async def test_with_retry_backs_off_exponentially(mock_sleep):
    calls = []

    @with_retry(max_attempts=3, base_delay=1.5)
    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ConnectionError("blip")
        return "done"

    assert await flaky() == "done"
    assert len(calls) == 3
    assert [c.args[0] for c in mock_sleep.await_args_list] == [1.5, 3.0]


@pytest.mark.asyncio
@patch("src.utils.asyncio.sleep", new_callable=AsyncMock)
async def test_with_retry_non_retryable_propagates(mock_sleep):
    @with_retry(max_attempts=3, retryable_exceptions=(ConnectionError,))
    async def broken():
        raise KeyError("missing")

    with pytest.raises(KeyError):
        await broken()
    mock_sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_with_retry_async_exhausts_and_chains_last_error():
    with patch("src.utils.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:

        @with_retry(max_attempts=2, base_delay=0.5, operation_name="veo_start")
        async def always_down():
            raise TimeoutError("gateway timeout")

        with pytest.raises(RetryExhaustedError) as exc_info:
            await always_down()

    err = exc_info.value
    assert err.operation == "veo_start"
    assert err.attempts == 2
    assert isinstance(err.__cause__, TimeoutError)
    mock_sleep.assert_awaited_once_with(0.5)


def test_with_retry_keeps_function_name():
    @with_retry()
    async def coro():
        pass

    assert coro.__name__ == "coro"
