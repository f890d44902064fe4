"""Unit tests for conflict retry logic"""
import pytest
from unittest.mock import patch

from simp_tracker.exceptions import ConflictError, StoreError, ValidationError
from simp_tracker.resilience.retry import (
    MAX_DELAY,
    calculate_backoff,
    is_retryable_error,
    retry_with_backoff,
    with_retry,
)


def test_is_retryable_error_conflict():
    """Test that write conflicts are retryable"""
    assert is_retryable_error(ConflictError()) == True


def test_is_retryable_error_non_retryable():
    """Test that everything else is surfaced immediately"""
    assert is_retryable_error(StoreError("disk full")) == False
    assert is_retryable_error(ValidationError("bad amount", field="amount")) == False
    assert is_retryable_error(ValueError("Bad value")) == False


def test_calculate_backoff():
    """Test exponential backoff calculation"""
    delay_0 = calculate_backoff(0, base_delay=1.0)
    assert 0.9 <= delay_0 <= 1.1  # 1s ± 10% jitter

    delay_1 = calculate_backoff(1, base_delay=0.5)
    assert 0.9 <= delay_1 <= 1.1

    delay_2 = calculate_backoff(2, base_delay=0.1)
    assert 0.36 <= delay_2 <= 0.44


def test_calculate_backoff_max_delay():
    """Test that backoff respects max delay"""
    assert calculate_backoff(20, base_delay=1.0) <= MAX_DELAY * 1.1


def test_calculate_backoff_zero_base():
    assert calculate_backoff(3, base_delay=0) == 0


@pytest.mark.asyncio
async def test_retry_succeeds_after_conflicts():
    """Test that conflicts are retried until success"""
    calls = 0

    async def flaky():
        nonlocal calls
        calls += 1
        if calls < 3:
            raise ConflictError()
        return "saved"

    result = await retry_with_backoff(flaky, max_retries=3, base_delay=0)

    assert result == "saved"
    assert calls == 3


@pytest.mark.asyncio
async def test_retry_exhausted():
    """Test that the last conflict surfaces after max retries"""
    calls = 0

    async def always_conflicts():
        nonlocal calls
        calls += 1
        raise ConflictError()

    with pytest.raises(ConflictError):
        await retry_with_backoff(always_conflicts, max_retries=2, base_delay=0)

    assert calls == 3


@pytest.mark.asyncio
async def test_non_retryable_raised_immediately():
    calls = 0

    async def broken():
        nonlocal calls
        calls += 1
        raise StoreError("connection lost")

    with pytest.raises(StoreError):
        await retry_with_backoff(broken, max_retries=5, base_delay=0)

    assert calls == 1


@pytest.mark.asyncio
async def test_retry_passes_arguments():
    async def add(a, b, scale=1):
        return (a + b) * scale

    assert await retry_with_backoff(add, 2, 3, scale=10, base_delay=0) == 50


@pytest.mark.asyncio
async def test_retry_records_metric():
    attempts = iter([ConflictError(), None])

    async def _save_progress():
        error = next(attempts)
        if error:
            raise error
        return True

    with patch("simp_tracker.resilience.retry.record_retry") as record_retry:
        await retry_with_backoff(_save_progress, max_retries=1, base_delay=0)

    record_retry.assert_called_once_with("save_progress")


@pytest.mark.asyncio
async def test_with_retry_decorator():
    """Test that the decorator retries conflicts"""
    calls = 0

    @with_retry(max_retries=2, base_delay=0)
    async def save():
        nonlocal calls
        calls += 1
        if calls == 1:
            raise ConflictError()
        return calls

    assert await save() == 2
    assert save.__name__ == "save"
