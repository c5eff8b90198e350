"""Tests for the fixed-delay retry wrapper."""

import pytest

from interview_archiver.errors import ErrorKind, UploadError, is_transient
from interview_archiver.retry import retry


class Flaky:
    """Fails ``failures`` times with numbered errors, then returns ``value``."""

    def __init__(self, failures, value="ok"):
        self.failures = failures
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise UploadError(f"failure {self.calls}", ErrorKind.TRANSIENT)
        return self.value


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(seconds):
        sleeps.append(seconds)
    return _sleep


class TestRetry:
    @pytest.mark.asyncio
    async def test_first_attempt_success(self, fake_sleep, sleeps):
        op = Flaky(0)
        assert await retry(op, 3, 10.0, sleep=fake_sleep) == "ok"
        assert op.calls == 1
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_fails_twice_then_succeeds(self, fake_sleep, sleeps):
        op = Flaky(2, value="link")
        assert await retry(op, 3, 10.0, sleep=fake_sleep) == "link"
        assert op.calls == 3
        assert sleeps == [10.0, 10.0]

    @pytest.mark.asyncio
    async def test_exhaustion_raises_last_error(self, fake_sleep, sleeps):
        op = Flaky(10)
        with pytest.raises(UploadError) as exc_info:
            await retry(op, 3, 2.0, sleep=fake_sleep)
        assert str(exc_info.value) == "failure 3"
        assert op.calls == 3
        assert sleeps == [2.0, 2.0]

    @pytest.mark.asyncio
    async def test_single_attempt_never_sleeps(self, fake_sleep, sleeps):
        op = Flaky(1)
        with pytest.raises(UploadError):
            await retry(op, 1, 10.0, sleep=fake_sleep)
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_invalid_attempts(self, fake_sleep):
        with pytest.raises(ValueError):
            await retry(Flaky(0), 0, sleep=fake_sleep)

    @pytest.mark.asyncio
    async def test_predicate_rejects(self, fake_sleep, sleeps):
        async def op():
            raise UploadError("bad credentials", ErrorKind.FATAL)

        with pytest.raises(UploadError):
            await retry(op, 3, 10.0, should_retry=is_transient, sleep=fake_sleep)
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_predicate_allows_transient(self, fake_sleep, sleeps):
        op = Flaky(1)
        assert await retry(op, 3, 1.0, should_retry=is_transient, sleep=fake_sleep) == "ok"
        assert sleeps == [1.0]


class TestIsTransient:
    def test_classified_errors(self):
        assert is_transient(UploadError("503", ErrorKind.TRANSIENT))
        assert not is_transient(UploadError("401"))

    def test_unclassified_errors(self):
        assert is_transient(ConnectionResetError())
        assert is_transient(TimeoutError())
        assert not is_transient(ValueError("bad"))
