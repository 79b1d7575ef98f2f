"""RetryPolicy backoff bounds and retryable driver errors."""

import random

import pytest
from sqlalchemy.exc import OperationalError

from pharma_kernel.services.movement_writer import is_retryable_operational_error
from pharma_kernel.services.retry_policy import RetryPolicy


def test_delay_never_exceeds_ceiling():
    policy = RetryPolicy(max_attempts=10, base_delay_seconds=0.01, max_delay_seconds=0.05)
    rng = random.Random(7)
    for attempt in range(1, 10):
        ceiling = min(0.05, 0.01 * 2 ** (attempt - 1))
        assert 0 <= policy.delay_for(attempt, rng) <= ceiling


def test_deterministic_with_seeded_rng():
    policy = RetryPolicy()
    assert policy.delay_for(3, random.Random(1)) == policy.delay_for(3, random.Random(1))


def test_at_least_one_attempt():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)


class _DriverError(Exception):
    def __init__(self, message, pgcode=None):
        super().__init__(message)
        self.pgcode = pgcode


@pytest.mark.parametrize(
    "orig, retryable",
    [
        (_DriverError("could not serialize access", pgcode="40001"), True),
        (_DriverError("deadlock detected", pgcode="40P01"), True),
        (_DriverError("could not obtain lock", pgcode="55P03"), True),
        (_DriverError("relation does not exist", pgcode="42P01"), False),
        (_DriverError("database is locked"), True),
        (_DriverError("database table is locked"), True),
        (_DriverError("no such table: items"), False),
    ],
)
def test_retryable_operational_errors(orig, retryable):
    assert is_retryable_operational_error(OperationalError("SELECT 1", {}, orig)) is retryable
