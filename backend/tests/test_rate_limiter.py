"""Fixed-window rate limiting"""
import pytest

from signflow.domain.errors import RateLimitError
from signflow.repositories.rate_limit_repo import RateLimitRepository
from signflow.services.rate_limiter import RateLimiter


@pytest.fixture
def limiter(db, config, clock):
    return RateLimiter(RateLimitRepository(db), config, clock)


def test_counts_within_window(limiter):
    assert [limiter.check("user-1", "create_request", 3) for _ in range(3)] == [1, 2, 3]

    with pytest.raises(RateLimitError) as excinfo:
        limiter.check("user-1", "create_request", 3)

    assert excinfo.value.details == {"action": "create_request", "limit": 3, "window_seconds": 3600}


def test_keys_are_per_actor_and_action(limiter):
    limiter.check("user-1", "create_request", 1)

    assert limiter.check("user-2", "create_request", 1) == 1
    assert limiter.check("user-1", "send_reminder", 1) == 1


def test_new_window_resets_count(limiter, clock):
    limiter.check("user-1", "bulk_operation", 1)
    clock.advance(hours=1)

    assert limiter.check("user-1", "bulk_operation", 1) == 1


def test_window_start_is_aligned(clock):
    start = RateLimitRepository.window_start(clock.advance(minutes=17), 3600)

    assert (start.hour, start.minute, start.second) == (9, 0, 0)
