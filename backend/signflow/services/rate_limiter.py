"""Rate Limiter - Per-actor action quotas backed by MongoDB counters"""
from typing import Optional

from ..config.settings import Settings
from ..domain.errors import RateLimitError
from ..repositories.rate_limit_repo import RateLimitRepository
from ..utils.time import Clock
from ..utils.logger import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """Fixed-window limiter; the window length comes from rate_limit_window_seconds"""

    def __init__(self, repo: RateLimitRepository, config: Settings, clock: Optional[Clock] = None):
        self.repo = repo
        self.config = config
        self.clock = clock or Clock()

    def check(self, actor_id: str, action: str, limit: int) -> int:
        """
        Count one attempt of action by actor_id.

        Returns:
            The number of attempts in the current window, including this one

        Raises:
            RateLimitError: when the attempt exceeds limit
        """
        window = self.config.rate_limit_window_seconds
        count = self.repo.hit(f"{action}:{actor_id}", self.clock.now(), window)
        if count > limit:
            logger.warning(
                f"Rate limit exceeded for {action}: {count}/{limit}",
                extra={"actor_id": actor_id, "action": action}
            )
            raise RateLimitError(
                f"Too many {action} operations. Limit is {limit} per {window // 60} minutes",
                details={"action": action, "limit": limit, "window_seconds": window}
            )
        return count
