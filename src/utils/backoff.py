import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from utils.config import BackoffSettings

T = TypeVar("T")

def is_rate_limited(error: BaseException) -> bool:
    """Check whether an RPC or HTTP error is a rate-limit response"""
    status = getattr(error, 'status', None) or getattr(error, 'status_code', None)
    if status == 429:
        return True
    message = str(error)
    return "429" in message or "Too Many Requests" in message

@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff with jitter shared by every network call site"""
    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 10.0
    jitter: float = 0.1

    @classmethod
    def from_settings(cls, settings: BackoffSettings) -> "BackoffPolicy":
        return cls(
            max_attempts=settings.max_attempts,
            base_delay=settings.base_delay_seconds,
            max_delay=settings.max_delay_seconds,
            jitter=settings.jitter,
        )

    def delay(self, attempt: int) -> float:
        """Delay before retry number `attempt` (0 based)"""
        wait_time = min(self.max_delay, self.base_delay * (2 ** attempt))
        return wait_time * (1 + random.uniform(0, self.jitter))

    async def sleep(self, attempt: int) -> float:
        wait_time = self.delay(attempt)
        await asyncio.sleep(wait_time)
        return wait_time

    async def run(
        self,
        fn: Callable[..., Awaitable[T]],
        *args,
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
        logger: Optional[logging.Logger] = None,
        label: str = "call",
        **kwargs,
    ) -> T:
        """Call fn until it succeeds or attempts run out, re-raising the last error"""
        last_error: Optional[BaseException] = None
        attempts = max(1, self.max_attempts)
        for attempt in range(attempts):
            try:
                return await fn(*args, **kwargs)
            except retry_on as e:
                last_error = e
                if attempt == attempts - 1:
                    break
                wait_time = self.delay(attempt)
                if logger:
                    logger.debug(
                        f"{label} failed (attempt {attempt + 1}/{attempts}): {str(e)}, "
                        f"retrying in {wait_time:.2f}s"
                    )
                await asyncio.sleep(wait_time)

        raise last_error
