import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from scatterbrain.error_handler import ConnectionFailure, SynthesisHTTPError

logger = logging.getLogger(__name__)

T = TypeVar('T')

RETRYABLE_STATUSES = {408, 429}

RetryCallback = Callable[[int, float, Exception], None]


def is_retryable(error: Exception) -> bool:
    if isinstance(error, ConnectionFailure):
        return True
    if isinstance(error, SynthesisHTTPError):
        if error.upgrade_required:
            return False
        return error.status >= 500 or error.status in RETRYABLE_STATUSES
    return False


class RetryController:
    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._sleep = sleep

    def delay_for(self, retry_index: int) -> float:
        return self.base_delay * (2 ** retry_index)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        on_retry: Optional[RetryCallback] = None
    ) -> T:
        """Await ``operation`` with up to ``max_retries`` backed-off retries.

        Only errors accepted by ``is_retryable`` are retried; anything else,
        and the last error once the budget is spent, is raised to the caller.
        ``on_retry`` receives the upcoming attempt number (2-based), the delay
        and the error, before the delay is awaited.
        """
        retry_index = 0
        while True:
            try:
                return await operation()
            except Exception as e:
                if not is_retryable(e):
                    raise
                if retry_index >= self.max_retries:
                    logger.error(f"Giving up after {retry_index + 1} attempts: {str(e)}")
                    raise

                delay = self.delay_for(retry_index)
                logger.warning(
                    f"Attempt {retry_index + 1} failed ({str(e)}); "
                    f"retrying attempt {retry_index + 2}/{self.max_retries + 1} in {delay}s"
                )
                if on_retry:
                    on_retry(retry_index + 2, delay, e)
                await self._sleep(delay)
                retry_index += 1
