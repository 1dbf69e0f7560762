"""Exponential backoff shared by the presign and retry-upload flows."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from loguru import logger

from core.errors import AppException

T = TypeVar("T")


def is_retryable(exc: BaseException) -> bool:
    """Validation and authorization failures are final; everything else may be transient."""
    if isinstance(exc, AppException):
        return not exc.is_client_error
    return isinstance(exc, Exception)


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    base_delay_ms: int = 1000
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_ms < 0:
            raise ValueError("base_delay_ms must be non-negative")

    def calculate_delay(self, attempt: int) -> int:
        """Delay in milliseconds after the given 1-based attempt."""
        if attempt <= 0:
            return 0
        return self.base_delay_ms * (2 ** (attempt - 1))

    async def execute(self, fn: Callable[[], Awaitable[T]], *, operation: str = "operation") -> T:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await fn()
            except Exception as exc:
                if not is_retryable(exc):
                    raise
                logger.warning(
                    "{} attempt {}/{} failed: {}",
                    operation,
                    attempt,
                    self.max_attempts,
                    exc,
                )
                if attempt == self.max_attempts:
                    raise
                await self.sleep(self.calculate_delay(attempt) / 1000)

        raise RuntimeError(f"{operation} made no attempts")
