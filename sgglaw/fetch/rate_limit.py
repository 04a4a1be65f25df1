# sgglaw/fetch/rate_limit.py
"""
Executor ciente de rate limit (HTTP 429).

Retry limitado com delay crescente (base * tentativa). Nunca retenta para sempre:
apos max_retries devolve o ultimo status (429) para o chamador decidir RATE_LIMITED.
"""
from __future__ import annotations

import time
import logging
from typing import Callable

logger = logging.getLogger(__name__)

HTTP_TOO_MANY_REQUESTS = 429


class RateLimitHandler:
    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.max_retries = max(0, max_retries)
        self.base_delay = base_delay
        self._sleep = sleep

    def delay_for(self, attempt: int) -> float:
        """Delay antes da tentativa `attempt` (1-based, apos a inicial)."""
        return self.base_delay * attempt

    def execute_with_retry(self, url: str, probe: Callable[[str], int]) -> int:
        """
        Executa probe(url) → status HTTP, retentando enquanto 429.

        Returns:
            status da ultima tentativa (429 se esgotou as tentativas)
        """
        status = probe(url)
        attempt = 0
        while status == HTTP_TOO_MANY_REQUESTS and attempt < self.max_retries:
            attempt += 1
            delay = self.delay_for(attempt)
            logger.warning("429 em %s, retry %d/%d em %.1fs", url, attempt, self.max_retries, delay)
            self._sleep(delay)
            status = probe(url)

        if status == HTTP_TOO_MANY_REQUESTS:
            logger.warning("Rate limit persistente em %s apos %d retries", url, self.max_retries)
        return status
