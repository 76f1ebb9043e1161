"""
Fan-out / fan-in GET helper.

The modem splits its state across a handful of REST endpoints and a couple of them are slow to answer,
so we ask for all of them at once but never more than `limit` at a time.
Every request runs to completion on its own; one failing does not cancel the others.
"""

import asyncio
import time
from dataclasses import dataclass

import structlog
from aiohttp import ClientError, ClientSession

log = structlog.get_logger(__name__)


@dataclass
class FetchResult:
    """Outcome of a single GET, tagged with the position of the URL in the request list."""

    index: int
    url: str
    status: int | None = None
    body: bytes | None = None
    error: BaseException | None = None
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None and self.status is not None and 200 <= self.status < 300


async def bounded_parallel_get(
    cs: ClientSession, urls: list[str], limit: int
) -> list[FetchResult]:
    """GET every url with at most `limit` requests in flight.

    Returns one FetchResult per url, in the same order as `urls` (not completion order).
    Errors are captured on the result rather than raised, so every request has finished by the time this returns.
    """
    if limit < 1:
        raise ValueError(f"Concurrency limit must be at least 1, got {limit}")

    semaphore = asyncio.Semaphore(limit)

    async def _get(index: int, url: str) -> FetchResult:
        async with semaphore:
            result = FetchResult(index=index, url=url)
            start = time.monotonic()
            try:
                async with cs.get(url) as resp:
                    result.status = resp.status
                    result.body = await resp.read()
            except (ClientError, asyncio.TimeoutError) as e:
                log.debug("Request failed", url=url, error=e)
                result.error = e
            # pylint: disable=broad-exception-caught
            except Exception as e:
                log.warning("Unexpected error during request", url=url, error=e)
                result.error = e
            result.elapsed_ms = int((time.monotonic() - start) * 1000)
            return result

    # gather() preserves argument order so the list lines up with `urls`
    return list(await asyncio.gather(*(_get(i, u) for i, u in enumerate(urls))))
