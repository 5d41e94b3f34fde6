"""Constants and test doubles shared across the suite."""

from nodebase.exceptions import StoreError
from nodebase.query.client import DefaultOptions, QueryClient, QueryDefaults

TEST_PASSWORD = "correct-horse-battery"


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingFetcher:
    """query_fn that counts calls and can fail a given number of times."""

    def __init__(self, result="data", failures=0, error=None):
        self.calls = 0
        self.result = result
        self.failures = failures
        self.error = error or StoreError()

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.result


def make_client(clock=None, retry=0, stale_time=30.0, gc_time=300.0) -> QueryClient:
    defaults = QueryDefaults(
        stale_time=stale_time,
        gc_time=gc_time,
        retry=retry,
        retry_delay=0,
        max_retry_delay=0,
    )
    return QueryClient(DefaultOptions(queries=defaults), clock=clock or FakeClock())
