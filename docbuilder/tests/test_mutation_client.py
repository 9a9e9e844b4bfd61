"""Tests for retry, backoff, pacing, timeout and cancellation of service calls."""
import asyncio
import os
import unittest
from unittest.mock import AsyncMock, Mock, patch

from docbuilder.client.errors import (
    NetworkError,
    OperationCancelled,
    RateLimited,
    RequestTimeout,
    ValidationError,
)
from docbuilder.client.mutation_client import CancellationToken, DocumentMutationClient, RetryPolicy
from docbuilder.model.document_model import Document, Page, PageSpec


class FakeSleep:
    """Records requested delays instead of sleeping."""

    def __init__(self) -> None:
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class MutationClientTest(unittest.IsolatedAsyncioTestCase):
    """Drive the client against a mocked document service."""

    def setUp(self):
        self.service = Mock()
        self.sleep = FakeSleep()
        self.page = Page(id="p1")

    def make_client(self, **policy) -> DocumentMutationClient:
        policy.setdefault("pacing_delay", 0.0)
        return DocumentMutationClient(self.service, RetryPolicy(**policy), sleep=self.sleep)

    async def test_rate_limit_hint_is_honoured(self):
        self.service.create_page = AsyncMock(side_effect=[RateLimited("slow down", retry_after=2.0), self.page])
        client = self.make_client()

        with self.assertLogs("docbuilder.client.mutation_client", level="WARNING"):
            page = await client.create_page("d1", PageSpec())

        self.assertIs(page, self.page)
        self.assertEqual(self.service.create_page.await_count, 2)
        self.assertEqual(len(self.sleep.delays), 1)
        self.assertGreaterEqual(self.sleep.delays[0], 2.0)
        self.assertEqual(client.stats.retries, 1)

    async def test_network_errors_back_off_exponentially(self):
        self.service.create_page = AsyncMock(side_effect=[NetworkError("reset"), NetworkError("reset"), self.page])
        client = self.make_client(base_delay=0.5)

        page = await client.create_page("d1", PageSpec())

        self.assertIs(page, self.page)
        self.assertEqual(self.sleep.delays, [0.5, 1.0])

    async def test_retries_exhausted_raises_last_error(self):
        self.service.delete_element = AsyncMock(side_effect=NetworkError("down"))
        client = self.make_client(max_retries=3, base_delay=1.0)

        with self.assertRaises(NetworkError):
            await client.delete_element("d1", "p1", "e1")

        self.assertEqual(self.service.delete_element.await_count, 4)
        self.assertEqual(self.sleep.delays, [1.0, 2.0, 4.0])

    async def test_validation_errors_are_not_retried(self):
        self.service.create_element = AsyncMock(side_effect=ValidationError("bad bounds", status_code=400))
        client = self.make_client()

        with self.assertRaises(ValidationError):
            await client.create_element("d1", "p1", Mock())

        self.assertEqual(self.service.create_element.await_count, 1)
        self.assertEqual(self.sleep.delays, [])

    async def test_consecutive_mutations_are_paced(self):
        now = [100.0]
        self.service.create_page = AsyncMock(return_value=self.page)
        self.service.get_document = AsyncMock(return_value=Document(id="d1", title="t"))
        client = DocumentMutationClient(
            self.service, RetryPolicy(pacing_delay=0.1), sleep=self.sleep, clock=lambda: now[0]
        )

        await client.create_page("d1", PageSpec())
        await client.get_document("d1")
        self.assertEqual(self.sleep.delays, [])

        now[0] += 0.04
        await client.create_page("d1", PageSpec())
        self.assertEqual(len(self.sleep.delays), 1)
        self.assertAlmostEqual(self.sleep.delays[0], 0.06)

        now[0] += 0.5
        await client.create_page("d1", PageSpec())
        self.assertEqual(len(self.sleep.delays), 1)
        self.assertEqual(client.stats.mutations, 3)
        self.assertEqual(client.stats.fetches, 1)

    async def test_slow_call_times_out(self):
        async def never_finishes(*_args):
            await asyncio.sleep(10)

        self.service.create_page = never_finishes
        client = self.make_client(timeout=0.05, max_retries=0)

        with self.assertRaises(RequestTimeout):
            await client.create_page("d1", PageSpec())

    async def test_cancel_aborts_in_flight_call(self):
        started = asyncio.Event()

        async def blocks_forever(*_args):
            started.set()
            await asyncio.Event().wait()

        self.service.create_page = blocks_forever
        client = self.make_client()
        token = CancellationToken()

        task = asyncio.create_task(client.create_page("d1", PageSpec(), token))
        await started.wait()
        token.cancel("dialog closed")

        with self.assertRaises(OperationCancelled):
            await task

    async def test_cancelled_token_skips_the_call(self):
        self.service.create_page = AsyncMock(return_value=self.page)
        client = self.make_client()
        token = CancellationToken()
        token.cancel()

        with self.assertRaises(OperationCancelled):
            await client.create_page("d1", PageSpec(), token)
        self.service.create_page.assert_not_awaited()

    async def test_cancel_during_backoff_stops_retrying(self):
        token = CancellationToken()

        async def cancelling_sleep(_delay):
            token.cancel("user abort")
            await asyncio.sleep(10)

        self.service.update_element = AsyncMock(side_effect=NetworkError("flaky"))
        client = DocumentMutationClient(self.service, RetryPolicy(pacing_delay=0.0), sleep=cancelling_sleep)

        with self.assertRaises(OperationCancelled):
            await client.update_element("d1", "p1", "e1", {"bounds": {}}, token)
        self.assertEqual(self.service.update_element.await_count, 1)


class RetryPolicyTest(unittest.TestCase):
    """Configuration of retry parameters."""

    def test_backoff_doubles_and_hint_wins(self):
        policy = RetryPolicy(base_delay=0.25)
        self.assertEqual([policy.backoff(n) for n in range(4)], [0.25, 0.5, 1.0, 2.0])
        self.assertEqual(policy.backoff(3, hint=7.0), 7.0)

    def test_from_env(self):
        env = {
            "DOCBUILDER_MAX_RETRIES": "5",
            "DOCBUILDER_BASE_DELAY": "0.2",
            "DOCBUILDER_PACING_DELAY": "0.15",
            "DOCBUILDER_TIMEOUT": "12",
        }
        with patch.dict(os.environ, env):
            policy = RetryPolicy.from_env()
        self.assertEqual(policy, RetryPolicy(max_retries=5, base_delay=0.2, pacing_delay=0.15, timeout=12.0))


if __name__ == '__main__':
    unittest.main()
