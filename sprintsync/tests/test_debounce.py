import asyncio
import unittest

from sprintsync.debounce import Debouncer


class DebouncerTests(unittest.IsolatedAsyncioTestCase):
    async def test_burst_collapses_to_last_value(self) -> None:
        calls: list[int] = []
        debouncer = Debouncer(0.05, calls.append)

        debouncer.submit(1)
        debouncer.submit(2)
        debouncer.submit(3)
        self.assertTrue(debouncer.has_pending)
        await asyncio.sleep(0.15)

        self.assertEqual(calls, [3])
        self.assertFalse(debouncer.has_pending)

    async def test_submit_restarts_the_window(self) -> None:
        calls: list[str] = []
        debouncer = Debouncer(0.2, calls.append)

        debouncer.submit("a")
        await asyncio.sleep(0.1)
        debouncer.submit("b")
        await asyncio.sleep(0.1)
        self.assertEqual(calls, [])
        await asyncio.sleep(0.25)
        self.assertEqual(calls, ["b"])

    async def test_coroutine_action_is_awaited_on_drain(self) -> None:
        written: list[str] = []

        async def _write(value: str) -> None:
            await asyncio.sleep(0.01)
            written.append(value)

        debouncer = Debouncer(10.0, _write)
        debouncer.submit("x")
        debouncer.flush()
        await debouncer.drain()
        self.assertEqual(written, ["x"])

    async def test_cancel_drops_pending_value(self) -> None:
        calls: list[int] = []
        debouncer = Debouncer(0.02, calls.append)
        debouncer.submit(1)
        debouncer.cancel()
        await asyncio.sleep(0.06)
        self.assertEqual(calls, [])

    async def test_failing_action_does_not_break_later_submits(self) -> None:
        attempts: list[int] = []

        async def _flaky(value: int) -> None:
            attempts.append(value)
            if value == 1:
                raise OSError("disk full")

        debouncer = Debouncer(0.01, _flaky)
        debouncer.submit(1)
        debouncer.flush()
        await debouncer.drain()
        debouncer.submit(2)
        debouncer.flush()
        await debouncer.drain()
        self.assertEqual(attempts, [1, 2])


if __name__ == "__main__":
    unittest.main()
