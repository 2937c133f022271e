"""Tests for durable order numbering and its degraded fallback."""
from __future__ import annotations

import asyncio
import re
import tempfile
import unittest

from canteen.services.order_numbers import (
    BaseOrderNumberGenerator,
    SequenceOrderNumberGenerator,
    format_order_number,
)

from tests.support import build_store, make_settings

NUMBER = re.compile(r"^MRC\d{6}$")


class BrokenCounter(BaseOrderNumberGenerator):
    async def _next_value(self) -> int:
        raise RuntimeError("counter offline")


class TestFormatting(unittest.TestCase):
    def test_zero_padding(self):
        self.assertEqual(format_order_number("MRC", 42), "MRC000042")
        self.assertEqual(format_order_number("T", 7, digits=3), "T007")

    def test_fallback_uses_last_clock_digits(self):
        numbers = BrokenCounter(clock=lambda: 1767614400.25)
        self.assertEqual(numbers.fallback(), "MRC400250")


class TestSequenceGenerator(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.engine, self.session_factory, _ = await build_store(make_settings(self._tmp.name))
        self.numbers = SequenceOrderNumberGenerator(self.session_factory)

    async def asyncTearDown(self):
        await self.engine.dispose()
        self._tmp.cleanup()

    async def test_sequential_numbers(self):
        got = [await self.numbers.next() for _ in range(3)]
        self.assertEqual(got, ["MRC000001", "MRC000002", "MRC000003"])

    async def test_counter_survives_a_new_generator(self):
        await self.numbers.next()
        again = SequenceOrderNumberGenerator(self.session_factory)
        self.assertEqual(await again.next(), "MRC000002")

    async def test_concurrent_requests_get_distinct_numbers(self):
        await self.numbers.next()
        got = await asyncio.gather(*[self.numbers.next() for _ in range(20)])

        self.assertEqual(len(set(got)), 20)
        self.assertEqual(sorted(got)[-1], "MRC000021")
        for number in got:
            self.assertRegex(number, NUMBER)

    async def test_separate_sequences_are_independent(self):
        other = SequenceOrderNumberGenerator(self.session_factory, sequence_name="kiosk", prefix="K")
        await self.numbers.next()
        self.assertEqual(await other.next(), "K000001")


class TestDegradedMode(unittest.IsolatedAsyncioTestCase):
    async def test_fallback_is_logged_and_well_formed(self):
        numbers = BrokenCounter(clock=lambda: 1767614400.5)

        with self.assertLogs("canteen.services.order_numbers", level="WARNING") as logs:
            number = await numbers.next()

        self.assertRegex(number, NUMBER)
        self.assertEqual(number, "MRC400500")
        self.assertIn("degraded", logs.output[0])


if __name__ == "__main__":
    unittest.main()
