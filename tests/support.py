"""Shared fixtures for the registry test suite."""

import unittest

from propreg import ManualClock, PropertyRegistry, RegistryError

ADMIN = "admin"
ALICE = "alice"
BOB = "bob"
CAROL = "carol"
DAVE = "dave"
ERIN = "erin"

VALID_PAYLOAD = {
    "name": "Lot 7, Riverside",
    "volume": 500,
    "summary": "Two-acre riverside plot with boathouse",
    "categories": ["land", "waterfront"],
}


class RegistryTestCase(unittest.TestCase):
    """Registry on a manual clock starting at 100."""

    def setUp(self):
        self.clock = ManualClock(start=100)
        self.registry = PropertyRegistry(administrator=ADMIN, clock=self.clock)

    def register(self, caller=ALICE, **overrides):
        payload = dict(VALID_PAYLOAD, **overrides)
        return self.registry.register(
            caller, payload["name"], payload["volume"], payload["summary"], payload["categories"]
        )

    def assertFails(self, kind, fn, *args):
        with self.assertRaises(RegistryError) as ctx:
            fn(*args)
        self.assertEqual(ctx.exception.kind, kind)
        return ctx.exception
