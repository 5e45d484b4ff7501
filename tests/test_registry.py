"""
Record lifecycle tests.

Critical invariants tested:
    ids are prior counter + 1 and are never reissued
    only the current holder can change or delete a record
    a rejected operation leaves no state behind
"""

import threading
import unittest

from propreg import (
    ConfigurationError,
    FailureKind,
    ManualClock,
    PropertyRegistry,
    RegistryError,
)
from propreg import db

from support import ADMIN, ALICE, BOB, CAROL, VALID_PAYLOAD, RegistryTestCase


class TestRegister(RegistryTestCase):

    def test_ids_follow_counter(self):
        self.assertEqual(self.registry.stats().record_count, 0)
        for expected in (1, 2, 3):
            record_id = self.register()
            self.assertEqual(record_id, expected)
            self.assertEqual(self.registry.stats().record_count, expected)

    def test_record_fields(self):
        self.clock.set(250)
        record_id = self.register()
        record = self.registry.read(ALICE, record_id)

        self.assertEqual(record.record_id, record_id)
        self.assertEqual(record.holder, ALICE)
        self.assertEqual(record.registered_at, 250)
        self.assertEqual(record.name, VALID_PAYLOAD["name"])
        self.assertEqual(record.volume, 500)
        self.assertEqual(record.categories, ["land", "waterfront"])

    def test_category_order_preserved(self):
        record_id = self.register(categories=["zeta", "alpha", "mid"])
        self.assertEqual(self.registry.read(ALICE, record_id).categories, ["zeta", "alpha", "mid"])

    def test_register_grants_caller_access_entry(self):
        record_id = self.register()
        with db.transaction() as conn:
            grant = db.get_grant(conn, record_id, ALICE)
        self.assertIsNotNone(grant)
        self.assertTrue(grant.can_access)

    def test_boundaries_accepted(self):
        self.register(name="n" * 64, volume=999_999_999, categories=[f"c{i}" for i in range(10)])

    def test_boundaries_rejected(self):
        cases = [
            ({"name": "n" * 65}, FailureKind.INVALID_NAME),
            ({"volume": 1_000_000_000}, FailureKind.INVALID_VOLUME),
            ({"volume": 0}, FailureKind.INVALID_VOLUME),
            ({"summary": "s" * 129}, FailureKind.INVALID_NAME),
            ({"categories": [f"c{i}" for i in range(11)]}, FailureKind.INVALID_CATEGORY_FORMAT),
            ({"categories": []}, FailureKind.INVALID_CATEGORY_FORMAT),
        ]
        for overrides, kind in cases:
            with self.subTest(overrides=list(overrides)):
                with self.assertRaises(RegistryError) as ctx:
                    self.register(**overrides)
                self.assertEqual(ctx.exception.kind, kind)

    def test_failed_register_writes_nothing(self):
        with self.assertRaises(RegistryError):
            self.register(volume=0)

        stats = self.registry.stats()
        self.assertEqual(stats.record_count, 0)
        self.assertEqual(stats.active_records, 0)
        self.assertEqual(db.get_db_stats()["access_grants_count"], 0)
        self.assertEqual(self.register(), 1)


class TestModify(RegistryTestCase):

    def test_holder_modifies_all_payload_fields(self):
        record_id = self.register()
        self.clock.advance(10)
        self.registry.modify(ALICE, record_id, "Lot 7A", 750, "Subdivided plot", ["land"])

        record = self.registry.read(ALICE, record_id)
        self.assertEqual((record.name, record.volume, record.summary, record.categories),
                         ("Lot 7A", 750, "Subdivided plot", ["land"]))
        self.assertEqual(record.registered_at, 100)
        self.assertEqual(record.holder, ALICE)
        self.assertEqual(record.record_id, record_id)

    def test_non_holder_rejected(self):
        record_id = self.register()
        self.assertFails(FailureKind.UNAUTHORIZED, self.registry.modify,
                         BOB, record_id, "x", 1, "y", ["z"])

    def test_missing_record(self):
        self.assertFails(FailureKind.NOT_FOUND, self.registry.modify,
                         ALICE, 42, "x", 1, "y", ["z"])

    def test_guards_run_before_validation(self):
        record_id = self.register()
        self.assertFails(FailureKind.UNAUTHORIZED, self.registry.modify,
                         BOB, record_id, "", 0, "", [])

    def test_invalid_payload_leaves_record_unchanged(self):
        record_id = self.register()
        self.assertFails(FailureKind.INVALID_CATEGORY_FORMAT, self.registry.modify,
                         ALICE, record_id, "New name", 10, "New summary", ["x" * 33])
        self.assertEqual(self.registry.read(ALICE, record_id).name, VALID_PAYLOAD["name"])


class TestReassignHolder(RegistryTestCase):

    def test_new_holder_takes_over(self):
        record_id = self.register()
        self.registry.reassign_holder(ALICE, record_id, CAROL)

        self.assertEqual(self.registry.read(CAROL, record_id).holder, CAROL)
        self.registry.modify(CAROL, record_id, "Carol's lot", 10, "Renamed", ["land"])
        self.assertFails(FailureKind.UNAUTHORIZED, self.registry.modify,
                         ALICE, record_id, "Back", 10, "Nope", ["land"])
        self.assertFails(FailureKind.UNAUTHORIZED, self.registry.reassign_holder,
                         ALICE, record_id, ALICE)

    def test_non_holder_cannot_reassign(self):
        record_id = self.register()
        self.assertFails(FailureKind.UNAUTHORIZED, self.registry.reassign_holder,
                         BOB, record_id, BOB)

    def test_empty_new_holder_forbidden(self):
        record_id = self.register()
        self.assertFails(FailureKind.FORBIDDEN, self.registry.reassign_holder,
                         ALICE, record_id, "")

    def test_grants_and_attestation_untouched(self):
        record_id = self.register()
        self.registry.grant_access(ALICE, record_id, BOB)
        self.registry.authorize_authenticator(ADMIN, "notary")
        self.registry.attest("notary", record_id, "ok")

        self.registry.reassign_holder(ALICE, record_id, CAROL)

        with db.transaction() as conn:
            grants = {g.accessor for g in db.list_grants(conn, record_id)}
            attestation = db.get_attestation(conn, record_id)
        self.assertEqual(grants, {ALICE, BOB})
        self.assertEqual(attestation.attestor, "notary")


class TestDelete(RegistryTestCase):

    def test_holder_deletes(self):
        record_id = self.register()
        self.registry.delete(ALICE, record_id)
        self.assertFails(FailureKind.NOT_FOUND, self.registry.read, ALICE, record_id)
        self.assertFails(FailureKind.NOT_FOUND, self.registry.delete, ALICE, record_id)

    def test_non_holder_cannot_delete(self):
        record_id = self.register()
        self.assertFails(FailureKind.UNAUTHORIZED, self.registry.delete, BOB, record_id)
        self.assertEqual(self.registry.read(ALICE, record_id).record_id, record_id)

    def test_ids_never_reused(self):
        first = self.register()
        second = self.register()
        self.registry.delete(ALICE, second)
        self.registry.delete(ALICE, first)

        third = self.register()
        self.assertEqual(third, 3)
        stats = self.registry.stats()
        self.assertEqual(stats.record_count, 3)
        self.assertEqual(stats.active_records, 1)

    def test_delete_cascades_satellite_relations(self):
        record_id = self.register()
        self.registry.grant_access(ALICE, record_id, BOB)
        self.registry.authorize_authenticator(ADMIN, "notary")
        self.registry.attest("notary", record_id, "ok")

        self.registry.delete(ALICE, record_id)

        with db.transaction() as conn:
            self.assertEqual(db.list_grants(conn, record_id), [])
            self.assertIsNone(db.get_attestation(conn, record_id))

    def test_modify_after_delete_not_found(self):
        record_id = self.register()
        self.registry.delete(ALICE, record_id)
        self.assertFails(FailureKind.NOT_FOUND, self.registry.modify,
                         ALICE, record_id, "x", 1, "y", ["z"])


class TestStats(RegistryTestCase):

    def test_snapshot(self):
        self.register()
        self.clock.advance(5)
        stats = self.registry.stats()
        self.assertEqual(stats.record_count, 1)
        self.assertEqual(stats.current_clock, 105)
        self.assertEqual(stats.to_dict(), {"record_count": 1, "current_clock": 105, "active_records": 1})


class TestConcurrentRegistration(RegistryTestCase):

    def test_counter_not_lost_across_threads(self):
        threads_n, per_thread = 8, 20
        ids, errors = [], []
        lock = threading.Lock()

        def worker(caller):
            try:
                for _ in range(per_thread):
                    record_id = self.register(caller=caller)
                    with lock:
                        ids.append(record_id)
            except Exception as e:
                errors.append(e)
            finally:
                db.close_connection()

        threads = [threading.Thread(target=worker, args=(f"holder-{i}",)) for i in range(threads_n)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(errors, [])
        total = threads_n * per_thread
        self.assertEqual(sorted(ids), list(range(1, total + 1)))
        self.assertEqual(self.registry.stats().record_count, total)
        self.assertEqual(self.registry.stats().active_records, total)


class TestAdministratorBinding(unittest.TestCase):

    def test_administrator_required(self):
        with self.assertRaises(ConfigurationError):
            PropertyRegistry(administrator="")

    def test_administrator_captured_once(self):
        PropertyRegistry(administrator=ADMIN, clock=ManualClock())
        # Same identity on restart is fine
        again = PropertyRegistry(administrator=ADMIN, clock=ManualClock())
        self.assertEqual(again.administrator, ADMIN)

        with self.assertRaises(ConfigurationError):
            PropertyRegistry(administrator="someone-else", clock=ManualClock())

    def test_state_survives_restart(self):
        first = PropertyRegistry(administrator=ADMIN, clock=ManualClock())
        first.register(ALICE, "Lot", 1, "Plot", ["land"])
        db.close_connection()

        second = PropertyRegistry(administrator=ADMIN, clock=ManualClock())
        self.assertEqual(second.register(ALICE, "Lot 2", 1, "Plot", ["land"]), 2)

    def test_reset_clears_binding_and_counter(self):
        PropertyRegistry(administrator=ADMIN, clock=ManualClock()).register(ALICE, "Lot", 1, "Plot", ["land"])
        db.reset_db()

        fresh = PropertyRegistry(administrator="new-admin", clock=ManualClock())
        self.assertEqual(fresh.stats().record_count, 0)
        self.assertEqual(fresh.register(ALICE, "Lot", 1, "Plot", ["land"]), 1)


if __name__ == "__main__":
    unittest.main()
