import json
import logging

from propreg import RegistryError
from propreg.logging_config import AUDIT_LOGGER_NAME, StructuredFormatter, audit_log, set_request_id

from support import ALICE, BOB, RegistryTestCase


class TestAuditStream(RegistryTestCase):

    def test_rejection_logged_with_failure_kind(self):
        record_id = self.register()
        with self.assertLogs(AUDIT_LOGGER_NAME, level="WARNING") as logs:
            with self.assertRaises(RegistryError):
                self.registry.read(BOB, record_id)

        fields = logs.records[0].audit_fields
        self.assertEqual(fields["event"], "OPERATION_REJECTED")
        self.assertEqual(fields["failure"], "READ_FORBIDDEN")
        self.assertEqual(fields["record_id"], record_id)

    def test_commit_logged(self):
        with self.assertLogs(AUDIT_LOGGER_NAME, level="INFO") as logs:
            record_id = self.register(caller=ALICE)
        fields = logs.records[-1].audit_fields
        self.assertEqual((fields["operation"], fields["record_id"]), ("register", record_id))


def test_structured_formatter_emits_json():
    set_request_id("req-1")
    logger = logging.getLogger(AUDIT_LOGGER_NAME)
    record = logger.makeRecord(AUDIT_LOGGER_NAME, logging.WARNING, __file__, 1, "hello", (), None,
                               extra={"audit_fields": {"event": "X", "caller": "abc"}})

    line = json.loads(StructuredFormatter().format(record))

    assert line["msg"] == "hello"
    assert line["level"] == "WARNING"
    assert line["request_id"] == "req-1"
    assert line["event"] == "X"


def test_identities_masked():
    long_identity = "f" * 64
    logger = logging.getLogger(AUDIT_LOGGER_NAME)
    captured = []

    class _Capture(logging.Handler):
        def emit(self, record):
            captured.append(record)

    handler = _Capture()
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    try:
        audit_log.authenticator_changed(long_identity, True, long_identity)
    finally:
        logger.removeHandler(handler)

    assert captured[0].audit_fields["authenticator"] == "ffffffff..."
