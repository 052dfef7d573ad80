import json

from peer_support.services.events import enqueue_notification, log_session_event


class FakeDB:
    def __init__(self):
        self.calls = []

    def execute(self, stmt, params):
        self.calls.append((str(stmt), params))


def test_log_session_event_inserts_expected_payload_shape():
    db = FakeDB()
    log_session_event(
        db=db,
        session_id="00000000-0000-0000-0000-000000000123",
        event_type="reschedule_accepted",
        payload={"scheduled_at": "2026-03-07T16:00:00+00:00"},
        reschedule_request_id="00000000-0000-0000-0000-000000000456",
    )
    assert len(db.calls) == 1
    sql, params = db.calls[0]
    assert "INSERT INTO session_event" in sql
    assert params["event_type"] == "reschedule_accepted"
    assert params["session_id"] == "00000000-0000-0000-0000-000000000123"
    assert params["reschedule_request_id"] == "00000000-0000-0000-0000-000000000456"
    assert json.loads(params["payload"]) == {"scheduled_at": "2026-03-07T16:00:00+00:00"}


def test_log_session_event_without_request_id():
    db = FakeDB()
    log_session_event(db=db, session_id="00000000-0000-0000-0000-000000000123", event_type="booked")
    _, params = db.calls[0]
    assert params["reschedule_request_id"] == ""
    assert params["payload"] == "{}"


def test_enqueue_notification_inserts_rendered_copy():
    db = FakeDB()
    enqueue_notification(
        db=db,
        recipient_id="00000000-0000-0000-0000-000000000789",
        template_kind="session_cancelled",
        title="Session Cancelled",
        body="Your video session has been cancelled.",
        payload={"session_id": "s1"},
    )
    sql, params = db.calls[0]
    assert "INSERT INTO notification_outbox" in sql
    assert params["title"] == "Session Cancelled"
    assert json.loads(params["payload"]) == {"session_id": "s1"}
