import json
import logging

from peerline.obs.logging import JSONLogFormatter, bind_context, reset_context


def _record(**extra):
	record = logging.LogRecord(
		name="peerline.escalations",
		level=logging.INFO,
		pathname=__file__,
		lineno=1,
		msg="escalation annotated",
		args=(),
		exc_info=None,
	)
	for key, value in extra.items():
		setattr(record, key, value)
	return record


def test_formatter_redacts_note_and_reason_fields():
	record = _record(escalation_id="esc-1", note_text="student said goodbye", reason="wants to die")

	payload = json.loads(JSONLogFormatter().format(record))

	assert payload["msg"] == "escalation annotated"
	assert payload["escalation_id"] == "esc-1"
	assert payload["note_text"] == "[redacted]"
	assert payload["reason"] == "[redacted]"


def test_formatter_includes_bound_request_context():
	tokens = bind_context(request_id="req-9", route="/api/escalations/v1/{escalation_id}", user_id="alice")
	try:
		payload = json.loads(JSONLogFormatter().format(_record(status="in-progress")))
	finally:
		reset_context(tokens)

	assert payload["request_id"] == "req-9"
	assert payload["user_id"] == "alice"
	assert payload["status"] == "in-progress"
	assert payload["level"] == "info"
