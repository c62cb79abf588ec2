from __future__ import annotations

import base64
import json
import socket
from email import message_from_bytes
from urllib.parse import parse_qs, urlparse

import pytest
from googleapiclient.discovery import build
from googleapiclient.http import HttpMockSequence

from services.auto_reply_workflow import AutoReplyWorkflow
from services.gmail_service import GmailService, _build_reply
from services.mail_client import MailServiceError
from utils.config import ReplySettings


def _ok(payload: dict) -> tuple[dict, str]:
    return {"status": "200"}, json.dumps(payload)


def _error(status: int, message: str) -> tuple[dict, str]:
    body = {"error": {"code": status, "message": message, "errors": [{"message": message}]}}
    return {"status": str(status)}, json.dumps(body)


class RecordingHttp(HttpMockSequence):
    """Canned responses, keeping every request that was made."""

    def __init__(self, iterable):
        super().__init__(iterable)
        self.requests = []

    def request(self, uri, method="GET", body=None, headers=None, redirections=1, connection_type=None):
        self.requests.append((method, uri, body))
        return super().request(uri, method, body, headers, redirections, connection_type)


class TimeoutForThread(RecordingHttp):
    """Times out on the owner-message search for one thread."""

    def __init__(self, iterable, thread_id: str):
        super().__init__(iterable)
        self.thread_id = thread_id

    def request(self, uri, method="GET", body=None, headers=None, redirections=1, connection_type=None):
        if f"thread:{self.thread_id} " in _query(uri).get("q", ""):
            self.requests.append((method, uri, body))
            raise socket.timeout("timed out")
        return super().request(uri, method, body, headers, redirections, connection_type)


def _query(uri: str) -> dict:
    return {key: values[0] for key, values in parse_qs(urlparse(uri).query).items()}


def _gmail(http: HttpMockSequence) -> GmailService:
    client = build("gmail", "v1", http=http, static_discovery=True)
    return GmailService(client=client)


def _service(*responses) -> GmailService:
    return _gmail(RecordingHttp(list(responses)))


def test_list_inbox_threads_parses_first_page():
    service = _service(
        _ok({"threads": [{"id": "t1", "snippet": "hello", "historyId": "9"}, {"id": "t2"}], "nextPageToken": "p2"})
    )

    threads = service.list_inbox_threads()

    assert [thread.id for thread in threads] == ["t1", "t2"]
    assert threads[0].snippet == "hello"
    assert threads[0].history_id == "9"


def test_list_messages_searches_owner_inbox_messages_in_thread():
    http = RecordingHttp([_ok({"messages": [{"id": "m1", "threadId": "t1"}], "resultSizeEstimate": 1})])

    messages = _gmail(http).list_messages("t1", sender="me")

    assert [message.id for message in messages] == ["m1"]
    assert messages[0].thread_id == "t1"
    method, uri, _ = http.requests[0]
    assert method == "GET"
    assert "/users/me/messages" in uri
    assert _query(uri)["q"] == "in:inbox thread:t1 from:me"


def test_list_messages_without_results_is_empty():
    service = _service(_ok({"resultSizeEstimate": 0}))

    assert service.list_messages("t1", sender="me") == []


def test_http_errors_become_mail_service_errors():
    service = _service(_error(403, "Insufficient Permission"))

    with pytest.raises(MailServiceError) as excinfo:
        service.list_messages("t1", sender="me")

    assert excinfo.value.operation == "list_messages"
    assert excinfo.value.thread_id == "t1"
    assert excinfo.value.status == 403


def test_send_message_returns_new_message_id():
    thread = {
        "id": "t1",
        "messages": [
            {
                "id": "m1",
                "payload": {
                    "headers": [
                        {"name": "From", "value": "Ada <ada@example.com>"},
                        {"name": "Subject", "value": "Lunch?"},
                        {"name": "Message-ID", "value": "<m1@example.com>"},
                    ]
                },
            }
        ],
    }
    http = RecordingHttp([_ok(thread), _ok({"id": "sent-1", "threadId": "t1"})])

    assert _gmail(http).send_message("t1", "Away until Monday.") == "sent-1"

    method, uri, body = http.requests[1]
    assert method == "POST"
    assert uri.split("?")[0].endswith("/users/me/messages/send")
    payload = json.loads(body)
    assert payload["threadId"] == "t1"
    sent = message_from_bytes(base64.urlsafe_b64decode(payload["raw"]))
    assert sent["To"] == "Ada <ada@example.com>"
    assert sent["Subject"] == "Re: Lunch?"
    assert sent["In-Reply-To"] == "<m1@example.com>"
    assert sent.get_payload(decode=True).decode("utf-8") == "Away until Monday."


def test_modify_thread_labels_adds_label_ids():
    http = RecordingHttp([_ok({"id": "t1", "messages": []})])

    _gmail(http).modify_thread_labels("t1", ["Label_1"])

    method, uri, body = http.requests[0]
    assert method == "POST"
    assert uri.split("?")[0].endswith("/users/me/threads/t1/modify")
    assert json.loads(body) == {"addLabelIds": ["Label_1"]}


def test_ensure_label_creates_missing_label():
    service = _service(
        _ok({"labels": [{"id": "INBOX", "name": "INBOX", "type": "system"}]}),
        _ok({"id": "Label_1", "name": "Vacation Reply", "type": "user"}),
    )

    label = service.ensure_label("Vacation Reply")

    assert label.id == "Label_1"


def test_ensure_label_reuses_label_after_conflict():
    service = _service(
        _ok({"labels": []}),
        _error(409, "Label name exists or conflicts"),
        _ok({"labels": [{"id": "Label_7", "name": "Vacation Reply", "type": "user"}]}),
    )

    label = service.ensure_label("Vacation Reply")

    assert label.id == "Label_7"


def test_modify_thread_labels_without_ids_skips_request():
    http = RecordingHttp([])

    _gmail(http).modify_thread_labels("t1", [])

    assert http.requests == []


def test_network_error_becomes_mail_service_error():
    http = TimeoutForThread([], thread_id="t1")

    with pytest.raises(MailServiceError) as excinfo:
        _gmail(http).list_messages("t1", sender="me")

    assert excinfo.value.operation == "list_messages"
    assert excinfo.value.thread_id == "t1"
    assert excinfo.value.status is None


def test_network_error_on_one_thread_does_not_stop_the_run():
    http = TimeoutForThread(
        [
            _ok({"threads": [{"id": "t1"}, {"id": "t2"}]}),
            _ok({"messages": [{"id": "m9", "threadId": "t2"}], "resultSizeEstimate": 1}),
        ],
        thread_id="t1",
    )
    service = _gmail(http)
    workflow = AutoReplyWorkflow(ReplySettings(), client_factory=lambda creds: service)

    report = workflow.run(credentials=object())

    assert [(failure.thread_id, failure.operation) for failure in report.failures] == [("t1", "list_messages")]
    assert report.answered == ["t2"]
    assert report.replied == []


def test_build_reply_sets_threading_headers():
    headers = {"from": "Ada <ada@example.com>", "subject": "Lunch?", "message-id": "<m1@example.com>"}

    message = _build_reply(headers, "Away until Monday.")

    assert message["To"] == "Ada <ada@example.com>"
    assert message["Subject"] == "Re: Lunch?"
    assert message["In-Reply-To"] == "<m1@example.com>"
    assert message["References"] == "<m1@example.com>"


def test_build_reply_prefers_reply_to_and_keeps_existing_prefix():
    headers = {"from": "a@example.com", "reply-to": "list@example.com", "subject": "RE: Lunch?"}

    message = _build_reply(headers, "Away.")

    assert message["To"] == "list@example.com"
    assert message["Subject"] == "RE: Lunch?"
    assert message["In-Reply-To"] is None
