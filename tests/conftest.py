from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, List, Sequence, Set

import pytest

from models.email_message import EmailMessage
from models.label import Label
from models.thread import EmailThread
from services.mail_client import MailClient, MailServiceError


class FakeMailClient(MailClient):
    """In-memory mailbox that records every call made against it."""

    def __init__(self, threads: Iterable[str] = (), owner_replies: Dict[str, int] | None = None):
        self.threads = [EmailThread(id=thread_id, snippet=f"snippet {thread_id}") for thread_id in threads]
        self.owner_replies = dict(owner_replies or {})
        self.labels: List[Label] = []
        self.sent: List[tuple[str, str]] = []
        self.thread_labels: Dict[str, Set[str]] = defaultdict(set)
        self.created_labels: List[str] = []
        self.calls: List[tuple[str, str | None]] = []
        self.failures: Dict[str, Dict[str | None, int]] = defaultdict(dict)
        self.conflict_on_create = False

    def fail(self, operation: str, thread_id: str | None = None, status: int = 500) -> None:
        """Make `operation` fail, for one thread or (thread_id=None) always."""
        self.failures[operation][thread_id] = status

    def _call(self, operation: str, thread_id: str | None = None) -> None:
        self.calls.append((operation, thread_id))
        rules = self.failures.get(operation, {})
        for key in (thread_id, None):
            if key in rules:
                raise MailServiceError(operation, f"{operation} exploded", thread_id=thread_id, status=rules[key])

    def list_inbox_threads(self) -> List[EmailThread]:
        self._call("list_inbox_threads")
        return list(self.threads)

    def list_messages(self, thread_id: str, sender: str) -> List[EmailMessage]:
        self._call("list_messages", thread_id)
        count = self.owner_replies.get(thread_id, 0)
        return [EmailMessage(id=f"{thread_id}-m{i}", thread_id=thread_id, sender=sender) for i in range(count)]

    def send_message(self, thread_id: str, body: str) -> str:
        self._call("send_message", thread_id)
        self.sent.append((thread_id, body))
        return f"sent-{len(self.sent)}"

    def list_labels(self) -> List[Label]:
        self._call("list_labels")
        return list(self.labels)

    def create_label(self, name: str) -> Label:
        self._call("create_label")
        label = Label(id=f"Label_{len(self.labels) + 1}", name=name)
        self.labels.append(label)
        if self.conflict_on_create:
            # Someone else got there first.
            raise MailServiceError("create_label", "Label name exists or conflicts", status=409)
        self.created_labels.append(name)
        return label

    def modify_thread_labels(self, thread_id: str, add_label_ids: Sequence[str]) -> None:
        self._call("modify_thread_labels", thread_id)
        self.thread_labels[thread_id].update(add_label_ids)

    def labels_named(self, name: str) -> List[Label]:
        return [label for label in self.labels if label.matches(name)]


class StubCredentialProvider:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.calls = 0

    def authorize(self):
        self.calls += 1
        if self.error:
            raise self.error
        return object()


@pytest.fixture
def fake_client() -> FakeMailClient:
    return FakeMailClient()
