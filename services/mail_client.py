from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import List, Sequence

from models.email_message import EmailMessage
from models.label import Label
from models.thread import EmailThread

LOGGER = logging.getLogger(__name__)

HTTP_CONFLICT = 409


class MailServiceError(RuntimeError):
    """A mail API call failed.

    ``operation`` names the client method that failed and ``thread_id`` the
    thread it was acting on, when there was one.
    """

    def __init__(self, operation: str, message: str, thread_id: str | None = None, status: int | None = None):
        super().__init__(message)
        self.operation = operation
        self.thread_id = thread_id
        self.status = status


class MailClient(ABC):
    """Operations the auto-reply workflow needs from a mail provider."""

    @abstractmethod
    def list_inbox_threads(self) -> List[EmailThread]:
        """Return the first page of threads in the inbox."""
        raise NotImplementedError

    @abstractmethod
    def list_messages(self, thread_id: str, sender: str) -> List[EmailMessage]:
        """Return inbox messages in ``thread_id`` sent by ``sender``."""
        raise NotImplementedError

    @abstractmethod
    def send_message(self, thread_id: str, body: str) -> str:
        """Send ``body`` as a reply within ``thread_id`` and return the new message id."""
        raise NotImplementedError

    @abstractmethod
    def list_labels(self) -> List[Label]:
        raise NotImplementedError

    @abstractmethod
    def create_label(self, name: str) -> Label:
        raise NotImplementedError

    @abstractmethod
    def modify_thread_labels(self, thread_id: str, add_label_ids: Sequence[str]) -> None:
        raise NotImplementedError

    def find_label(self, name: str) -> Label | None:
        for label in self.list_labels():
            if label.matches(name):
                return label
        return None

    def ensure_label(self, name: str) -> Label:
        """Look ``name`` up and create it only if it is missing.

        A create that loses a race against another writer comes back as a
        conflict; the label created by the other writer is returned instead.
        """

        existing = self.find_label(name)
        if existing:
            LOGGER.debug("Label %s already exists as %s", name, existing.id)
            return existing
        try:
            return self.create_label(name)
        except MailServiceError as exc:
            if exc.status != HTTP_CONFLICT:
                raise
            LOGGER.info("Label %s was created concurrently, reusing it", name)
            existing = self.find_label(name)
            if existing is None:
                raise
            return existing
