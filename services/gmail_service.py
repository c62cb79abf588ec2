from __future__ import annotations

import base64
import logging
from email.mime.text import MIMEText
from typing import Any, Dict, List, Sequence

import httplib2
from google.auth.exceptions import TransportError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from models.email_message import EmailMessage
from models.label import Label
from models.thread import EmailThread
from services.mail_client import MailClient, MailServiceError

LOGGER = logging.getLogger(__name__)

INBOX_QUERY = "in:inbox"
REPLY_HEADERS = ("From", "Reply-To", "Subject", "Message-ID")


class GmailService(MailClient):
    """Wrapper around the Gmail API for the operations we need."""

    def __init__(self, credentials: Credentials | None = None, user_id: str = "me", client: Any = None):
        if client is None:
            client = build("gmail", "v1", credentials=credentials, cache_discovery=False)
        self._client = client
        self._user_id = user_id

    @property
    def user_id(self) -> str:
        return self._user_id

    def _execute(self, operation: str, request, thread_id: str | None = None) -> Dict:
        try:
            return request.execute()
        except HttpError as exc:
            LOGGER.debug("%s returned HTTP %s: %s", operation, exc.resp.status, exc)
            raise MailServiceError(operation, str(exc), thread_id=thread_id, status=exc.resp.status) from exc
        except (OSError, httplib2.HttpLib2Error, TransportError) as exc:
            # Timeouts, refused connections and token refreshes that never reached Google.
            LOGGER.debug("%s failed in transport: %r", operation, exc)
            raise MailServiceError(operation, f"network error: {exc!r}", thread_id=thread_id) from exc

    def list_inbox_threads(self) -> List[EmailThread]:
        # Only the first page is read; see DESIGN.md.
        request = self._client.users().threads().list(userId=self.user_id, q=INBOX_QUERY)
        response = self._execute("list_inbox_threads", request)
        threads = [
            EmailThread(id=item["id"], snippet=item.get("snippet", ""), history_id=item.get("historyId"))
            for item in response.get("threads", [])
        ]
        LOGGER.info("Fetched %s inbox thread(s)", len(threads))
        return threads

    def list_messages(self, thread_id: str, sender: str) -> List[EmailMessage]:
        query = f"{INBOX_QUERY} thread:{thread_id} from:{sender}"
        request = self._client.users().messages().list(userId=self.user_id, q=query)
        response = self._execute("list_messages", request, thread_id=thread_id)
        return [
            EmailMessage(id=item["id"], thread_id=item.get("threadId", thread_id), sender=sender)
            for item in response.get("messages", [])
        ]

    def send_message(self, thread_id: str, body: str) -> str:
        headers = self._reply_headers(thread_id)
        message = _build_reply(headers, body)
        raw = base64.urlsafe_b64encode(message.as_bytes()).decode("utf-8")
        request = (
            self._client.users()
            .messages()
            .send(userId=self.user_id, body={"raw": raw, "threadId": thread_id})
        )
        response = self._execute("send_message", request, thread_id=thread_id)
        LOGGER.info("Reply %s sent to thread %s", response.get("id"), thread_id)
        return response["id"]

    def _reply_headers(self, thread_id: str) -> Dict[str, str]:
        request = (
            self._client.users()
            .threads()
            .get(userId=self.user_id, id=thread_id, format="metadata", metadataHeaders=list(REPLY_HEADERS))
        )
        response = self._execute("send_message", request, thread_id=thread_id)
        messages = response.get("messages", [])
        if not messages:
            return {}
        return _headers_to_dict(messages[-1].get("payload", {}).get("headers", []))

    def list_labels(self) -> List[Label]:
        request = self._client.users().labels().list(userId=self.user_id)
        response = self._execute("list_labels", request)
        return [_to_label(item) for item in response.get("labels", [])]

    def create_label(self, name: str) -> Label:
        body = {"name": name, "labelListVisibility": "labelShow", "messageListVisibility": "show"}
        request = self._client.users().labels().create(userId=self.user_id, body=body)
        response = self._execute("create_label", request)
        LOGGER.info("Created label %s with id %s", name, response["id"])
        return _to_label(response)

    def modify_thread_labels(self, thread_id: str, add_label_ids: Sequence[str]) -> None:
        if not add_label_ids:
            LOGGER.debug("No labels supplied for thread %s", thread_id)
            return
        body = {"addLabelIds": list(add_label_ids)}
        request = self._client.users().threads().modify(userId=self.user_id, id=thread_id, body=body)
        self._execute("modify_thread_labels", request, thread_id=thread_id)
        LOGGER.info("Applied labels %s to thread %s", list(add_label_ids), thread_id)


def _to_label(item: Dict) -> Label:
    return Label(id=item["id"], name=item.get("name", ""), type=item.get("type", "user"))


def _build_reply(headers: Dict[str, str], body: str) -> MIMEText:
    message = MIMEText(body, "plain", "utf-8")
    recipient = headers.get("reply-to") or headers.get("from")
    if recipient:
        message["To"] = recipient
    subject = headers.get("subject", "")
    if not subject.lower().startswith("re:"):
        subject = f"Re: {subject}".rstrip()
    message["Subject"] = subject
    if message_id := headers.get("message-id"):
        message["In-Reply-To"] = message_id
        message["References"] = message_id
    return message


def _headers_to_dict(headers: Sequence[Dict[str, str]]) -> Dict[str, str]:
    mapped: Dict[str, str] = {}
    for header in headers:
        name = header.get("name", "").lower()
        value = header.get("value", "")
        mapped[name] = value
    return mapped
