from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from google.oauth2.credentials import Credentials

from models.run_report import RunReport
from models.thread import EmailThread
from services.auth_service import AuthorizationError, AuthService
from services.mail_client import MailClient, MailServiceError
from services.statistics_service import StatisticsService
from utils.config import ReplySettings

LOGGER = logging.getLogger(__name__)

ClientFactory = Callable[[Credentials], MailClient]


class AutoReplyWorkflow:
    """Reply to and label every inbox thread the owner has not answered yet.

    Each thread is checked, replied to and labelled in that order before the
    next thread is looked at. A failed API call only ends processing of the
    thread it belongs to.
    """

    def __init__(
        self,
        settings: ReplySettings,
        client_factory: ClientFactory,
        stats: Optional[StatisticsService] = None,
    ):
        self._settings = settings
        self._client_factory = client_factory
        self._stats = stats

    def tick(self, credential_provider: AuthService, dry_run: bool = False) -> RunReport | None:
        try:
            credentials = credential_provider.authorize()
        except AuthorizationError as exc:
            LOGGER.error("Authorization failed, skipping this run: %s", exc)
            return None
        return self.run(credentials, dry_run=dry_run)

    def run(self, credentials: Credentials, dry_run: bool = False) -> RunReport:
        client = self._client_factory(credentials)
        report = RunReport(dry_run=dry_run)

        try:
            threads = client.list_inbox_threads()
        except MailServiceError as exc:
            LOGGER.error("Could not list inbox threads, aborting run: %s", exc)
            report.aborted = True
            self._record(report)
            return report

        report.threads_seen = len(threads)
        if not threads:
            LOGGER.info("No inbox threads to inspect")
            self._record(report)
            return report

        label_cache: Dict[str, str] = {}
        for thread in threads:
            self._process_thread(client, thread, report, label_cache)

        LOGGER.info("Run finished: %s", report.summary())
        self._record(report)
        return report

    def _process_thread(
        self,
        client: MailClient,
        thread: EmailThread,
        report: RunReport,
        label_cache: Dict[str, str],
    ) -> None:
        operation = "list_messages"
        try:
            owner_messages = client.list_messages(thread.id, sender=self._settings.owner_query)
            if owner_messages:
                LOGGER.debug("Thread %s already answered (%s message(s))", thread.id, len(owner_messages))
                report.answered.append(thread.id)
                return

            if report.dry_run:
                LOGGER.info("[dry-run] Would reply to thread %s: %s", thread.id, thread.snippet)
                report.replied.append(thread.id)
                return

            operation = "send_message"
            client.send_message(thread.id, self._settings.body)
            report.replied.append(thread.id)

            operation = "apply_label"
            label_id = self._resolve_label(client, label_cache)
            client.modify_thread_labels(thread.id, [label_id])
            report.labelled.append(thread.id)
        except MailServiceError as exc:
            LOGGER.error("Thread %s: %s failed: %s", thread.id, operation, exc)
            report.record_failure(thread.id, operation, exc)

    def _resolve_label(self, client: MailClient, label_cache: Dict[str, str]) -> str:
        name = self._settings.label_name
        if name not in label_cache:
            label_cache[name] = client.ensure_label(name).id
        return label_cache[name]

    def _record(self, report: RunReport) -> None:
        if self._stats and not report.dry_run:
            self._stats.record_run(report)

