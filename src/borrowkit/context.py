"""Application wiring.

Builds every collaborator from ``Config`` once, so hosts and tests share
one credential store, one HTTP session per client and one background
runner.
"""

from dataclasses import dataclass
from typing import Optional

from .api.auth import AUTH_EXPIRED, CredentialStore
from .api.records import HttpRecordStore, RecordStore
from .api.rpc import RemoteProcedureClient
from .config import Config, get_config
from .lending.actions import LifecycleActions
from .lending.reminders import ReminderScheduler
from .lending.submitter import BorrowRequestSubmitter
from .lending.tasks import BestEffortRunner
from .logger import logger, setup_logging
from .realtime.channel import RealtimeChannel, SseRealtimeChannel
from .realtime.views import (
    DashboardView,
    LendingView,
    NotificationBellView,
    NotificationsView,
)


@dataclass
class AppContext:
    """Everything a host needs to drive the borrow lifecycle."""

    config: Config
    credentials: CredentialStore
    rpc: RemoteProcedureClient
    store: RecordStore
    channel: RealtimeChannel
    scheduler: ReminderScheduler
    submitter: BorrowRequestSubmitter
    runner: BestEffortRunner

    def dashboard(self) -> DashboardView:
        return DashboardView(self.store, self.channel)

    def notifications(self) -> NotificationsView:
        return NotificationsView(self.store, self.channel, credentials=self.credentials)

    def bell(self) -> NotificationBellView:
        return NotificationBellView(self.store, self.channel)

    def lifecycle(self, view: LendingView) -> LifecycleActions:
        """Actions whose results land in ``view``."""
        return LifecycleActions(
            view,
            self.rpc,
            self.store,
            self.scheduler,
            self.runner,
            default_loan_days=self.config.default_loan_days,
        )

    def close(self) -> None:
        self.runner.shutdown(wait=False)


def build_context(
    config: Optional[Config] = None, configure_logging: bool = True
) -> AppContext:
    """Wire the collaborators for ``config`` (the process config by default).

    Logging is configured from the same config unless ``configure_logging``
    is False.

    Raises:
        ValueError: The configuration is invalid
    """
    config = config or get_config()
    problems = config.validate()
    if problems:
        raise ValueError("Invalid configuration: " + "; ".join(problems))
    if configure_logging:
        setup_logging(config.log_level, config.log_file)

    credentials = CredentialStore(config.token_path)
    credentials.events.on(AUTH_EXPIRED, lambda: logger.info("Signed out: session expired"))

    rpc = RemoteProcedureClient(config.api_url, credentials, timeout=config.request_timeout)
    store = HttpRecordStore(config.api_url, credentials, timeout=config.request_timeout)
    channel = SseRealtimeChannel(
        config.api_url, credentials, reconnect_delay=config.realtime_reconnect_delay
    )
    scheduler = ReminderScheduler(store)

    return AppContext(
        config=config,
        credentials=credentials,
        rpc=rpc,
        store=store,
        channel=channel,
        scheduler=scheduler,
        submitter=BorrowRequestSubmitter(rpc, store),
        runner=BestEffortRunner(),
    )
