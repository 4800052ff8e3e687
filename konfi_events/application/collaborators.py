"""
Interfaces of the platform services this engine talks to.

Badges, push delivery, live updates and chat live outside this service.
The ``Logging*`` implementations are used when nothing else is wired in.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BadgeCheckResult:
    konfi_id: str
    awarded_badge_ids: List[str] = field(default_factory=list)


class BadgeEngine(Protocol):
    def check_and_award_badges(self, konfi_id: str) -> BadgeCheckResult:
        ...


class Notifier(Protocol):
    def notify(self, user_id: str, kind: str, payload: Dict[str, Any]) -> None:
        ...

    def notify_admins(self, organization_id: str, kind: str, payload: Dict[str, Any]) -> None:
        ...


class LiveUpdateBroadcaster(Protocol):
    def broadcast(self, scope: str, topic: str, action: str, data: Dict[str, Any]) -> None:
        ...


class ChatDirectory(Protocol):
    def count_event_messages(self, event_id: str) -> int:
        ...


class LoggingBadgeEngine:
    def check_and_award_badges(self, konfi_id: str) -> BadgeCheckResult:
        logger.info("Badge check requested for konfi %s", konfi_id)
        return BadgeCheckResult(konfi_id=konfi_id)


class LoggingNotifier:
    def notify(self, user_id: str, kind: str, payload: Dict[str, Any]) -> None:
        logger.info("Notify user %s: %s %s", user_id, kind, payload)

    def notify_admins(self, organization_id: str, kind: str, payload: Dict[str, Any]) -> None:
        logger.info("Notify admins of %s: %s %s", organization_id, kind, payload)


class LoggingBroadcaster:
    def broadcast(self, scope: str, topic: str, action: str, data: Dict[str, Any]) -> None:
        logger.debug("Live update %s/%s %s %s", scope, topic, action, data)


class NullChatDirectory:
    def count_event_messages(self, event_id: str) -> int:
        return 0


@dataclass
class Collaborators:
    badges: BadgeEngine = field(default_factory=LoggingBadgeEngine)
    notifier: Notifier = field(default_factory=LoggingNotifier)
    broadcaster: LiveUpdateBroadcaster = field(default_factory=LoggingBroadcaster)
    chat: ChatDirectory = field(default_factory=NullChatDirectory)
