import logging
from dataclasses import dataclass
from typing import Iterable

from konfi_events.application.collaborators import Collaborators
from konfi_events.domain.effects import (
    AdminNotification,
    BadgeCheck,
    Effect,
    LiveUpdate,
    Notification,
)

logger = logging.getLogger(__name__)


@dataclass
class DispatchReport:
    delivered: int = 0
    failed: int = 0


class EffectDispatcher:
    """
    Performs side effects after the unit of work has committed.

    A failing collaborator is logged and skipped; the booking, promotion
    or points change that requested it stays committed.
    """

    def __init__(self, collaborators: Collaborators):
        self.collaborators = collaborators

    def dispatch(self, effects: Iterable[Effect]) -> DispatchReport:
        report = DispatchReport()
        for effect in effects:
            try:
                self._perform(effect)
            except Exception:
                report.failed += 1
                logger.exception("Side effect failed: %r", effect)
            else:
                report.delivered += 1
        return report

    def _perform(self, effect: Effect) -> None:
        if isinstance(effect, Notification):
            self.collaborators.notifier.notify(
                effect.user_id,
                effect.kind.value,
                effect.payload,
            )
        elif isinstance(effect, AdminNotification):
            self.collaborators.notifier.notify_admins(
                effect.organization_id,
                effect.kind.value,
                effect.payload,
            )
        elif isinstance(effect, LiveUpdate):
            self.collaborators.broadcaster.broadcast(
                effect.scope,
                effect.topic,
                effect.action,
                effect.data,
            )
        elif isinstance(effect, BadgeCheck):
            result = self.collaborators.badges.check_and_award_badges(effect.konfi_id)
            if result.awarded_badge_ids:
                logger.info(
                    "Konfi %s earned badges %s",
                    effect.konfi_id,
                    result.awarded_badge_ids,
                )
        else:
            raise TypeError(f"Unknown effect {type(effect)}")
