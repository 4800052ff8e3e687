"""
Run the reconciliation sweep once for every organization.

Meant for cron: promotes waitlisted bookings into free seats and rewrites
profile point totals from the event_points ledger.
"""

import logging
import sys

from konfi_events.application.collaborators import Collaborators
from konfi_events.application.effect_dispatcher import EffectDispatcher
from konfi_events.application.reconciliation_service import ReconciliationService
from konfi_events.config import settings
from konfi_events.domain.exceptions import KonfiEventsError
from konfi_events.infrastructure.db.session import get_db_session

logger = logging.getLogger("reconcile")


def main() -> int:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    dispatcher = EffectDispatcher(Collaborators())
    failures = 0

    with get_db_session() as db:
        service = ReconciliationService(db)
        for organization_id in service.organization_ids():
            try:
                report = service.run(organization_id)
            except KonfiEventsError:
                failures += 1
                logger.exception("Reconciliation failed for organization %s", organization_id)
                continue
            dispatcher.dispatch(report.effects)

    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
