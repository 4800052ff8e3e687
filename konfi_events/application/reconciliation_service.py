import logging
from typing import List

from sqlalchemy.orm import Session
from sqlalchemy import select, union

from konfi_events.application.outcomes import ReconciliationReport
from konfi_events.application.waitlist_promoter import WaitlistPromoter, promotion_effects
from konfi_events.infrastructure.db.models import Event, KonfiProfile
from konfi_events.infrastructure.db.session import unit_of_work
from konfi_events.infrastructure.repositories.booking_repository import BookingRepository
from konfi_events.infrastructure.repositories.event_repository import EventRepository
from konfi_events.infrastructure.repositories.points_repository import PointsRepository

logger = logging.getLogger(__name__)


class ReconciliationService:
    """
    Periodic repair pass for one organization.

    Promotes waitlisted bookings wherever a scope has a free seat and
    rewrites the cached profile totals from the event_points ledger.
    """

    def __init__(self, db: Session):
        self.db = db
        self.booking_repository = BookingRepository(db)
        self.event_repository = EventRepository(db)
        self.points_repository = PointsRepository(db)
        self.promoter = WaitlistPromoter(db)

    def run(self, organization_id: str) -> ReconciliationReport:
        report = ReconciliationReport(organization_id=organization_id)

        with unit_of_work(self.db):
            for event_id in self.booking_repository.events_with_pending(organization_id):
                event = self.event_repository.lock(event_id, organization_id)
                if event.cancelled:
                    continue
                for booking in self.promoter.fill_all_scopes(event):
                    report.promoted_booking_ids.append(booking.id)
                    report.effects.extend(promotion_effects(event, booking))

            for profile in self.points_repository.profiles(organization_id):
                self._rewrite_totals(profile, report)

        logger.info(
            "Reconciled organization %s: %s promoted, %s profiles corrected",
            organization_id,
            len(report.promoted_booking_ids),
            len(report.corrected_totals),
        )
        return report

    def organization_ids(self) -> List[str]:
        stmt = union(
            select(Event.organization_id),
            select(KonfiProfile.organization_id),
        )
        with unit_of_work(self.db):
            organization_ids = sorted(self.db.execute(stmt).scalars().all())
        return organization_ids

    def _rewrite_totals(self, profile: KonfiProfile, report: ReconciliationReport) -> None:
        profile = self.points_repository.lock_profile(profile.user_id, profile.organization_id)
        totals = self.points_repository.ledger_totals(profile.user_id)

        corrected = {}
        for point_type, amount in totals.items():
            if profile.total_for(point_type) != amount:
                corrected[point_type.value] = amount
                profile.set_total(point_type, amount)

        if corrected:
            self.db.flush()
            report.corrected_totals[profile.user_id] = corrected
            logger.warning(
                "Profile totals of %s drifted from the ledger, rewritten to %s",
                profile.user_id,
                corrected,
            )
