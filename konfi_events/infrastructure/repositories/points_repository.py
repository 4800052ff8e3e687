# konfi_events/infrastructure/repositories/points_repository.py

import logging
from datetime import datetime
from typing import Dict, List

from sqlalchemy.orm import Session
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from konfi_events.domain.state_machine import PointType
from konfi_events.infrastructure.db.models import EventPoints, KonfiProfile

logger = logging.getLogger(__name__)


class PointsRepository:
    """
    The event_points ledger and the running totals cached on konfi_profiles.
    """

    def __init__(self, db: Session):
        self.db = db

    # -----------------------------
    # Profiles
    # -----------------------------
    def get_profile(self, user_id: str, organization_id: str) -> KonfiProfile | None:
        stmt = (
            select(KonfiProfile)
            .where(KonfiProfile.user_id == user_id)
            .where(KonfiProfile.organization_id == organization_id)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def lock_profile(self, user_id: str, organization_id: str) -> KonfiProfile | None:
        stmt = (
            select(KonfiProfile)
            .where(KonfiProfile.user_id == user_id)
            .where(KonfiProfile.organization_id == organization_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def ensure_profile(self, user_id: str, organization_id: str) -> KonfiProfile:
        profile = self.lock_profile(user_id, organization_id)
        if profile is None:
            profile = KonfiProfile(
                user_id=user_id,
                organization_id=organization_id,
                gottesdienst_points=0,
                gemeinde_points=0,
            )
            self.db.add(profile)
            self.db.flush()
        return profile

    def profiles(self, organization_id: str) -> List[KonfiProfile]:
        stmt = (
            select(KonfiProfile)
            .where(KonfiProfile.organization_id == organization_id)
            .order_by(KonfiProfile.user_id)
        )
        return list(self.db.execute(stmt).scalars().all())

    # -----------------------------
    # Ledger
    # -----------------------------
    def get_entry(self, konfi_id: str, event_id: str) -> EventPoints | None:
        stmt = (
            select(EventPoints)
            .where(EventPoints.konfi_id == konfi_id)
            .where(EventPoints.event_id == event_id)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def try_award(
        self,
        konfi_id: str,
        event_id: str,
        organization_id: str,
        points: int,
        point_type: PointType,
        description: str,
        admin_id: str | None,
        awarded_date: datetime,
    ) -> EventPoints | None:
        """
        Insert the ledger row for (konfi, event) inside a SAVEPOINT.

        Returns the new row, or None when the unique key shows the points
        were already granted. Only a returned row may change totals.
        """
        # Pending changes must reach the database before the savepoint;
        # rolling it back would otherwise discard them with the failed insert.
        self.db.flush()

        entry = EventPoints(
            konfi_id=konfi_id,
            event_id=event_id,
            organization_id=organization_id,
            points=points,
            point_type=point_type,
            description=description,
            admin_id=admin_id,
            awarded_date=awarded_date,
        )
        try:
            with self.db.begin_nested():
                self.db.add(entry)
                self.db.flush()
        except IntegrityError:
            logger.info(
                "Points for event %s already awarded to %s",
                event_id,
                konfi_id,
            )
            return None

        return entry

    def revoke(self, entry: EventPoints) -> None:
        self.db.delete(entry)
        self.db.flush()

    def adjust_total(self, profile: KonfiProfile, point_type: PointType, delta: int) -> int:
        """Apply ``delta`` to one cached total, never going below zero."""
        new_total = max(0, profile.total_for(point_type) + delta)
        profile.set_total(point_type, new_total)
        self.db.flush()
        return new_total

    def ledger_totals(self, konfi_id: str) -> Dict[PointType, int]:
        stmt = (
            select(EventPoints.point_type, func.coalesce(func.sum(EventPoints.points), 0))
            .where(EventPoints.konfi_id == konfi_id)
            .group_by(EventPoints.point_type)
        )
        totals = {point_type: 0 for point_type in PointType}
        for point_type, amount in self.db.execute(stmt).all():
            totals[PointType(point_type)] = int(amount)
        return totals
