from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from farmsight.core.logging import get_logger
from farmsight.models.alert import AlertCooldown
from farmsight.services.stress.classifier import StressLevel

logger = get_logger(__name__)


class CooldownStore:
    """
    Per-farm alert cooldown kept in the shared database.

    A window is claimed with a version-checked UPDATE (or a primary-key
    guarded INSERT for a farm's first alert), so two workers racing on the
    same farm can't both alert.
    """

    def __init__(self, db: Session, window: timedelta = timedelta(hours=24)):
        self.db = db
        self.window = window

    def current(self, farm_id: int) -> Optional[AlertCooldown]:
        return self.db.get(AlertCooldown, farm_id)

    def is_active(self, record: Optional[AlertCooldown], level: StressLevel, now: datetime) -> bool:
        """True when ``record`` still blocks an alert at ``level``."""
        if record is None:
            return False

        if now - record.last_alert_at >= self.window:
            return False

        # Escalation breaks through the cooldown
        return level.severity <= StressLevel(record.stress_level).severity

    def claim(
        self,
        farm_id: int,
        level: StressLevel,
        now: datetime,
        record: Optional[AlertCooldown],
    ) -> bool:
        if record is None:
            self.db.add(
                AlertCooldown(
                    farm_id=farm_id,
                    stress_level=level.value,
                    last_alert_at=now,
                    version=1,
                )
            )
            try:
                self.db.flush()
            except IntegrityError:
                self.db.rollback()
                logger.info("Cooldown for farm %s claimed concurrently", farm_id)
                return False
            return True

        result = self.db.execute(
            update(AlertCooldown)
            .where(
                AlertCooldown.farm_id == farm_id,
                AlertCooldown.version == record.version,
            )
            .values(
                stress_level=level.value,
                last_alert_at=now,
                version=record.version + 1,
            )
        )

        if result.rowcount != 1:
            logger.info("Cooldown for farm %s changed underneath us", farm_id)
            return False
        return True
