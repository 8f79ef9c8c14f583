"""
Alert Configuration Service
===========================
Create, read, update and delete a user's alerts.
"""

from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.models.alert import Alert
from backend.schemas.alerts import AlertCreate, AlertUpdate

logger = structlog.get_logger()


class AlertConfigService:
    """Alert CRUD scoped to one owner."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_alerts(self, user_id: str) -> list[Alert]:
        stmt = (
            select(Alert)
            .where(Alert.user_id == user_id)
            .order_by(Alert.created_at.desc(), Alert.name)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_alert(self, user_id: str, alert_id: UUID) -> Alert | None:
        """Return the alert only if it belongs to the user."""
        stmt = select(Alert).where(Alert.id == alert_id, Alert.user_id == user_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_alert(self, user_id: str, data: AlertCreate) -> Alert:
        alert = Alert(
            user_id=user_id,
            name=data.name,
            type=data.type.value,
            threshold=data.threshold,
            channels=[c.model_dump(mode="json", exclude_none=True) for c in data.channels],
            enabled=data.enabled,
        )
        self.session.add(alert)
        await self.session.commit()
        await self.session.refresh(alert)

        logger.info("Alert created", alert_id=str(alert.id), user_id=user_id, type=alert.type)
        return alert

    async def update_alert(self, user_id: str, alert_id: UUID, data: AlertUpdate) -> Alert | None:
        alert = await self.get_alert(user_id, alert_id)
        if alert is None:
            return None

        changes = data.model_dump(exclude_unset=True)
        if "name" in changes and data.name is not None:
            alert.name = data.name
        if "threshold" in changes and data.threshold is not None:
            alert.threshold = data.threshold
        if "channels" in changes and data.channels is not None:
            alert.channels = [c.model_dump(mode="json", exclude_none=True) for c in data.channels]
        if "enabled" in changes and data.enabled is not None:
            alert.enabled = data.enabled

        await self.session.commit()
        await self.session.refresh(alert)

        logger.info("Alert updated", alert_id=str(alert_id), fields=sorted(changes))
        return alert

    async def delete_alert(self, user_id: str, alert_id: UUID) -> bool:
        alert = await self.get_alert(user_id, alert_id)
        if alert is None:
            return False

        await self.session.delete(alert)
        await self.session.commit()

        logger.info("Alert deleted", alert_id=str(alert_id), user_id=user_id)
        return True
