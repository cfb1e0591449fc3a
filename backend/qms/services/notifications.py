from __future__ import annotations

import math
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from qms.core.config import settings
from qms.core.errors import NotFoundError
from qms.core.logging import get_logger
from qms.core.security import RequestContext
from qms.db.base import utcnow
from qms.db.enums import NotificationType
from qms.db.models.notifications import Notification
from qms.db.models.tenants import Tenant, User
from qms.services.email import EmailSender, render_notification_email

log = get_logger("notifications")


class NotificationService:
    """Внутренние уведомления пользователя и их email-дубли."""

    def __init__(self, db: AsyncSession, email_sender: EmailSender | None = None) -> None:
        self.db = db
        self.email_sender = email_sender or EmailSender()

    async def notify(
        self,
        tenant_id: UUID,
        user_id: UUID,
        notification_type: NotificationType,
        title: str,
        message: str,
        link: str | None = None,
        related_id: UUID | None = None,
        related_type: str | None = None,
        email_data: dict[str, Any] | None = None,
    ) -> Notification:
        """
        Создаёт уведомление и, если передан email_data, отправляет письмо.

        Письмо не отправляется пользователям с выключенными email_notifications.
        Коммит выполняет вызывающий код.
        """
        notification = Notification(
            tenant_id=tenant_id,
            user_id=user_id,
            type=notification_type,
            title=title,
            message=message,
            link=link,
            related_id=related_id,
            related_type=related_type,
        )
        self.db.add(notification)
        await self.db.flush()

        if email_data is not None:
            user = await self.db.get(User, user_id)
            if user is not None and user.email_notifications:
                tenant = await self.db.get(Tenant, tenant_id)
                payload = {"pharmacy_name": tenant.name if tenant else None, **email_data}
                email = render_notification_email(notification_type, payload, link)
                if email is not None and await self.email_sender.send(user.email, email):
                    notification.email_sent = True
                    notification.email_sent_at = utcnow()
        return notification

    async def list_for_user(
        self,
        ctx: RequestContext,
        page: int = 1,
        limit: int | None = None,
        unread_only: bool = False,
    ) -> dict[str, Any]:
        """Страница уведомлений пользователя, новые первыми."""
        limit = limit or settings.default_page_limit
        page = max(page, 1)
        base = select(Notification).where(
            Notification.tenant_id == ctx.tenant_id,
            Notification.user_id == ctx.user_id,
        )
        if unread_only:
            base = base.where(Notification.is_read.is_(False))

        total = (
            await self.db.execute(select(func.count()).select_from(base.subquery()))
        ).scalar_one()
        stmt = (
            base.order_by(Notification.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = list((await self.db.execute(stmt)).scalars().all())
        return {
            "items": items,
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if total else 0,
            "unread_count": await self.unread_count(ctx),
        }

    async def unread(self, ctx: RequestContext) -> list[Notification]:
        stmt = (
            select(Notification)
            .where(
                Notification.tenant_id == ctx.tenant_id,
                Notification.user_id == ctx.user_id,
                Notification.is_read.is_(False),
            )
            .order_by(Notification.created_at.desc())
        )
        return list((await self.db.execute(stmt)).scalars().all())

    async def unread_count(self, ctx: RequestContext) -> int:
        stmt = select(func.count(Notification.id)).where(
            Notification.tenant_id == ctx.tenant_id,
            Notification.user_id == ctx.user_id,
            Notification.is_read.is_(False),
        )
        return (await self.db.execute(stmt)).scalar_one()

    async def mark_read(self, ctx: RequestContext, notification_id: UUID) -> Notification:
        stmt = select(Notification).where(
            Notification.id == notification_id,
            Notification.tenant_id == ctx.tenant_id,
            Notification.user_id == ctx.user_id,
        )
        notification = (await self.db.execute(stmt)).scalar_one_or_none()
        if notification is None:
            raise NotFoundError("Notification", str(notification_id))
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utcnow()
            await self.db.commit()
            await self.db.refresh(notification)
        return notification

    async def mark_all_read(self, ctx: RequestContext) -> int:
        """Помечает все уведомления пользователя прочитанными, возвращает их число."""
        stmt = (
            update(Notification)
            .where(
                Notification.tenant_id == ctx.tenant_id,
                Notification.user_id == ctx.user_id,
                Notification.is_read.is_(False),
            )
            .values(is_read=True, read_at=utcnow())
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount or 0
