"""
Notification Gateway - templated user notifications.

Domain code asks for a template by name plus a context; the gateway resolves the
template, applies the global mail switch and the per-template disabled flag,
renders it and hands the message to a transport. Delivery itself (SMTP, queue)
is an external collaborator behind NotificationTransport.
"""

from __future__ import annotations

from dataclasses import dataclass
from string import Template
from typing import Any, Callable, Mapping, Protocol
from uuid import UUID

import structlog
from sqlalchemy import inspect as sa_inspect, select
from sqlalchemy.exc import NoInspectionAvailable
from sqlalchemy.ext.asyncio import AsyncSession

from hostpanel.models.account import User
from hostpanel.models.notification_template import NotificationTemplate
from hostpanel.shared.core.config import get_settings
from hostpanel.shared.core.exceptions import ResourceNotFoundError

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class NotificationMessage:
    user_id: UUID
    to_email: str
    template_name: str
    subject: str
    body: str


class NotificationTransport(Protocol):
    async def send(self, message: NotificationMessage) -> None: ...


class NotificationGateway(Protocol):
    async def notify(
        self, user: User, template_name: str, context: Mapping[str, Any]
    ) -> bool: ...


class LogTransport:
    """Default transport: records the rendered message as a structured event."""

    async def send(self, message: NotificationMessage) -> None:
        logger.info(
            "notification_delivered",
            user_id=str(message.user_id),
            to_email=message.to_email,
            template=message.template_name,
            subject=message.subject,
        )


def flatten_context(context: Mapping[str, Any]) -> dict[str, str]:
    """
    Turn `{"user": <User>}` into `{"user_name": ..., "user_email": ...}` so
    templates can use plain `${user_name}` placeholders.
    """
    flat: dict[str, str] = {}
    for key, value in context.items():
        if isinstance(value, Mapping):
            for inner_key, inner_value in flatten_context(value).items():
                flat[f"{key}_{inner_key}"] = inner_value
            continue
        try:
            mapper = sa_inspect(value).mapper
        except NoInspectionAvailable:
            flat[key] = "" if value is None else str(value)
            continue
        for attr in mapper.column_attrs:
            flat[f"{key}_{attr.key}"] = str(getattr(value, attr.key))
    return flat


def render_template(
    template: NotificationTemplate, context: Mapping[str, Any]
) -> tuple[str, str]:
    values = flatten_context(context)
    subject = Template(template.subject).safe_substitute(values)
    body = Template(template.content).safe_substitute(values)
    return subject, body


class TemplateNotificationGateway:
    def __init__(
        self,
        session_maker: Callable[[], AsyncSession],
        transport: NotificationTransport | None = None,
    ):
        self.session_maker = session_maker
        self.transport = transport or LogTransport()

    async def _load_template(self, name: str) -> NotificationTemplate:
        async with self.session_maker() as session:
            result = await session.execute(
                select(NotificationTemplate).where(NotificationTemplate.name == name)
            )
            template = result.scalar_one_or_none()
        if template is None:
            raise ResourceNotFoundError(
                f"Notification template '{name}' not found.",
                details={"template": name},
            )
        return template

    async def notify(
        self, user: User, template_name: str, context: Mapping[str, Any]
    ) -> bool:
        """
        Returns True when a message was handed to the transport, False when
        delivery is switched off. A missing template raises ResourceNotFoundError.
        """
        template = await self._load_template(template_name)

        if not get_settings().MAIL_ENABLED or template.disabled:
            logger.info(
                "notification_skipped",
                user_id=str(user.id),
                template=template_name,
                mail_enabled=get_settings().MAIL_ENABLED,
                template_disabled=template.disabled,
            )
            return False

        subject, body = render_template(template, context)
        await self.transport.send(
            NotificationMessage(
                user_id=user.id,
                to_email=user.email,
                template_name=template_name,
                subject=subject,
                body=body,
            )
        )
        return True
