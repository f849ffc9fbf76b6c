from hostpanel.modules.notifications.domain.gateway import (
    LogTransport,
    NotificationGateway,
    NotificationMessage,
    NotificationTransport,
    TemplateNotificationGateway,
)

__all__ = [
    "LogTransport",
    "NotificationGateway",
    "NotificationMessage",
    "NotificationTransport",
    "TemplateNotificationGateway",
]
