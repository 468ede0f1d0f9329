import enum


class NotificationChannel(str, enum.Enum):
    database = "database"
    email = "email"
    sms = "sms"
    push = "push"


class NotificationType(str, enum.Enum):
    info = "info"
    success = "success"
    warning = "warning"
    error = "error"
    system = "system"
