import os
from dotenv import load_dotenv

load_dotenv()


def _csv(value: str):
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings:
    PROJECT_NAME = "Workhub"
    DB_URL = os.getenv("DB_URL", "sqlite:///./workhub.db")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Cache
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    CACHE_BACKEND = os.getenv("CACHE_BACKEND", "memory")  # memory | redis
    WORKSPACE_CACHE_TTL = int(os.getenv("WORKSPACE_CACHE_TTL", "3600"))
    USER_CACHE_TTL = int(os.getenv("USER_CACHE_TTL", "3600"))
    COMMENTS_CACHE_TTL = int(os.getenv("COMMENTS_CACHE_TTL", "600"))
    ATTACHMENTS_CACHE_TTL = int(os.getenv("ATTACHMENTS_CACHE_TTL", "900"))

    # Comments
    COMMENT_EDIT_WINDOW_MINUTES = int(os.getenv("COMMENT_EDIT_WINDOW_MINUTES", "30"))

    # Notification fan-out
    JOB_QUEUE_BACKEND = os.getenv("JOB_QUEUE_BACKEND", "thread")  # inline | thread | celery
    JOB_WORKERS = int(os.getenv("JOB_WORKERS", "4"))
    CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL")
    NOTIFY_MAX_TRIES = int(os.getenv("NOTIFY_MAX_TRIES", "3"))
    NOTIFY_TIMEOUT_SECONDS = float(os.getenv("NOTIFY_TIMEOUT_SECONDS", "120"))
    NOTIFY_CHANNELS = _csv(os.getenv("NOTIFY_CHANNELS", "database"))
    FAILED_JOB_LIMIT = int(os.getenv("FAILED_JOB_LIMIT", "100"))
    SEND_WELCOME_EMAIL = os.getenv("SEND_WELCOME_EMAIL", "true").lower() in ("1", "true", "yes")

    # Event bus
    EVENT_HISTORY_SIZE = int(os.getenv("EVENT_HISTORY_SIZE", "1000"))

    # Attachments
    MAX_ATTACHMENT_SIZE = int(os.getenv("MAX_ATTACHMENT_SIZE", str(10 * 1024 * 1024)))  # 10MB
    ALLOWED_ATTACHMENT_TYPES = _csv(
        os.getenv("ALLOWED_ATTACHMENT_TYPES", "image/jpeg,image/png,application/pdf")
    )
    ATTACHMENT_ROOT = os.getenv("ATTACHMENT_ROOT", "media")

    # SMTP
    SMTP_SERVER = os.getenv("SMTP_SERVER")
    SMTP_PORT = os.getenv("SMTP_PORT")
    SMTP_EMAIL = os.getenv("SMTP_EMAIL")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")

    def __init__(self, **overrides):
        for key, value in overrides.items():
            if not hasattr(type(self), key):
                raise AttributeError(f"Unknown setting: {key}")
            setattr(self, key, value)


settings = Settings()
