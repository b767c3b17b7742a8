"""API endpoints package."""
from mailer.api.endpoints import auth, campaigns, cron, process, quota, send_test, stream

__all__ = ["auth", "campaigns", "cron", "process", "quota", "send_test", "stream"]
