"""API dependencies package."""
from mailer.api.deps.auth import get_current_user_email, verify_qstash_request, verify_cron_request
from mailer.api.deps.database import get_db, get_session_factory
from mailer.api.deps.services import get_batch_executor, get_dispatcher, get_sender_factory

__all__ = [
    "get_current_user_email", "verify_qstash_request", "verify_cron_request",
    "get_db", "get_session_factory",
    "get_batch_executor", "get_dispatcher", "get_sender_factory"
]
