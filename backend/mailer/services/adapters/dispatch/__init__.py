"""Delay dispatch adapters package."""
from mailer.core.config import settings
from mailer.services.adapters.base import DispatchAdapter
from mailer.services.adapters.dispatch.disabled import DisabledDispatcher
from mailer.services.adapters.dispatch.local import LocalDispatcher
from mailer.services.adapters.dispatch.mock import MockDispatcher
from mailer.services.adapters.dispatch.qstash import QStashDispatcher


def get_dispatcher() -> DispatchAdapter:
    """Build the dispatcher selected by DISPATCH_MODE."""
    if settings.DISPATCH_MODE == "qstash":
        return QStashDispatcher()
    if settings.DISPATCH_MODE == "local":
        return LocalDispatcher()
    return DisabledDispatcher()


__all__ = ["DisabledDispatcher", "LocalDispatcher", "MockDispatcher", "QStashDispatcher", "get_dispatcher"]
