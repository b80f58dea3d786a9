from market.core.db import SessionLocal
from market.services.notifications import InboxNotifier, Notifier


def get_notifier() -> Notifier:
    return InboxNotifier(SessionLocal)
