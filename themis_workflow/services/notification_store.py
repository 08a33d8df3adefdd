"""
Notification Store: per-user notification log with bounded retention.

All notifications live as one JSON list under ``app_notifications`` in the
injected key-value store. Reads return insertion order. Each user keeps
at most ``max_per_user`` notifications: on overflow the oldest *read* ones
are evicted first and unread ones are never evicted, so a user with more
unread notifications than the cap temporarily exceeds it.

Every load-modify-save runs under one lock per store: the poller writes from
the event loop while request handlers write from the threadpool.
"""

import json
import logging
import threading
from collections.abc import Iterable
from dataclasses import replace

from ..models import Notification
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

NOTIFICATIONS_KEY = "app_notifications"
SENT_KEYS_KEY = "sent_notification_keys"
MAX_NOTIFICATIONS_PER_USER = 50


class NotificationStore:
    def __init__(self, kv: KeyValueStore, max_per_user: int = MAX_NOTIFICATIONS_PER_USER):
        self.kv = kv
        self.max_per_user = max_per_user
        self._lock = threading.RLock()

    # =========================================================================
    # SERIALIZATION
    # =========================================================================

    def _load(self) -> list[Notification]:
        raw = self.kv.get(NOTIFICATIONS_KEY)
        if not raw:
            return []
        try:
            return [Notification.from_dict(item) for item in json.loads(raw)]
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Stored notifications are unreadable, starting empty: {e}")
            return []

    def _save(self, notifications: list[Notification]) -> None:
        self.kv.set(NOTIFICATIONS_KEY, json.dumps([n.to_dict() for n in notifications]))

    def _enforce_cap(self, notifications: list[Notification], user_id: str) -> list[Notification]:
        mine = [n for n in notifications if n.user_id == user_id]
        excess = len(mine) - self.max_per_user
        if excess <= 0:
            return notifications

        read = sorted((n for n in mine if n.is_read), key=lambda n: n.created_at)
        evicted = {n.id for n in read[:excess]}
        if evicted:
            logger.debug(f"Evicting {len(evicted)} read notifications for user {user_id}")
        return [n for n in notifications if n.id not in evicted]

    # =========================================================================
    # WRITES
    # =========================================================================

    def append(self, notification: Notification) -> Notification:
        self.append_many([notification])
        return notification

    def append_many(self, notifications: Iterable[Notification]) -> int:
        """Append in order, then trim each touched user back to the cap."""
        incoming = list(notifications)
        for notification in incoming:
            if not notification.user_id:
                raise ValueError(f"Notification {notification.id} has no recipient")
        if not incoming:
            return 0

        with self._lock:
            stored = self._load()
            stored.extend(incoming)
            for user_id in dict.fromkeys(n.user_id for n in incoming):
                stored = self._enforce_cap(stored, user_id)
            self._save(stored)
        return len(incoming)

    def mark_read(self, notification_id: str) -> bool:
        """Mark one notification read; False if the id is unknown."""
        with self._lock:
            stored = self._load()
            for index, notification in enumerate(stored):
                if notification.id == notification_id:
                    if not notification.is_read:
                        stored[index] = replace(notification, is_read=True)
                        self._save(stored)
                    return True
        return False

    def mark_all_read(self, user_id: str) -> int:
        with self._lock:
            stored = self._load()
            changed = 0
            for index, notification in enumerate(stored):
                if notification.user_id == user_id and not notification.is_read:
                    stored[index] = replace(notification, is_read=True)
                    changed += 1
            if changed:
                self._save(stored)
        return changed

    def dismiss(self, notification_id: str) -> bool:
        with self._lock:
            stored = self._load()
            remaining = [n for n in stored if n.id != notification_id]
            if len(remaining) == len(stored):
                return False
            self._save(remaining)
        return True

    def clear_all(self, user_id: str | None = None) -> None:
        """Drop one user's notifications, or everything when ``user_id`` is None."""
        with self._lock:
            if user_id is None:
                self.kv.remove(NOTIFICATIONS_KEY)
                return
            self._save([n for n in self._load() if n.user_id != user_id])

    # =========================================================================
    # READS
    # =========================================================================

    def get_for_user(self, user_id: str) -> list[Notification]:
        return [n for n in self._load() if n.user_id == user_id]

    def get(self, notification_id: str) -> Notification | None:
        return next((n for n in self._load() if n.id == notification_id), None)

    def unread_count(self, user_id: str) -> int:
        return sum(1 for n in self._load() if n.user_id == user_id and not n.is_read)


class SentKeyLedger:
    """Persisted set of ``dedupe_key|user_id`` pairs already emitted.

    Only the most recent ``max_keys`` entries are kept.
    """

    def __init__(self, kv: KeyValueStore, max_keys: int = 5000):
        self.kv = kv
        self.max_keys = max_keys
        self._lock = threading.RLock()

    def _load(self) -> list[str]:
        raw = self.kv.get(SENT_KEYS_KEY)
        if not raw:
            return []
        try:
            return list(json.loads(raw))
        except (ValueError, TypeError) as e:
            logger.error(f"Stored dedupe ledger is unreadable, starting empty: {e}")
            return []

    def contains(self, key: str) -> bool:
        return key in self._load()

    def add_many(self, keys: Iterable[str]) -> None:
        with self._lock:
            existing = self._load()
            known = set(existing)
            for key in keys:
                if key not in known:
                    existing.append(key)
                    known.add(key)
            self.kv.set(SENT_KEYS_KEY, json.dumps(existing[-self.max_keys:]))
