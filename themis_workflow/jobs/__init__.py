"""
Background jobs for the Themis workflow.

- notification_poller: session-bound periodic evaluation of notification rules
"""

from .notification_poller import NotificationPoller, send_alert

__all__ = ["NotificationPoller", "send_alert"]
