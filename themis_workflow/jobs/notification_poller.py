"""
Notification Poller: periodic evaluation of the scheduled notification rules.

The poller is tied to an active session: ``start()`` on session begin,
``stop()`` on session end or logout. Nothing keeps ticking once it is
stopped.

Each tick:
1. Fetches every dataset the rules read (projects, users, meetings, ...)
2. Skips the rules whose data could not be fetched
3. Evaluates the remaining rules and appends their output to the store
4. Alerts out-of-band if anything failed

A failure never ends the loop; the next tick runs on schedule.

Can also be run once from the command line against a JSON snapshot:

    python -m themis_workflow.jobs.notification_poller --snapshot snapshot.json
"""

import asyncio
import contextlib
import json
import logging
from datetime import datetime, timezone
from typing import Any, Protocol

import httpx

from ..core.clock import Clock, FixedClock, SystemClock
from ..core.config import Settings, get_settings
from ..models import (
    Actor,
    Assignment,
    EntityKind,
    Meeting,
    Project,
    WeeklyUpdate,
    parse_datetime,
)
from ..services.collaborators import EntityStore, IdentityProvider
from ..services.notification_rules import (
    NotificationRuleEngine,
    RuleEngineConfig,
    RuleSnapshot,
)
from ..services.notification_store import NotificationStore, SentKeyLedger
from ..services.storage import InMemoryKeyValueStore

logger = logging.getLogger(__name__)

DATASETS = ("projects", "users", "meetings", "assignments", "weekly_updates")


# =============================================================================
# SNAPSHOT SOURCES
# =============================================================================


class SnapshotSource(Protocol):
    async def fetch_projects(self) -> list[Project]: ...

    async def fetch_users(self) -> list[Actor]: ...

    async def fetch_meetings(self) -> list[Meeting]: ...

    async def fetch_assignments(self) -> list[Assignment]: ...

    async def fetch_weekly_updates(self) -> list[WeeklyUpdate]: ...


class StaticSnapshotSource:
    """Serves a fixed snapshot."""

    def __init__(self, snapshot: RuleSnapshot | None = None):
        self.snapshot = snapshot or RuleSnapshot()

    async def fetch_projects(self) -> list[Project]:
        return list(self.snapshot.projects)

    async def fetch_users(self) -> list[Actor]:
        return list(self.snapshot.users)

    async def fetch_meetings(self) -> list[Meeting]:
        return list(self.snapshot.meetings)

    async def fetch_assignments(self) -> list[Assignment]:
        return list(self.snapshot.assignments)

    async def fetch_weekly_updates(self) -> list[WeeklyUpdate]:
        return list(self.snapshot.weekly_updates)


class EntityStoreSnapshotSource(StaticSnapshotSource):
    """Projects from the entity store and users from the identity provider.

    Calendar data (meetings, assignments, weekly updates) comes from the
    wrapped static snapshot.
    """

    def __init__(
        self,
        store: EntityStore,
        identity: IdentityProvider,
        calendar: RuleSnapshot | None = None,
    ):
        super().__init__(calendar)
        self.store = store
        self.identity = identity

    async def fetch_projects(self) -> list[Project]:
        result = self.store.list(EntityKind.PROJECT)
        if not result.success:
            raise RuntimeError(f"Project fetch failed: {result.error}")
        return list(result.data or [])

    async def fetch_users(self) -> list[Actor]:
        return self.identity.list_actors()


def snapshot_from_dict(data: dict) -> RuleSnapshot:
    """Build a snapshot from the camelCase JSON shape the clients exchange."""
    return RuleSnapshot(
        projects=[Project.from_dict(p) for p in data.get("projects", [])],
        users=[Actor.from_dict(u) for u in data.get("users", [])],
        meetings=[Meeting.from_dict(m) for m in data.get("meetings", [])],
        assignments=[Assignment.from_dict(a) for a in data.get("assignments", [])],
        weekly_updates=[WeeklyUpdate.from_dict(w) for w in data.get("weeklyUpdates", [])],
    )


# =============================================================================
# ALERTING
# =============================================================================

ALERT_SOURCE = "themis-notification-poller"
ALERT_TIMEOUT_SECONDS = 10.0


def slack_alert_payload(title: str, message: str, severity: str, details: dict | None) -> dict:
    """Slack incoming-webhook body: header, message and one line per detail."""
    blocks = [
        {"type": "header", "text": {"type": "plain_text", "text": title}},
        {"type": "section", "text": {"type": "mrkdwn", "text": message}},
    ]
    if details:
        lines = [f"• *{key}*: {value}" for key, value in details.items()]
        blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": "\n".join(lines)}})
    color = "#dc2626" if severity == "critical" else "#f59e0b"
    return {"attachments": [{"color": color, "blocks": blocks}]}


def webhook_alert_payload(
    title: str,
    message: str,
    severity: str,
    details: dict | None,
    sent_at: datetime,
) -> dict:
    return {
        "source": ALERT_SOURCE,
        "severity": severity,
        "title": title,
        "message": message,
        "timestamp": sent_at.isoformat(),
        "details": details or {},
    }


async def send_alert(
    title: str,
    message: str,
    severity: str = "error",
    details: dict | None = None,
    settings: Settings | None = None,
    sent_at: datetime | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[str]:
    """
    Log an alert about a failing tick and post it to each configured channel.

    Returns the channels ("slack", "webhook") that accepted the alert. A
    channel that fails is logged and skipped; alerting never raises.
    """
    settings = settings or get_settings()
    sent_at = sent_at or datetime.now(timezone.utc)

    log_message = f"[POLLER ALERT] {title}: {message}"
    if details:
        log_message += f" | Details: {details}"
    logger.log(logging.CRITICAL if severity == "critical" else logging.ERROR, log_message)

    deliveries = []
    if settings.slack_alerts_webhook_url:
        deliveries.append((
            "slack",
            settings.slack_alerts_webhook_url,
            slack_alert_payload(title, message, severity, details),
        ))
    if settings.alert_webhook_url:
        deliveries.append((
            "webhook",
            settings.alert_webhook_url,
            webhook_alert_payload(title, message, severity, details, sent_at),
        ))
    if not deliveries:
        return []

    delivered = []
    async with httpx.AsyncClient(transport=transport, timeout=ALERT_TIMEOUT_SECONDS) as client:
        for channel, url, payload in deliveries:
            try:
                response = await client.post(url, json=payload)
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.error(f"Failed to send {channel} alert: {e}")
                continue
            delivered.append(channel)
    return delivered


# =============================================================================
# POLLER
# =============================================================================


class NotificationPoller:
    """Fixed-interval driver for the scheduled rules, with explicit start/stop."""

    def __init__(
        self,
        engine: NotificationRuleEngine,
        store: NotificationStore,
        source: SnapshotSource,
        clock: Clock | None = None,
        interval_seconds: float = 60.0,
        settings: Settings | None = None,
        alert_transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.engine = engine
        self.store = store
        self.source = source
        self.clock = clock or SystemClock()
        self.interval_seconds = interval_seconds
        self.settings = settings
        self.alert_transport = alert_transport
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> bool:
        """Start ticking; False if already running."""
        if self.running:
            return False
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Notification poller started (every {self.interval_seconds}s)")
        return True

    async def stop(self) -> bool:
        """Stop ticking; False if it was not running."""
        task, self._task = self._task, None
        if task is None or task.done():
            return False
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Notification poller stopped")
        return True

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Notification tick crashed: {e}")
            await asyncio.sleep(self.interval_seconds)

    async def _fetch(self, results: dict[str, Any]) -> tuple[RuleSnapshot, set[str]]:
        snapshot = RuleSnapshot()
        failed: set[str] = set()
        for name in DATASETS:
            try:
                setattr(snapshot, name, list(await getattr(self.source, f"fetch_{name}")()))
            except Exception as e:
                logger.error(f"Failed to fetch {name}: {e}")
                failed.add(name)
                results["errors"].append(f"fetch {name}: {e}")
        return snapshot, failed

    async def run_once(self) -> dict[str, Any]:
        """Evaluate one tick and store its notifications. Never raises for data failures."""
        now = self.clock.now()
        results: dict[str, Any] = {
            "evaluated_at": now.isoformat(),
            "failed_datasets": [],
            "skipped_rules": [],
            "rules_evaluated": 0,
            "notifications_generated": 0,
            "notifications_stored": 0,
            "errors": [],
        }

        snapshot, failed = await self._fetch(results)
        skipped = [r.rule_id for r in self.engine.rules if failed.intersection(r.requires)]
        results["failed_datasets"] = sorted(failed)
        results["skipped_rules"] = skipped

        batch = self.engine.run(snapshot, now, skip=skipped)
        results["rules_evaluated"] = batch.rules_evaluated
        results["notifications_generated"] = len(batch.notifications)
        results["errors"].extend(batch.errors)

        try:
            results["notifications_stored"] = self.store.append_many(batch.notifications)
        except Exception as e:
            logger.error(f"Failed to store notifications: {e}")
            results["errors"].append(f"store: {e}")

        logger.info(
            f"Notification tick at {results['evaluated_at']}: "
            f"{results['notifications_generated']} generated, "
            f"{len(skipped)} rules skipped, {len(results['errors'])} errors"
        )

        settings = self.settings or get_settings()
        if results["errors"] and settings.alerting_enabled:
            await send_alert(
                title="Notification Tick Completed with Errors",
                message=f"{len(results['errors'])} failures while evaluating notification rules.",
                severity="warning",
                details={
                    "evaluated_at": results["evaluated_at"],
                    "failed_datasets": ", ".join(results["failed_datasets"]) or "none",
                    "errors": results["errors"][:5],
                },
                settings=settings,
                sent_at=now,
                transport=self.alert_transport,
            )

        results["notifications"] = batch.notifications
        return results


# =============================================================================
# CLI ENTRY POINT
# =============================================================================


def main():
    """Evaluate one tick over a JSON snapshot and print the notifications."""
    import argparse

    parser = argparse.ArgumentParser(description="Evaluate the scheduled notification rules once")
    parser.add_argument(
        "--snapshot",
        required=True,
        help="JSON file with projects, users, meetings, assignments and weeklyUpdates",
    )
    parser.add_argument(
        "--now",
        default=None,
        help="Evaluation time (ISO-8601); defaults to the current time",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        with open(args.snapshot, encoding="utf-8") as fh:
            snapshot = snapshot_from_dict(json.load(fh))
        clock = FixedClock(parse_datetime(args.now)) if args.now else SystemClock()
    except (OSError, ValueError, KeyError) as e:
        print(f"Invalid snapshot: {e}")
        exit(1)

    settings = get_settings()
    kv = InMemoryKeyValueStore()
    poller = NotificationPoller(
        engine=NotificationRuleEngine(
            RuleEngineConfig.from_settings(settings), sent_keys=SentKeyLedger(kv)
        ),
        store=NotificationStore(kv, max_per_user=settings.max_notifications_per_user),
        source=StaticSnapshotSource(snapshot),
        clock=clock,
        interval_seconds=settings.notification_poll_interval_seconds,
        settings=settings,
    )

    results = asyncio.run(poller.run_once())
    print(json.dumps([n.to_dict() for n in results.pop("notifications")], indent=2))
    print(f"Tick completed: {results}")


if __name__ == "__main__":
    main()
