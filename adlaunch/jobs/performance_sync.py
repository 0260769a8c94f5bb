from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, Optional

import schedule

from adlaunch.config import PerformanceSyncSettings
from adlaunch.infrastructure.utils import Clock, default_clock, meta_range_yesterday
from adlaunch.integrations.slack import alert_error, notify
from adlaunch.models import Combination, MetaAccount, Placement

logger = logging.getLogger(__name__)

POLL_SECONDS = 30
ERROR_BACKOFF_SECONDS = 60


def _num(value: Any, cast: Callable[[Any], Any]) -> Any:
    try:
        return cast(value) if value not in (None, "") else cast(0)
    except (TypeError, ValueError):
        return cast(0)


def performance_row(combination: Combination, day: date, insights: Dict[str, Any]) -> Dict[str, Any]:
    """Graph returns metrics as strings; missing metrics are stored as zero."""
    return {
        "combination_id": combination.id,
        "date": day.isoformat(),
        "impressions": _num(insights.get("impressions"), int),
        "clicks": _num(insights.get("clicks"), int),
        "ctr": _num(insights.get("ctr"), float),
        "spend": _num(insights.get("spend"), float),
        "frequency": _num(insights.get("frequency"), float),
    }


@dataclass
class SyncSummary:
    placements: int = 0
    saved: int = 0
    skipped: int = 0
    failed: int = 0


def _sync_placement(
    repository: Any,
    client: Any,
    placement: Placement,
    date_range: Dict[str, str],
    summary: SyncSummary,
) -> None:
    day = date.fromisoformat(date_range["since"])
    for combination in repository.list_deployed_combinations(placement.id):
        if not combination.facebook_ad_id:
            continue
        try:
            if repository.find_performance(combination.id, day):
                summary.skipped += 1
                continue
            insights = client.get_ad_insights(combination.facebook_ad_id, date_range)
            repository.save_performance(performance_row(combination, day, insights))
            summary.saved += 1
        except Exception as e:
            summary.failed += 1
            logger.error(f"Failed to sync performance for combination {combination.id}: {e}")


def sync_performance(
    repository: Any,
    client_factory: Callable[[MetaAccount], Any],
    settings: Optional[PerformanceSyncSettings] = None,
    clock: Optional[Clock] = None,
) -> SyncSummary:
    """
    Pull yesterday's insights for every ad deployed into an ACTIVE adset.

    Rows already stored for a combination/date are left alone, so the job can
    be re-run for the same day. A failing adset or combination is logged and
    skipped; it never stops the rest of the sync.
    """
    settings = settings or PerformanceSyncSettings()
    date_range = meta_range_yesterday(settings.timezone, clock or default_clock())
    summary = SyncSummary()

    logger.info(f"Starting performance sync for {date_range['since']}")
    for placement in repository.list_active_placements():
        summary.placements += 1
        try:
            campaign = repository.find_campaign(placement.campaign_id)
            account = repository.find_meta_account(campaign.meta_account_id) if campaign else None
            if account is None or not account.access_token:
                logger.warning(f"Skipping adset {placement.id}: no Meta account credentials")
                continue
            _sync_placement(repository, client_factory(account), placement, date_range, summary)
        except Exception as e:
            logger.error(f"Failed to sync adset {placement.id}: {e}")

    logger.info(
        f"Performance sync completed: {summary.saved} saved, {summary.skipped} already present, "
        f"{summary.failed} failed across {summary.placements} adsets"
    )
    return summary


class PerformanceSyncScheduler:
    def __init__(
        self,
        repository: Any,
        client_factory: Callable[[MetaAccount], Any],
        settings: Optional[PerformanceSyncSettings] = None,
    ):
        self.repository = repository
        self.client_factory = client_factory
        self.settings = settings or PerformanceSyncSettings()
        self.scheduler = schedule.Scheduler()
        self.running = False
        self.thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    def start(self) -> None:
        if self.running:
            return
        self.scheduler.every().day.at(self.settings.run_at, self.settings.timezone).do(self.run_once)
        self.running = True
        self._stop_event.clear()
        self.thread = threading.Thread(target=self._loop, daemon=True)
        self.thread.start()
        notify(f"📈 Performance sync scheduled daily at {self.settings.run_at} ({self.settings.timezone})")

    def stop(self) -> None:
        self.running = False
        self._stop_event.set()
        if self.thread:
            self.thread.join(timeout=5)
        self.scheduler.clear()

    def run_once(self) -> Optional[SyncSummary]:
        try:
            return sync_performance(self.repository, self.client_factory, self.settings)
        except Exception as e:
            alert_error(f"Performance sync failed: {e}")
            logger.exception("Performance sync failed")
            return None

    def _loop(self) -> None:
        while self.running:
            try:
                self.scheduler.run_pending()
                self._stop_event.wait(POLL_SECONDS)
            except Exception as e:
                logger.error(f"Scheduler error: {e}")
                self._stop_event.wait(ERROR_BACKOFF_SECONDS)
