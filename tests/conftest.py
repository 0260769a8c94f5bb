from __future__ import annotations

from datetime import datetime, timezone

import pytest

from adlaunch.config import DeploymentSettings
from adlaunch.deployment.orchestrator import BatchOrchestrator
from adlaunch.infrastructure.utils import FixedClock
from adlaunch.models import (
    BODY,
    DESCRIPTION,
    HEADLINE,
    IMAGE,
    VIDEO,
    Campaign,
    Combination,
    CreativeComponent,
    MetaAccount,
    Placement,
)
from fakes import FakeMetaClient, InMemoryRepository

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _slack_off(monkeypatch):
    monkeypatch.setenv("SLACK_ENABLED", "false")
    monkeypatch.delenv("SLACK_WEBHOOK_URL", raising=False)
    monkeypatch.delenv("SLACK_WEBHOOK_ALERTS", raising=False)


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def settings():
    return DeploymentSettings(notify_slack=False)


@pytest.fixture
def placement():
    return Placement(
        id="adset-1",
        campaign_id="camp-1",
        name="Spring - Broad",
        account_id="acc-1",
        user_id="user-1",
        daily_budget=25.0,
        landing_page_url="https://shop.example.com",
    )


@pytest.fixture
def campaign():
    return Campaign(id="camp-1", meta_account_id="ma-1", account_id="acc-1", name="Spring", facebook_campaign_id="fbc-1")


@pytest.fixture
def repo(placement, campaign):
    repo = InMemoryRepository()
    repo.add(
        placement,
        campaign,
        MetaAccount(id="ma-1", ad_account_id="123456", access_token="token"),
        CreativeComponent(id="img-1", kind=IMAGE, url="https://cdn.example.com/a.jpg"),
        CreativeComponent(id="img-2", kind=IMAGE, url="https://cdn.example.com/b.jpg"),
        CreativeComponent(id="vid-1", kind=VIDEO, url="https://cdn.example.com/c.mp4"),
        CreativeComponent(id="hl-1", kind=HEADLINE, content="Glow up"),
        CreativeComponent(id="body-1", kind=BODY, content="Our best serum yet"),
        CreativeComponent(id="desc-1", kind=DESCRIPTION, content="Free shipping"),
        Combination(id="combo-1", adset_id="adset-1", asset_ids=["img-1"], headline_id="hl-1", body_id="body-1", description_id="desc-1"),
        Combination(id="combo-2", adset_id="adset-1", asset_ids=["img-2"], headline_id="hl-1", body_id="body-1"),
        Combination(id="combo-3", adset_id="adset-1", asset_ids=["img-1"], body_id="body-1"),
    )
    repo.accounts["acc-1"] = {"id": "acc-1", "owner_id": "user-1"}
    return repo


@pytest.fixture
def client():
    return FakeMetaClient()


@pytest.fixture
def orchestrator(repo, client, settings, clock):
    return BatchOrchestrator(repo, settings, client_factory=lambda account: client, clock=clock)
