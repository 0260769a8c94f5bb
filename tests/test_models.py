"""Tests for entity row mapping and the deployment report."""

from __future__ import annotations

from adlaunch.models import (
    IMAGE,
    VIDEO,
    VIDEO_ID_KEY,
    Campaign,
    CreativeComponent,
    DeployedAd,
    DeploymentReport,
    FailedDeployment,
    MetaAccount,
    Placement,
)


class TestReport:
    def test_to_dict(self):
        report = DeploymentReport(
            succeeded=[DeployedAd("c1", "ad-1")],
            failed=[
                FailedDeployment("c2", "validation_failed", "Landing page URL is required"),
                FailedDeployment("c3", "upstream_rejected", "Failed to create ad: x", code=100, error_type="OAuthException",
                                 details={"orphaned_creative_id": "cr-9"}),
            ],
        )
        assert report.to_dict() == {
            "success": True,
            "deployed": 1,
            "failed": 2,
            "deployedAds": [{"combinationId": "c1", "facebookAdId": "ad-1"}],
            "errors": [
                {"combinationId": "c2", "error": "Landing page URL is required"},
                {
                    "combinationId": "c3",
                    "error": "Failed to create ad: x",
                    "code": 100,
                    "type": "OAuthException",
                    "details": {"orphaned_creative_id": "cr-9"},
                },
            ],
        }
        assert report.combination_ids() == ("c1", "c2", "c3")


class TestEntities:
    def test_placement_row_keeps_unset_optionals_none(self):
        row = Placement(id="p", campaign_id="c", name="n").to_row()
        assert row["bid_amount"] is None
        assert row["content_data"] == {"landing_page_url": "", "facebook_page_id": ""}
        again = Placement.from_row(row)
        assert again.landing_page_url is None
        assert again.targeting.genders is None

    def test_campaign_budget(self):
        assert Campaign(id="c", meta_account_id="m", lifetime_budget=100).has_budget
        assert not Campaign(id="c", meta_account_id="m").has_budget

    def test_act_id(self):
        assert MetaAccount(id="m", ad_account_id="123", access_token="t").act_id == "act_123"
        assert MetaAccount(id="m", ad_account_id="act_123", access_token="t").act_id == "act_123"

    def test_upload_ref_keys(self):
        video = CreativeComponent(id="v", kind=VIDEO, metadata={VIDEO_ID_KEY: "vid-1"})
        assert video.cached_upload_ref == "vid-1"
        assert CreativeComponent(id="i", kind=IMAGE).cached_upload_ref is None
        assert CreativeComponent(id="h", kind="headline").upload_key is None
