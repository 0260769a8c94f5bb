"""
Domain entities for ad deployment.

Rows come from Supabase as plain dicts; each entity knows how to build itself
from a row (``from_row``) and how to write itself back (``to_row``). Optional
fields stay ``None`` when unset so the payload builders can tell "absent"
apart from "empty".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

IMAGE = "image"
VIDEO = "video"
HEADLINE = "headline"
BODY = "body"
DESCRIPTION = "description"

MEDIA_KINDS = (IMAGE, VIDEO)

# Metadata keys holding cached Meta upload references.
IMAGE_HASH_KEY = "facebook_image_hash"
VIDEO_ID_KEY = "facebook_video_id"


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    s = str(value).strip().replace("Z", "+00:00")
    try:
        return datetime.fromisoformat(s)
    except ValueError:
        raise ValueError(f"Invalid datetime: {value!r}")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _str_list(value: Any) -> List[str]:
    if not value:
        return []
    return [str(v) for v in value if v not in (None, "")]


@dataclass
class Targeting:
    age_min: Optional[int] = None
    age_max: Optional[int] = None
    genders: Optional[List[int]] = None
    locations: List[str] = field(default_factory=list)
    interests: List[str] = field(default_factory=list)
    behaviors: List[str] = field(default_factory=list)
    placements: List[str] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: Optional[Dict[str, Any]]) -> "Targeting":
        row = row or {}
        genders = row.get("genders")
        return cls(
            age_min=row.get("age_min"),
            age_max=row.get("age_max"),
            genders=[int(g) for g in genders] if genders else None,
            locations=_str_list(row.get("locations")),
            interests=_str_list(row.get("interests")),
            behaviors=_str_list(row.get("behaviors")),
            placements=_str_list(row.get("placements")),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "age_min": self.age_min,
            "age_max": self.age_max,
            "genders": self.genders,
            "locations": list(self.locations),
            "interests": list(self.interests),
            "behaviors": list(self.behaviors),
            "placements": list(self.placements),
        }


@dataclass
class Placement:
    """An adset: targeting, budget, schedule and the Meta adset id once provisioned."""

    id: str
    campaign_id: str
    name: str
    account_id: Optional[str] = None
    user_id: Optional[str] = None
    status: str = "PAUSED"
    targeting: Targeting = field(default_factory=Targeting)
    budget: Optional[float] = None
    daily_budget: Optional[float] = None
    lifetime_budget: Optional[float] = None
    optimization_goal: Optional[str] = None
    billing_event: Optional[str] = None
    bid_strategy: Optional[str] = None
    bid_amount: Optional[int] = None
    promoted_object: Optional[Dict[str, Any]] = None
    attribution_spec: Optional[List[Dict[str, Any]]] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    landing_page_url: Optional[str] = None
    facebook_page_id: Optional[str] = None
    facebook_adset_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Placement":
        content = row.get("content_data") or {}
        return cls(
            id=str(row["id"]),
            campaign_id=str(row["campaign_id"]),
            name=row.get("name") or "",
            account_id=row.get("account_id"),
            user_id=row.get("user_id"),
            status=row.get("status") or "PAUSED",
            targeting=Targeting.from_row(row.get("targeting")),
            budget=row.get("budget"),
            daily_budget=row.get("daily_budget"),
            lifetime_budget=row.get("lifetime_budget"),
            optimization_goal=row.get("optimization_goal") or None,
            billing_event=row.get("billing_event") or None,
            bid_strategy=row.get("bid_strategy") or None,
            bid_amount=row.get("bid_amount"),
            promoted_object=row.get("promoted_object") or None,
            attribution_spec=row.get("attribution_spec") or None,
            start_time=_parse_dt(row.get("start_time")),
            end_time=_parse_dt(row.get("end_time")),
            landing_page_url=content.get("landing_page_url") or None,
            facebook_page_id=content.get("facebook_page_id") or None,
            facebook_adset_id=row.get("facebook_adset_id") or None,
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "campaign_id": self.campaign_id,
            "name": self.name,
            "account_id": self.account_id,
            "user_id": self.user_id,
            "status": self.status,
            "targeting": self.targeting.to_row(),
            "budget": self.budget,
            "daily_budget": self.daily_budget,
            "lifetime_budget": self.lifetime_budget,
            "optimization_goal": self.optimization_goal,
            "billing_event": self.billing_event,
            "bid_strategy": self.bid_strategy,
            "bid_amount": self.bid_amount,
            "promoted_object": self.promoted_object,
            "attribution_spec": self.attribution_spec,
            "start_time": _iso(self.start_time),
            "end_time": _iso(self.end_time),
            "content_data": {
                "landing_page_url": self.landing_page_url or "",
                "facebook_page_id": self.facebook_page_id or "",
            },
            "facebook_adset_id": self.facebook_adset_id,
        }


@dataclass
class Campaign:
    id: str
    meta_account_id: str
    account_id: Optional[str] = None
    name: str = ""
    facebook_campaign_id: Optional[str] = None
    daily_budget: Optional[float] = None
    lifetime_budget: Optional[float] = None

    @property
    def has_budget(self) -> bool:
        """Campaign budget optimisation: the adset must not carry its own budget."""
        return bool(self.daily_budget) or bool(self.lifetime_budget)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Campaign":
        return cls(
            id=str(row["id"]),
            meta_account_id=str(row["meta_account_id"]),
            account_id=row.get("account_id"),
            name=row.get("name") or "",
            facebook_campaign_id=row.get("facebook_campaign_id") or None,
            daily_budget=row.get("daily_budget"),
            lifetime_budget=row.get("lifetime_budget"),
        )


@dataclass
class MetaAccount:
    id: str
    ad_account_id: str
    access_token: str

    @property
    def act_id(self) -> str:
        aid = (self.ad_account_id or "").strip()
        return aid if aid.startswith("act_") else f"act_{aid}"

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "MetaAccount":
        return cls(
            id=str(row["id"]),
            ad_account_id=str(row["ad_account_id"]),
            access_token=row.get("access_token") or "",
        )


@dataclass
class CreativeComponent:
    id: str
    kind: str
    content: str = ""
    url: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_media(self) -> bool:
        return self.kind in MEDIA_KINDS

    @property
    def upload_key(self) -> Optional[str]:
        if self.kind == IMAGE:
            return IMAGE_HASH_KEY
        if self.kind == VIDEO:
            return VIDEO_ID_KEY
        return None

    @property
    def cached_upload_ref(self) -> Optional[str]:
        key = self.upload_key
        return (self.metadata.get(key) or None) if key else None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "CreativeComponent":
        return cls(
            id=str(row["id"]),
            kind=str(row.get("kind") or row.get("type") or "").lower(),
            content=row.get("content") or "",
            url=row.get("url") or None,
            metadata=dict(row.get("metadata") or {}),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "content": self.content,
            "url": self.url,
            "metadata": dict(self.metadata),
        }


@dataclass
class Combination:
    id: str
    adset_id: str
    asset_ids: List[str] = field(default_factory=list)
    headline_id: Optional[str] = None
    body_id: Optional[str] = None
    description_id: Optional[str] = None
    cta_type: Optional[str] = None
    url: Optional[str] = None
    deployed_to_facebook: bool = False
    facebook_ad_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Combination":
        return cls(
            id=str(row["id"]),
            adset_id=str(row["adset_id"]),
            asset_ids=_str_list(row.get("asset_ids")),
            headline_id=row.get("headline_id") or None,
            body_id=row.get("body_id") or None,
            description_id=row.get("description_id") or None,
            cta_type=row.get("cta_type") or None,
            url=row.get("url") or None,
            deployed_to_facebook=bool(row.get("deployed_to_facebook")),
            facebook_ad_id=row.get("facebook_ad_id") or None,
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "adset_id": self.adset_id,
            "asset_ids": list(self.asset_ids),
            "headline_id": self.headline_id,
            "body_id": self.body_id,
            "description_id": self.description_id,
            "cta_type": self.cta_type,
            "url": self.url,
            "deployed_to_facebook": self.deployed_to_facebook,
            "facebook_ad_id": self.facebook_ad_id,
        }


@dataclass
class DeployedAd:
    combination_id: str
    facebook_ad_id: str


@dataclass
class FailedDeployment:
    combination_id: str
    kind: str
    error: str
    code: Optional[int] = None
    error_type: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"combinationId": self.combination_id, "error": self.error}
        if self.code is not None:
            out["code"] = self.code
        if self.error_type:
            out["type"] = self.error_type
        if self.details:
            out["details"] = dict(self.details)
        return out


@dataclass
class DeploymentReport:
    """Per-request outcome. Every requested combination id lands in exactly one list."""

    succeeded: List[DeployedAd] = field(default_factory=list)
    failed: List[FailedDeployment] = field(default_factory=list)

    @property
    def deployed(self) -> int:
        return len(self.succeeded)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    def combination_ids(self) -> Tuple[str, ...]:
        return tuple(s.combination_id for s in self.succeeded) + tuple(f.combination_id for f in self.failed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "deployed": self.deployed,
            "failed": self.failed_count,
            "deployedAds": [
                {"combinationId": s.combination_id, "facebookAdId": s.facebook_ad_id}
                for s in self.succeeded
            ],
            "errors": [f.to_dict() for f in self.failed],
        }
