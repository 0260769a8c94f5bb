"""
Pure transformations from domain entities to Graph API request bodies.

Nothing here performs I/O or reads the clock: time enters only through the
explicit ``now`` argument of the adset builder. Optional fields that are unset
on the entity are left out of the payload entirely; Meta rejects several of
them when sent as null or empty.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from adlaunch.config import DeploymentSettings
from adlaunch.infrastructure.error_handling import ValidationFailed
from adlaunch.infrastructure.utils import as_utc, epoch_seconds
from adlaunch.models import IMAGE, VIDEO, Campaign, Combination, CreativeComponent, Placement

AD_NAME_MAX_LENGTH = 100
HEADLINE_IN_NAME_LENGTH = 40


@dataclass(frozen=True)
class MediaRef:
    kind: str
    locator: str


@dataclass(frozen=True)
class CreativeText:
    headline: str = ""
    body: str = ""
    description: str = ""

    @classmethod
    def from_components(
        cls,
        headline: Optional[CreativeComponent],
        body: Optional[CreativeComponent],
        description: Optional[CreativeComponent],
    ) -> "CreativeText":
        return cls(
            headline=(headline.content if headline else "") or "",
            body=(body.content if body else "") or "",
            description=(description.content if description else "") or "",
        )


# -------------------------
# Resolution
# -------------------------
def resolve_landing_page(combination: Combination, placement: Placement) -> str:
    url = (combination.url or "").strip() or (placement.landing_page_url or "").strip()
    if not url:
        raise ValidationFailed("Landing page URL is required (set it on the combination or the adset)")
    return url


def resolve_media(component: CreativeComponent) -> MediaRef:
    if not component.is_media:
        raise ValidationFailed(
            f"Unsupported media type {component.kind!r} for asset {component.id}; expected image or video"
        )
    locator = (component.url or "").strip()
    if not locator:
        raise ValidationFailed(f"Asset {component.id} has no media URL")
    return MediaRef(kind=component.kind, locator=locator)


# -------------------------
# Creative & ad
# -------------------------
def ad_name(placement: Placement, combination: Combination, text: CreativeText) -> str:
    headline = " ".join(text.headline.split())[:HEADLINE_IN_NAME_LENGTH]
    parts = [p for p in (placement.name, headline, combination.id[-6:]) if p]
    return " | ".join(parts)[:AD_NAME_MAX_LENGTH]


def build_creative_payload(
    name: str,
    text: CreativeText,
    landing_page: str,
    media_kind: str,
    media_ref: str,
    cta_type: str,
    page_id: str,
    *,
    thumbnail_url: Optional[str] = None,
) -> Dict[str, Any]:
    call_to_action = {"type": cta_type, "value": {"link": landing_page}}

    if media_kind == IMAGE:
        story: Dict[str, Any] = {
            "page_id": page_id,
            "link_data": {
                "image_hash": media_ref,
                "link": landing_page,
                "message": text.body,
                "name": text.headline,
                "description": text.description,
                "call_to_action": call_to_action,
            },
        }
    elif media_kind == VIDEO:
        video_data: Dict[str, Any] = {
            "video_id": media_ref,
            "title": text.headline,
            "message": text.body,
            "link_description": text.description,
            "call_to_action": call_to_action,
        }
        if thumbnail_url:
            video_data["image_url"] = thumbnail_url
        story = {"page_id": page_id, "video_data": video_data}
    else:
        raise ValidationFailed(f"Unsupported media type {media_kind!r}")

    return {"name": name, "object_story_spec": story}


def build_ad_payload(creative_id: str, adset_id: str, status: str, name: str) -> Dict[str, Any]:
    return {
        "name": name,
        "adset_id": adset_id,
        "creative": {"creative_id": creative_id},
        "status": status,
    }


# -------------------------
# Adset
# -------------------------
def to_minor_units(amount: float) -> int:
    return int(round(float(amount) * 100))


def resolve_start_time(start: datetime, now: datetime, grace_seconds: int) -> int:
    """Starts further in the past than the grace window are moved to now."""
    if as_utc(start) < as_utc(now) - timedelta(seconds=grace_seconds):
        return epoch_seconds(now)
    return epoch_seconds(start)


def _targeting_entries(values: List[str]) -> List[Dict[str, str]]:
    return [{"id": v} if v.isdigit() else {"name": v} for v in values]


def build_targeting(placement: Placement, settings: DeploymentSettings) -> Dict[str, Any]:
    t = placement.targeting
    targeting: Dict[str, Any] = {
        "age_min": t.age_min if t.age_min is not None else settings.age_min,
        "age_max": t.age_max if t.age_max is not None else settings.age_max,
        "genders": list(t.genders) if t.genders else list(settings.genders),
        "publisher_platforms": list(t.placements) if t.placements else list(settings.publisher_platforms),
    }
    if t.locations:
        targeting["geo_locations"] = {"countries": list(t.locations)}
    if t.interests:
        targeting["interests"] = _targeting_entries(t.interests)
    if t.behaviors:
        targeting["behaviors"] = _targeting_entries(t.behaviors)
    return targeting


def build_budget(placement: Placement, campaign: Campaign) -> Dict[str, int]:
    """Exactly one of daily/lifetime, in cents; nothing when the campaign owns the budget."""
    if campaign.has_budget:
        return {}
    if placement.daily_budget:
        return {"daily_budget": to_minor_units(placement.daily_budget)}
    if placement.lifetime_budget:
        return {"lifetime_budget": to_minor_units(placement.lifetime_budget)}
    if placement.budget:
        return {"daily_budget": to_minor_units(placement.budget)}
    raise ValidationFailed(f"Adset {placement.id} has no budget and campaign {campaign.id} carries none")


_OPTIONAL_ADSET_FIELDS = (
    "optimization_goal",
    "billing_event",
    "bid_strategy",
    "bid_amount",
    "promoted_object",
    "attribution_spec",
)


def build_adset_payload(
    placement: Placement,
    campaign: Campaign,
    settings: DeploymentSettings,
    now: datetime,
) -> Dict[str, Any]:
    if not campaign.facebook_campaign_id:
        raise ValidationFailed(f"Campaign {campaign.id} has not been created on Meta")

    payload: Dict[str, Any] = {
        "name": placement.name,
        "campaign_id": campaign.facebook_campaign_id,
        "status": placement.status,
        "targeting": build_targeting(placement, settings),
    }
    payload.update(build_budget(placement, campaign))

    for attr in _OPTIONAL_ADSET_FIELDS:
        value = getattr(placement, attr)
        if value is not None and value != "" and value != [] and value != {}:
            payload[attr] = value

    if placement.start_time is not None:
        payload["start_time"] = resolve_start_time(placement.start_time, now, settings.start_time_grace_seconds)
    if placement.end_time is not None:
        payload["end_time"] = epoch_seconds(placement.end_time)
    return payload
