from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from adlaunch.config import DeploymentSettings
from adlaunch.deployment.payloads import (
    CreativeText,
    MediaRef,
    ad_name,
    build_ad_payload,
    build_creative_payload,
    resolve_landing_page,
    resolve_media,
)
from adlaunch.infrastructure.error_handling import DeploymentError, MetaApiError, ValidationFailed
from adlaunch.models import VIDEO, Combination, CreativeComponent, Placement

logger = logging.getLogger(__name__)


def _deploy_log(level: int, message: str, *args: Any) -> None:
    logger.log(level, f"[DEPLOY] {message}", *args)


class DeployState(Enum):
    PENDING = "pending"
    VALIDATED = "validated"
    MEDIA_RESOLVED = "media_resolved"
    CREATIVE_CREATED = "creative_created"
    AD_CREATED = "ad_created"
    FAILED = "failed"


_NEXT = {
    DeployState.PENDING: DeployState.VALIDATED,
    DeployState.VALIDATED: DeployState.MEDIA_RESOLVED,
    DeployState.MEDIA_RESOLVED: DeployState.CREATIVE_CREATED,
    DeployState.CREATIVE_CREATED: DeployState.AD_CREATED,
}


@dataclass
class DeploymentTarget:
    """Everything a combination needs from the batch: resolved once, shared read-only."""

    placement: Placement
    adset_id: str
    ad_account_id: str
    page_id: str
    status: str


@dataclass
class DeployOutcome:
    combination_id: str
    state: DeployState = DeployState.PENDING
    history: List[DeployState] = field(default_factory=lambda: [DeployState.PENDING])
    creative_id: Optional[str] = None
    facebook_ad_id: Optional[str] = None
    error: Optional[DeploymentError] = None

    @property
    def ok(self) -> bool:
        return self.state is DeployState.AD_CREATED

    def advance(self, to: DeployState) -> None:
        if _NEXT.get(self.state) is not to:
            raise RuntimeError(f"Illegal transition {self.state.value} -> {to.value}")
        self.state = to
        self.history.append(to)

    def fail(self, error: DeploymentError) -> None:
        self.error = error
        self.state = DeployState.FAILED
        self.history.append(DeployState.FAILED)


class UploadCache:
    """
    Batch-wide check-and-set for uploaded media references.

    One lock per component id, so two workers sharing a component upload it
    once while unrelated uploads proceed in parallel.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._refs: Dict[str, str] = {}

    def lock_for(self, component_id: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(component_id, threading.Lock())

    def get(self, component_id: str) -> Optional[str]:
        return self._refs.get(component_id)

    def put(self, component_id: str, ref: str) -> None:
        self._refs[component_id] = ref


@dataclass
class _ValidatedCombination:
    landing_page: str
    media_component: CreativeComponent
    media: MediaRef
    text: CreativeText
    cta_type: str


class CombinationDeployer:
    def __init__(
        self,
        client: Any,
        repository: Any,
        settings: DeploymentSettings,
        upload_cache: Optional[UploadCache] = None,
    ) -> None:
        self.client = client
        self.repository = repository
        self.settings = settings
        self.upload_cache = upload_cache or UploadCache()

    # ------------- validation -------------
    def _component(self, component_id: Optional[str]) -> Optional[CreativeComponent]:
        if not component_id:
            return None
        return self.repository.find_component(component_id)

    def _validate(self, combination: Combination, target: DeploymentTarget) -> _ValidatedCombination:
        landing_page = resolve_landing_page(combination, target.placement)

        if not combination.asset_ids:
            raise ValidationFailed("Combination has no media asset")
        if len(combination.asset_ids) != 1:
            raise ValidationFailed(f"Combination must reference exactly one media asset, got {len(combination.asset_ids)}")
        asset = self._component(combination.asset_ids[0])
        if asset is None:
            raise ValidationFailed(f"Media asset {combination.asset_ids[0]} not found")
        media = resolve_media(asset)

        text = CreativeText.from_components(
            self._component(combination.headline_id),
            self._component(combination.body_id),
            self._component(combination.description_id),
        )
        return _ValidatedCombination(
            landing_page=landing_page,
            media_component=asset,
            media=media,
            text=text,
            cta_type=combination.cta_type or self.settings.default_cta_type,
        )

    # ------------- media -------------
    def _resolve_upload(self, component: CreativeComponent, media: MediaRef, target: DeploymentTarget) -> str:
        key = component.upload_key
        cached = component.cached_upload_ref
        if cached:
            return cached

        with self.upload_cache.lock_for(component.id):
            ref = self.upload_cache.get(component.id)
            if ref:
                component.metadata[key] = ref
                return ref

            locator = self.settings.absolute_media_url(media.locator)
            try:
                ref = self.client.upload_media(target.ad_account_id, media.kind, locator)
            except MetaApiError as e:
                raise e.as_upstream(f"Failed to upload {media.kind}") from e

            component.metadata[key] = ref
            self.repository.save_component(component)
            self.upload_cache.put(component.id, ref)
            _deploy_log(logging.INFO, "Uploaded %s %s -> %s", media.kind, component.id, ref)
            return ref

    # ------------- pipeline -------------
    def deploy(self, combination: Combination, target: DeploymentTarget) -> DeployOutcome:
        outcome = DeployOutcome(combination.id)
        try:
            parts = self._validate(combination, target)
            outcome.advance(DeployState.VALIDATED)

            media_ref = self._resolve_upload(parts.media_component, parts.media, target)
            outcome.advance(DeployState.MEDIA_RESOLVED)

            name = ad_name(target.placement, combination, parts.text)
            thumbnail = None
            if parts.media.kind == VIDEO:
                thumbnail = self.client.get_video_thumbnail_url(media_ref)
            creative_payload = build_creative_payload(
                name,
                parts.text,
                parts.landing_page,
                parts.media.kind,
                media_ref,
                parts.cta_type,
                target.page_id,
                thumbnail_url=thumbnail,
            )
            try:
                outcome.creative_id = self.client.create_ad_creative(target.ad_account_id, creative_payload)
            except MetaApiError as e:
                raise e.as_upstream("Failed to create ad creative") from e
            outcome.advance(DeployState.CREATIVE_CREATED)

            ad_payload = build_ad_payload(outcome.creative_id, target.adset_id, target.status, name)
            try:
                outcome.facebook_ad_id = self.client.create_ad(target.ad_account_id, ad_payload)
            except MetaApiError as e:
                # The creative stays on Meta; it is reported so it can be reused or cleaned up by hand.
                _deploy_log(logging.WARNING, "Ad creation failed for %s; creative %s left orphaned", combination.id, outcome.creative_id)
                err = e.as_upstream("Failed to create ad")
                err.details["orphaned_creative_id"] = outcome.creative_id
                raise err from e

            combination.deployed_to_facebook = True
            combination.facebook_ad_id = outcome.facebook_ad_id
            self.repository.save_combination(combination)
            outcome.advance(DeployState.AD_CREATED)
            _deploy_log(logging.INFO, "Deployed %s as ad %s", combination.id, outcome.facebook_ad_id)
        except DeploymentError as e:
            _deploy_log(logging.WARNING, "Combination %s failed at %s: %s", combination.id, outcome.state.value, e.message)
            outcome.fail(e)
        except Exception as e:
            logger.exception(f"[DEPLOY] Unexpected error deploying {combination.id}")
            details: Dict[str, Any] = {"stage": outcome.state.value}
            if outcome.creative_id:
                details["creative_id"] = outcome.creative_id
            if outcome.facebook_ad_id:
                details["facebook_ad_id"] = outcome.facebook_ad_id
            outcome.fail(DeploymentError(f"Unexpected error: {e}", details=details))
        return outcome
