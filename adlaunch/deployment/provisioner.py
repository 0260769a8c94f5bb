from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from adlaunch.config import DeploymentSettings
from adlaunch.deployment.payloads import build_adset_payload
from adlaunch.infrastructure.error_handling import (
    MetaApiError,
    PrerequisiteUnavailable,
    ValidationFailed,
    VerificationFailed,
    is_retriable,
)
from adlaunch.infrastructure.utils import Clock, default_clock
from adlaunch.integrations.meta_client import TRANSPORT_ERROR
from adlaunch.models import Campaign, Placement

logger = logging.getLogger(__name__)


def _is_transient(error: MetaApiError) -> bool:
    return error.error_type == TRANSPORT_ERROR or is_retriable(error)


class ResourceProvisioner:
    """
    Makes sure the adset exists on Meta before any ad is deployed into it.

    A stored adset id is only trusted after it reads back from the Graph API.
    An id that no longer resolves is cleared and the adset is recreated. A
    transient read failure (transport error or a retriable Graph error) keeps the stored id
    and aborts instead, so a live adset is never duplicated. A freshly
    created adset must read back too before its id is persisted.
    """

    def __init__(self, client: Any, repository: Any, settings: DeploymentSettings, clock: Optional[Clock] = None):
        self.client = client
        self.repository = repository
        self.settings = settings
        self.clock = clock or default_clock()

    def _read_back(self, adset_id: str) -> Dict[str, Any]:
        try:
            return self.client.get_adset_details(adset_id)
        except MetaApiError as e:
            raise VerificationFailed(
                f"Adset {adset_id} could not be read back: {e.message}",
                code=e.code,
                error_type=e.error_type,
                details={"facebook_adset_id": adset_id},
            ) from e

    def ensure_placement_provisioned(self, placement: Placement, campaign: Campaign, ad_account_id: str) -> str:
        stored = placement.facebook_adset_id
        if stored:
            try:
                self._read_back(stored)
                logger.info(f"[DEPLOY] Reusing adset {stored} for {placement.id}")
                return stored
            except VerificationFailed as e:
                cause = e.__cause__
                if isinstance(cause, MetaApiError) and _is_transient(cause):
                    raise PrerequisiteUnavailable(
                        f"Could not verify adset {stored}: {e.message}",
                        code=e.code,
                        error_type=e.error_type,
                        details=e.details,
                    ) from e
                logger.warning(f"[DEPLOY] Stored adset {stored} for {placement.id} is gone, recreating: {e.message}")
                placement.facebook_adset_id = None
                self.repository.save_placement(placement)

        try:
            payload = build_adset_payload(placement, campaign, self.settings, self.clock.now_utc())
        except ValidationFailed as e:
            raise PrerequisiteUnavailable(f"Cannot provision adset: {e.message}") from e

        try:
            adset_id = self.client.create_adset(ad_account_id, payload)
        except MetaApiError as e:
            raise PrerequisiteUnavailable(
                f"Failed to create adset: {e.message}",
                code=e.code,
                error_type=e.error_type,
                details={"error_subcode": e.subcode} if e.subcode is not None else None,
            ) from e

        try:
            self._read_back(adset_id)
        except VerificationFailed as e:
            raise PrerequisiteUnavailable(
                f"Adset was created but could not be verified: {e.message}",
                code=e.code,
                error_type=e.error_type,
                details=e.details,
            ) from e

        placement.facebook_adset_id = adset_id
        self.repository.save_placement(placement)
        logger.info(f"[DEPLOY] Created adset {adset_id} for {placement.id}")
        return adset_id
