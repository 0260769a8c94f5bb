"""
Batch entry point: deploy a list of combinations into one adset.

The adset is provisioned once, up front, and everything the combinations
share (adset id, ad account, page, status) is resolved before the first ad is
attempted. Request-level problems are raised; a missing prerequisite fails
every requested combination with the same cause; anything that goes wrong
for a single combination is recorded against that combination only.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, List, Optional, Sequence, Tuple

from adlaunch.config import ALLOWED_STATUSES, MAX_WORKERS_CAP, DeploymentSettings
from adlaunch.deployment.deployer import CombinationDeployer, DeploymentTarget, UploadCache
from adlaunch.deployment.provisioner import ResourceProvisioner
from adlaunch.infrastructure.access import can_deploy_placement
from adlaunch.infrastructure.error_handling import (
    AccessDenied,
    DeploymentError,
    MetaApiError,
    PrerequisiteUnavailable,
    RequestInvalid,
    ValidationFailed,
)
from adlaunch.infrastructure.utils import Clock
from adlaunch.integrations import slack
from adlaunch.integrations.meta_client import MetaClient
from adlaunch.models import DeployedAd, DeploymentReport, FailedDeployment, MetaAccount, Placement

logger = logging.getLogger(__name__)

ClientFactory = Callable[[MetaAccount], Any]


def default_client_factory(dry_run: bool = False) -> ClientFactory:
    def _factory(account: MetaAccount) -> MetaClient:
        return MetaClient(account.access_token, dry_run=dry_run)
    return _factory


def _dedupe(ids: Sequence[str]) -> List[str]:
    seen = set()
    out: List[str] = []
    for cid in ids:
        if cid not in seen:
            seen.add(cid)
            out.append(cid)
    return out


def _failure(combination_id: str, error: DeploymentError) -> FailedDeployment:
    return FailedDeployment(
        combination_id=combination_id,
        kind=error.kind,
        error=error.message,
        code=error.code,
        error_type=error.error_type,
        details=dict(error.details),
    )


class BatchOrchestrator:
    def __init__(
        self,
        repository: Any,
        settings: Optional[DeploymentSettings] = None,
        client_factory: Optional[ClientFactory] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.repository = repository
        self.settings = settings or DeploymentSettings()
        self.client_factory = client_factory or default_client_factory()
        self.clock = clock

    # ------------- request checks -------------
    def _check_request(self, adset_id: str, combination_ids: Sequence[str], status: str) -> None:
        if not adset_id:
            raise RequestInvalid("adsetId is required")
        if not combination_ids:
            raise RequestInvalid("combinationIds must be a non-empty list")
        if any(not cid for cid in combination_ids):
            raise RequestInvalid("combinationIds must not contain empty ids")
        if status not in ALLOWED_STATUSES:
            raise RequestInvalid(f"status must be one of {', '.join(ALLOWED_STATUSES)}, got {status!r}")

    def _load_placement(self, adset_id: str) -> Placement:
        placement = self.repository.find_placement(adset_id)
        if placement is None:
            raise PrerequisiteUnavailable(f"Adset {adset_id} not found")
        return placement

    # ------------- shared prerequisites -------------
    def _resolve_page(self, client: Any, placement: Placement) -> str:
        if placement.facebook_page_id:
            return placement.facebook_page_id
        try:
            pages = client.get_pages()
        except MetaApiError as e:
            raise PrerequisiteUnavailable(f"Could not list Facebook pages: {e.message}", code=e.code, error_type=e.error_type) from e
        page_id = (pages[0].get("id") or "").strip() if pages else ""
        if not page_id:
            raise PrerequisiteUnavailable("No Facebook page available for this ad account")
        logger.info(f"[DEPLOY] No page on adset {placement.id}; using first page {page_id}")
        return page_id

    def _prepare(self, placement: Placement, status: str) -> Tuple[Any, DeploymentTarget]:
        campaign = self.repository.find_campaign(placement.campaign_id)
        if campaign is None:
            raise PrerequisiteUnavailable(f"Campaign {placement.campaign_id} not found")
        account = self.repository.find_meta_account(campaign.meta_account_id)
        if account is None or not account.access_token:
            raise PrerequisiteUnavailable(f"Meta account {campaign.meta_account_id} is missing or has no access token")

        client = self.client_factory(account)
        provisioner = ResourceProvisioner(client, self.repository, self.settings, clock=self.clock)
        adset_id = provisioner.ensure_placement_provisioned(placement, campaign, account.act_id)
        page_id = self._resolve_page(client, placement)

        target = DeploymentTarget(
            placement=placement,
            adset_id=adset_id,
            ad_account_id=account.act_id,
            page_id=page_id,
            status=status,
        )
        return client, target

    # ------------- per combination -------------
    def _deploy_one(self, deployer: CombinationDeployer, combination_id: str, target: DeploymentTarget) -> Any:
        combination = self.repository.find_combination(combination_id)
        if combination is None:
            return _failure(combination_id, ValidationFailed(f"Combination {combination_id} not found"))
        if combination.adset_id != target.placement.id:
            return _failure(
                combination_id,
                ValidationFailed(f"Combination {combination_id} belongs to adset {combination.adset_id}, not {target.placement.id}"),
            )
        outcome = deployer.deploy(combination, target)
        if outcome.ok:
            return DeployedAd(combination_id, outcome.facebook_ad_id)
        return _failure(combination_id, outcome.error)

    def _safe_deploy_one(self, deployer: CombinationDeployer, combination_id: str, target: DeploymentTarget) -> Any:
        try:
            return self._deploy_one(deployer, combination_id, target)
        except DeploymentError as e:
            return _failure(combination_id, e)
        except Exception as e:
            logger.exception(f"[DEPLOY] Unhandled error for combination {combination_id}")
            return _failure(combination_id, DeploymentError(f"Unexpected error: {e}"))

    def _run(self, deployer: CombinationDeployer, ids: List[str], target: DeploymentTarget, workers: int) -> List[Any]:
        if workers <= 1 or len(ids) == 1:
            return [self._safe_deploy_one(deployer, cid, target) for cid in ids]
        with ThreadPoolExecutor(max_workers=min(workers, len(ids)), thread_name_prefix="deploy") as pool:
            futures = [pool.submit(self._safe_deploy_one, deployer, cid, target) for cid in ids]
            return [f.result() for f in futures]

    # ------------- entry point -------------
    def deploy(
        self,
        adset_id: str,
        combination_ids: Sequence[str],
        status: Optional[str] = None,
        user_id: Optional[str] = None,
        max_workers: Optional[int] = None,
    ) -> DeploymentReport:
        status = (status or self.settings.default_status).upper()
        self._check_request(adset_id, combination_ids, status)
        ids = _dedupe(combination_ids)
        if len(ids) != len(combination_ids):
            logger.info(f"[DEPLOY] Dropped {len(combination_ids) - len(ids)} duplicate combination ids")

        report = DeploymentReport()
        placement: Optional[Placement] = None
        try:
            placement = self._load_placement(adset_id)
            if user_id is not None and not can_deploy_placement(self.repository, user_id, placement):
                raise AccessDenied(f"User {user_id} may not deploy into adset {adset_id}")
            client, target = self._prepare(placement, status)
        except RequestInvalid:
            raise
        except PrerequisiteUnavailable as e:
            logger.error(f"[DEPLOY] Batch for adset {adset_id} aborted: {e.message}")
            return self._abort(adset_id, placement, ids, e)
        except Exception as e:
            logger.exception(f"[DEPLOY] Batch for adset {adset_id} aborted while preparing")
            return self._abort(adset_id, placement, ids, PrerequisiteUnavailable(f"Unexpected error preparing adset: {e}"))

        workers = max(1, min(MAX_WORKERS_CAP, max_workers or self.settings.max_workers))
        deployer = CombinationDeployer(client, self.repository, self.settings, UploadCache())
        logger.info(f"[DEPLOY] Deploying {len(ids)} combinations into adset {target.adset_id} (workers={workers})")

        for result in self._run(deployer, ids, target, workers):
            if isinstance(result, DeployedAd):
                report.succeeded.append(result)
            else:
                report.failed.append(result)

        logger.info(f"[DEPLOY] Adset {adset_id}: {report.deployed} deployed, {report.failed_count} failed")
        self._notify(placement.name, report)
        return report

    def _abort(
        self, adset_id: str, placement: Optional[Placement], ids: List[str], error: PrerequisiteUnavailable
    ) -> DeploymentReport:
        report = DeploymentReport(failed=[_failure(cid, error) for cid in ids])
        self._notify(placement.name if placement else adset_id, report, abort_reason=error.message)
        return report

    def _notify(self, adset_name: str, report: DeploymentReport, abort_reason: Optional[str] = None) -> None:
        if not self.settings.notify_slack:
            return
        if abort_reason:
            slack.alert_error(f"{adset_name}: {abort_reason}")
            return
        slack.alert_deployment_summary(adset_name, report.to_dict())
