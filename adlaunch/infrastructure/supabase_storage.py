from __future__ import annotations

import logging
import os
import re
from datetime import date
from typing import Any, Dict, List, Optional

from supabase import create_client

from adlaunch.models import Campaign, Combination, CreativeComponent, MetaAccount, Placement

logger = logging.getLogger(__name__)

TABLE_ADSETS = os.getenv("SUPABASE_ADSETS_TABLE", "adsets")
TABLE_CAMPAIGNS = "campaigns"
TABLE_META_ACCOUNTS = "meta_accounts"
TABLE_COMPONENTS = "creative_components"
TABLE_COMBINATIONS = "ad_combinations"
TABLE_ACCOUNTS = "accounts"
TABLE_MEMBERSHIPS = "account_memberships"
TABLE_PERFORMANCE = "performance_data"


def _sample_payload(payload: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not isinstance(payload, dict):
        return None
    keys_of_interest = ["id", "adset_id", "campaign_id", "combination_id", "facebook_adset_id", "facebook_ad_id", "date"]
    sample = {k: payload[k] for k in keys_of_interest if k in payload}
    return sample or None


def _log_supabase_error(operation: str, table: str, error: Any, payload: Optional[Dict[str, Any]] = None) -> None:
    code: Optional[str] = None
    details: Optional[str] = None

    if isinstance(error, dict):
        code = error.get("code")
        details = error.get("details") or error.get("hint")
    elif hasattr(error, "args"):
        for arg in error.args:
            if isinstance(arg, dict):
                code = code or arg.get("code")
                details = details or arg.get("details") or arg.get("hint")

    message = str(error)
    suggestions: List[str] = []

    column_match = re.search(r"Could not find the '([^']+)' column", message)
    if column_match:
        suggestions.append(
            f"Supabase schema cache is missing column '{column_match.group(1)}' on {table}. Apply the latest migrations."
        )
    if code == "PGRST204" and not suggestions:
        suggestions.append("Supabase schema cache may be stale. Trigger a schema refresh.")

    logger.error(
        "SUPABASE ERROR [%s.%s] code=%s message=%s details=%s suggestions=%s sample=%s",
        table,
        operation,
        code or "unknown",
        message,
        details or "n/a",
        "; ".join(suggestions) or "n/a",
        _sample_payload(payload),
    )


class SupabaseRepository:
    """Load-by-id and persist-mutation for every entity the deployment pipeline touches."""

    def __init__(self, supabase_client: Any):
        self.client = supabase_client

    # ------------- primitives -------------
    def _select_one(self, table: str, **filters: Any) -> Optional[Dict[str, Any]]:
        try:
            q = self.client.table(table).select("*")
            for col, val in filters.items():
                q = q.eq(col, val)
            rows = q.limit(1).execute().data or []
        except Exception as e:
            _log_supabase_error("select", table, e, filters)
            raise
        return rows[0] if rows else None

    def _select_many(self, table: str, **filters: Any) -> List[Dict[str, Any]]:
        try:
            q = self.client.table(table).select("*")
            for col, val in filters.items():
                q = q.eq(col, val)
            return list(q.execute().data or [])
        except Exception as e:
            _log_supabase_error("select", table, e, filters)
            raise

    def _upsert(self, table: str, row: Dict[str, Any], on_conflict: str = "id") -> None:
        try:
            self.client.table(table).upsert(row, on_conflict=on_conflict).execute()
        except Exception as e:
            _log_supabase_error("upsert", table, e, row)
            raise

    # ------------- placements -------------
    def find_placement(self, placement_id: str) -> Optional[Placement]:
        row = self._select_one(TABLE_ADSETS, id=placement_id)
        return Placement.from_row(row) if row else None

    def save_placement(self, placement: Placement) -> None:
        self._upsert(TABLE_ADSETS, placement.to_row())

    def list_active_placements(self) -> List[Placement]:
        return [Placement.from_row(r) for r in self._select_many(TABLE_ADSETS, status="ACTIVE")]

    # ------------- campaigns & credentials -------------
    def find_campaign(self, campaign_id: str) -> Optional[Campaign]:
        row = self._select_one(TABLE_CAMPAIGNS, id=campaign_id)
        return Campaign.from_row(row) if row else None

    def find_meta_account(self, meta_account_id: str) -> Optional[MetaAccount]:
        row = self._select_one(TABLE_META_ACCOUNTS, id=meta_account_id)
        return MetaAccount.from_row(row) if row else None

    # ------------- creative components -------------
    def find_component(self, component_id: str) -> Optional[CreativeComponent]:
        row = self._select_one(TABLE_COMPONENTS, id=component_id)
        return CreativeComponent.from_row(row) if row else None

    def save_component(self, component: CreativeComponent) -> None:
        self._upsert(TABLE_COMPONENTS, component.to_row())

    # ------------- combinations -------------
    def find_combination(self, combination_id: str) -> Optional[Combination]:
        row = self._select_one(TABLE_COMBINATIONS, id=combination_id)
        return Combination.from_row(row) if row else None

    def save_combination(self, combination: Combination) -> None:
        self._upsert(TABLE_COMBINATIONS, combination.to_row())

    def list_deployed_combinations(self, adset_id: str) -> List[Combination]:
        rows = self._select_many(TABLE_COMBINATIONS, adset_id=adset_id, deployed_to_facebook=True)
        return [Combination.from_row(r) for r in rows]

    # ------------- access -------------
    def find_account(self, account_id: str) -> Optional[Dict[str, Any]]:
        return self._select_one(TABLE_ACCOUNTS, id=account_id)

    def find_membership(self, user_id: str, account_id: str) -> Optional[Dict[str, Any]]:
        return self._select_one(TABLE_MEMBERSHIPS, user_id=user_id, account_id=account_id)

    # ------------- performance -------------
    def find_performance(self, combination_id: str, day: date) -> Optional[Dict[str, Any]]:
        return self._select_one(TABLE_PERFORMANCE, combination_id=combination_id, date=day.isoformat())

    def save_performance(self, row: Dict[str, Any]) -> None:
        self._upsert(TABLE_PERFORMANCE, row, on_conflict="combination_id,date")


def create_repository_from_env() -> SupabaseRepository:
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_ANON_KEY")
    if not (url and key):
        raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY (or SUPABASE_ANON_KEY) must be set.")
    return SupabaseRepository(create_client(url, key))
