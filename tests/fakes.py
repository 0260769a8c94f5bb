"""In-memory stand-ins for the Supabase repository and the Meta client."""

from __future__ import annotations

import copy
import threading
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Tuple
from unittest.mock import MagicMock

from adlaunch.infrastructure.error_handling import MetaApiError
from adlaunch.models import Campaign, Combination, CreativeComponent, MetaAccount, Placement


# ── Supabase query-builder mock ─────────────────────────────


class MockTable:
    def __init__(self, name, store):
        self.name = name
        self._store = store
        self._filters = {}
        self._pending_upsert = None
        self._on_conflict = "id"

    def select(self, cols="*"):
        return self

    def eq(self, col, val):
        self._filters[col] = val
        return self

    def limit(self, n):
        return self

    def upsert(self, data, on_conflict="id"):
        self._pending_upsert = data
        self._on_conflict = on_conflict
        return self

    def execute(self):
        rows = self._store.setdefault(self.name, [])
        result = MagicMock()
        if self._pending_upsert is not None:
            keys = [k.strip() for k in self._on_conflict.split(",")]
            row = dict(self._pending_upsert)
            for i, existing in enumerate(rows):
                if all(existing.get(k) == row.get(k) for k in keys):
                    rows[i] = {**existing, **row}
                    break
            else:
                rows.append(row)
            result.data = [row]
            return result
        filtered = rows
        for col, val in self._filters.items():
            filtered = [r for r in filtered if r.get(col) == val]
        result.data = [dict(r) for r in filtered]
        return result


class MockDB:
    def __init__(self, tables=None):
        self.tables = tables or {}

    def table(self, name):
        return MockTable(name, self.tables)


# ── Repository fake ─────────────────────────────────────────


class InMemoryRepository:
    """Same surface as SupabaseRepository; stores copies so unsaved mutations never leak."""

    def __init__(self):
        self._lock = threading.Lock()
        self.placements: Dict[str, Placement] = {}
        self.campaigns: Dict[str, Campaign] = {}
        self.meta_accounts: Dict[str, MetaAccount] = {}
        self.components: Dict[str, CreativeComponent] = {}
        self.combinations: Dict[str, Combination] = {}
        self.accounts: Dict[str, Dict[str, Any]] = {}
        self.memberships: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.performance: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.saves: List[Tuple[str, str]] = []

    def _get(self, table: Dict[str, Any], key: Any) -> Any:
        with self._lock:
            item = table.get(key)
            return copy.deepcopy(item) if item is not None else None

    def _put(self, table: Dict[str, Any], key: Any, item: Any, kind: str) -> None:
        with self._lock:
            table[key] = copy.deepcopy(item)
            self.saves.append((kind, str(key)))

    # seeding
    def add(self, *items: Any) -> "InMemoryRepository":
        for item in items:
            if isinstance(item, Placement):
                self.placements[item.id] = item
            elif isinstance(item, Campaign):
                self.campaigns[item.id] = item
            elif isinstance(item, MetaAccount):
                self.meta_accounts[item.id] = item
            elif isinstance(item, CreativeComponent):
                self.components[item.id] = item
            elif isinstance(item, Combination):
                self.combinations[item.id] = item
            else:
                raise TypeError(f"Cannot seed {item!r}")
        return self

    def saved(self, kind: str) -> List[str]:
        return [key for k, key in self.saves if k == kind]

    # repository surface
    def find_placement(self, placement_id):
        return self._get(self.placements, placement_id)

    def save_placement(self, placement):
        self._put(self.placements, placement.id, placement, "placement")

    def list_active_placements(self):
        return [copy.deepcopy(p) for p in self.placements.values() if p.status == "ACTIVE"]

    def find_campaign(self, campaign_id):
        return self._get(self.campaigns, campaign_id)

    def find_meta_account(self, meta_account_id):
        return self._get(self.meta_accounts, meta_account_id)

    def find_component(self, component_id):
        return self._get(self.components, component_id)

    def save_component(self, component):
        self._put(self.components, component.id, component, "component")

    def find_combination(self, combination_id):
        return self._get(self.combinations, combination_id)

    def save_combination(self, combination):
        self._put(self.combinations, combination.id, combination, "combination")

    def list_deployed_combinations(self, adset_id):
        return [
            copy.deepcopy(c) for c in self.combinations.values()
            if c.adset_id == adset_id and c.deployed_to_facebook
        ]

    def find_account(self, account_id):
        return self.accounts.get(account_id)

    def find_membership(self, user_id, account_id):
        return self.memberships.get((user_id, account_id))

    def find_performance(self, combination_id, day: date):
        return self.performance.get((combination_id, day.isoformat()))

    def save_performance(self, row):
        self.performance[(row["combination_id"], row["date"])] = dict(row)


# ── Meta client fake ────────────────────────────────────────

ErrorRule = Callable[..., Optional[Exception]]


class FakeMetaClient:
    """
    Records every call. ``errors`` maps a method name to either an exception
    (always raised) or a callable receiving the call arguments and returning
    an exception to raise, or None to let the call succeed.
    """

    def __init__(self, pages: Optional[List[Dict[str, str]]] = None):
        self._lock = threading.Lock()
        self._seq = 0
        self.calls: List[Tuple[str, tuple]] = []
        self.live_adsets: Dict[str, Dict[str, Any]] = {}
        self.errors: Dict[str, Any] = {}
        self.pages = pages if pages is not None else [{"id": "page-1", "name": "Brand"}]
        self.insights: Dict[str, Dict[str, Any]] = {}
        self.thumbnail_url: Optional[str] = None

    def _record(self, name: str, *args: Any) -> None:
        with self._lock:
            self.calls.append((name, args))
        rule = self.errors.get(name)
        if rule is None:
            return
        err = rule if isinstance(rule, Exception) else rule(*args)
        if err is not None:
            raise err

    def _next_id(self, prefix: str) -> str:
        with self._lock:
            self._seq += 1
            return f"{prefix}_{self._seq}"

    def count(self, name: str) -> int:
        return sum(1 for n, _ in self.calls if n == name)

    def args_of(self, name: str) -> List[tuple]:
        return [a for n, a in self.calls if n == name]

    def create_adset(self, ad_account_id, payload):
        self._record("create_adset", ad_account_id, payload)
        adset_id = self._next_id("adset")
        self.live_adsets[adset_id] = payload
        return adset_id

    def get_adset_details(self, adset_id):
        self._record("get_adset_details", adset_id)
        if adset_id not in self.live_adsets:
            raise MetaApiError(f"Adset {adset_id} not found", code=100, error_type="GraphMethodException", endpoint=adset_id)
        return {"id": adset_id}

    def upload_media(self, ad_account_id, kind, locator):
        self._record("upload_media", ad_account_id, kind, locator)
        return self._next_id("hash" if kind == "image" else "video")

    def get_video_thumbnail_url(self, video_id):
        self._record("get_video_thumbnail_url", video_id)
        return self.thumbnail_url

    def create_ad_creative(self, ad_account_id, payload):
        self._record("create_ad_creative", ad_account_id, payload)
        return self._next_id("creative")

    def create_ad(self, ad_account_id, payload):
        self._record("create_ad", ad_account_id, payload)
        return self._next_id("ad")

    def get_pages(self):
        self._record("get_pages")
        return list(self.pages)

    def get_ad_insights(self, ad_id, date_range):
        self._record("get_ad_insights", ad_id, date_range)
        return dict(self.insights.get(ad_id, {}))
