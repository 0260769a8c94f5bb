"""Single capability check shared by every batch-initiating operation."""

from __future__ import annotations

import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)

DEPLOY_ROLES = frozenset({"owner", "admin", "member"})


def can_deploy(repository: Any, user_id: Optional[str], account_id: Optional[str]) -> bool:
    """True when the user owns the account or holds a role that may deploy into it."""
    if not user_id or not account_id:
        return False

    account = repository.find_account(account_id)
    if account and str(account.get("owner_id") or "") == str(user_id):
        return True

    membership = repository.find_membership(user_id, account_id)
    role = str((membership or {}).get("role") or "").lower()
    if role in DEPLOY_ROLES:
        return True

    logger.info(f"User {user_id} has no deploy capability on account {account_id} (role={role or 'none'})")
    return False


def can_deploy_placement(repository: Any, user_id: Optional[str], placement: Any) -> bool:
    """Adsets created before multi-account support carry only an owning user."""
    if placement.account_id:
        return can_deploy(repository, user_id, placement.account_id)
    return bool(user_id) and str(placement.user_id or "") == str(user_id)
