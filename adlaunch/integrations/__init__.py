"""
ADLAUNCH INTEGRATIONS
External service integrations

This package contains:
- meta_client: Meta Graph API client
- slack: Slack notifications and alerts
"""

from .meta_client import MetaClient, WriteResult, normalize_account_id
from .slack import notify, alert_error, alert_deployment_summary

__all__ = [
    'MetaClient', 'WriteResult', 'normalize_account_id',
    'notify', 'alert_error', 'alert_deployment_summary',
]
