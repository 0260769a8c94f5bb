"""
ADLAUNCH INFRASTRUCTURE
Core infrastructure and utilities

This package contains:
- supabase_storage: Repository over the Supabase tables
- error_handling: Deployment error taxonomy, Graph API errors, retries
- access: Deploy capability check
- utils: Clocks, date ranges and env helpers
"""

from .error_handling import (
    DeploymentError, RequestInvalid, AccessDenied, PrerequisiteUnavailable,
    ValidationFailed, UpstreamRejected, VerificationFailed, MetaApiError,
    RetryConfig, RetryHandler,
)
from .utils import Clock, RealClock, FixedClock, getenv_f, getenv_b

__all__ = [
    'DeploymentError', 'RequestInvalid', 'AccessDenied', 'PrerequisiteUnavailable',
    'ValidationFailed', 'UpstreamRejected', 'VerificationFailed', 'MetaApiError',
    'RetryConfig', 'RetryHandler',
    'Clock', 'RealClock', 'FixedClock', 'getenv_f', 'getenv_b',
]
