"""
ADLAUNCH
Deploys ad creative combinations to Meta

This package contains:
- models: Domain entities and the deployment report
- config: YAML settings and defaults
- deployment: Provisioning, payload building, per-combination deployment and batch orchestration
- integrations: Meta Graph API client and Slack notifications
- infrastructure: Supabase repository, errors and retries, access checks, utilities
- jobs: Daily performance sync
"""

__version__ = "1.0.0"
