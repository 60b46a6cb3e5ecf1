"""
Subscription lifecycle configuration.

The grace window is fixed product policy; the remaining values can be
overridden per deployment through environment variables.
"""

import os
from pathlib import Path

# Days after a paid subscription's end_date during which data is retained
GRACE_PERIOD_DAYS = 30

# Length of the free trial created at tenant signup
TRIAL_PERIOD_DAYS = int(os.getenv("ENTITLEMENTS_TRIAL_DAYS", "14"))

DEFAULT_PLANS_PATH = Path(__file__).parent / "plans.json"
PLANS_CONFIG_PATH = Path(os.getenv("ENTITLEMENTS_PLANS_PATH", str(DEFAULT_PLANS_PATH)))

# Batch reconcile worker
RECONCILE_INTERVAL_SECONDS = int(os.getenv("ENTITLEMENTS_RECONCILE_INTERVAL_SECONDS", "3600"))
DATABASE_URL = os.getenv("DATABASE_URL")
