"""Credit billing and suspension."""

from hostpanel.modules.billing.domain.billing_engine import (
    BillingEngine,
    ChargeResult,
    billing_period_start,
)
from hostpanel.modules.billing.domain.suspension import (
    SuspensionBatch,
    SuspensionController,
)
from hostpanel.modules.billing.domain.sweep import (
    BillingScheduler,
    BillingSweep,
    SweepReport,
)

__all__ = [
    "BillingEngine",
    "ChargeResult",
    "billing_period_start",
    "SuspensionBatch",
    "SuspensionController",
    "BillingSweep",
    "BillingScheduler",
    "SweepReport",
]
