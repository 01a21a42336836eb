"""Read-only selectors."""

from petshop_kernel.selectors.dashboard_selector import DashboardSelector
from petshop_kernel.selectors.ledger_selector import LedgerSelector
from petshop_kernel.selectors.register_selector import RegisterSelector

__all__ = ["DashboardSelector", "LedgerSelector", "RegisterSelector"]
