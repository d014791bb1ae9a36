"""Service modules"""
from .collateral import CollateralCalculator
from .coordinator import Coordinator
from .liquidation import LiquidationScanner, Liquidator
from .loan_state import LoanStateSynchronizer
from .price_feed import PriceFeedPoller
from .repayment import RepaymentService
from .transactions import TransactionSubmitter
from .workflow import LoanRequestWorkflow, WorkflowState

__all__ = [
    "CollateralCalculator",
    "Coordinator",
    "LiquidationScanner",
    "Liquidator",
    "LoanRequestWorkflow",
    "LoanStateSynchronizer",
    "PriceFeedPoller",
    "RepaymentService",
    "TransactionSubmitter",
    "WorkflowState",
]
