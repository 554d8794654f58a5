"""
Portfolio Analytics - PnL, risk, return, diversification and rebalancing calculations for portfolios.

Exports:
    Holding, Transaction, Snapshot, Portfolio: Input value objects
    OptimizationConstraints: Weight and cost limits for the optimizer
    calculate_cost_basis: Replay a transaction log into quantity and average cost (FIFO/LIFO/average)
    calculate_portfolio_pnl: Realized, unrealized and periodic PnL
    calculate_risk_metrics: Volatility, Sharpe/Sortino/Calmar, VaR/CVaR, drawdown, beta/alpha
    calculate_portfolio_roi: Simple, time-weighted, money-weighted and annualized returns
    analyze_correlations: Pairwise return correlation matrix
    calculate_diversification_score: Concentration, correlation and sector diversification
    optimize_portfolio: Target weights and rebalancing actions under a weighting strategy
    create_rebalancing_schedule: Trigger check and next rebalance date
    perform_comprehensive_analysis: Every calculation composed into one report
"""

from .analyzer import ComprehensiveAnalysis, perform_comprehensive_analysis
from .config import (
    CostBasisMethod,
    DiversificationConfig,
    OptimizationStrategy,
    OptimizerConfig,
    RebalanceFrequency,
    ReturnPeriod,
    RiskConfig,
)
from .correlation import CorrelationMatrix, analyze_correlations
from .cost_basis import calculate_cost_basis, update_holding_from_transactions, validate_transactions
from .diversification import (
    DiversificationScore,
    VolatilityClustering,
    analyze_volatility_clustering,
    calculate_diversification_score,
)
from .errors import AnalyticsError, InsufficientDataError, InvalidInputError
from .loaders import PortfolioDocument, load_document
from .models import (
    Holding,
    OptimizationConstraints,
    Portfolio,
    PriceObservation,
    Snapshot,
    SnapshotValue,
    Transaction,
)
from .pnl import PnLResult, apply_pnl, calculate_holding_pnl, calculate_portfolio_pnl
from .rebalancing import (
    OptimizationResult,
    RebalancingSchedule,
    create_rebalancing_schedule,
    optimize_portfolio,
)
from .risk import RiskMetricsResult, assess_risk_profile, calculate_risk_metrics
from .roi import (
    ROIMetrics,
    calculate_benchmark_comparison,
    calculate_holding_roi,
    calculate_period_roi,
    calculate_portfolio_roi,
)

__all__ = [
    "Holding",
    "Transaction",
    "Snapshot",
    "SnapshotValue",
    "Portfolio",
    "PriceObservation",
    "OptimizationConstraints",
    "CostBasisMethod",
    "OptimizationStrategy",
    "RebalanceFrequency",
    "ReturnPeriod",
    "RiskConfig",
    "DiversificationConfig",
    "OptimizerConfig",
    "AnalyticsError",
    "InvalidInputError",
    "InsufficientDataError",
    "validate_transactions",
    "calculate_cost_basis",
    "update_holding_from_transactions",
    "PnLResult",
    "calculate_holding_pnl",
    "calculate_portfolio_pnl",
    "apply_pnl",
    "RiskMetricsResult",
    "calculate_risk_metrics",
    "assess_risk_profile",
    "ROIMetrics",
    "calculate_portfolio_roi",
    "calculate_holding_roi",
    "calculate_period_roi",
    "calculate_benchmark_comparison",
    "CorrelationMatrix",
    "analyze_correlations",
    "DiversificationScore",
    "VolatilityClustering",
    "calculate_diversification_score",
    "analyze_volatility_clustering",
    "OptimizationResult",
    "RebalancingSchedule",
    "optimize_portfolio",
    "create_rebalancing_schedule",
    "ComprehensiveAnalysis",
    "perform_comprehensive_analysis",
    "PortfolioDocument",
    "load_document",
]
