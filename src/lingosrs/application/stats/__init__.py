# Application Stats Package
from .metrics_calculator import MetricsCalculator, apply_streak
from .service import ProgressAggregator

__all__ = ["MetricsCalculator", "ProgressAggregator", "apply_streak"]
