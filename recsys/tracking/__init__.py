"""Tracking module for recommendation outcomes and A/B experiments."""

from recsys.tracking.experiments import (
    TRANSITIONS,
    analyze_experiment,
    assign_variant,
    assignment_point,
    validate_experiment,
)
from recsys.tracking.models import (
    ABTestResults,
    Experiment,
    Feedback,
    OptimizationSuggestion,
    PerformanceMetrics,
    PerformanceReport,
    Priority,
    Sentiment,
    SuggestionType,
    Variant,
    VariantComparison,
    VariantPerformance,
)
from recsys.tracking.reports import ReportFilters, build_report
from recsys.tracking.stats import confidence_interval, normal_cdf, two_proportion_z_test
from recsys.tracking.suggestions import generate_suggestions
from recsys.tracking.tracker import PerformanceTracker

__all__ = [
    # Models
    "ABTestResults",
    "Experiment",
    "Feedback",
    "OptimizationSuggestion",
    "PerformanceMetrics",
    "PerformanceReport",
    "Priority",
    "Sentiment",
    "SuggestionType",
    "Variant",
    "VariantComparison",
    "VariantPerformance",
    # Experiments
    "TRANSITIONS",
    "analyze_experiment",
    "assign_variant",
    "assignment_point",
    "validate_experiment",
    # Reports
    "ReportFilters",
    "build_report",
    # Statistics
    "confidence_interval",
    "normal_cdf",
    "two_proportion_z_test",
    # Suggestions
    "generate_suggestions",
    # Tracker
    "PerformanceTracker",
]
