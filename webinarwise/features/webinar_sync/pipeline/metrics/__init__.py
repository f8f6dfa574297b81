"""
Webinar metrics package.

Derives per-webinar aggregates from persisted participant and registrant
rows.
"""

from .service import MetricsCalculator, calculate_engagement_score, compute_webinar_metrics

__all__ = ["MetricsCalculator", "calculate_engagement_score", "compute_webinar_metrics"]
