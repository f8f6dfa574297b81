"""
Pipeline stages for webinar sync.

enumeration lists webinars, reconciliation turns raw attendance into
canonical participants, metrics derives per-webinar aggregates.
"""

__all__ = ["enumeration", "reconciliation", "metrics"]
