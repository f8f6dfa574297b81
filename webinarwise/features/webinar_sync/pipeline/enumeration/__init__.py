"""
Webinar enumeration package.

Lists webinars for a connection across lifecycle types and expands
recurring webinars into their occurrences.
"""

from .service import WebinarEnumerator, compute_date_range

__all__ = ["WebinarEnumerator", "compute_date_range"]
