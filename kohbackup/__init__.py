"""KOH backup and restore tool for JTL-Shop style web projects."""

__version__ = "2.1.0"
__author__ = "KOH Team"
