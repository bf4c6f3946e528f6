"""
Kiosk Module
"""
from .service import KioskService, KioskVisit, classify_code

__all__ = ["KioskService", "KioskVisit", "classify_code"]
