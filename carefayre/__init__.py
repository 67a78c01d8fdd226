"""
Care Fayre - a marketplace where care agencies bid on care requests.

Customers post care requests, agencies bid an hourly rate, and the accepted
bid becomes a job governed by a signed rate agreement and settled through
weekly timesheets.
"""

from .errors import MarketplaceError
from .marketplace import Marketplace

try:
    from importlib.metadata import version

    __version__ = version("carefayre")
except Exception:
    __version__ = "0.0.0"

__all__ = ["Marketplace", "MarketplaceError"]
