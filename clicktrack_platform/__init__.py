"""
clicktrack_platform package initializer.
"""

from . import analytics
from . import cloak
from . import manager
from . import resolver
from . import storage
from . import web

__all__ = ["analytics", "cloak", "manager", "resolver", "storage", "web"]
