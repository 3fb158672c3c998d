"""
WEMS datasource backend.

Lets a dashboarding host query the WAGO energy-management (WEMS) API:
bearer-token lifecycle, time-series queries and the cascading resource
lists (endpoints, appliances, services, data points).
"""

from .__version__ import __version__, __wire_format_version__

__all__ = ["__version__", "__wire_format_version__"]
