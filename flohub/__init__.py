"""FloHub: multi-source calendar aggregation service.

Users register calendar sources (Google, Microsoft 365, Power Automate
webhooks, iCal feeds); FloHub fetches them concurrently, normalises every
event into one shape, and serves the merged result over a small JSON API.
"""

__version__ = "1.0.0"
__author__ = "FloHub Team"

__all__ = ["__version__"]
