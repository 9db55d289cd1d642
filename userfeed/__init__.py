"""
userfeed - resilient, cached access to a paginated upstream users API.
"""

__version__ = "0.1.0"
