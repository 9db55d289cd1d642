"""
Upstream data sources.
"""

from userfeed.datasource.base import BaseDataSource
from userfeed.datasource.users import (
    UserDto,
    UserEnvelopeDto,
    UsersPageDto,
    UsersSource,
    to_user,
)

__all__ = [
    "BaseDataSource",
    "UserDto",
    "UserEnvelopeDto",
    "UsersPageDto",
    "UsersSource",
    "to_user",
]
