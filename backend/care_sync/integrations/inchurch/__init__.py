"""
InChurch Integration.

Rate limited, retrying client for the InChurch member-management API.
"""

from .client import InChurchClient, InvalidMember, MemberPage
from .errors import InChurchError, InvalidResponseError, create_inchurch_error
from .schema import Address, MemberFilters, Pagination, RemoteGroup, RemoteMember

__all__ = [
    "InChurchClient",
    "InvalidMember",
    "MemberPage",
    "InChurchError",
    "InvalidResponseError",
    "create_inchurch_error",
    "Address",
    "MemberFilters",
    "Pagination",
    "RemoteGroup",
    "RemoteMember",
]
