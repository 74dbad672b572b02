# Collaborator interfaces
from .member_store import DuplicateMemberError, MemberStore, MemberStoreError

__all__ = ["DuplicateMemberError", "MemberStore", "MemberStoreError"]
