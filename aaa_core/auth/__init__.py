# Package: aaa_core.auth
"""Subscriber credentials, reply attributes and group policy."""

from __future__ import annotations

from .credential_store import CredentialStore
from .group_store import PolicyGroupStore
from .models import Credential, GroupAttribute, GroupMembership, ReplyAttribute
from .reply_store import ReplyAttributeStore

__all__ = [
    "CredentialStore",
    "ReplyAttributeStore",
    "PolicyGroupStore",
    "Credential",
    "ReplyAttribute",
    "GroupAttribute",
    "GroupMembership",
]
