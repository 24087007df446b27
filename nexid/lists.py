"""
Static trust/block lists keyed by IP, hashed email and user id.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Tuple


@dataclass(frozen=True)
class ListVerdict:
    """Outcome of a list lookup.

    `blocked` holds the single block reason code when any block list matched;
    `trusted` holds one reason code per matching trust list, in ip/email/user
    order.
    """
    blocked: Optional[str] = None
    trusted: Tuple[str, ...] = ()

    @property
    def kind(self) -> str:
        if self.blocked:
            return "blocked"
        if self.trusted:
            return "trusted"
        return "none"


@dataclass(frozen=True)
class ListSet:
    trusted_ips: FrozenSet[str] = field(default_factory=frozenset)
    blocked_ips: FrozenSet[str] = field(default_factory=frozenset)
    trusted_email_hashes: FrozenSet[str] = field(default_factory=frozenset)
    blocked_email_hashes: FrozenSet[str] = field(default_factory=frozenset)
    trusted_user_ids: FrozenSet[str] = field(default_factory=frozenset)
    blocked_user_ids: FrozenSet[str] = field(default_factory=frozenset)

    def classify(
        self,
        ip: str,
        email_hash: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> ListVerdict:
        # Block lists win outright; ip is reported before email before user.
        if ip in self.blocked_ips:
            return ListVerdict(blocked="blocked_ip")
        if email_hash and email_hash in self.blocked_email_hashes:
            return ListVerdict(blocked="blocked_email")
        if user_id and user_id in self.blocked_user_ids:
            return ListVerdict(blocked="blocked_user")

        trusted = []
        if ip in self.trusted_ips:
            trusted.append("trusted_ip")
        if email_hash and email_hash in self.trusted_email_hashes:
            trusted.append("trusted_email")
        if user_id and user_id in self.trusted_user_ids:
            trusted.append("trusted_user")
        return ListVerdict(trusted=tuple(trusted))
