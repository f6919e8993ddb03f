"""
Role resolution.

Maps an address to exactly one global role. Precedence is fixed:

    owner  >  admin (first institution, ascending id)
           >  validator (first institution, ascending id)
           >  reporter (default)

Malformed or zero addresses, and scans the ledger cannot answer, resolve to
unknown. The global role collapses per-institution membership into one
value; roles_by_institution() exposes the full map for callers that need
per-institution authorization.

Resolved roles are kept in an advisory TTL cache. The cache is only read by
cached_role() (stale-role detection) and never gates a write.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from reportchain.cache import TTLCache
from reportchain.errors import PreconditionError
from reportchain.ledger import LedgerError
from reportchain.observability import Layer, get_logger
from reportchain.registry import RegistryReader
from reportchain.sanitizer import normalize_address, same_address

log = get_logger("roles", Layer.ROLES)


class Role(Enum):
    OWNER = "owner"
    ADMIN = "admin"
    VALIDATOR = "validator"
    REPORTER = "reporter"
    UNKNOWN = "unknown"


@dataclass
class InstitutionRoles:
    """Membership of one address in one institution."""
    institution_id: int
    name: Any
    is_admin: bool = False
    is_validator: bool = False
    is_reporter: bool = False

    @property
    def roles(self) -> List[Role]:
        out = []
        if self.is_admin:
            out.append(Role.ADMIN)
        if self.is_validator:
            out.append(Role.VALIDATOR)
        if self.is_reporter:
            out.append(Role.REPORTER)
        return out

    def to_dict(self) -> Dict[str, Any]:
        return {
            "institution_id": self.institution_id,
            "name": self.name if isinstance(self.name, str) else None,
            "roles": [r.value for r in self.roles],
        }


def _usable(address: Any) -> Optional[str]:
    normalized = normalize_address(address)
    if normalized is None or int(normalized, 16) == 0:
        return None
    return normalized


class RoleIndex:
    """
    Address -> first admin / validator institution, built from one full scan.

    Must agree with the linear scan; rebuilt lazily after invalidate().
    """

    def __init__(self, reader: RegistryReader):
        self.reader = reader
        self._admins: Dict[str, int] = {}
        self._validators: Dict[str, int] = {}
        self._built = False

    @property
    def built(self) -> bool:
        return self._built

    async def build(self) -> None:
        count = await self.reader.institution_count()
        ids = range(1, count + 1)
        institutions = await asyncio.gather(*(self.reader.institution(i) for i in ids))
        validator_lists = await asyncio.gather(*(self.reader.validator_list(i) for i in ids))

        admins: Dict[str, int] = {}
        validators: Dict[str, int] = {}
        for institution, members in zip(institutions, validator_lists):
            admin = _usable(institution.admin)
            if admin:
                admins.setdefault(admin, institution.institution_id)
            for member in members:
                member = _usable(member)
                if member:
                    validators.setdefault(member, institution.institution_id)

        self._admins, self._validators = admins, validators
        self._built = True
        log.debug("role index built", institutions=count, admins=len(admins), validators=len(validators))

    async def lookup(self, address: str) -> Role:
        if not self._built:
            await self.build()
        if address in self._admins:
            return Role.ADMIN
        if address in self._validators:
            return Role.VALIDATOR
        return Role.REPORTER

    def invalidate(self) -> None:
        self._built = False


class RoleResolver:
    """Resolves an address to its global role."""

    def __init__(
        self,
        reader: RegistryReader,
        owner_address: str,
        use_index: bool = False,
        cache_ttl_seconds: float = 30.0,
    ):
        self.reader = reader
        self.owner_address = (owner_address or "").lower()
        self.index: Optional[RoleIndex] = RoleIndex(reader) if use_index else None
        self._cache: TTLCache[str, Role] = TTLCache(
            max_size=4096,
            default_ttl_seconds=cache_ttl_seconds,
            on_invalidate=self._on_role_dropped,
        )

    async def resolve_role(self, address: Any) -> Role:
        role = await self.fresh_role(address)
        if role is not Role.UNKNOWN:
            self._cache.set(_usable(address), role)
        return role

    async def fresh_role(self, address: Any) -> Role:
        """Resolve without reading or writing the cache."""
        normalized = _usable(address)
        if normalized is None:
            return Role.UNKNOWN
        if same_address(normalized, self.owner_address):
            return Role.OWNER
        try:
            if self.index is not None:
                return await self.index.lookup(normalized)
            return await self.scan_role(normalized)
        except LedgerError as e:
            log.warning("role scan failed", address=normalized, error=str(e))
            return Role.UNKNOWN

    async def scan_role(self, address: str) -> Role:
        """Linear scan in ascending institution id; ledger errors propagate."""
        count = await self.reader.institution_count()
        ids = list(range(1, count + 1))

        institutions = await asyncio.gather(*(self.reader.institution(i) for i in ids))
        for institution in institutions:
            if same_address(institution.admin, address):
                return Role.ADMIN

        flags = await asyncio.gather(*(self.reader.is_validator(i, address) for i in ids))
        for flag in flags:
            if flag:
                return Role.VALIDATOR
        return Role.REPORTER

    def cached_role(self, address: Any) -> Optional[Role]:
        normalized = _usable(address)
        if normalized is None:
            return None
        return self._cache.get(normalized)

    async def roles_by_institution(self, address: Any) -> Dict[int, InstitutionRoles]:
        """Per-institution membership of an address; institutions without any are omitted."""
        normalized = _usable(address)
        if normalized is None:
            raise PreconditionError("INVALID_ADDRESS", f"{address!r} is not a usable address")

        count = await self.reader.institution_count()
        ids = list(range(1, count + 1))
        institutions, validator_flags, reporter_flags = await asyncio.gather(
            asyncio.gather(*(self.reader.institution(i) for i in ids)),
            asyncio.gather(*(self.reader.is_validator(i, normalized) for i in ids)),
            asyncio.gather(*(self.reader.is_reporter(i, normalized) for i in ids)),
        )

        out: Dict[int, InstitutionRoles] = {}
        for institution, is_validator, is_reporter in zip(institutions, validator_flags, reporter_flags):
            entry = InstitutionRoles(
                institution_id=institution.institution_id,
                name=institution.name,
                is_admin=same_address(institution.admin, normalized),
                is_validator=is_validator,
                is_reporter=is_reporter,
            )
            if entry.roles:
                out[institution.institution_id] = entry
        return out

    def _on_role_dropped(self, address: str) -> None:
        log.debug("cached role dropped", address=address)

    def invalidate(self, address: Optional[str] = None) -> None:
        """Drop cached roles (one address or all) and the index."""
        if address is None:
            dropped = self._cache.clear()
            log.debug("role cache cleared", dropped=dropped, **self._cache.stats.to_dict())
        else:
            self._cache.invalidate(address.lower())
        if self.index is not None:
            self.index.invalidate()
