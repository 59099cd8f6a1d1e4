"""Per-run state: identifier maps, org id and the run clock."""

import logging
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional

from .models.pipeline import IdMapPolicy
from .utils import stringify

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class IdentifierMapStore:
    """
    Business key -> platform id maps, one per entity type.

    Entries are only ever added. When a business key is written again the
    merge policy decides which id is kept.
    """

    def __init__(self, policy: IdMapPolicy = IdMapPolicy.PREFER_EXISTING):
        self.policy = policy
        self._maps: Dict[str, Dict[str, str]] = {}

    def merge(self, entity_type: str, new_entries: Mapping[Any, str]) -> int:
        """
        Merge committed identifiers for an entity type.

        Returns:
            Number of entries that were added or replaced
        """
        bucket = self._maps.setdefault(entity_type, {})
        changed = 0
        for key, platform_id in new_entries.items():
            key = stringify(key)
            if key in bucket:
                if self.policy == IdMapPolicy.PREFER_EXISTING or bucket[key] == platform_id:
                    continue
                logger.debug(f"{entity_type}[{key}]: replacing {bucket[key]} with {platform_id}")
            bucket[key] = platform_id
            changed += 1
        return changed

    def get(self, entity_type: str, business_key: Any) -> Optional[str]:
        return self._maps.get(entity_type, {}).get(stringify(business_key))

    def view(self) -> Mapping[str, Mapping[str, str]]:
        """Read-only view of all maps for resolvers and generators."""
        return MappingProxyType({
            entity: MappingProxyType(bucket) for entity, bucket in self._maps.items()
        })

    def to_dict(self) -> Dict[str, Dict[str, str]]:
        """Plain copy of all maps."""
        return {entity: dict(bucket) for entity, bucket in self._maps.items()}

    def __contains__(self, entity_type: str) -> bool:
        return entity_type in self._maps

    def __len__(self) -> int:
        return sum(len(b) for b in self._maps.values())


class RunContext:
    """Everything a single load run shares across steps, passed explicitly."""

    def __init__(
        self,
        env: str = "dev",
        dry_run: bool = False,
        id_map_policy: IdMapPolicy = IdMapPolicy.PREFER_EXISTING,
        constants: Optional[Dict[str, Any]] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.env = env
        self.dry_run = dry_run
        self.constants = constants or {}
        self.identifier_maps = IdentifierMapStore(id_map_policy)
        self.clock = clock
        self._org_id: Optional[str] = None

    @property
    def org_id(self) -> Optional[str]:
        return self._org_id

    @org_id.setter
    def org_id(self, value: str) -> None:
        if not value or not isinstance(value, str):
            raise ValueError("org id must be a non-empty string")
        self._org_id = value.strip()
