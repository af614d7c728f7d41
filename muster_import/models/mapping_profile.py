from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from .column_mapping import ColumnMapping

"""MappingProfile: a named, reusable column mapping for a recurring workbook layout.

Profiles belong to the operator's local machine, not to a company record.
"""

__all__ = [
    "MappingProfile",
]


@dataclass(frozen=True)
class MappingProfile:
    name: str  # unique, operator chosen
    mapping: ColumnMapping
    created_at: datetime

    @staticmethod
    def create(name: str, mapping: ColumnMapping) -> MappingProfile:
        return MappingProfile(name=name, mapping=mapping, created_at=datetime.now(UTC))

    def to_json_obj(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "mapping": self.mapping.to_dict(),
            "timestamp": int(self.created_at.timestamp() * 1000),
        }

    @staticmethod
    def from_json_obj(data: dict[str, Any]) -> MappingProfile:
        # timestamp is epoch milliseconds
        created = datetime.fromtimestamp(int(data.get("timestamp", 0)) / 1000, tz=UTC)
        return MappingProfile(
            name=str(data["name"]),
            mapping=ColumnMapping.from_dict(data.get("mapping") or {}),
            created_at=created,
        )
