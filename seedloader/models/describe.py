"""Field-description snapshot models for target entities."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class FieldInfo:
    """Description of one field on a target entity."""
    name: str
    type: str = "string"
    label: str = ""
    nillable: bool = True
    createable: bool = True
    updateable: bool = True
    external_id: bool = False
    id_lookup: bool = False
    defaulted_on_create: bool = False
    reference_to: List[str] = field(default_factory=list)

    @property
    def required_on_create(self) -> bool:
        """Fields the platform rejects an insert without."""
        return (
            self.createable
            and not self.nillable
            and not self.defaulted_on_create
            and self.type != "boolean"
        )

    def writable_for(self, operation: str) -> bool:
        """Whether the field may be sent for the given write operation."""
        if operation == "insert":
            return self.createable
        if operation == "update":
            return self.updateable
        # Upserts may create or update
        return self.createable or self.updateable

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation (describe snapshot keys)."""
        return {
            "name": self.name,
            "type": self.type,
            "label": self.label,
            "nillable": self.nillable,
            "createable": self.createable,
            "updateable": self.updateable,
            "externalId": self.external_id,
            "idLookup": self.id_lookup,
            "defaultedOnCreate": self.defaulted_on_create,
            "referenceTo": list(self.reference_to),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldInfo":
        """Create from a describe snapshot field entry."""
        return cls(
            name=data.get("name", ""),
            type=data.get("type", "string"),
            label=data.get("label", ""),
            nillable=data.get("nillable", True),
            createable=data.get("createable", True),
            updateable=data.get("updateable", True),
            external_id=data.get("externalId", False),
            id_lookup=data.get("idLookup", False),
            defaulted_on_create=data.get("defaultedOnCreate", False),
            reference_to=list(data.get("referenceTo") or []),
        )


@dataclass
class EntityDescribe:
    """Snapshot of an entity's fields."""
    name: str
    fields: Dict[str, FieldInfo] = field(default_factory=dict)
    label: str = ""

    def get_field(self, name: str) -> Optional[FieldInfo]:
        """Look up a field by name (case-insensitive, as the platform treats names)."""
        if name in self.fields:
            return self.fields[name]
        lowered = name.lower()
        for field_name, info in self.fields.items():
            if field_name.lower() == lowered:
                return info
        return None

    def has_field(self, name: str) -> bool:
        return self.get_field(name) is not None

    @property
    def field_names(self) -> List[str]:
        return list(self.fields.keys())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "label": self.label,
            "fields": [f.to_dict() for f in self.fields.values()],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], name: Optional[str] = None) -> "EntityDescribe":
        """Create from a describe snapshot (``fields`` as a list or a name-keyed object)."""
        raw_fields = data.get("fields") or []
        if isinstance(raw_fields, dict):
            raw_fields = [dict(v, name=v.get("name", k)) for k, v in raw_fields.items()]

        fields = {}
        for entry in raw_fields:
            if isinstance(entry, dict) and entry.get("name"):
                info = FieldInfo.from_dict(entry)
                fields[info.name] = info

        return cls(
            name=data.get("name") or name or "",
            fields=fields,
            label=data.get("label", ""),
        )
