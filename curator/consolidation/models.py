"""
Consolidation data model.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Tuple

from curator.errors import ValidationError


class EntityKind(Enum):
    """Kinds of Paperless metadata that can be consolidated."""
    TAGS = 'tags'
    CORRESPONDENTS = 'correspondents'
    DOCUMENT_TYPES = 'document_types'

    @property
    def endpoint(self) -> str:
        return f'/api/{self.value}/'

    @property
    def document_field(self) -> str:
        """Field on a document that references this kind."""
        return {
            EntityKind.TAGS: 'tags',
            EntityKind.CORRESPONDENTS: 'correspondent',
            EntityKind.DOCUMENT_TYPES: 'document_type',
        }[self]

    @property
    def document_filter(self) -> str:
        """Query parameter selecting documents that reference one entity."""
        return {
            EntityKind.TAGS: 'tags__id__all',
            EntityKind.CORRESPONDENTS: 'correspondent__id',
            EntityKind.DOCUMENT_TYPES: 'document_type__id',
        }[self]

    @property
    def multi_valued(self) -> bool:
        return self is EntityKind.TAGS

    @property
    def label(self) -> str:
        return self.value.replace('_', ' ')

    @classmethod
    def parse(cls, value) -> 'EntityKind':
        """Accept an EntityKind or names like 'tags', 'tag', 'document-type'."""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower().replace('-', '_')
        if not normalized.endswith('s'):
            normalized += 's'
        try:
            return cls(normalized)
        except ValueError:
            raise ValidationError(f"Unknown entity kind: {value!r}") from None


@dataclass(frozen=True)
class NamedEntity:
    """A tag, correspondent or document type as seen during one run."""
    id: int
    name: str
    document_count: int = 0

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValidationError(f"Entity {self.id} has an empty name")
        if self.document_count < 0:
            raise ValidationError(f"Entity {self.id} has a negative document count")

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'NamedEntity':
        """Build from a Paperless JSON record."""
        try:
            entity_id = int(data['id'])
        except (KeyError, TypeError, ValueError):
            raise ValidationError(f"Entity record without a usable id: {data!r}") from None
        try:
            document_count = int(data.get('document_count') or 0)
        except (TypeError, ValueError):
            raise ValidationError(f"Entity {entity_id} has an invalid document count") from None
        return cls(id=entity_id, name=data.get('name'), document_count=document_count)


# Ordered by discovery, always at least two members
SimilarityGroup = List[NamedEntity]


@dataclass(frozen=True)
class MergePlan:
    """Merge the `retire` entities into `primary`."""
    primary: NamedEntity
    retire: Tuple[NamedEntity, ...]

    def __post_init__(self):
        if not self.retire:
            raise ValidationError("A merge plan needs at least one entity to retire")
        if self.primary.id in self.retire_ids:
            raise ValidationError(f"Primary entity {self.primary.id} cannot also be retired")

    @property
    def retire_ids(self) -> FrozenSet[int]:
        return frozenset(e.id for e in self.retire)

    @property
    def entity_ids(self) -> FrozenSet[int]:
        return self.retire_ids | {self.primary.id}


@dataclass(frozen=True)
class DocumentReferences:
    """A document and the entity ids of one kind it currently carries."""
    id: int
    reference_ids: FrozenSet[int]


@dataclass
class MergeOutcome:
    """Result of applying one merge plan."""
    plan: MergePlan
    updated_documents: List[int] = field(default_factory=list)
    deleted_ids: List[int] = field(default_factory=list)
    kept_ids: List[int] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            'primary_id': self.plan.primary.id,
            'primary_name': self.plan.primary.name,
            'retire_ids': sorted(self.plan.retire_ids),
            'success': self.success,
            'updated_documents': list(self.updated_documents),
            'deleted_ids': list(self.deleted_ids),
            'kept_ids': list(self.kept_ids),
            'errors': list(self.errors),
        }
