"""Classify relationships relative to the entity being viewed."""

from dataclasses import dataclass
from typing import Iterable, Optional

from metascope.models import RelationshipDirection, RelationshipMetadata


@dataclass(frozen=True)
class ClassifiedRelationship:
    name: str
    direction: RelationshipDirection
    related_entity: str
    attribute: Optional[str] = None
    intersect_entity: Optional[str] = None

    @property
    def search_text(self) -> str:
        return f"{self.name} {self.related_entity}"


def classify_relationship(
    entity: str,
    relationship: RelationshipMetadata,
) -> list[ClassifiedRelationship]:
    """Return the direction(s) of *relationship* as seen from *entity*.

    A self-referential 1:N relationship is both 1:N and N:1 from the
    entity's point of view, so it yields two rows. Relationships that do
    not touch the entity yield nothing.
    """
    name = relationship.name
    if relationship.is_many_to_many:
        first = relationship.entity1_logical_name
        second = relationship.entity2_logical_name
        if entity not in (first, second):
            return []
        other = second if first == entity else first
        return [
            ClassifiedRelationship(
                name=name,
                direction=RelationshipDirection.MANY_TO_MANY,
                related_entity=other or entity,
                intersect_entity=relationship.intersect_entity_name,
            )
        ]

    rows: list[ClassifiedRelationship] = []
    if relationship.referenced_entity == entity:
        rows.append(
            ClassifiedRelationship(
                name=name,
                direction=RelationshipDirection.ONE_TO_MANY,
                related_entity=relationship.referencing_entity or "?",
                attribute=relationship.referencing_attribute,
            )
        )
    if relationship.referencing_entity == entity:
        rows.append(
            ClassifiedRelationship(
                name=name,
                direction=RelationshipDirection.MANY_TO_ONE,
                related_entity=relationship.referenced_entity or "?",
                attribute=relationship.referencing_attribute,
            )
        )
    return rows


DIRECTION_ORDER = {
    RelationshipDirection.ONE_TO_MANY: 0,
    RelationshipDirection.MANY_TO_ONE: 1,
    RelationshipDirection.MANY_TO_MANY: 2,
}


def classify_relationships(
    entity: str,
    relationships: Iterable[RelationshipMetadata],
) -> list[ClassifiedRelationship]:
    """Classify and deduplicate, grouped 1:N, N:1, N:N then by name."""
    seen: set[tuple[str, RelationshipDirection]] = set()
    result: list[ClassifiedRelationship] = []
    for relationship in relationships:
        for row in classify_relationship(entity, relationship):
            key = (row.name, row.direction)
            if key in seen:
                continue
            seen.add(key)
            result.append(row)
    result.sort(key=lambda r: (DIRECTION_ORDER[r.direction], r.name.lower()))
    return result
