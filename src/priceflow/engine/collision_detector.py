"""
Collision Detector - Finds active templates that claim the same scope.

A collision means more than one template is eligible for the same
product. It is reported for the merchant to review; resolving it at
request time is the scope matcher's job.
"""
from typing import Iterable, Optional

from .models import CollisionGroup, ScopeType, Template

GLOBAL_KEY = "GLOBAL:*"


def scope_keys(template: Template) -> list[str]:
    """Scope keys a template covers: "GLOBAL:*" or one "{TYPE}:{value}" per value."""
    if template.scope_type == ScopeType.GLOBAL:
        return [GLOBAL_KEY]
    return [f"{template.scope_type.value}:{value}" for value in dict.fromkeys(template.scope_values)]


def _split_key(key: str) -> tuple[ScopeType, Optional[str]]:
    scope_type, _, value = key.partition(':')
    return ScopeType(scope_type), (None if key == GLOBAL_KEY else value)


def detect_collisions(templates: Iterable[Template]) -> list[CollisionGroup]:
    """
    Group active templates by scope key and return the groups with more
    than one member, in first-seen key order.
    """
    groups: dict[str, list[Template]] = {}

    for template in templates:
        if not template.is_active:
            continue
        for key in scope_keys(template):
            groups.setdefault(key, []).append(template)

    collisions = []
    for key, members in groups.items():
        if len(members) > 1:
            scope_type, scope_value = _split_key(key)
            collisions.append(CollisionGroup(
                scope_type=scope_type,
                scope_value=scope_value,
                templates=members,
            ))
    return collisions
