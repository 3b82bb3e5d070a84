from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

from listing_pipeline.schemas.jobs import CategoryResolution


log = logging.getLogger(__name__)


@runtime_checkable
class CategoryResolver(Protocol):
    """
    External collaborator: turns a human category path into ids.
    The pipeline calls it once per submission and never caches the answer.
    """

    async def resolve(self, path: Sequence[str]) -> CategoryResolution:
        ...


@dataclass(frozen=True)
class CategoryNode:
    id: int
    name: str
    children: list["CategoryNode"] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "CategoryNode":
        # category services answer with either "children" or "subcategories"
        kids = raw.get("children") or raw.get("subcategories") or []
        return cls(id=int(raw["id"]), name=str(raw["name"]), children=[cls.from_dict(k) for k in kids])


class TreeCategoryResolver:
    """
    Walks an already-loaded category tree level by level. A level that does not
    match stops the walk; the deepest matched node becomes the leaf id.
    """

    def __init__(self, roots: Sequence[CategoryNode]):
        self._roots = list(roots)

    @classmethod
    def from_dicts(cls, raw: Sequence[Mapping[str, Any]]) -> "TreeCategoryResolver":
        return cls([CategoryNode.from_dict(r) for r in raw])

    async def resolve(self, path: Sequence[str]) -> CategoryResolution:
        parts = [p.strip() for p in path if p and p.strip()]
        if not parts:
            return CategoryResolution.empty()

        level = self._roots
        ids: list[int] = []
        for depth, part in enumerate(parts):
            node = next((n for n in level if n.name == part), None)
            if node is None:
                if depth == 0:
                    log.warning("main category not found: %s", part)
                    return CategoryResolution.empty()
                log.warning("category level %d not found: %s", depth + 1, part)
                break
            ids.append(node.id)
            level = node.children

        return CategoryResolution(category_id=ids[-1], category_path=ids)
