"""
Catalog port used to expand category-restricted discounts.

The discount engine only sees product ids; the application layer resolves
category membership through this port before asking whether a discount
applies.
"""
from __future__ import annotations

from typing import Iterable, Protocol, runtime_checkable


@runtime_checkable
class CatalogPort(Protocol):
    async def product_ids_in_categories(self, category_ids: Iterable[int]) -> set[int]: ...


class StaticCatalog:
    """In-memory category -> product mapping (tests, fixtures, small stores)."""

    def __init__(self, categories: dict[int, Iterable[int]] | None = None) -> None:
        self._categories = {cid: set(pids) for cid, pids in (categories or {}).items()}

    async def product_ids_in_categories(self, category_ids: Iterable[int]) -> set[int]:
        result: set[int] = set()
        for cid in category_ids:
            result |= self._categories.get(cid, set())
        return result
