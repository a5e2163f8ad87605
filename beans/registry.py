"""
Fast search of beans by type and by name.
"""

import logging
from threading import Lock
from typing import Iterable, Optional

from .bean import Bean

logger = logging.getLogger(__name__)

__all__ = ['Registry']


class Registry:
    """
    Thread-safe index from type and from name to bean lists.

    Reads take no lock: values are tuples that are replaced, never mutated,
    so a reader sees either the old or the new list. Writes are serialized.
    """

    __slots__ = ('_by_type', '_by_name', '_lock')

    def __init__(self):
        self._by_type: dict[type, tuple[Bean, ...]] = {}
        self._by_name: dict[str, tuple[Bean, ...]] = {}
        self._lock = Lock()

    def find_by_type(self, iface: type) -> Optional[tuple[Bean, ...]]:
        return self._by_type.get(iface)

    def find_by_name(self, name: str) -> Optional[tuple[Bean, ...]]:
        return self._by_name.get(name)

    def add_bean_list(self, iface: type, beans: Iterable[Bean]) -> tuple[Bean, ...]:
        """
        Register beans under a type.

        The first registration of a type wins; later calls return it unchanged.
        """
        beans = tuple(beans)
        # Fast path: type already cached
        existing = self._by_type.get(iface)
        if existing is not None:
            return existing

        with self._lock:
            existing = self._by_type.get(iface)
            if existing is not None:
                return existing
            self._by_type[iface] = beans
            return beans

    def add_names(self, name: str, beans: Iterable[Bean]) -> tuple[Bean, ...]:
        """Register beans found by a name scan, unless the name is already cached."""
        beans = tuple(beans)
        existing = self._by_name.get(name)
        if existing is not None:
            return existing

        with self._lock:
            existing = self._by_name.get(name)
            if existing is not None:
                return existing
            self._by_name[name] = beans
            return beans

    def add_bean_by_name(self, bean: Bean) -> None:
        """Append a newly produced bean to its name, if that name is already cached."""
        with self._lock:
            current = self._by_name.get(bean.name)
            if current is not None and bean not in current:
                self._by_name[bean.name] = current + (bean,)

    def __len__(self):
        return len(self._by_type)
