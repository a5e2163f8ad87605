"""
Assignment of resolved candidates into the fields of an object.
"""

import logging
from typing import Any, Callable

from .bean import Bean, FactoryDependency, Lifecycle
from .descriptors import InjectionDef, Multiplicity, type_name
from .exceptions import (
    AmbiguousDependencyError,
    DuplicateBeanError,
    InjectionError,
    MissingDependencyError
)

logger = logging.getLogger(__name__)

__all__ = ['Injection', 'filter_beans', 'sort_beans']


def filter_beans(definition: InjectionDef, beans: list[Bean]) -> list[Bean]:
    """Keep the beans named by the field qualifier, if it has one."""
    if definition.qualifier:
        return [b for b in beans if b.name == definition.qualifier]
    return list(beans)


def sort_beans(beans: list[Bean]) -> list[Bean]:
    """Ordered beans first by ascending order, then the rest in discovery order."""
    return sorted(beans, key=lambda b: (b.order is None, b.order if b.order is not None else 0))


def _accessor(bean: Bean) -> Callable[[], Any]:
    def get():
        if bean.lifecycle != Lifecycle.Initialized and bean.context is not None:
            bean.context._ensure_constructed(bean)
        return bean.obj

    get.__name__ = f"get_{bean.name}"
    return get


class Injection:
    """
    One field of one bean, bound to the candidates chosen for it.

    Attributes:
        bean:       Owner of the field; None for runtime injection.
        target:     The object receiving the value.
        definition: Field description.
    """

    __slots__ = ('bean', 'target', 'definition', '_entries')

    def __init__(self, target: Any, definition: InjectionDef, bean: Bean = None):
        self.bean = bean
        self.target = target
        self.definition = definition
        self._entries: list[Bean] = []

    def _set(self, value: Any) -> None:
        try:
            setattr(self.target, self.definition.field_name, value)
        except (AttributeError, TypeError) as e:
            raise InjectionError(
                f"field '{self.definition.field_name}' in class '{type_name(self.definition.owner)}' "
                f"is not writable, {e}") from e

    def _check_empty(self, beans: list[Bean]) -> bool:
        if beans:
            return False
        if not self.definition.optional:
            raise MissingDependencyError(
                f"can not find candidates to inject the required field '{self.definition.field_name}' "
                f"in class '{type_name(self.definition.owner)}'")
        return True

    def _assign_collection(self) -> None:
        ready = [b for b in self._entries if b.produced]
        if self.definition.multiplicity == Multiplicity.List:
            self._set([b.obj for b in sort_beans(ready)])
            return

        table = {}
        for b in ready:
            if b.name in table:
                raise DuplicateBeanError(
                    f"can not inject duplicates '{b.name}' to the map field '{self.definition.field_name}' "
                    f"in class '{type_name(self.definition.owner)}'")
            table[b.name] = b.obj
        self._set(table)

    def inject(self, candidates: list[Bean]) -> None:
        """
        Assign candidates while wiring a context.

        Non-factory values are assigned right away; factory products are
        registered as factory dependencies of the owner and assigned once
        produced. Non-lazy fields record dependency edges on the owner.
        """
        definition = self.definition
        beans = filter_beans(definition, candidates)
        if self._check_empty(beans):
            return

        if definition.collection:
            products = [b for b in beans if b.factory is not None]
            if products and definition.lazy:
                raise InjectionError(
                    f"lazy injection is not supported of type '{type_name(products[0].bean_class)}' "
                    f"through factory '{products[0].factory}' in to '{definition}'")
            self._entries = beans
            self._assign_collection()
            ready = [b for b in beans if b.factory is None]
            if ready and not definition.lazy:
                self.bean.dependencies.append(ready)
            for index, b in enumerate(beans):
                if b.factory is not None:
                    self.bean.factory_dependencies.append(
                        FactoryDependency(b.factory, self._replace_entry(index)))
            return

        if len(beans) > 1:
            raise AmbiguousDependencyError(
                f"field '{definition.field_name}' in class '{type_name(definition.owner)}' "
                f"can not be injected with multiple candidates {beans}")

        impl = beans[0]
        if impl.factory is not None:
            if definition.lazy:
                raise InjectionError(
                    f"lazy injection is not supported of type '{type_name(impl.bean_class)}' "
                    f"through factory '{impl.factory}' in to '{definition}'")
            self.bean.factory_dependencies.append(
                FactoryDependency(impl.factory, lambda produced: self._set(produced.obj)))
            return

        self._set(_accessor(impl) if definition.accessor else impl.obj)
        if not definition.lazy:
            self.bean.dependencies.append([impl])

    def _replace_entry(self, index: int) -> Callable[[Bean], None]:
        def injection(produced: Bean) -> None:
            self._entries[index] = produced
            self._assign_collection()

        return injection

    def inject_runtime(self, candidates: list[Bean]) -> None:
        """
        Assign candidates into an object that is not part of the context.

        Factory products are produced on demand; nothing is recorded.
        """
        definition = self.definition
        beans = filter_beans(definition, candidates)
        if self._check_empty(beans):
            return

        resolved = []
        for b in beans:
            if b.lifecycle != Lifecycle.Initialized and b.factory is None:
                raise InjectionError(
                    f"field '{definition.field_name}' in class '{type_name(definition.owner)}' "
                    f"can not be injected with non-initialized bean {b}")
            if b.factory is not None:
                b, _ = b.factory.produce()
            resolved.append(b)

        if definition.collection:
            self._entries = resolved
            self._assign_collection()
            return

        if len(resolved) > 1:
            raise AmbiguousDependencyError(
                f"field '{definition.field_name}' in class '{type_name(definition.owner)}' "
                f"can not be injected with multiple candidates {resolved}")

        impl = resolved[0]
        self._set(_accessor(impl) if definition.accessor else impl.obj)
