"""
beans – dependency injection context

Provides:
- Scanning of ready-made instances, nested lists, scanners and factory beans
- Field injection by concrete type, by interface and by bean name
- List and map injection with ordering, optional and lazy fields
- Dependency-ordered post-construct hooks with cycle detection
- Hierarchical contexts and reverse-order destruction on close
"""

import inspect
import logging
from threading import Lock
from typing import Any, Callable, Iterator, Optional

from .bean import Bean, Factory, Lifecycle
from .capabilities import DisposableBean, FactoryBean, InitializingBean, Scanner
from .descriptors import VALUE_TYPES, BeanDescriptor, describe, type_name
from .exceptions import (
    BeanError,
    CyclicDependencyError,
    DestroyError,
    FactoryError,
    InjectionError,
    MissingDependencyError,
    PostConstructError,
    ScanError
)
from .injection import Injection
from .registry import Registry

logger = logging.getLogger(__name__)

__all__ = ['Context', 'create']


def create(*scan, verbose: bool = False) -> 'Context':
    """
    Create a context from instances, lists of instances, scanners and factory beans.

    Every injectable field is resolved, every bean is constructed in
    dependency order and the ready context is returned. On failure the
    partially built context is closed and the error is raised.
    """
    return Context._create(None, scan, verbose)


def _is_scanner(item) -> bool:
    # the protocol check only sees an attribute named beans
    return (
        not isinstance(item, type)
        and isinstance(item, Scanner)
        and callable(getattr(item, 'beans', None))
    )


def _flatten(initial_pos: str, scan) -> Iterator[tuple[str, Any]]:
    for j, item in enumerate(scan):
        pos = f"{initial_pos}.{j}" if initial_pos else str(j)
        if item is None:
            logger.debug("Skip null object on position '%s'", pos)
            continue
        if isinstance(item, (list, tuple)):
            yield from _flatten(pos, item)
        elif _is_scanner(item):
            try:
                beans = item.beans()
            except Exception as e:
                raise ScanError(f"scanner '{type_name(type(item))}' on position '{pos}' error, {e}") from e
            yield from _flatten(pos, beans or [])
        else:
            yield pos, item


def _expand(beans) -> list[Bean]:
    # a factory placeholder stands for every instance its factory produced
    result = []
    for b in beans:
        if b.factory is not None and b is b.factory.instances[0]:
            result.extend(b.factory.instances)
        else:
            result.append(b)
    return result


class Context:
    """
    A container of scanned beans.

    Attributes:
        parent:   Optional parent context searched according to field levels.
    """

    __slots__ = (
        '_parent', '_core', '_registry', '_disposables', '_disposables_lock',
        '_destroy_lock', '_closed', '_verbose'
    )

    def __init__(self, parent: Optional['Context'] = None, verbose: bool = False):
        self._parent = parent
        self._verbose = verbose
        # all beans scanned on creation, no modifications afterwards
        self._core: dict[type, list[Bean]] = {}
        self._registry = Registry()
        # beans to destroy on close, in initialization order
        self._disposables: list[Bean] = []
        self._disposables_lock = Lock()
        self._destroy_lock = Lock()
        self._closed = False

        ctx_bean = Bean(
            BeanDescriptor(type(self), []),
            obj=self,
            lifecycle=Lifecycle.Initialized,
            context=self
        )
        self._core[type(self)] = [ctx_bean]

    @classmethod
    def _create(cls, parent: Optional['Context'], scan, verbose: bool) -> 'Context':
        ctx = cls(parent, verbose)
        injections = ctx._scan(scan)
        ctx._resolve(injections)

        try:
            ctx._post_construct()
        except Exception:
            try:
                ctx.close()
            except DestroyError as e:
                logger.warning("Error closing context after failed construction: %s", e)
            raise

        ctx._trace("Created %s", ctx)
        return ctx

    def _trace(self, msg: str, *args) -> None:
        logger.log(logging.INFO if self._verbose else logging.DEBUG, msg, *args)

    @property
    def parent(self) -> Optional['Context']:
        return self._parent

    def extend(self, *scan, verbose: Optional[bool] = None) -> 'Context':
        """Create a child context with additional beans, based on this one."""
        return Context._create(self, scan, self._verbose if verbose is None else verbose)

    def core(self) -> list[type]:
        """Types of every bean registered on creation of this context."""
        return list(self._core.keys())

    # ------------------------------------------------------------------
    # scan

    def _scan(self, scan) -> list[Injection]:
        injections = []
        for pos, obj in _flatten('', scan):
            try:
                injections.extend(self._register(pos, obj))
            except ScanError:
                raise
            except Exception as e:
                raise ScanError(f"object '{type_name(type(obj))}' on position '{pos}' error, {e}") from e
        return injections

    def _register(self, pos: str, obj: Any) -> list[Injection]:
        if isinstance(obj, type):
            raise ScanError(
                f"class '{type_name(obj)}' on position '{pos}' is not allowed, "
                f"instance must be reference-shaped, could be an object or a function")

        if isinstance(obj, VALUE_TYPES):
            raise ScanError(
                f"non-reference instance on position '{pos}' of type '{type_name(type(obj))}' is not allowed, "
                f"could be an object or a function")

        if inspect.isroutine(obj):
            self._register_function(pos, obj)
            return []

        cls = type(obj)
        try:
            descriptor = describe(cls)
        except ScanError as e:
            raise type(e)(f"object '{type_name(cls)}' on position '{pos}' error, {e}") from e

        bean = Bean(descriptor, obj=obj, lifecycle=Lifecycle.Created, context=self)

        if isinstance(obj, FactoryBean) and FactoryBean not in descriptor.not_implements:
            object_type = obj.object_type()
            if not isinstance(object_type, type) or issubclass(object_type, VALUE_TYPES):
                raise ScanError(
                    f"factory bean '{type_name(cls)}' on position '{pos}' can produce object or interface, "
                    f"but object type is '{object_type}'")

            object_name = getattr(obj, 'object_name', None)
            factory = Factory(bean, obj, object_name() if callable(object_name) else None)
            # allocate the product now, so injections can refer to it before it exists
            placeholder = factory.placeholder(BeanDescriptor(object_type, []), self)
            self._register_bean(object_type, placeholder)
            self._trace("FactoryBean %s produce %s %s", type_name(cls),
                        'singleton' if obj.singleton() else 'non-singleton', type_name(object_type))
        else:
            self._trace("Bean %s", type_name(cls))

        self._register_bean(cls, bean)
        return [Injection(obj, definition, bean) for definition in descriptor.fields]

    def _register_function(self, pos: str, fn: Callable) -> None:
        try:
            signature = inspect.signature(fn)
        except (TypeError, ValueError):
            signature = None

        if signature is not None:
            required = [
                p for p in signature.parameters.values()
                if p.default is inspect.Parameter.empty
                and p.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
            ]
            if required:
                raise ScanError(
                    f"function '{type_name(fn)}' on position '{pos}' must take no arguments, "
                    f"but requires {[p.name for p in required]}")

        bean = Bean(
            BeanDescriptor(type(fn), []),
            obj=fn,
            name=type_name(fn),
            lifecycle=Lifecycle.Created,
            context=self
        )
        self._trace("Function %s", bean.name)
        self._register_bean(type(fn), bean)

    def _register_bean(self, cls: type, bean: Bean) -> None:
        self._core.setdefault(cls, []).append(bean)

    # ------------------------------------------------------------------
    # resolve

    def _generations(self, level: int) -> Iterator['Context']:
        ctx, depth = self, 0
        while ctx is not None:
            if 0 < level <= depth:
                break
            yield ctx
            ctx, depth = ctx._parent, depth + 1

    def _find_in_core(self, required_type: type) -> list[Bean]:
        direct = self._core.get(required_type)
        if direct:
            return list(direct)
        return [
            b for beans in self._core.values()
            if beans and beans[0].implements(required_type)
            for b in beans
        ]

    def _search(self, required_type: type, level: int, collection: bool, runtime: bool = False) -> list[Bean]:
        """
        Search the generations allowed by level.

        Level 0 and single-value fields stop at the first generation with
        candidates; collections at other levels aggregate every generation.
        """
        aggregate = collection and level != 0
        result = []
        for ctx in self._generations(level):
            found = ctx._get_bean(required_type) if runtime else ctx._find_in_core(required_type)
            if found:
                if not aggregate:
                    return list(found)
                result.extend(found)
        return result

    def _resolve(self, injections: list[Injection]) -> None:
        by_type: dict[type, list[Injection]] = {}
        for injection in injections:
            by_type.setdefault(injection.definition.field_type, []).append(injection)

        for required_type, injects in by_type.items():
            resolved = []
            missing = []
            for injection in injects:
                definition = injection.definition
                candidates = self._search(required_type, definition.level, definition.collection)
                if not candidates:
                    if definition.optional:
                        self._trace("Skip optional inject '%s' in to '%s'", type_name(required_type), definition)
                    else:
                        missing.append(injection)
                resolved.append((injection, candidates))

            if missing:
                raise MissingDependencyError(
                    f"can not find candidates for '{type_name(required_type)}' required by "
                    f"{[str(i.definition) for i in missing]}")

            for injection, candidates in resolved:
                if not candidates:
                    continue
                for ctx in {b.context for b in candidates if b.context is not None}:
                    ctx._registry.add_bean_list(required_type, [b for b in candidates if b.context is ctx])
                self._trace("Inject '%s' by %s in to %s", type_name(required_type), candidates, injection.definition)
                injection.inject(candidates)

    # ------------------------------------------------------------------
    # construct

    def _post_construct(self) -> None:
        for beans in list(self._core.values()):
            for bean in beans:
                self._construct(bean, [])

    def _ensure_constructed(self, bean: Bean) -> None:
        self._construct(bean, [])

    def _construct(self, bean: Bean, stack: list[Bean]) -> None:
        with bean.lock:
            if bean.lifecycle == Lifecycle.Initialized:
                return
            if bean.lifecycle == Lifecycle.Constructing:
                if bean in stack:
                    cycle = stack[stack.index(bean):] + [bean]
                    raise CyclicDependencyError(
                        "detected cycle dependency " + " -> ".join(type_name(b.bean_class) for b in cycle))
                # re-entered through a lazy accessor while being constructed
                return
            if bean.lifecycle in (Lifecycle.Destroying, Lifecycle.Destroyed):
                raise BeanError(f"bean {bean} can not be constructed in lifecycle '{bean.lifecycle}'")

            previous, bean.lifecycle = bean.lifecycle, Lifecycle.Constructing
            try:
                self._construct_bean(bean, stack + [bean])
            except BaseException:
                if bean.lifecycle == Lifecycle.Constructing:
                    bean.lifecycle = previous
                raise

    def _construct_bean(self, bean: Bean, path: list[Bean]) -> None:
        if bean.factory is not None and bean.obj is None:
            bean.factory.bean.context._construct(bean.factory.bean, path)
            bean.factory.produce()
            if bean.obj is None:
                raise FactoryError(f"bean '{bean}' was not created by factory '{bean.factory}'")
            self._trace("Produced %s", bean)
            return

        try:
            for dependency in bean.factory_dependencies:
                factory = dependency.factory
                factory.bean.context._construct(factory.bean, path)
                produced, _ = factory.produce()
                dependency.injection(produced)

            for beans in bean.dependencies:
                for b in beans:
                    b.context._construct(b, path)
        except BeanError:
            raise
        except Exception as e:
            raise BeanError(f"construction of {bean} failed, {e}") from e

        if bean.has_capability(InitializingBean):
            try:
                bean.obj.post_construct()
            except Exception as e:
                chain = " required by ".join(type_name(b.bean_class) for b in reversed(path))
                raise PostConstructError(f"post construct failed {chain}, {e}") from e

        if bean.has_capability(DisposableBean):
            with self._disposables_lock:
                self._disposables.append(bean)

        bean.lifecycle = Lifecycle.Initialized
        self._trace("Initialized %s", bean)

    # ------------------------------------------------------------------
    # runtime

    def _get_bean(self, required_type: type) -> tuple[Bean, ...]:
        found = self._registry.find_by_type(required_type)
        if found is not None:
            return found
        found = self._find_in_core(required_type)
        if not found:
            return ()
        return self._registry.add_bean_list(required_type, found)

    def _get_by_name(self, name: str) -> tuple[Bean, ...]:
        found = self._registry.find_by_name(name)
        if found is not None:
            return found
        found = [b for beans in self._core.values() for b in _expand(beans) if b.name == name]
        if not found:
            return ()
        return self._registry.add_names(name, found)

    def bean(self, typ: type, level: int = 0) -> list[Bean]:
        """
        Get beans by concrete type or by interface.

        level 0 returns the nearest generation that has candidates, 1 this
        context only, N this context and N-1 ancestors, -1 every ancestor.
        """
        result = []
        for ctx in self._generations(level):
            found = ctx._get_bean(typ)
            if found:
                if level == 0:
                    return _expand(found)
                result.extend(_expand(found))
        return result

    def lookup(self, name: str, level: int = 0) -> list[Bean]:
        """Get beans by name; levels as in bean()."""
        result = []
        for ctx in self._generations(level):
            found = ctx._get_by_name(name)
            if found:
                if level == 0:
                    return list(found)
                result.extend(found)
        return result

    def inject(self, obj: Any) -> None:
        """
        Inject fields into an object that is not part of the context.

        The object is not registered, constructed or destroyed by the context.
        """
        if obj is None:
            raise InjectionError("null object is not allowed")
        if isinstance(obj, type) or isinstance(obj, VALUE_TYPES):
            raise InjectionError(f"non-reference instances are not allowed, type '{type_name(type(obj))}'")

        descriptor = describe(type(obj))
        for definition in descriptor.fields:
            candidates = self._search(definition.field_type, definition.level, definition.collection, runtime=True)
            if not candidates and not definition.optional:
                raise MissingDependencyError(
                    f"implementation not found for field '{definition.field_name}' "
                    f"with type '{type_name(definition.field_type)}'")
            Injection(obj, definition).inject_runtime(candidates)

    # ------------------------------------------------------------------
    # destroy

    def close(self) -> None:
        """
        Destroy every DisposableBean in reverse initialization order.

        Runs once; later calls return immediately. Failures do not stop the
        pass and are raised together as a DestroyError at the end.
        """
        errors = []
        with self._destroy_lock:
            if self._closed:
                return
            self._closed = True

            for bean in reversed(self._disposables):
                with bean.lock:
                    if bean.lifecycle == Lifecycle.Destroyed:
                        # destroyed by a failed reload
                        continue
                    bean.lifecycle = Lifecycle.Destroying
                    try:
                        bean.obj.destroy()
                    except Exception as e:
                        logger.warning("Error destroying bean %s: %s", bean, e)
                        errors.append(e)
                    bean.lifecycle = Lifecycle.Destroyed
            self._trace("Closed %s", self)

        if len(errors) == 1:
            raise DestroyError(f"destroy failed, {errors[0]}", errors) from errors[0]
        if errors:
            raise DestroyError(f"multiple errors, {errors}", errors)

    def __enter__(self) -> 'Context':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def __str__(self):
        count = sum(len(beans) for beans in self._core.values())
        parent = ' with parent' if self._parent is not None else ''
        return f"<Context {count} beans{parent}>"

    __repr__ = __str__
