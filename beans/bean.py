"""
Candidate records ("beans") and factory indirection.
"""

import logging
from threading import Lock, RLock
from typing import Any, Callable, Optional

from .capabilities import DisposableBean, FactoryBean, InitializingBean, NamedBean, OrderedBean
from .descriptors import BeanDescriptor, type_name
from .exceptions import BeanError, FactoryError

logger = logging.getLogger(__name__)

__all__ = [
    'Lifecycle',
    'Bean',
    'Factory',
    'FactoryDependency'
]


class Lifecycle:
    """
    Lifecycle states of a bean. A bean only moves forward, except on reload or a failed construction.
    """
    Allocated = 'allocated'
    Created = 'created'
    Constructing = 'constructing'
    Initialized = 'initialized'
    Destroying = 'destroying'
    Destroyed = 'destroyed'


class Bean:
    """
    One scanned object, or one factory product that may not exist yet.

    Attributes:
        name:          Type name, or the result of bean_name() for NamedBean objects.
        qualifier:     Same as name when the object is a NamedBean, otherwise None.
        descriptor:    Injectable fields and capability markers of the class.
        obj:           The object; None for a placeholder not yet produced.
        lifecycle:     Current Lifecycle value.
        order:         bean_order() for OrderedBean objects, otherwise None.
        dependencies:  Beans that must be initialized before this one.
        factory_dependencies: Factories whose products are injected into this bean.
        factory:       The Factory producing this bean, for placeholders and products.
        lock:          Re-entrant construction lock.
    """

    __slots__ = (
        'name', 'qualifier', 'descriptor', 'obj', 'lifecycle', 'order',
        'dependencies', 'factory_dependencies', 'factory', 'lock', 'context'
    )

    def __init__(
        self,
        descriptor: BeanDescriptor,
        obj: Any = None,
        name: Optional[str] = None,
        factory: Optional['Factory'] = None,
        lifecycle: str = Lifecycle.Allocated,
        context=None
    ):
        self.descriptor = descriptor
        self.obj = obj
        self.factory = factory
        self.lifecycle = lifecycle
        self.context = context
        self.dependencies: list[list['Bean']] = []
        self.factory_dependencies: list['FactoryDependency'] = []
        self.lock = RLock()
        self.name = name or type_name(descriptor.bean_class)
        self.qualifier = None
        self.order = None
        if obj is not None:
            self._read_capabilities(obj)

    def _read_capabilities(self, obj: Any) -> None:
        if self.has_capability(NamedBean, obj):
            self.name = obj.bean_name()
            self.qualifier = self.name
        if self.has_capability(OrderedBean, obj):
            self.order = obj.bean_order()

    def has_capability(self, marker: type, obj: Any = None) -> bool:
        """True when the object implements the capability marker itself."""
        obj = self.obj if obj is None else obj
        return isinstance(obj, marker) and marker not in self.descriptor.not_implements

    @property
    def bean_class(self) -> type:
        """Concrete class of the bean, or the declared output type of a placeholder."""
        return self.descriptor.bean_class

    @property
    def factory_bean(self) -> Optional['Bean']:
        """The factory bean that produced this bean, if any."""
        return self.factory.bean if self.factory else None

    @property
    def produced(self) -> bool:
        return self.factory is None or self.obj is not None

    def implements(self, iface: type) -> bool:
        return self.descriptor.implements(iface)

    def reload(self) -> None:
        """
        Destroy and post-construct the bean again, keeping the same object.

        Not available for beans produced by a factory, since their
        instances are already injected elsewhere.
        """
        if self.factory is not None:
            raise BeanError(f"reload is not supported for factory produced bean {self}")

        with self.lock:
            if self.lifecycle != Lifecycle.Initialized:
                raise BeanError(f"bean {self} can not be reloaded in lifecycle '{self.lifecycle}'")

            if self.has_capability(DisposableBean):
                self.lifecycle = Lifecycle.Destroying
                try:
                    self.obj.destroy()
                except Exception as e:
                    raise BeanError(f"destroy failed on reload of {self}, {e}") from e
                finally:
                    # a failed destroy still counts, close() must not run it again
                    self.lifecycle = Lifecycle.Destroyed

            self.lifecycle = Lifecycle.Constructing
            try:
                if self.has_capability(InitializingBean):
                    self.obj.post_construct()
            except Exception as e:
                raise BeanError(f"post construct failed on reload of {self}, {e}") from e
            finally:
                # the object stays usable and can be reloaded again
                self.lifecycle = Lifecycle.Initialized
            logger.debug("Reloaded %s", self)

    def __str__(self):
        if self.factory is not None:
            return f"<FactoryBean {self.factory}->{type_name(self.bean_class)}>"
        return f"<Bean {type_name(self.bean_class)}>"

    __repr__ = __str__


class Factory:
    """
    Links a FactoryBean object to the beans it produces.

    Attributes:
        bean:       The bean of the factory object itself.
        instances:  Produced beans; the first is the placeholder registered at scan time.
    """

    __slots__ = ('bean', 'factory_bean', 'output_name', 'instances', '_lock')

    def __init__(self, bean: Bean, factory_bean: FactoryBean, output_name: Optional[str] = None):
        self.bean = bean
        self.factory_bean = factory_bean
        self.output_name = output_name
        self.instances: list[Bean] = []
        self._lock = Lock()

    @property
    def object_type(self) -> type:
        return self.factory_bean.object_type()

    def placeholder(self, descriptor: BeanDescriptor, context) -> Bean:
        """Allocate the first product slot, registered before anything is produced."""
        head = Bean(descriptor, name=self.output_name, factory=self, context=context)
        self.instances.append(head)
        return head

    def produce(self) -> tuple[Bean, bool]:
        """
        Run the factory according to its singleton policy.

        Returns the produced bean and whether it was created by this call.
        """
        with self._lock:
            head = self.instances[0]
            if self.factory_bean.singleton():
                if head.obj is not None:
                    return head, False
                target = head
            elif head.obj is None:
                target = head
            else:
                target = Bean(head.descriptor, name=self.output_name, factory=self, context=head.context)

            try:
                obj = self.factory_bean.get_object()
            except Exception as e:
                raise FactoryError(
                    f"factory bean '{self}' failed to create bean '{type_name(self.object_type)}', {e}") from e

            if obj is None:
                raise FactoryError(
                    f"factory bean '{self}' produced nothing for bean '{type_name(self.object_type)}'")
            if not isinstance(obj, self.object_type):
                raise FactoryError(
                    f"factory bean '{self}' produced '{type_name(type(obj))}', "
                    f"which is not an instance of '{type_name(self.object_type)}'")

            target.obj = obj
            target._read_capabilities(obj)
            target.lifecycle = Lifecycle.Initialized
            if target is not head:
                self.instances.append(target)
            if target.context is not None:
                # names cached by an earlier lookup must see every product
                target.context._registry.add_bean_by_name(target)
            return target, True

    def __str__(self):
        return type_name(self.bean.bean_class)


class FactoryDependency:
    """
    Binds a consumer bean to a factory; resolved once the factory is initialized.

    Attributes:
        factory:    Factory whose product is needed.
        injection:  Callback receiving the produced bean.
    """

    __slots__ = ('factory', 'injection')

    def __init__(self, factory: Factory, injection: Callable[[Bean], None]):
        self.factory = factory
        self.injection = injection
