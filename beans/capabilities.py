"""
Capabilities a scanned object may expose.

Every capability is a runtime-checkable protocol, so an object gains it just by
defining the method. A class may also inherit the protocol explicitly to
declare intent; when it does so without implementing the method, the inherited
default raises and the class is not treated as an implementation of it.
"""

from typing import Protocol, runtime_checkable

from .exceptions import BeanError

__all__ = [
    'NamedBean',
    'OrderedBean',
    'InitializingBean',
    'DisposableBean',
    'FactoryBean',
    'Scanner',
    'CAPABILITIES'
]


def _display_name(obj) -> str:
    cls = type(obj)
    return f"{cls.__module__}.{cls.__qualname__}"


@runtime_checkable
class NamedBean(Protocol):
    """Overrides the bean name, used by lookups, qualifiers and map keys."""

    def bean_name(self) -> str:
        raise BeanError(
            f"bean '{_display_name(self)}' does not implement bean_name, but declares NamedBean")


@runtime_checkable
class OrderedBean(Protocol):
    """Gives the bean a position inside list injections."""

    def bean_order(self) -> int:
        return 0


@runtime_checkable
class InitializingBean(Protocol):
    """Runs after every non-lazy dependency of the bean is initialized."""

    def post_construct(self) -> None:
        raise BeanError(
            f"bean '{_display_name(self)}' does not implement post_construct, but declares InitializingBean")


@runtime_checkable
class DisposableBean(Protocol):
    """Releases resources when the owning context closes."""

    def destroy(self) -> None:
        raise BeanError(
            f"bean '{_display_name(self)}' does not implement destroy, but declares DisposableBean")


@runtime_checkable
class FactoryBean(Protocol):
    """
    Produces the object that participates in the context instead of itself.

    get_object():  returns the produced object.
    object_type(): the class the produced object is an instance of.
    singleton():   True to produce once, False to produce per consumer.

    A factory may also define object_name() to name its products.
    """

    def get_object(self) -> object:
        raise BeanError(
            f"bean '{_display_name(self)}' does not implement get_object, but declares FactoryBean")

    def object_type(self) -> type:
        raise BeanError(
            f"bean '{_display_name(self)}' does not implement object_type, but declares FactoryBean")

    def singleton(self) -> bool:
        return True


@runtime_checkable
class Scanner(Protocol):
    """Provides pre-scanned instances that are flattened into the scan list."""

    def beans(self) -> list:
        ...


# marker -> methods a class must define itself to really implement the marker
CAPABILITIES = {
    NamedBean: ('bean_name',),
    OrderedBean: ('bean_order',),
    InitializingBean: ('post_construct',),
    DisposableBean: ('destroy',),
    FactoryBean: ('get_object', 'object_type'),
}
