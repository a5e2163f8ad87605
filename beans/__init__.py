"""
beans – Field-Injection Dependency Container for Python
"""

from .bean import Bean, Lifecycle
from .capabilities import (
    DisposableBean,
    FactoryBean,
    InitializingBean,
    NamedBean,
    OrderedBean,
    Scanner
)
from .context import Context, create
from .descriptors import Inject, inject
from .exceptions import (
    AmbiguousDependencyError,
    BeanError,
    CyclicDependencyError,
    DescriptorError,
    DestroyError,
    DuplicateBeanError,
    FactoryError,
    InjectionError,
    MissingDependencyError,
    PostConstructError,
    ScanError
)
from .injector import DependencyInjector

__all__ = [
    'create',
    'Context',
    'Bean',
    'Lifecycle',
    'inject',
    'Inject',
    'NamedBean',
    'OrderedBean',
    'InitializingBean',
    'DisposableBean',
    'FactoryBean',
    'Scanner',
    'DependencyInjector',
    'BeanError',
    'ScanError',
    'DescriptorError',
    'InjectionError',
    'MissingDependencyError',
    'AmbiguousDependencyError',
    'DuplicateBeanError',
    'CyclicDependencyError',
    'FactoryError',
    'PostConstructError',
    'DestroyError'
]
