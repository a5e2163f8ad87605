import logging
import types
import unittest
import uuid
from typing import Annotated, Callable, Optional

from beans import (
    AmbiguousDependencyError,
    Context,
    DescriptorError,
    DuplicateBeanError,
    Inject,
    InjectionError,
    Lifecycle,
    MissingDependencyError,
    ScanError,
    create,
    inject
)
from beans.bean import Bean
from beans.descriptors import BeanDescriptor, type_name
from beans.registry import Registry

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


# Test beans
class Configuration:
    def __init__(self):
        self.id = uuid.uuid4()
        self.connection_string = "test_connection_string"


class IUserRepository:
    def find(self, user_id):
        raise NotImplementedError()


class UserRepository(IUserRepository):
    config: Inject[Configuration]

    def find(self, user_id):
        return {'id': user_id, 'source': self.config.connection_string}


class NamedRepository(IUserRepository):
    def __init__(self, name):
        self.name = name

    def bean_name(self):
        return self.name

    def find(self, user_id):
        return {'id': user_id, 'source': self.name}


class UserService:
    repository: Inject[IUserRepository]

    def get(self, user_id):
        return self.repository.find(user_id)


class QualifiedUserService:
    repository: Annotated[IUserRepository, inject('bean=primary')]


class OptionalUserService:
    repository: Annotated[Optional[IUserRepository], inject()] = None


class ConcreteUserService:
    repository: Inject[UserRepository]


class Plugin:
    def __init__(self, name, order=None):
        self.name = name
        self.order = order

    def bean_name(self):
        return self.name


class SimplePlugin(Plugin):
    pass


class OrderedPlugin(Plugin):
    def bean_order(self):
        return self.order


class PluginHost:
    plugins: Inject[list[Plugin]]


class PluginTable:
    plugins: Inject[dict[str, Plugin]]


class OptionalPluginHost:
    plugins: Annotated[list[Plugin], inject('optional')] = None


class QualifiedPluginHost:
    plugins: Annotated[list[Plugin], inject('bean=beta')]


class AccessorHolder:
    config: Inject[Callable[[], Configuration]]


class ReadOnlyHolder:
    __slots__ = ()
    config: Inject[Configuration]


class PluginScanner:
    def __init__(self, *plugins):
        self._plugins = list(plugins)

    def beans(self):
        return self._plugins


class FailingScanner:
    def beans(self):
        raise RuntimeError('registry offline')


class Garden:
    # a plain attribute, not a scanner
    beans = ['arabica', 'robusta']


class Handler:
    config: Inject[Configuration]
    plugins: Annotated[list[Plugin], inject('optional')] = None


class MissingHandler:
    repository: Inject[IUserRepository]


def ping():
    return 'pong'


class TestScan(unittest.TestCase):
    """Test scanning of instances into a context"""

    def test_create_empty(self):
        ctx = create()
        self.assertEqual(ctx.core(), [Context])
        ctx.close()

    def test_context_registers_itself(self):
        ctx = create(Configuration())
        beans = ctx.bean(Context)
        self.assertEqual(len(beans), 1)
        self.assertIs(beans[0].obj, ctx)
        ctx.close()

    def test_core_types(self):
        ctx = create(Configuration(), UserRepository())
        self.assertEqual(set(ctx.core()), {Context, Configuration, UserRepository})
        ctx.close()

    def test_nested_lists_are_flattened(self):
        config = Configuration()
        ctx = create([config, [UserRepository(), (UserService(),)]])
        self.assertIs(ctx.bean(Configuration)[0].obj, config)
        self.assertEqual(len(ctx.bean(UserService)), 1)
        ctx.close()

    def test_none_entries_are_skipped(self):
        ctx = create(None, [Configuration(), None])
        self.assertEqual(len(ctx.bean(Configuration)), 1)
        ctx.close()

    def test_scanner_is_flattened(self):
        ctx = create(PluginScanner(SimplePlugin('a'), SimplePlugin('b')), PluginHost())
        host = ctx.bean(PluginHost)[0].obj
        self.assertEqual([p.name for p in host.plugins], ['a', 'b'])
        ctx.close()

    def test_scanner_error_has_position(self):
        with self.assertRaises(ScanError) as cm:
            create(Configuration(), [FailingScanner()])
        self.assertIn("position '1.0'", str(cm.exception))
        self.assertIn('registry offline', str(cm.exception))
        self.assertIsInstance(cm.exception.__cause__, RuntimeError)

    def test_non_callable_beans_attribute_is_a_bean(self):
        garden = Garden()
        ctx = create(garden)
        self.assertIs(ctx.bean(Garden)[0].obj, garden)
        ctx.close()

    def test_value_types_rejected(self):
        for value in (5, 1.5, 'text', b'raw', True):
            with self.assertRaises(ScanError):
                create(value)

    def test_class_rejected(self):
        with self.assertRaises(ScanError) as cm:
            create(Configuration)
        self.assertIn("position '0'", str(cm.exception))

    def test_error_reports_nested_position(self):
        with self.assertRaises(ScanError) as cm:
            create(Configuration(), [Configuration(), 5])
        self.assertIn("'1.1'", str(cm.exception))

    def test_function_without_arguments(self):
        ctx = create(ping)
        beans = ctx.bean(types.FunctionType)
        self.assertEqual(len(beans), 1)
        self.assertIs(beans[0].obj, ping)
        self.assertEqual(beans[0].name, type_name(ping))
        ctx.close()

    def test_function_with_arguments_rejected(self):
        with self.assertRaises(ScanError):
            create(lambda x: x)

    def test_descriptor_error_has_position(self):
        class BadField:
            count: Inject[int]

        with self.assertRaises(DescriptorError) as cm:
            create(Configuration(), BadField())
        self.assertIn("position '1'", str(cm.exception))


class TestResolve(unittest.TestCase):
    """Test field injection while creating a context"""

    def test_inject_by_type(self):
        config = Configuration()
        repo = UserRepository()
        ctx = create(repo, config)
        self.assertIs(repo.config, config)
        ctx.close()

    def test_inject_by_interface(self):
        service = UserService()
        ctx = create(Configuration(), UserRepository(), service)
        self.assertIsInstance(service.repository, UserRepository)
        self.assertEqual(service.get(7)['source'], "test_connection_string")
        ctx.close()

    def test_inject_concrete_type(self):
        service = ConcreteUserService()
        repo = UserRepository()
        ctx = create(Configuration(), repo, service)
        self.assertIs(service.repository, repo)
        ctx.close()

    def test_missing_dependency(self):
        with self.assertRaises(MissingDependencyError) as cm:
            create(UserService())
        self.assertIn("can not find candidates", str(cm.exception))

    def test_missing_reports_every_requester(self):
        with self.assertRaises(MissingDependencyError) as cm:
            create(UserService(), MissingHandler())
        message = str(cm.exception)
        self.assertIn('UserService->repository', message)
        self.assertIn('MissingHandler->repository', message)

    def test_multiple_candidates(self):
        with self.assertRaises(AmbiguousDependencyError) as cm:
            create(NamedRepository('primary'), NamedRepository('secondary'), UserService())
        self.assertIn("multiple candidates", str(cm.exception))

    def test_qualifier_selects_named_bean(self):
        service = QualifiedUserService()
        ctx = create(NamedRepository('primary'), NamedRepository('secondary'), service)
        self.assertEqual(service.repository.name, 'primary')
        ctx.close()

    def test_qualifier_without_match(self):
        with self.assertRaises(MissingDependencyError):
            create(NamedRepository('secondary'), QualifiedUserService())

    def test_optional_without_candidates(self):
        service = OptionalUserService()
        ctx = create(service)
        self.assertIsNone(service.repository)
        ctx.close()

    def test_optional_with_candidate(self):
        service = OptionalUserService()
        ctx = create(Configuration(), UserRepository(), service)
        self.assertIsInstance(service.repository, UserRepository)
        ctx.close()

    def test_accessor_field(self):
        holder = AccessorHolder()
        config = Configuration()
        ctx = create(holder, config)
        self.assertTrue(callable(holder.config))
        self.assertIs(holder.config(), config)
        ctx.close()

    def test_field_not_writable(self):
        with self.assertRaises(InjectionError):
            create(Configuration(), ReadOnlyHolder())


class TestCollections(unittest.TestCase):
    """Test list and map injection"""

    def test_list_in_discovery_order(self):
        host = PluginHost()
        ctx = create(host, SimplePlugin('a'), SimplePlugin('b'), SimplePlugin('c'))
        self.assertEqual([p.name for p in host.plugins], ['a', 'b', 'c'])
        ctx.close()

    def test_list_ordered_first(self):
        host = PluginHost()
        ctx = create(
            host,
            SimplePlugin('plain'),
            OrderedPlugin('second', 2),
            OrderedPlugin('first', 1),
            SimplePlugin('last')
        )
        self.assertEqual([p.name for p in host.plugins], ['first', 'second', 'plain', 'last'])
        ctx.close()

    def test_list_equal_order_keeps_discovery(self):
        host = PluginHost()
        ctx = create(host, OrderedPlugin('x', 1), OrderedPlugin('y', 1))
        self.assertEqual([p.name for p in host.plugins], ['x', 'y'])
        ctx.close()

    def test_map_keyed_by_name(self):
        table = PluginTable()
        a, b = SimplePlugin('a'), SimplePlugin('b')
        ctx = create(table, a, b)
        self.assertEqual(table.plugins, {'a': a, 'b': b})
        ctx.close()

    def test_map_duplicates(self):
        with self.assertRaises(DuplicateBeanError) as cm:
            create(PluginTable(), SimplePlugin('a'), SimplePlugin('a'))
        self.assertIn("duplicates", str(cm.exception))

    def test_list_allows_same_names(self):
        host = PluginHost()
        ctx = create(host, SimplePlugin('a'), SimplePlugin('a'))
        self.assertEqual(len(host.plugins), 2)
        ctx.close()

    def test_empty_list_required(self):
        with self.assertRaises(MissingDependencyError):
            create(PluginHost())

    def test_empty_list_optional(self):
        host = OptionalPluginHost()
        ctx = create(host)
        self.assertIsNone(host.plugins)
        ctx.close()

    def test_list_with_qualifier(self):
        host = QualifiedPluginHost()
        ctx = create(host, SimplePlugin('alpha'), SimplePlugin('beta'), SimplePlugin('beta'))
        self.assertEqual([p.name for p in host.plugins], ['beta', 'beta'])
        ctx.close()


class TestQueries(unittest.TestCase):
    """Test bean and name lookups on a ready context"""

    def setUp(self):
        self.config = Configuration()
        self.primary = NamedRepository('primary')
        self.secondary = NamedRepository('secondary')
        self.ctx = create(self.config, self.primary, self.secondary)

    def tearDown(self):
        self.ctx.close()

    def test_bean_by_type(self):
        beans = self.ctx.bean(Configuration)
        self.assertEqual(len(beans), 1)
        bean = beans[0]
        self.assertIs(bean.obj, self.config)
        self.assertIs(bean.bean_class, Configuration)
        self.assertEqual(bean.lifecycle, Lifecycle.Initialized)
        self.assertIsNone(bean.factory_bean)
        self.assertIsNone(bean.qualifier)

    def test_bean_by_interface(self):
        beans = self.ctx.bean(IUserRepository)
        self.assertEqual([b.obj for b in beans], [self.primary, self.secondary])

    def test_bean_not_found(self):
        self.assertEqual(self.ctx.bean(UserService), [])

    def test_repeated_queries_are_stable(self):
        first = self.ctx.bean(IUserRepository)
        second = self.ctx.bean(IUserRepository)
        self.assertEqual(first, second)

    def test_lookup_by_name(self):
        beans = self.ctx.lookup('secondary')
        self.assertEqual(len(beans), 1)
        self.assertIs(beans[0].obj, self.secondary)
        self.assertEqual(beans[0].qualifier, 'secondary')

    def test_lookup_by_default_name(self):
        beans = self.ctx.lookup(type_name(Configuration))
        self.assertEqual([b.obj for b in beans], [self.config])

    def test_lookup_interface_name(self):
        self.assertEqual(self.ctx.lookup(type_name(IUserRepository)), [])

    def test_string_forms(self):
        bean = self.ctx.bean(Configuration)[0]
        self.assertIn('Configuration', str(bean))
        self.assertIn('beans', str(self.ctx))


class TestRuntimeInject(unittest.TestCase):
    """Test injection into objects that are not part of the context"""

    def setUp(self):
        self.config = Configuration()
        self.ctx = create(self.config, SimplePlugin('a'), SimplePlugin('b'))

    def tearDown(self):
        self.ctx.close()

    def test_inject(self):
        handler = Handler()
        self.ctx.inject(handler)
        self.assertIs(handler.config, self.config)
        self.assertEqual([p.name for p in handler.plugins], ['a', 'b'])

    def test_inject_does_not_register(self):
        self.ctx.inject(Handler())
        self.assertEqual(self.ctx.bean(Handler), [])

    def test_inject_missing(self):
        with self.assertRaises(MissingDependencyError):
            self.ctx.inject(MissingHandler())

    def test_inject_invalid_targets(self):
        with self.assertRaises(InjectionError):
            self.ctx.inject(None)
        with self.assertRaises(InjectionError):
            self.ctx.inject(42)
        with self.assertRaises(InjectionError):
            self.ctx.inject(Handler)


class TestRegistry(unittest.TestCase):
    """Test the by-type and by-name index"""

    def setUp(self):
        self.registry = Registry()
        self.first = Bean(BeanDescriptor(Configuration, []), obj=Configuration(), name="config")
        self.second = Bean(BeanDescriptor(Configuration, []), obj=Configuration(), name="config")

    def test_first_registration_wins(self):
        registered = self.registry.add_bean_list(Configuration, [self.first])
        again = self.registry.add_bean_list(Configuration, [self.first, self.second])
        self.assertEqual(registered, (self.first,))
        self.assertIs(again, registered)
        self.assertEqual(len(self.registry), 1)

    def test_find_missing(self):
        self.assertIsNone(self.registry.find_by_type(Configuration))
        self.assertIsNone(self.registry.find_by_name("config"))

    def test_names(self):
        self.registry.add_names("config", [self.first])
        self.registry.add_bean_by_name(self.second)
        self.registry.add_bean_by_name(self.second)
        self.assertEqual(self.registry.find_by_name("config"), (self.first, self.second))

    def test_bean_by_name_requires_cached_name(self):
        self.registry.add_bean_by_name(self.first)
        self.assertIsNone(self.registry.find_by_name("config"))


if __name__ == '__main__':
    unittest.main()
