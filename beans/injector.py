"""
Parameter injection for plain functions and web request handlers.
"""

import asyncio
import inspect
import logging
from contextvars import ContextVar
from functools import lru_cache, wraps
from typing import Annotated, Any, Callable, Optional, get_args, get_origin

from .bean import Lifecycle
from .context import Context
from .descriptors import VALUE_TYPES, inject as inject_marker, type_name
from .exceptions import AmbiguousDependencyError, MissingDependencyError

logger = logging.getLogger(__name__)

__all__ = ['DependencyInjector']

# context of the request being served, None outside of a request
_active_context: ContextVar[Optional[Context]] = ContextVar('beans_active_context', default=None)


@lru_cache(maxsize=None)
def get_signature(fn):
    return inspect.signature(fn)


def _parameter_target(annotation) -> tuple[Any, Optional[inject_marker]]:
    if get_origin(annotation) is Annotated:
        base_type, *metadata = get_args(annotation)
        marker = next((m for m in metadata if isinstance(m, inject_marker)), None)
        return base_type, marker
    return annotation, None


def _is_injectable_type(_type) -> bool:
    return isinstance(_type, type) and not issubclass(_type, VALUE_TYPES)


class DependencyInjector:
    """
    Decorator and middleware helper for auto-injecting beans
    into function parameters based on type annotations.

    Each request gets a child context extended from the root one; the
    beans returned by request_scan() live as long as the request.
    """

    def __init__(
        self,
        context: Context,
        strict: bool = False,
        request_scan: Optional[Callable[[], list]] = None
    ):
        self._context = context
        self._strict = strict
        self._request_scan = request_scan

    @property
    def context(self) -> Context:
        return self._context

    def current_context(self) -> Context:
        """The active request context, or the root context outside of a request."""
        ctx = _active_context.get()
        # requests opened by another injector do not apply
        if ctx is not None and ctx.parent is self._context:
            return ctx
        return self._context

    def create_scope(self) -> Context:
        """Create a child context for one unit of work; close it when done."""
        scan = self._request_scan() if self._request_scan is not None else []
        return self._context.extend(*scan)

    def _resolve(self, ctx: Context, _type: type, qualifier: Optional[str]) -> Any:
        beans = ctx._search(_type, 0, False, runtime=True)
        if qualifier:
            beans = [b for b in beans if b.name == qualifier]

        if not beans:
            raise MissingDependencyError(f"can not find candidates for '{type_name(_type)}'")
        if len(beans) > 1:
            raise AmbiguousDependencyError(
                f"can not inject '{type_name(_type)}' with multiple candidates {beans}")

        bean = beans[0]
        if bean.factory is not None:
            bean, _ = bean.factory.produce()
        elif bean.lifecycle != Lifecycle.Initialized:
            bean.context._ensure_constructed(bean)
        return bean.obj

    def inject(self, fn: Callable) -> Callable:
        """
        Decorator for functions (sync or async). Fills annotated params
        from the active request context, or from the root context.
        In strict mode, every class-annotated parameter must resolve.
        In non-strict mode, only parameters known to the root context
        or marked with inject() are injected.
        """
        sig = get_signature(fn)
        is_async = asyncio.iscoroutinefunction(fn)

        # Remove injectable parameters from the visible signature
        new_params = []
        injectable_params: dict[str, tuple[type, Optional[str]]] = {}

        for name, param in sig.parameters.items():
            if param.annotation is inspect.Parameter.empty:
                new_params.append(param)
                continue

            _type, marker = _parameter_target(param.annotation)
            if not _is_injectable_type(_type):
                new_params.append(param)
                continue

            qualifier = marker.qualifier if marker is not None else None
            if marker is not None or self._context.bean(_type, level=-1):
                injectable_params[name] = (_type, qualifier)
            elif self._strict:
                raise ValueError(
                    f"Failed to resolve dependency '{type_name(_type)}' "
                    f"for parameter '{name}': no bean of this type"
                )
            else:
                new_params.append(param)

        new_sig = sig.replace(parameters=new_params)

        def fill(kwargs: dict) -> None:
            ctx = self.current_context()
            for name, (param_type, qualifier) in injectable_params.items():
                if name in kwargs:
                    continue
                try:
                    kwargs[name] = self._resolve(ctx, param_type, qualifier)
                except Exception as e:
                    if self._strict:
                        raise ValueError(
                            f"Failed to resolve dependency '{type_name(param_type)}' "
                            f"for '{name}': {e}"
                        ) from e
                    logger.debug(f"Skipping DI for '{name}': {e}")

        if is_async:
            @wraps(fn)
            async def async_wrapper(*args, **kwargs):
                fill(kwargs)
                return await fn(*args, **kwargs)

            async_wrapper.__signature__ = new_sig
            return async_wrapper

        @wraps(fn)
        def sync_wrapper(*args, **kwargs):
            fill(kwargs)
            return fn(*args, **kwargs)

        sync_wrapper.__signature__ = new_sig
        return sync_wrapper

    def setup_fastapi(self, app):
        """
        Install FastAPI middleware creating a child context per request,
        attached to request.state.context and closed after the response.
        """
        from fastapi import Request

        @app.middleware("http")
        async def beans_middleware(request: Request, call_next):
            with self.create_scope() as ctx:
                request.state.context = ctx
                token = _active_context.set(ctx)
                try:
                    return await call_next(request)
                finally:
                    _active_context.reset(token)

    def setup_flask(self, app):
        """
        Install Flask hooks managing a child context per request via flask.g.
        """
        from flask import g

        @app.before_request
        def before_request():
            g.beans_context = self.create_scope()
            g.beans_token = _active_context.set(g.beans_context)

        @app.teardown_request
        def teardown_request(exception=None):
            ctx = g.pop('beans_context', None)
            token = g.pop('beans_token', None)
            if token is not None:
                _active_context.reset(token)
            if ctx is not None:
                ctx.close()

    def setup_quart(self, app):
        """
        Install Quart hooks managing a child context per request via quart.g.
        """
        from quart import g

        @app.before_request
        async def before_request():
            g.beans_context = self.create_scope()
            g.beans_token = _active_context.set(g.beans_context)

        @app.teardown_request
        async def teardown_request(exception=None):
            ctx = g.pop('beans_context', None)
            token = g.pop('beans_token', None)
            if token is not None:
                _active_context.reset(token)
            if ctx is not None:
                ctx.close()
