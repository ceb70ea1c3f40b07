from __future__ import annotations

import inspect
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar, overload

from ._errors import InvalidArgumentError, InvalidBindingError, ResolutionCycleError, UnboundTypeError, describe
from ._introspection import TypeIntrospector


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable

    T = TypeVar("T")

    Token = type[T] | str
    Factory = Callable[["Container"], object]


class Scope(Enum):
    TEMPORAL = "temporal"
    SINGLETON = "singleton"


class _Empty:
    def __repr__(self) -> str:
        return "<empty>"


_EMPTY: Any = _Empty()

# How often a thread blocked on a singleton slot re-checks for a cross-thread cycle
_WAIT_POLL_SECONDS = 0.05


@dataclass
class Binding:
    token: type
    factory: Factory
    scope: Scope
    cached_instance: object = _EMPTY  # singleton slot, filled at most once
    lock: Any = field(default_factory=threading.RLock, repr=False, compare=False)
    owner: int | None = field(default=None, repr=False, compare=False)  # thread running the singleton factory

    @property
    def is_cached(self) -> bool:
        return self.cached_instance is not _EMPTY


class Container:
    """Type-identity DI container.

    - bind abstract classes or protocols to implementations, or to factories
    - resolve classes, dotted paths or aliases to instances
    - scopes: temporal (new instance every time) / singleton (one per container)
    - unbound concrete classes are bound to themselves on first resolve.

    Constructors are always called without arguments; a factory receives the
    container and may resolve whatever else it needs from it.
    """

    def __init__(
        self,
        *,
        auto_bind: bool = True,
        detect_cycles: bool = True,
        introspector: TypeIntrospector | None = None,
    ) -> None:
        self._bindings: dict[type, Binding] = {}
        self._aliases: dict[str, type | str] = {}
        self._lock = threading.RLock()
        self._local = threading.local()
        self._waiting: dict[int, Binding] = {}  # thread ident -> singleton slot it is blocked on
        self._auto_bind = auto_bind
        self._detect_cycles = detect_cycles
        self._types = introspector or TypeIntrospector()

    @overload
    def resolve(self, token: type[T]) -> T: ...

    @overload
    def resolve(self, token: str) -> object: ...

    def resolve(self, token: Token[T]) -> object:
        """Resolve the token to an instance.

        - Aliases are followed until a non-alias name is reached.
        - If nothing is bound for the resulting type, it is bound to itself
          with temporal scope (unless the container was built with ``auto_bind=False``).
        - The binding's factory is then invoked with this container.
        """
        target = self._resolve_alias(token)
        binding = self._binding_for(target)

        if not self._detect_cycles:
            return self._produce(binding)

        stack = self._resolution_stack()
        if binding.token in stack:
            raise ResolutionCycleError([*stack[stack.index(binding.token) :], binding.token])

        stack.append(binding.token)
        try:
            return self._produce(binding)
        finally:
            stack.pop()

    def is_bound(self, token: Token[T]) -> bool:
        cls = self._types.locate(token)
        with self._lock:
            return cls is not None and cls in self._bindings

    def is_alias(self, name: object) -> bool:
        with self._lock:
            return isinstance(name, str) and name in self._aliases

    @overload
    def bind(self, abstract: Token[T], target: None = ..., scope: Scope | None = ...) -> None: ...

    @overload
    def bind(self, abstract: Token[T], target: Scope) -> None: ...

    @overload
    def bind(self, abstract: Token[T], target: Token[Any], scope: Scope | None = ...) -> None: ...

    @overload
    def bind(self, abstract: Token[T], target: Callable[[Container], Any], scope: Scope | None = ...) -> None: ...

    def bind(
        self,
        abstract: Token[T],
        target: Token[Any] | Callable[[Container], Any] | Scope | None = None,
        scope: Scope | None = None,
    ) -> None:
        """Create a binding; the default scope is temporal.

        Example:
          container.bind(Service)                       # Service to itself
          container.bind(Service, Scope.SINGLETON)      # Service to itself, one instance
          container.bind(Repository, SqlRepository)     # abstract to implementation
          container.bind(Repository, make_repository)   # abstract to factory(container)
          container.bind(Repository, SqlRepository, Scope.SINGLETON)

        An abstract class or protocol may also be bound to another abstraction;
        the chain is followed lazily on every resolve.
        """
        if isinstance(target, Scope):
            if scope is not None:
                msg = "Scope was given both as target and as scope."
                raise InvalidArgumentError(msg)
            scope, target = target, None

        if scope is None:
            scope = Scope.TEMPORAL

        if target is None:
            self.bind_self(abstract, scope=scope)
        elif callable(target) and not inspect.isclass(target):
            self.bind_factory(abstract, target, scope=scope)
        else:
            self.bind_type(abstract, target, scope=scope)

    def bind_self(self, abstract: Token[T], *, scope: Scope = Scope.TEMPORAL) -> None:
        self._bind_type(abstract, abstract, scope)

    def bind_type(self, abstract: Token[T], concrete: Token[Any], *, scope: Scope = Scope.TEMPORAL) -> None:
        self._bind_type(abstract, concrete, scope)

    def bind_factory(
        self,
        abstract: Token[T],
        factory: Callable[[Container], Any],
        *,
        scope: Scope = Scope.TEMPORAL,
    ) -> None:
        """Bind to a custom factory; it is called with this container and its result is not type checked."""
        _check_scope(scope)
        cls = self._locate(abstract, "cannot be bound")
        if not callable(factory) or inspect.isclass(factory):
            msg = f"Factory for {describe(cls)} must be a callable taking the container, got {factory!r}"
            raise InvalidArgumentError(msg)

        self._install(cls, factory, scope)

    def bind_instance(self, abstract: Token[T], instance: object) -> None:
        """Bind a pre-built instance (always singleton)."""
        cls = self._locate(abstract, "cannot be bound")

        if self._types.is_protocol(cls):
            conforms = self._types.is_subtype_of(type(instance), cls)
        else:
            conforms = isinstance(instance, cls)

        if not conforms:
            msg = f"Instance of {describe(type(instance))} does not implement {describe(cls)} and cannot be bound to it."
            raise InvalidBindingError(msg)

        self._install(cls, lambda _: instance, Scope.SINGLETON, cached_instance=instance)

    def singleton(self, abstract: Token[T], target: Token[Any] | Callable[[Container], Any] | None = None) -> None:
        """Shortcut for ``bind(abstract, target, Scope.SINGLETON)``."""
        self.bind(abstract, target, Scope.SINGLETON)

    def temporal(self, abstract: Token[T], target: Token[Any] | Callable[[Container], Any] | None = None) -> None:
        """Shortcut for ``bind(abstract, target, Scope.TEMPORAL)``."""
        self.bind(abstract, target, Scope.TEMPORAL)

    def alias(self, name: str, target: type | str) -> None:
        """Create or redirect an alias; the target does not have to be bound yet."""
        if not isinstance(name, str) or not name:
            msg = "Alias must be a non-empty string"
            raise InvalidArgumentError(msg)

        if not inspect.isclass(target) and not (isinstance(target, str) and target):
            msg = "Alias must point to a class or to a (possibly future) name, so it must be a class or a string"
            raise InvalidArgumentError(msg)

        with self._lock:
            previous = self._aliases.get(name)
            self._aliases[name] = target

        if previous is not None and previous != target:
            logger.info("Alias %r redirected from %s to %s", name, describe(previous), describe(target))
        logger.debug("Alias %r -> %s", name, describe(target))

    def _produce(self, binding: Binding) -> object:
        if binding.scope is Scope.TEMPORAL:
            return binding.factory(self)

        # Check and fill under the slot lock so racing first resolutions build once
        self._acquire_slot(binding)
        try:
            if binding.cached_instance is _EMPTY:
                binding.owner = threading.get_ident()
                try:
                    binding.cached_instance = binding.factory(self)
                finally:
                    binding.owner = None
            return binding.cached_instance
        finally:
            binding.lock.release()

    def _acquire_slot(self, binding: Binding) -> None:
        if binding.lock.acquire(blocking=False):
            return

        if not self._detect_cycles:
            binding.lock.acquire()
            return

        me = threading.get_ident()
        with self._lock:
            self._waiting[me] = binding
        try:
            while not binding.lock.acquire(timeout=_WAIT_POLL_SECONDS):
                chain = self._cross_thread_cycle(me, binding)
                if chain:
                    raise ResolutionCycleError(chain)
        finally:
            with self._lock:
                del self._waiting[me]

    def _cross_thread_cycle(self, me: int, wanted: Binding) -> list[type] | None:
        """Follow slot owners through the threads they wait on; reaching 'me' means a deadlock."""
        chain = [wanted.token]
        seen: set[int] = set()
        current = wanted
        with self._lock:
            while True:
                owner = current.owner
                if owner is None or owner in seen:
                    return None
                if owner == me:
                    return [*chain, wanted.token]
                seen.add(owner)
                current = self._waiting.get(owner)
                if current is None:
                    return None
                chain.append(current.token)

    def _resolve_alias(self, token: object) -> object:
        seen: list[object] = []
        with self._lock:
            while isinstance(token, str) and token in self._aliases:
                if self._detect_cycles and token in seen:
                    raise ResolutionCycleError([*seen[seen.index(token) :], token])
                seen.append(token)
                token = self._aliases[token]
        return token

    def _binding_for(self, target: object) -> Binding:
        with self._lock:
            cls = self._types.locate(target)
            binding = self._bindings.get(cls) if cls is not None else None
            if binding is not None:
                return binding

            if not self._auto_bind:
                msg = f"Nothing is bound for {describe(target)} and implicit binding is disabled."
                raise UnboundTypeError(msg)

            logger.debug("Implicitly binding %s to itself", describe(target))
            return self._bind_type(target, target, Scope.TEMPORAL)

    def _bind_type(self, abstract: object, concrete: object, scope: Scope) -> Binding:
        _check_scope(scope)
        abstract_cls = self._locate(abstract, "cannot be bound")
        concrete_cls = self._locate(concrete, "cannot be bound to")

        if self._types.is_instantiable(abstract_cls):
            if concrete_cls is not abstract_cls:
                msg = f"Class {describe(abstract_cls)} is not abstract and cannot be bound."
                raise InvalidBindingError(msg)

            def construct(_: Container) -> object:
                return self._types.construct(concrete_cls)

            return self._install(abstract_cls, construct, scope)

        if not self._types.is_subtype_of(concrete_cls, abstract_cls):
            msg = f"Class {describe(concrete_cls)} is not a subclass of {describe(abstract_cls)} and cannot be bound to it."
            if self._types.is_protocol(abstract_cls) and concrete_cls is not abstract_cls:
                problems = self._types.protocol_mismatches(abstract_cls, concrete_cls)
                if problems:
                    msg = f"{msg[:-1]}: {'; '.join(problems)}."
            raise InvalidBindingError(msg)

        # Abstract targets are followed at resolve time, not validated end to end here
        def delegate(container: Container) -> object:
            return container.resolve(concrete_cls)

        return self._install(abstract_cls, delegate, scope)

    def _install(self, cls: type, factory: Factory, scope: Scope, *, cached_instance: object = _EMPTY) -> Binding:
        binding = Binding(token=cls, factory=factory, scope=scope, cached_instance=cached_instance)
        with self._lock:
            replaced = self._bindings.get(cls)
            self._bindings[cls] = binding

        if replaced is not None:
            logger.info("Replaced %s binding for %s", replaced.scope.value, describe(cls))
        logger.debug("Bound %s (%s)", describe(cls), scope.value)
        return binding

    def _locate(self, token: object, action: str) -> type:
        cls = self._types.locate(token)
        if cls is None:
            msg = f"Class or protocol {describe(token)} not found and {action}."
            raise InvalidBindingError(msg)
        return cls

    def _resolution_stack(self) -> list[type]:
        stack = getattr(self._local, "stack", None)
        if stack is None:
            stack = self._local.stack = []
        return stack


def _check_scope(scope: object) -> None:
    if not isinstance(scope, Scope):
        msg = f"Scope must be a Scope member, got {scope!r}"
        raise InvalidArgumentError(msg)
