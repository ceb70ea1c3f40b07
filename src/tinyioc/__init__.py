"""Type-identity dependency injection container.

Binds abstract classes, protocols and string aliases to concrete classes or
factories, and resolves them to instances with a configurable scope.

Exports:
- `Container`: registry of bindings and aliases, resolves tokens to instances.
- `Scope`: lifecycle of a binding (`TEMPORAL` builds a new instance on every
  resolve, `SINGLETON` builds one per container).
- `TypeIntrospector`: the type checks a container relies on; subclass to customise.
- Errors: `ContainerError` and its subclasses `InvalidArgumentError`,
  `InvalidBindingError`, `UnboundTypeError` and `ResolutionCycleError`.
"""

from ._container import Container, Scope
from ._errors import (
    ContainerError,
    InvalidArgumentError,
    InvalidBindingError,
    ResolutionCycleError,
    UnboundTypeError,
)
from ._introspection import TypeIntrospector


__all__ = [
    "Container",
    "ContainerError",
    "InvalidArgumentError",
    "InvalidBindingError",
    "ResolutionCycleError",
    "Scope",
    "TypeIntrospector",
    "UnboundTypeError",
]
