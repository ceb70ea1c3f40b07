from __future__ import annotations

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from collections.abc import Sequence


class ContainerError(RuntimeError):
    pass


class InvalidArgumentError(ContainerError, ValueError):
    """Malformed call input, e.g. a non-string alias name."""


class InvalidBindingError(ContainerError, TypeError):
    """A binding could not be validated or installed."""


class UnboundTypeError(InvalidBindingError):
    """Raised by strict containers when resolving a type nobody bound."""


class ResolutionCycleError(InvalidBindingError):
    def __init__(self, chain: Sequence[object]) -> None:
        self.chain = tuple(chain)
        names = " -> ".join(describe(token) for token in self.chain)
        super().__init__(f"Resolution cycle detected: {names}")


def describe(token: object) -> str:
    if isinstance(token, type):
        return f"{token.__module__}.{token.__qualname__}"
    return repr(token)
