from __future__ import annotations

import abc
import builtins
import importlib
import inspect
import logging
import typing
from typing import Any, Protocol, get_type_hints


logger = logging.getLogger(__name__)


class TypeIntrospector:
    """Answers the type questions the container asks while binding.

    - does a token name an existing class (class objects or dotted import paths)
    - can the class be constructed directly
    - does one class strictly implement another (subclassing, ABC registration,
      or structural conformance for protocols)
    - build a default instance.

    Subclass it to change how any of these are decided, then pass it to
    ``Container(introspector=...)``.
    """

    def locate(self, token: object) -> type | None:
        if inspect.isclass(token):
            return token
        if not isinstance(token, str) or not token:
            return None
        return _import_dotted(token)

    def type_exists(self, token: object) -> bool:
        return self.locate(token) is not None

    def is_protocol(self, tp: object) -> bool:
        return _is_protocol(tp)

    def is_instantiable(self, cls: type) -> bool:
        """Concrete classes only: no abstract methods, not a protocol, and not declaring ABC directly."""
        if not inspect.isclass(cls) or inspect.isabstract(cls) or _is_protocol(cls):
            return False
        # Marker interfaces like `class Plugin(ABC): ...` have no abstract methods
        return abc.ABC not in cls.__bases__

    def is_subtype_of(self, concrete: type, abstract: type) -> bool:
        """Strict subtype check: a class is never its own subtype."""
        if concrete is abstract or not (inspect.isclass(concrete) and inspect.isclass(abstract)):
            return False

        if _is_protocol(abstract):
            # Nominal conformance first, structural as the fallback
            if abstract in concrete.__mro__:
                return True
            return not self.protocol_mismatches(abstract, concrete)

        try:
            return issubclass(concrete, abstract)
        except TypeError:
            return False

    def construct(self, cls: type) -> object:
        return cls()

    def protocol_mismatches(self, proto_cls: type, impl: type) -> list[str]:  # noqa: C901
        """Best-effort structural conformance: presence + basic callable arity + return type checks."""
        missing: list[str] = []
        signature_mismatches: list[str] = []

        try:
            proto_hints = get_type_hints(proto_cls)
        except (NameError, TypeError):
            proto_hints = {}

        # Attributes required by annotations
        for name in proto_hints:
            if name.startswith("_"):
                continue
            if not hasattr(impl, name):
                missing.append(name)

        for base in proto_cls.__mro__:
            if not _is_protocol(base):
                continue

            for name, proto_attr in base.__dict__.items():
                if name.startswith("_") or not inspect.isfunction(proto_attr):
                    continue

                if not hasattr(impl, name):
                    missing.append(name)
                    continue

                impl_attr = getattr(impl, name)
                if not callable(impl_attr):
                    signature_mismatches.append(f"{name}: not callable on {impl.__name__}")
                    continue

                mismatch = _compare_signatures(name, proto_attr, impl_attr)
                if mismatch:
                    signature_mismatches.append(mismatch)

        problems = []
        if missing:
            problems.append(f"missing members: {', '.join(dict.fromkeys(missing))}")
        if signature_mismatches:
            problems.append(f"signature mismatches: {', '.join(signature_mismatches)}")
        return problems


def _compare_signatures(name: str, proto_attr: Any, impl_attr: Any) -> str | None:
    try:
        proto_sig = inspect.signature(proto_attr)
        impl_sig = inspect.signature(impl_attr)
    except (TypeError, ValueError) as e:
        return f"{name}: unable to compare signatures ({e})"

    proto_params = [p for p in proto_sig.parameters.values() if p.name != "self"]
    impl_params = [p for p in impl_sig.parameters.values() if p.name != "self"]

    if _positional_arity(impl_params) < _positional_arity(proto_params):
        return (
            f"{name}: impl has fewer required positional params "
            f"({_positional_arity(impl_params)}) than protocol "
            f"({_positional_arity(proto_params)})"
        )

    proto_ret = proto_sig.return_annotation
    impl_ret = impl_sig.return_annotation

    if (
        proto_ret is not inspect.Signature.empty
        and impl_ret is not inspect.Signature.empty
        and proto_ret is not Any
        and impl_ret is not Any
        and not _is_return_type_compatible(impl_ret, proto_ret)
    ):
        return f"{name}: return type {impl_ret!r} is not compatible with protocol return type {proto_ret!r}"

    return None


def _positional_arity(params: list[inspect.Parameter]) -> int:
    return sum(
        1
        for p in params
        if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
        and p.default is inspect.Parameter.empty
    )


def _is_return_type_compatible(impl_ret: object, proto_ret: object) -> bool:
    if impl_ret == proto_ret:
        return True

    # Handle class-based covariance
    if isinstance(impl_ret, type) and isinstance(proto_ret, type):
        return issubclass(impl_ret, proto_ret)

    # Strings from postponed annotations, Unions, TypeVars: conservative failure
    return False


def _import_dotted(path: str) -> type | None:
    """Find the class named by 'package.module.Qualified.Name'; bare names come from builtins."""
    parts = path.split(".")
    if not all(parts):
        return None

    if len(parts) == 1:
        builtin = getattr(builtins, path, None)
        return builtin if inspect.isclass(builtin) else None

    # Longest importable module prefix wins, the rest is an attribute chain
    for split in range(len(parts) - 1, 0, -1):
        module_name = ".".join(parts[:split])
        try:
            found: object = importlib.import_module(module_name)
        except ImportError as exc:
            logger.debug("Cannot import %s while locating %s (%s)", module_name, path, exc)
            continue

        for attr in parts[split:]:
            found = getattr(found, attr, None)
            if found is None:
                return None
        return found if inspect.isclass(found) else None

    return None


if hasattr(typing, "is_protocol"):
    # https://docs.python.org/3/library/typing.html#typing.is_protocol
    def _is_protocol(tp: object) -> bool:
        return inspect.isclass(tp) and typing.is_protocol(tp)

else:

    def _is_protocol(tp: object) -> bool:
        """Only classes declaring Protocol as a direct base count, not their implementers."""
        return inspect.isclass(tp) and bool(getattr(tp, "_is_protocol", False)) and tp is not Protocol
