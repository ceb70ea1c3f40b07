import unittest
from typing import Protocol

import pytest

from tinyioc import Container, InvalidBindingError, ResolutionCycleError


class Reader(Protocol):
    def read(self) -> bytes: ...


class Source(Protocol):
    def read(self) -> bytes: ...


class FileReader:
    def read(self) -> bytes:
        return b""


class TestAliasCycles(unittest.TestCase):
    cont: Container

    def setUp(self):
        self.cont = Container()

    def test_alias_cycle_raises(self):
        self.cont.alias("a", "b")
        self.cont.alias("b", "a")

        with pytest.raises(ResolutionCycleError) as ctx:
            self.cont.resolve("a")

        assert ctx.value.chain == ("a", "b", "a")

    def test_self_alias_raises(self):
        self.cont.alias("a", "a")

        with pytest.raises(ResolutionCycleError):
            self.cont.resolve("a")

    def test_cycle_error_is_an_invalid_binding_error(self):
        self.cont.alias("a", "a")

        with pytest.raises(InvalidBindingError):
            self.cont.resolve("a")


class TestBindingCycles(unittest.TestCase):
    cont: Container

    def setUp(self):
        self.cont = Container()

    def test_structurally_equal_protocols_bound_to_each_other_raise(self):
        self.cont.bind(Reader, Source)
        self.cont.bind(Source, Reader)

        with pytest.raises(ResolutionCycleError) as ctx:
            self.cont.resolve(Reader)

        assert ctx.value.chain == (Reader, Source, Reader)

    def test_factory_resolving_its_own_type_raises(self):
        self.cont.bind(FileReader, lambda c: c.resolve(FileReader))

        with pytest.raises(ResolutionCycleError):
            self.cont.resolve(FileReader)

    def test_singleton_factory_resolving_its_own_type_raises_and_caches_nothing(self):
        self.cont.singleton(FileReader, lambda c: c.resolve("reader"))
        self.cont.alias("reader", FileReader)

        with pytest.raises(ResolutionCycleError):
            self.cont.resolve(FileReader)

        self.cont.singleton(FileReader)
        assert self.cont.resolve("reader") is self.cont.resolve(FileReader)

    def test_container_recovers_after_cycle(self):
        self.cont.bind(Reader, Source)
        self.cont.bind(Source, Reader)

        with pytest.raises(ResolutionCycleError):
            self.cont.resolve(Reader)

        self.cont.bind(Source, FileReader)

        assert isinstance(self.cont.resolve(Reader), FileReader)

    def test_same_type_resolved_twice_by_one_factory_is_not_a_cycle(self):
        class Pair:
            def __init__(self, first: FileReader, second: FileReader) -> None:
                self.first = first
                self.second = second

        self.cont.bind(Pair, lambda c: Pair(c.resolve(FileReader), c.resolve(FileReader)))

        pair = self.cont.resolve(Pair)

        assert pair.first is not pair.second


class TestCycleDetectionDisabled(unittest.TestCase):
    def test_binding_cycle_recurses_without_detection(self):
        cont = Container(detect_cycles=False)
        cont.bind(FileReader, lambda c: c.resolve(FileReader))

        with pytest.raises(RecursionError):
            cont.resolve(FileReader)
