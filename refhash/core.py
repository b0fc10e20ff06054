import collections.abc
import copy
import reprlib
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional, Tuple

from refhash import serialize
from refhash.duplication import DuplicationCoordinator, default_coordinator
from refhash.identity import IdentityToken, is_identity_key as _is_identity_key


class _Absent:
    __slots__ = ()
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return 'ABSENT'

    def __reduce__(self):
        return (_Absent, ())


ABSENT = _Absent()


class ValueStrategy(ABC):
    @abstractmethod
    def wrap(self, container: 'RefHash', value: Any) -> Any:
        pass


class KeepValue(ValueStrategy):
    def wrap(self, container: 'RefHash', value: Any) -> Any:
        return value


class _Stage(Enum):
    IDENTITY = 'identity'
    SCALAR = 'scalar'
    DONE = 'done'


class _Cursor(collections.abc.Iterator):
    """
    Walks the identity store, then the scalar store.

    Each store is walked over a snapshot of its keys taken when the cursor
    reaches it, so deleting the entry just yielded is safe. Entries that are
    gone by the time the cursor gets to them are skipped.
    """

    __slots__ = ('_container', '_stage', '_pending')

    def __init__(self, container: 'RefHash'):
        self._container = container
        self._stage = _Stage.IDENTITY
        self._pending = iter(list(container._refs))

    @property
    def stage(self) -> _Stage:
        return self._stage

    def __next__(self) -> Tuple[Any, Any]:
        container = self._container
        while True:
            match self._stage:
                case _Stage.IDENTITY:
                    for token in self._pending:
                        entry = container._refs.get(token)
                        if entry is not None:
                            return entry
                    self._stage = _Stage.SCALAR
                    self._pending = iter(list(container._scalars))

                case _Stage.SCALAR:
                    for key in self._pending:
                        value = container._scalars.get(key, ABSENT)
                        if value is not ABSENT:
                            return (key, value)
                    self._stage = _Stage.DONE
                    self._pending = iter(())

                case _Stage.DONE:
                    raise StopIteration


class RefHash(collections.abc.MutableMapping):
    """
    A dictionary-like container that accepts any object as a key.

    Scalar keys (strings, bytes, numbers, None, and tuples or frozensets of
    those) are looked up by value in an ordinary dict. Every other key is
    looked up by identity: the container stores `(original_key, value)`
    under the key's identity token, which keeps the key object alive and its
    token valid for as long as the entry exists. Two equal lists are two
    different keys.

    `fetch`, `store` and `delete` return `ABSENT` instead of raising on a
    missing key; the `MutableMapping` protocol on top raises `KeyError` as
    usual.
    """

    __slots__ = ('_refs', '_scalars', '_coordinator', '_resolver', '__weakref__')

    value_strategy: ValueStrategy = KeepValue()
    is_identity_key = staticmethod(_is_identity_key)

    def __init__(self, initial: Mapping | Iterable[Tuple[Any, Any]] = (), *,
                 coordinator: Optional[DuplicationCoordinator] = None):
        self._coordinator = coordinator if coordinator is not None else default_coordinator
        self._resolver = self._coordinator.resolver
        self._refs: Dict[IdentityToken, Tuple[Any, Any]] = {}
        self._scalars: Dict[Any, Any] = {}

        if isinstance(initial, collections.abc.Mapping):
            initial = initial.items()
        for key, value in initial:
            self.store(key, value)

        self._coordinator.register(self)

    @property
    def coordinator(self) -> DuplicationCoordinator:
        return self._coordinator

    def fetch(self, key: Any) -> Any:
        if self.is_identity_key(key):
            entry = self._refs.get(self._resolver.resolve(key))
            return ABSENT if entry is None else entry[1]
        return self._scalars.get(key, ABSENT)

    def store(self, key: Any, value: Any) -> Any:
        """Stores `value` under `key`, returning the value it replaced or `ABSENT`."""
        assert value is not ABSENT, "ABSENT cannot be stored"
        value = self.value_strategy.wrap(self, value)

        if self.is_identity_key(key):
            token = self._resolver.resolve(key)
            previous = self._refs.get(token)
            self._refs[token] = (key, value)
            return ABSENT if previous is None else previous[1]

        previous = self._scalars.get(key, ABSENT)
        self._scalars[key] = value
        return previous

    def delete(self, key: Any) -> Any:
        if self.is_identity_key(key):
            entry = self._refs.pop(self._resolver.resolve(key), None)
            return ABSENT if entry is None else entry[1]
        return self._scalars.pop(key, ABSENT)

    def contains(self, key: Any) -> bool:
        if self.is_identity_key(key):
            return self._resolver.resolve(key) in self._refs
        return key in self._scalars

    def clear(self) -> None:
        self._refs.clear()
        self._scalars.clear()

    def iterate(self) -> Iterator[Tuple[Any, Any]]:
        return _Cursor(self)

    def rehash(self) -> None:
        """Recomputes every identity token; the key objects themselves are kept."""
        resolve = self._resolver.resolve
        self._refs = {resolve(key): (key, value) for (key, value) in self._refs.values()}

    def __getitem__(self, key):
        value = self.fetch(key)
        if value is ABSENT:
            raise KeyError(key)
        return value

    def __setitem__(self, key, value):
        self.store(key, value)

    def __delitem__(self, key):
        if self.delete(key) is ABSENT:
            raise KeyError(key)

    def __contains__(self, key):
        return self.contains(key)

    def __iter__(self):
        """
        Iteration yields the *actual key objects*, not their tokens.
        """
        for (key, _) in self.iterate():
            yield key

    def __len__(self):
        return len(self._refs) + len(self._scalars)

    def get(self, key, default=None):
        value = self.fetch(key)
        return default if value is ABSENT else value

    def __eq__(self, other):
        if not isinstance(other, RefHash):
            return NotImplemented
        if len(self) != len(other):
            return False
        for (key, value) in self.iterate():
            theirs = other.fetch(key)
            if theirs is ABSENT or not (theirs is value or theirs == value):
                return False
        return True

    __hash__ = None

    def __reduce__(self):
        return (self.__class__, (), serialize.freeze(self))

    def __setstate__(self, state):
        tag, entries = state
        serialize.check_tag(tag)
        for (key, value) in entries:
            self.store(key, value)

    # Copies stay in this process, so unlike unpickled containers they keep
    # the coordinator of the original.
    def __copy__(self):
        return self.__class__(self.iterate(), coordinator=self._coordinator)

    def __deepcopy__(self, memo):
        result = self.__class__(coordinator=self._coordinator)
        memo[id(self)] = result
        for (key, value) in self.iterate():
            result.store(copy.deepcopy(key, memo), copy.deepcopy(value, memo))
        return result

    @reprlib.recursive_repr()
    def __repr__(self):
        items_str = ', '.join(
            f'{repr(k)}: {repr(v)}' for (k, v) in self.iterate()
        )
        return f'{self.__class__.__name__}({{{items_str}}})'
