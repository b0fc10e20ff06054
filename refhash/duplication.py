import collections
import logging
import os
import threading
import warnings
import weakref
from typing import Any, Callable, Deque, Dict, List, Optional

from refhash.identity import IdentityResolver

log = logging.getLogger(__name__)

# Dead registry entries are dropped once every this many registrations.
PRUNE_INTERVAL = 1000


class DegradedDuplicationSupport(RuntimeWarning):
    pass


class _StrongRef:
    """Stands in for a `weakref.ref` when the container cannot be weakly referenced."""

    __slots__ = ('_obj',)

    def __init__(self, obj):
        self._obj = obj

    def __call__(self):
        return self._obj


class DuplicationCoordinator:
    """
    Keeps track of live containers so that their identity stores can be
    rebuilt after the world is duplicated (a `fork()`, or a simulated one
    through `on_duplicate()`).

    The side table is keyed by `id(container)` and holds weak references,
    so registration never keeps a container alive. Containers deregister
    themselves through a `weakref.finalize` hook; anything that slips
    through is pruned every `prune_interval` registrations.
    """

    def __init__(self, prune_interval: int = PRUNE_INTERVAL, use_weakrefs: bool = True,
                 resolver: Optional[IdentityResolver] = None):
        assert prune_interval > 0, "prune_interval must be positive"
        self.resolver = resolver if resolver is not None else IdentityResolver()
        self.prune_interval = prune_interval
        self.use_weakrefs = use_weakrefs

        self._table: Dict[int, Callable[[], Any]] = {}
        self._dead: Deque[int] = collections.deque()
        self._count = 0
        self._lock = threading.Lock()
        self._installed = False
        self._fork_hooked = False
        self._warned = False

    @property
    def installed(self) -> bool:
        return self._installed

    def install(self) -> 'DuplicationCoordinator':
        if self._installed:
            return self

        # Fork hooks cannot be removed, so the hook only holds a weak
        # reference and checks `installed` before acting.
        if not self._fork_hooked and hasattr(os, 'register_at_fork'):
            ref = weakref.ref(self)

            def after_in_child():
                coordinator = ref()
                if coordinator is not None and coordinator.installed:
                    coordinator._after_fork()

            os.register_at_fork(after_in_child=after_in_child)
            self._fork_hooked = True

        self._installed = True
        log.debug("duplication coordinator installed (fork hook: %s)", self._fork_hooked)
        return self

    def teardown(self) -> None:
        self._installed = False
        with self._lock:
            self._table.clear()
            self._dead.clear()
            self._count = 0
        log.debug("duplication coordinator torn down")

    def _after_fork(self) -> None:
        # The parent's lock may have been held by another thread at fork time.
        self._lock = threading.Lock()
        self.on_duplicate()

    def register(self, container: Any) -> None:
        ref = None
        if self.use_weakrefs:
            try:
                ref = weakref.ref(container)
            except TypeError:
                ref = None

        if ref is None:
            ref = _StrongRef(container)
            self._warn_degraded()
        else:
            weakref.finalize(container, self.discard, id(container))

        with self._lock:
            self._drain_dead()
            self._table[id(container)] = ref
            self._count += 1
            if self._count >= self.prune_interval:
                self._prune()
                self._count = 0

    def unregister(self, container: Any) -> None:
        with self._lock:
            ref = self._table.get(id(container))
            if ref is not None and ref() is container:
                del self._table[id(container)]

    def discard(self, container_id: int) -> None:
        """
        Queues `container_id` for removal once its container is gone.

        Runs from finalizers, which the cyclic GC may fire on a thread that
        already holds `_lock`, so it must not take the lock. The queue is
        drained by the next call that does.
        """
        self._dead.append(container_id)

    def _drain_dead(self) -> None:
        while self._dead:
            container_id = self._dead.popleft()
            ref = self._table.get(container_id)
            if ref is not None and ref() is None:
                del self._table[container_id]

    def _prune(self) -> None:
        before = len(self._table)
        self._table = {cid: ref for cid, ref in self._table.items() if ref() is not None}
        log.debug("pruned %d dead registry entries", before - len(self._table))

    def _warn_degraded(self) -> None:
        if self._warned:
            return
        self._warned = True
        warnings.warn(
            "weak references are unavailable for refhash containers; the duplication "
            "registry cannot prune itself and will grow with every container created",
            DegradedDuplicationSupport,
            stacklevel=4,
        )

    def live_containers(self) -> List[Any]:
        with self._lock:
            self._drain_dead()
            refs = list(self._table.values())
        return [container for container in (ref() for ref in refs) if container is not None]

    def rehash_all(self) -> int:
        containers = self.live_containers()
        for container in containers:
            container.rehash()
        return len(containers)

    def on_duplicate(self) -> int:
        """Starts a new identity generation and rehashes every live container."""
        generation = self.resolver.advance()
        count = self.rehash_all()
        log.debug("world duplicated: generation %d, rehashed %d containers", generation, count)
        return count

    def __len__(self) -> int:
        with self._lock:
            self._drain_dead()
            return len(self._table)

    def __repr__(self) -> str:
        return (f"{self.__class__.__name__}(entries={len(self._table)}, "
                f"installed={self._installed}, resolver={self.resolver!r})")


default_coordinator = DuplicationCoordinator().install()
