"""Parent/child relationships within one process snapshot."""

from typing import Iterator

from ..types import RawProcess


class ProcessTree:
    """Adjacency built once per snapshot.

    Ancestor walks keep a visited set and stop on the first repeated pid, so
    a malformed snapshot with a parent cycle answers "not an ancestor"
    instead of looping.
    """

    def __init__(self, processes: list[RawProcess]):
        self.processes: dict[int, RawProcess] = {p['pid']: p for p in processes}
        self._parent: dict[int, int] = {}
        self._children: dict[int, list[int]] = {}

        for process in processes:
            ppid = process.get('ppid')
            if ppid:
                self._parent[process['pid']] = ppid
                self._children.setdefault(ppid, []).append(process['pid'])

    def get_parent(self, pid: int) -> RawProcess | None:
        ppid = self._parent.get(pid)
        if ppid is None:
            return None
        return self.processes.get(ppid)

    def get_children(self, pid: int) -> list[RawProcess]:
        return [self.processes[c] for c in self._children.get(pid, []) if c in self.processes]

    def iter_ancestors(self, pid: int) -> Iterator[int]:
        """Yield ancestor pids from the parent upwards, stopping at a cycle."""
        visited = {pid}
        current = self._parent.get(pid)
        while current and current not in visited:
            yield current
            visited.add(current)
            current = self._parent.get(current)

    def is_descendant_of(self, pid: int, ancestor_pid: int) -> bool:
        return any(a == ancestor_pid for a in self.iter_ancestors(pid))

    def depth(self, pid: int) -> int:
        """Number of ancestors present in this snapshot."""
        return sum(1 for a in self.iter_ancestors(pid) if a in self.processes)

    def ancestors_first(self) -> list[RawProcess]:
        """All processes ordered so every ancestor precedes its descendants."""
        return sorted(
            self.processes.values(),
            key=lambda p: (self.depth(p['pid']), p['pid']),
        )
