"""Type definitions for aimon.

TypedDict records exchanged with the process-listing collaborator and with
rendering code. Field names of IdentifiedProcess are consumed verbatim by
display code.
"""

from typing import Literal, TypedDict
from typing_extensions import NotRequired


Category = Literal['web', 'database', 'tool', 'service', 'app', 'script', 'system', 'container']

CATEGORIES: tuple[str, ...] = (
    'web', 'database', 'tool', 'service', 'app', 'script', 'system', 'container',
)


class RawProcess(TypedDict):
    """One row of an OS process snapshot."""
    pid: int
    command: str
    ppid: NotRequired[int | None]
    cwd: NotRequired[str | None]
    port: NotRequired[int | None]


class ContainerInfo(TypedDict):
    """A running container publishing a host port."""
    name: str
    image: str


class IdentifiedProcess(TypedDict):
    """Human-meaningful identity resolved for a raw process."""
    displayName: str
    category: Category
    project: NotRequired[str]
    port: NotRequired[int]
    containerInfo: NotRequired[ContainerInfo]


class CacheStats(TypedDict):
    """Occupancy of each cache layer, for diagnostics only."""
    identitySize: int
    inflightSize: int
    cwdSize: int
    containerSize: int
    sessionCount: NotRequired[int]


SessionStatus = Literal['active', 'interrupted', 'idle']

SESSION_STATUSES: tuple[str, ...] = ('active', 'interrupted', 'idle')
