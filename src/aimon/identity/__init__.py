"""Process identity resolution.

This package contains modules for:
- Bounded TTL caching of probe results (../cache.py)
- System probes for cwd and container lookups (system_info.py)
- Process snapshot and termination (processes.py)
- Parent/child relationships in a snapshot (tree.py)
- Pattern-based classification (patterns.py)
- Parent -> child inheritance heuristics (relationship.py)
- Cached, de-duplicated identification (identifier.py)

Import from here for a clean API:
    from aimon.identity import ProcessIdentifier, get_process_snapshot
"""

# System probes
from .system_info import (
    SystemProbe,
    run_command,
    parse_lsof_cwd,
    parse_docker_ports,
)

# Process snapshot
from .processes import (
    get_process_snapshot,
    get_listening_ports,
    parse_ps_output,
    parse_lsof_listen,
    terminate,
)

# Process tree
from .tree import ProcessTree

# Classification
from .patterns import (
    PATTERN_RULES,
    PatternContext,
    classify,
    extract_project_name,
    format_process_display,
    match_rules,
)

# Inheritance
from .relationship import (
    inherit_identity,
    should_inherit,
)

# Identifier
from .identifier import (
    ProcessIdentifier,
    cache_key,
)

__all__ = [
    # System probes
    'SystemProbe',
    'run_command',
    'parse_lsof_cwd',
    'parse_docker_ports',
    # Process snapshot
    'get_process_snapshot',
    'get_listening_ports',
    'parse_ps_output',
    'parse_lsof_listen',
    'terminate',
    # Process tree
    'ProcessTree',
    # Classification
    'PATTERN_RULES',
    'PatternContext',
    'classify',
    'extract_project_name',
    'format_process_display',
    'match_rules',
    # Inheritance
    'inherit_identity',
    'should_inherit',
    # Identifier
    'ProcessIdentifier',
    'cache_key',
]
