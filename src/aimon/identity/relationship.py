"""Parent -> child identity inheritance heuristics.

A generic runtime or dev-server child spawned by an already identified
parent is better shown under the parent's identity than re-classified into
something less specific. The rules are heuristics; anything they do not
recognise is classified independently.
"""

import re

from ..types import IdentifiedProcess, RawProcess
from ..utils import path_basename

DEV_TOOLS_RE = re.compile(r'\b(npm|yarn|pnpm|bun|vercel|nx|turbo|next|vite|webpack)')
DEV_SERVERS_RE = re.compile(r'\b(next-server|webpack|vite|nodemon|ts-node|dev-server|serve|uvicorn|gunicorn|watchfiles)')
SHELLS_RE = re.compile(r'\b(sh|bash|zsh|fish|csh|tcsh)$')
RUNTIMES_RE = re.compile(r'\b(node|bun|python|python3|ruby|php|deno)')
PROJECT_SUBDIR_RE = re.compile(r'/([^/]+)/(?:dist|src|bin|lib|build|out)/')

# Children that are the parent's own server process keep the parent's name
TRANSPARENT_CHILDREN = ('next-server', 'webpack', 'vite', 'nodemon', 'watchfiles')


def is_development_tool_chain(parent_cmd: str, child_cmd: str) -> bool:
    """npm -> next-server, vercel -> webpack, uvicorn --reload -> worker, ..."""
    return bool(DEV_TOOLS_RE.search(parent_cmd) or DEV_SERVERS_RE.search(parent_cmd)) \
        and bool(DEV_SERVERS_RE.search(child_cmd))


def is_same_project(child_cmd: str, parent_project: str) -> bool:
    match = PROJECT_SUBDIR_RE.search(child_cmd)
    if match and match.group(1).lower() == parent_project.lower():
        return True
    return f"/{parent_project.lower()}/" in child_cmd.lower()


def is_script_execution_chain(parent_cmd: str, child_cmd: str) -> bool:
    """shell -> runtime/script, or runtime -> script with a clear path."""
    if SHELLS_RE.search(parent_cmd) and (RUNTIMES_RE.search(child_cmd) or '/' in child_cmd):
        return True
    if RUNTIMES_RE.search(parent_cmd) and '/' in child_cmd and '.' in child_cmd:
        return True
    return False


def should_inherit(child: RawProcess, parent: RawProcess, parent_identity: IdentifiedProcess) -> bool:
    """Whether child should take its identity from its already identified parent."""
    # Containers and bare interactive shells are never an identity worth passing down
    if parent_identity['category'] == 'container':
        return False
    if parent_identity['category'] == 'system' and not parent_identity.get('project'):
        return False

    parent_cmd = parent['command'].lower()
    child_cmd = child['command'].lower()

    if is_development_tool_chain(parent_cmd, child_cmd):
        return True

    project = parent_identity.get('project')
    if project and is_same_project(child_cmd, project):
        return True

    return is_script_execution_chain(parent_cmd, child_cmd)


def inherit_identity(parent_identity: IdentifiedProcess, child: RawProcess) -> IdentifiedProcess:
    """Build the child's identity from its parent's."""
    result: IdentifiedProcess = dict(parent_identity)
    child_port = child.get('port')
    if child_port:
        result['port'] = child_port

    command = child['command']
    if any(server in command.lower() for server in TRANSPARENT_CHILDREN):
        return result

    tokens = command.split()
    child_name = path_basename(tokens[0]) if tokens else ''
    if child_name:
        result['displayName'] = f"{parent_identity['displayName']}→{child_name}"
    return result
