"""Pattern-based process classification.

Rules are tried in declared order and the first match wins. When nothing
matches, the fallback derives a name from an interpreter-run script or the
binary itself, so classify() always returns an identity.
"""

import re
from dataclasses import dataclass
from typing import Callable, NamedTuple

from ..types import ContainerInfo, IdentifiedProcess
from ..utils import path_basename

# Directories that hold projects rather than being one
CONTAINER_DIRS = {'repositories', 'projects', 'code', 'workspace', 'dev', 'src', 'work', 'git'}
COMMON_SUBDIRS = {'node_modules', 'dist', 'src', 'bin', 'lib', 'build', '.git'}

# Entrypoints too generic to be a useful label on their own
GENERIC_SCRIPTS = {'cli', 'index', 'main', 'app', 'server', 'run', '__main__'}
GENERIC_ENTRYPOINTS = {
    'index.js', 'main.js', 'app.js', 'server.js', 'main.py', 'app.py', '__main__.py',
}

INTERPRETER_RE = re.compile(r'^(?:node|bun|deno|ruby|php|python[\d.]*)$', re.IGNORECASE)
SCRIPT_IN_COMMAND_RE = re.compile(r'/([\w-]+)\.(?:js|ts|py|rb|php|mjs|cjs)\s*(\w*)')
SCRIPT_EXTENSION_RE = re.compile(r'\.(js|ts|mjs|cjs|py|rb|go|rs|php)$')

_CONTAINER_DIR_ALT = '|'.join(sorted(CONTAINER_DIRS))
_DEEP_PROJECT_RE = re.compile(rf'/(?:{_CONTAINER_DIR_ALT})/([^/]+)/(?:dist|src|bin|lib|build|out)/')
_COMMAND_PROJECT_RE = re.compile(r'/(?:repositories|projects|code|workspace|dev)/([^/]+)/')


@dataclass(frozen=True)
class PatternContext:
    """Hints available to rule handlers besides the command line."""
    cwd: str | None = None
    project_name: str | None = None
    port: int | None = None
    container: ContainerInfo | None = None


class PatternRule(NamedTuple):
    name: str
    pattern: re.Pattern
    handler: Callable[[re.Match, PatternContext], IdentifiedProcess]


def extract_project_name(cwd: str | None, command: str) -> str | None:
    """Infer the project a process belongs to from its cwd and command line.

    A cwd that is itself a container directory (~/projects, ~/code, ...) is
    not a project; the command path is searched for the directory below it
    instead.
    """
    if cwd:
        basename = path_basename(cwd)
        if not basename:
            return None

        if basename.lower() in CONTAINER_DIRS:
            match = re.search(rf'/{re.escape(basename)}/([^/\s]+)/', command)
            if match and match.group(1) not in COMMON_SUBDIRS:
                return match.group(1)

            deep = _DEEP_PROJECT_RE.search(command)
            if deep:
                return deep.group(1)
            return None

        return basename

    match = _COMMAND_PROJECT_RE.search(command)
    if match:
        return match.group(1)
    return None


def _with_project(name: str, ctx: PatternContext) -> str:
    return f"{name} [{ctx.project_name}]" if ctx.project_name else name


def _identity(display_name: str, category: str, project: str | None = None) -> IdentifiedProcess:
    result: IdentifiedProcess = {'displayName': display_name, 'category': category}
    if project:
        result['project'] = project
    return result


# ============================================================================
# Rule handlers
# ============================================================================

def _self_tool(match: re.Match, ctx: PatternContext) -> IdentifiedProcess:
    subcommand = match.group(1)
    return _identity(f"aimon:{subcommand}" if subcommand else 'aimon', 'tool', 'aimon')


def _packaged_cli(match: re.Match, ctx: PatternContext) -> IdentifiedProcess:
    project, script, subcommand = match.group(1), match.group(3), match.group(4)
    tool = project if script in GENERIC_SCRIPTS else script
    return _identity(f"{tool}:{subcommand}" if subcommand else tool, 'tool', project)


def _vercel(match: re.Match, ctx: PatternContext) -> IdentifiedProcess:
    return _identity(_with_project(f"vercel:{match.group(2)}", ctx), 'web', ctx.project_name)


def _js_dev_server(match: re.Match, ctx: PatternContext) -> IdentifiedProcess:
    return _identity(_with_project(match.group(1), ctx), 'web', ctx.project_name)


def _python_web_server(match: re.Match, ctx: PatternContext) -> IdentifiedProcess:
    server = 'django' if match.group(0).endswith('runserver') else match.group(1).lower()
    return _identity(_with_project(server, ctx), 'web', ctx.project_name)


def _package_script(match: re.Match, ctx: PatternContext) -> IdentifiedProcess:
    name = f"{match.group(1)}:{match.group(2)}"
    return _identity(_with_project(name, ctx), 'tool', ctx.project_name)


def _database(match: re.Match, ctx: PatternContext) -> IdentifiedProcess:
    return _identity(match.group(1).lower(), 'database')


def _language_runtime(match: re.Match, ctx: PatternContext) -> IdentifiedProcess:
    runtime = match.group(1)
    args = match.group(2).split()

    if len(args) >= 2 and args[0] == '-m':
        script = args[1]
    else:
        script = next((a for a in args if not a.startswith('-')), args[0] if args else '')

    if not script:
        return _identity(_with_project(runtime, ctx), 'script', ctx.project_name)

    if '/' in script:
        script = path_basename(script)
        if script in GENERIC_ENTRYPOINTS and ctx.project_name:
            return _identity(f"{runtime} [{ctx.project_name}]", 'script', ctx.project_name)

    script = SCRIPT_EXTENSION_RE.sub('', script)
    return _identity(_with_project(f"{runtime}:{script}", ctx), 'script', ctx.project_name)


def _shell(match: re.Match, ctx: PatternContext) -> IdentifiedProcess:
    # Interactive shells never carry project context
    return _identity(match.group(2), 'system')


def _macos_app(match: re.Match, ctx: PatternContext) -> IdentifiedProcess:
    command = match.string

    # Executable path ends where the first flag begins
    flag = re.search(r'\s+--?\w', command)
    exec_path = command[:flag.start()].strip() if flag else command.strip()

    apps = re.findall(r'/([^/]+)\.app', exec_path, re.IGNORECASE)
    if not apps:
        return _identity(path_basename(command.split(' ')[0]), 'system')

    primary, last = apps[0], apps[-1]
    exec_name = path_basename(exec_path)

    if exec_name.lower() in {'stable', 'beta', 'canary', 'alpha', 'dev', 'nightly'}:
        return _identity(primary, 'app')

    if last != primary and 'Helper' in last:
        if 'Browser Helper' in exec_name:
            kind = re.search(r'\(([^)]+)\)', exec_name)
            helper = f"Helper:{kind.group(1)}" if kind else 'Helper'
        elif 'Code Helper' in exec_name:
            helper = 'Code Helper'
        else:
            helper = re.sub(r'\s*\([^)]+\)', '', last)
        return _identity(f"{primary}:{helper}", 'app')

    if re.sub(r'[\s-]', '', exec_name).lower() == re.sub(r'[\s-]', '', primary).lower():
        return _identity(primary, 'app')

    return _identity(f"{primary}:{exec_name}", 'app')


PATTERN_RULES: tuple[PatternRule, ...] = (
    PatternRule(
        'self',
        re.compile(r'(?:python[\d.]*\s+-m\s+|/|^)aimon(?:\.server)?(?:\s+(\w+))?(?:\s|$)', re.IGNORECASE),
        _self_tool,
    ),
    PatternRule(
        'packaged-cli',
        re.compile(r'^(?:bun|node)\s+(?:.*/)?([^/]+)/(dist|bin|lib|build)/([^/\s.]+)(?:\.(?:js|ts|mjs|cjs))?(?:\s+(\w+))?', re.IGNORECASE),
        _packaged_cli,
    ),
    PatternRule(
        'vercel',
        re.compile(r'node.*/(vc|vercel)\s+(\w+)', re.IGNORECASE),
        _vercel,
    ),
    PatternRule(
        'js-dev-server',
        re.compile(r'node.*/(next|nuxt|vite|webpack-dev-server|react-scripts)\b', re.IGNORECASE),
        _js_dev_server,
    ),
    PatternRule(
        'python-web-server',
        re.compile(r'(?:^|[/\s])(uvicorn|gunicorn|hypercorn|daphne|flask)\b|manage\.py\s+runserver', re.IGNORECASE),
        _python_web_server,
    ),
    PatternRule(
        'package-script',
        re.compile(r'\b(npm|yarn|pnpm|bun)\s+(?:run\s+)?(\w+)', re.IGNORECASE),
        _package_script,
    ),
    PatternRule(
        'database',
        re.compile(r'(postgres|postgresql|mysql|mongodb|mongod|redis|elasticsearch)', re.IGNORECASE),
        _database,
    ),
    PatternRule(
        'language-runtime',
        re.compile(r'^(node|python[\d.]*|ruby|java|go|rust|php)\s+(.+)', re.IGNORECASE),
        _language_runtime,
    ),
    PatternRule(
        'shell',
        re.compile(r'^(-?(?:.*/)?(sh|bash|zsh|fish|csh|tcsh))\s*(-.*)?$', re.IGNORECASE),
        _shell,
    ),
    PatternRule(
        'macos-app',
        re.compile(r'/Applications/', re.IGNORECASE),
        _macos_app,
    ),
)


def match_rules(command: str, ctx: PatternContext) -> IdentifiedProcess | None:
    """Run the first rule whose pattern matches, or return None."""
    for rule in PATTERN_RULES:
        match = rule.pattern.search(command)
        if match:
            return rule.handler(match, ctx)
    return None


def container_identity(container: ContainerInfo, port: int | None) -> IdentifiedProcess:
    result: IdentifiedProcess = {
        'displayName': f"docker:{container['name']}",
        'category': 'container',
        'project': container['name'],
        'containerInfo': container,
    }
    if port:
        result['port'] = port
    return result


def fallback_identity(command: str, project_name: str | None) -> IdentifiedProcess:
    """Best-effort identity for a command no rule claimed."""
    tokens = command.split()
    basename = path_basename(tokens[0]) if tokens else ''

    if INTERPRETER_RE.match(basename):
        script_match = SCRIPT_IN_COMMAND_RE.search(command)
        if script_match:
            script, subcommand = script_match.group(1), script_match.group(2)
            tool = project_name if script in GENERIC_SCRIPTS and project_name else script
            return _identity(f"{tool}:{subcommand}" if subcommand else tool, 'tool', project_name)

        if project_name:
            return _identity(project_name, 'tool', project_name)

    if not basename:
        basename = 'unknown'
    name = f"{basename} [{project_name}]" if project_name else basename
    return _identity(name, 'system', project_name)


def classify(command: str, ctx: PatternContext | None = None) -> IdentifiedProcess:
    """Classify a command line. Never returns None."""
    ctx = ctx or PatternContext()
    command = command or ''

    if ctx.container:
        return container_identity(ctx.container, ctx.port)

    if ctx.port and re.search(r'com\.docker', command, re.IGNORECASE):
        return {'displayName': f"docker:{ctx.port}", 'category': 'container', 'port': ctx.port}

    result = match_rules(command, ctx) or fallback_identity(command, ctx.project_name)
    if ctx.port and 'port' not in result:
        result['port'] = ctx.port
    return result


def format_process_display(identified: IdentifiedProcess, port: int | None = None) -> str:
    if port:
        return f"{identified['displayName']}:{port}"
    return identified['displayName']
