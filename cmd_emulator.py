#!/usr/bin/env python3
"""
CMD Emulator - a small CMD-style command shell

This emulator reads a line of text, resolves its first word to a named
operation, binds the remaining words to that operation's declared parameters
and runs it. Built-in operations cover the everyday CMD commands (``dir``,
``cd``, ``copy``, ``type``, ``help``, ...). Batch files (``*.batnet`` or
``*.bat``) are plain text files whose lines are fed, one after another,
through the same dispatch path as interactive input; ``call <file>`` or
simply typing the file name runs one.

Commands are declared up front in a static registry. Each entry carries an
explicit parameter shape made of ``Text``, ``TypedScalar`` and ``RestOfLine``
parameters, so argument binding never needs to inspect handler signatures.
Binding failures, unknown commands and errors raised by a handler are
reported as a single coloured line and the prompt keeps running; only
``exit`` ends the process.

Behaviour can be tuned with an optional YAML file (``cmd_emulator.yaml`` in
the working directory, or the path in ``CMD_EMULATOR_CONFIG``): recognised
script extensions, the script error policy, the script nesting limit,
command aliases, the history file and colour output. History and tab
completion are available when the readline module is present.
"""

import os
import sys
import time
import stat
import shutil
import atexit
from cmd import Cmd
from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, TextIO, Tuple, Union

# optional module
try:
    import readline  # noqa: F401
except Exception:
    readline = None

try:
    from colorama import Fore, Style, init as colorama_init, deinit as colorama_deinit
except Exception:
    print("Please install 'colorama' (pip install colorama)")
    sys.exit(1)

import yaml

DEFAULT_CONFIG_FILE = "cmd_emulator.yaml"
CONFIG_ENV_VAR = "CMD_EMULATOR_CONFIG"

# Number of lines ``more`` shows before pausing.
DEFAULT_PAGE_LINES = 24


# ---------- Utilities ----------
def c(text: Any, color: Fore = Fore.CYAN) -> str:
    """Colourise text for terminal display."""
    lines = str(text).splitlines() or [""]
    return "\n".join(f"{color}{ln}{Style.RESET_ALL}" for ln in lines)


# ---------- Errors ----------
class ShellError(Exception):
    """Base class for every error the dispatcher reports and survives."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigError(ShellError):
    """The configuration file is unreadable or holds a bad value."""


class CommandNotFound(ShellError):
    def __init__(self, name: str):
        super().__init__(f"command or file not found: {name}")
        self.name = name


class ScriptNotFound(ShellError):
    """The script is missing, or exists but cannot be read as UTF-8 text."""

    def __init__(self, path: str, reason: Optional[str] = None):
        if reason:
            super().__init__(f"Cannot read batch file {path}: {reason}")
        else:
            super().__init__(f"Batch file not found: {path}")
        self.path = path
        self.reason = reason


class ScriptDepthExceeded(ShellError):
    def __init__(self, path: str, depth: int):
        super().__init__(f"script nesting deeper than {depth} levels: {path}")
        self.path = path
        self.depth = depth


class HandlerReportedError(ShellError):
    """A command failed in its own domain (missing file, bad attribute, ...)."""


class BindingError(ShellError):
    """The tokens of a line do not fit the operation's parameter shape."""


class MissingArgument(BindingError):
    def __init__(self, parameter: "Parameter", position: int):
        super().__init__(f"missing argument {position} <{parameter.name}>")
        self.parameter = parameter
        self.position = position


class TypeConversionError(BindingError):
    def __init__(self, token: str, kind: "ScalarKind", parameter: "Parameter", position: int):
        super().__init__(
            f"argument {position} <{parameter.name}>: cannot convert '{token}' to {kind.name}"
        )
        self.token = token
        self.kind = kind
        self.parameter = parameter
        self.position = position


class ProcessExitRequested(Exception):
    """Raised by ``exit``. Deliberately not a ShellError: nothing may swallow it."""

    def __init__(self, code: int = 0):
        super().__init__(f"exit requested with code {code}")
        self.code = code


# ---------- Configuration ----------
@dataclass
class Config:
    script_extensions: List[str] = field(default_factory=lambda: [".batnet", ".bat"])
    # "continue" keeps running a script after a failing line, "stop" aborts it
    script_errors: str = "continue"
    # 0 disables the nesting guard
    max_script_depth: int = 32
    aliases: Dict[str, str] = field(default_factory=lambda: {"cd..": "cd .."})
    history_file: str = "~/.cmd_emulator_history"
    color: bool = True


SCRIPT_ERROR_POLICIES = ("continue", "stop")


def load_config(path: Optional[str] = None) -> Config:
    """Load settings from a YAML file, falling back to defaults.

    The file is optional. When ``path`` is not given, the location comes from
    the ``CMD_EMULATOR_CONFIG`` environment variable or defaults to
    ``cmd_emulator.yaml`` in the current directory. Unknown keys are ignored;
    aliases are merged over the built-in ones.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_FILE)
    cfg = Config()
    if not os.path.exists(path):
        return cfg
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"{path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping of settings")

    if "script_extensions" in data:
        exts = data["script_extensions"]
        if not isinstance(exts, list) or not all(isinstance(e, str) and e.strip(".") for e in exts):
            raise ConfigError(f"{path}: script_extensions must be a list of extensions")
        cfg.script_extensions = ["." + e.strip().lstrip(".").lower() for e in exts]
    if "script_errors" in data:
        policy = str(data["script_errors"]).lower()
        if policy not in SCRIPT_ERROR_POLICIES:
            raise ConfigError(f"{path}: script_errors must be one of {', '.join(SCRIPT_ERROR_POLICIES)}")
        cfg.script_errors = policy
    if "max_script_depth" in data:
        depth = data["max_script_depth"]
        # bool is an int subclass; reject it explicitly
        if isinstance(depth, bool) or not isinstance(depth, int) or depth < 0:
            raise ConfigError(f"{path}: max_script_depth must be a non-negative integer")
        cfg.max_script_depth = depth
    if "aliases" in data:
        aliases = data["aliases"] or {}
        if not isinstance(aliases, dict):
            raise ConfigError(f"{path}: aliases must be a mapping")
        for name, target in aliases.items():
            if not isinstance(target, str) or not target.split():
                raise ConfigError(f"{path}: alias '{name}' needs a non-empty command line")
            cfg.aliases[str(name).strip().lower()] = target
    if "history_file" in data:
        if not isinstance(data["history_file"], str):
            raise ConfigError(f"{path}: history_file must be a path")
        cfg.history_file = data["history_file"]
    if "color" in data:
        if not isinstance(data["color"], bool):
            raise ConfigError(f"{path}: color must be true or false")
        cfg.color = data["color"]
    return cfg


# ---------- Tokenizer ----------
def tokenize(line: str) -> List[str]:
    """Split a raw line on runs of whitespace.

    There is no quoting or escaping: a path containing a space cannot be
    expressed as a single token. Commands that need the original spacing
    re-join their tokens themselves.
    """
    return line.split()


# ---------- Command Registry ----------
@dataclass(frozen=True)
class ScalarKind:
    """A named text-to-value conversion used by TypedScalar parameters."""

    name: str
    convert: Callable[[str], Any]


INTEGER = ScalarKind("integer", int)


@dataclass(frozen=True)
class Text:
    name: str
    optional: bool = False


@dataclass(frozen=True)
class TypedScalar:
    name: str
    kind: ScalarKind = INTEGER
    optional: bool = False


@dataclass(frozen=True)
class RestOfLine:
    """Every remaining token, possibly none, as one list. Must come last."""

    name: str


Parameter = Union[Text, TypedScalar, RestOfLine]


def canonical_name(name: str) -> str:
    """Return the registry key for a command name: no leading dots, lower case."""
    return name.strip().lstrip(".").strip().lower()


@dataclass(frozen=True)
class OperationDescriptor:
    name: str
    shape: Tuple[Parameter, ...]
    handler: Callable[..., Optional[str]]
    help_text: str = ""

    def __post_init__(self):
        # frozen dataclass: normalise through object.__setattr__
        object.__setattr__(self, "name", canonical_name(self.name))
        object.__setattr__(self, "shape", tuple(self.shape))
        if not self.name:
            raise ValueError("operation name must not be empty")
        seen_optional = False
        for i, param in enumerate(self.shape):
            if isinstance(param, RestOfLine):
                if i != len(self.shape) - 1:
                    raise ValueError(f"{self.name}: rest-of-line parameter <{param.name}> must be last")
            elif param.optional:
                seen_optional = True
            elif seen_optional:
                raise ValueError(f"{self.name}: required parameter <{param.name}> follows an optional one")

    @property
    def synopsis(self) -> str:
        return self.help_text.splitlines()[0] if self.help_text else ""


class CommandRegistry:
    """Case-insensitive mapping from command name to its descriptor."""

    def __init__(self, descriptors: Sequence[OperationDescriptor] = ()):
        self._commands: Dict[str, OperationDescriptor] = {}
        for descriptor in descriptors:
            self.register(descriptor)

    def register(self, descriptor: OperationDescriptor) -> None:
        if descriptor.name in self._commands:
            raise ValueError(f"command already registered: {descriptor.name}")
        self._commands[descriptor.name] = descriptor

    def lookup(self, name: str) -> OperationDescriptor:
        try:
            return self._commands[canonical_name(name)]
        except KeyError:
            raise CommandNotFound(name) from None

    def get(self, name: str) -> Optional[OperationDescriptor]:
        return self._commands.get(canonical_name(name))

    def help(self, name: str) -> Optional[str]:
        """Return the synopsis of a command, or None when there is no such command."""
        descriptor = self.get(name)
        return descriptor.help_text if descriptor else None

    def names(self) -> List[str]:
        return sorted(self._commands)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and canonical_name(name) in self._commands

    def __len__(self) -> int:
        return len(self._commands)

    def __iter__(self) -> Iterator[OperationDescriptor]:
        return (self._commands[k] for k in self.names())


# ---------- Argument Binder ----------
def bind(tokens: Sequence[str], shape: Sequence[Parameter]) -> List[Any]:
    """Bind ``tokens[1:]`` to ``shape`` and return the argument list.

    ``tokens[0]`` is the command name and is never bound. A missing optional
    parameter ends binding there, leaving the handler's own default in
    effect. Tokens beyond the declared shape are ignored: commands that only
    declare scalar parameters silently drop extra words, a looseness kept for
    compatibility rather than something to build on.
    """
    args: List[Any] = []
    pos = 1
    for param in shape:
        if isinstance(param, RestOfLine):
            args.append(list(tokens[pos:]))
            return args
        if pos >= len(tokens):
            if param.optional:
                break
            raise MissingArgument(param, pos)
        token = tokens[pos]
        if isinstance(param, TypedScalar):
            try:
                args.append(param.kind.convert(token))
            except (TypeError, ValueError) as e:
                raise TypeConversionError(token, param.kind, param, pos) from e
        else:
            args.append(token)
        pos += 1
    return args


# ---------- Dispatcher ----------
class State(Enum):
    IDLE = "idle"
    TOKENIZED = "tokenized"
    RESOLVED = "resolved"
    BOUND = "bound"
    INVOKED = "invoked"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Outcome(Enum):
    SUCCESS = "success"
    ERROR = "error"
    NOT_FOUND = "not found"


@dataclass
class InvocationFrame:
    """Everything that happened to one dispatched line."""

    line: str
    tokens: List[str] = field(default_factory=list)
    descriptor: Optional[OperationDescriptor] = None
    arguments: Optional[List[Any]] = None
    error: Optional[ShellError] = None
    output: Optional[str] = None
    state: State = State.IDLE

    @property
    def outcome(self) -> Optional[Outcome]:
        if self.state is State.SUCCEEDED:
            return Outcome.SUCCESS
        if self.state is State.FAILED:
            return Outcome.NOT_FOUND if isinstance(self.error, CommandNotFound) else Outcome.ERROR
        return None

    @property
    def failed(self) -> bool:
        return self.state is State.FAILED


class Dispatcher:
    """Turn input lines into handler calls.

    The dispatcher owns the shell's process-wide state. ``cwd`` is the
    directory relative paths are resolved against; it starts as the process
    working directory and only ``cd``-class commands change it. The host
    process directory is never touched.
    """

    def __init__(self, registry: CommandRegistry, config: Optional[Config] = None,
                 stdout: Optional[TextIO] = None, stdin: Optional[TextIO] = None,
                 cwd: Optional[str] = None):
        self.registry = registry
        self.config = config or Config()
        self.stdout = stdout
        self.stdin = stdin
        self.cwd = os.path.abspath(cwd) if cwd else os.getcwd()
        self.last_error: Optional[str] = None
        self.script_depth = 0
        self.scripts = ScriptRunner(self)

    # ---- output
    def write(self, text: Any, color: Fore = Fore.CYAN) -> None:
        out = self.stdout or sys.stdout
        print(c(text, color) if self.config.color else str(text), file=out)

    def report_error(self, message: str) -> None:
        self.last_error = message
        self.write(f"[ERR] {message}", Fore.RED)

    def read_line(self) -> str:
        """Read one line of interactive input; empty string at end of input."""
        return (self.stdin or sys.stdin).readline()

    # ---- process state
    def resolve_path(self, path: str) -> str:
        return os.path.normpath(os.path.join(self.cwd, path))

    def change_dir(self, path: str) -> None:
        target = self.resolve_path(path)
        if not os.path.isdir(target):
            raise HandlerReportedError(f"The system cannot find the path specified: {path}")
        self.cwd = target

    def expand_alias(self, tokens: List[str]) -> List[str]:
        target = self.config.aliases.get(tokens[0].lower())
        if target is None:
            return tokens
        return tokenize(target) + tokens[1:]

    # ---- dispatch
    def dispatch(self, line: str) -> InvocationFrame:
        return self.dispatch_tokens(tokenize(line), line)

    def dispatch_tokens(self, tokens: Sequence[str], line: Optional[str] = None) -> InvocationFrame:
        """Run one pre-tokenized line through resolve, bind and invoke.

        Every failure except ProcessExitRequested is reported and recorded on
        the returned frame.
        """
        frame = InvocationFrame(line=" ".join(tokens) if line is None else line, tokens=list(tokens))
        frame.state = State.TOKENIZED
        if frame.tokens:
            frame.tokens = self.expand_alias(frame.tokens)
        if not frame.tokens:
            frame.state = State.SUCCEEDED
            return frame

        try:
            descriptor = self.registry.lookup(frame.tokens[0])
        except CommandNotFound as e:
            if self.scripts.is_script(frame.tokens[0]):
                return self._run_script_frame(frame)
            return self._fail(frame, e)
        frame.descriptor = descriptor
        frame.state = State.RESOLVED

        try:
            frame.arguments = bind(frame.tokens, descriptor.shape)
        except BindingError as e:
            return self._fail(frame, e, prefix=descriptor.name)
        frame.state = State.BOUND

        frame.state = State.INVOKED
        try:
            out = descriptor.handler(self, *frame.arguments)
        except ProcessExitRequested:
            raise
        except ShellError as e:
            return self._fail(frame, e, prefix=descriptor.name)
        except Exception as e:
            # OSError and anything else a command body raises stays at the prompt
            return self._fail(frame, HandlerReportedError(str(e)), prefix=descriptor.name)
        frame.output = out
        if out is not None:
            self.write(out, Fore.CYAN)
        frame.state = State.SUCCEEDED
        return frame

    def _run_script_frame(self, frame: InvocationFrame) -> InvocationFrame:
        frame.state = State.INVOKED
        try:
            self.run_script(frame.tokens[0])
        except ProcessExitRequested:
            raise
        except ShellError as e:
            return self._fail(frame, e)
        except Exception as e:
            return self._fail(frame, HandlerReportedError(str(e)))
        frame.state = State.SUCCEEDED
        return frame

    def _fail(self, frame: InvocationFrame, error: ShellError, prefix: Optional[str] = None) -> InvocationFrame:
        frame.error = error
        frame.state = State.FAILED
        self.report_error(f"{prefix}: {error.message}" if prefix else error.message)
        return frame

    def run_script(self, path: str) -> "ScriptRun":
        """Run a script and raise HandlerReportedError unless every line succeeded."""
        run = self.scripts.run(path)
        if run.outcome is not RunOutcome.COMPLETED:
            summary = f"script {path}: {len(run.failures)} of {len(run.frames)} lines failed"
            if run.aborted:
                summary += ", remaining lines skipped"
            raise HandlerReportedError(summary)
        return run


# ---------- Script Runner ----------
class RunOutcome(Enum):
    COMPLETED = "completed"
    PARTIAL_FAILURE = "partial failure"
    ABORTED = "aborted"


@dataclass
class ScriptRun:
    path: str
    frames: List[InvocationFrame] = field(default_factory=list)
    aborted: bool = False

    @property
    def failures(self) -> List[InvocationFrame]:
        return [f for f in self.frames if f.failed]

    @property
    def outcomes(self) -> List[Optional[Outcome]]:
        return [f.outcome for f in self.frames]

    @property
    def outcome(self) -> RunOutcome:
        if self.aborted:
            return RunOutcome.ABORTED
        return RunOutcome.PARTIAL_FAILURE if self.failures else RunOutcome.COMPLETED


class ScriptRunner:
    """Execute batch files line by line through the dispatcher.

    Lines run strictly in order, each reaching a terminal state before the
    next starts. With the default ``continue`` policy a failing line is
    reported and the script carries on; ``stop`` aborts at the first failure.
    Scripts may call other scripts (or themselves); the configured
    ``max_script_depth`` bounds how deep that goes.
    """

    def __init__(self, dispatcher: Dispatcher):
        self.dispatcher = dispatcher

    def is_script(self, name: str) -> bool:
        ext = os.path.splitext(name)[1].lower()
        if ext not in self.dispatcher.config.script_extensions:
            return False
        return os.path.isfile(self.dispatcher.resolve_path(name))

    def run(self, path: str) -> ScriptRun:
        d = self.dispatcher
        cfg = d.config
        if cfg.max_script_depth and d.script_depth >= cfg.max_script_depth:
            raise ScriptDepthExceeded(path, cfg.max_script_depth)
        full = d.resolve_path(path)
        # read everything up front so no handle stays open while lines run
        try:
            with open(full, "r", encoding="utf-8") as f:
                lines = f.read().splitlines()
        except FileNotFoundError as e:
            raise ScriptNotFound(path) from e
        except (OSError, UnicodeDecodeError) as e:
            raise ScriptNotFound(path, str(e)) from e

        run = ScriptRun(path=full)
        d.script_depth += 1
        try:
            for number, line in enumerate(lines, 1):
                frame = d.dispatch(line)
                run.frames.append(frame)
                if not frame.failed:
                    continue
                d.write(f"  at {os.path.basename(full)} line {number}: {line.strip()}", Fore.YELLOW)
                if cfg.script_errors == "stop":
                    run.aborted = True
                    break
        finally:
            d.script_depth -= 1
        return run


# ---------- Command handlers ----------
def h_exit(sh: Dispatcher, code: int = 0):
    """Terminate the shell with the given exit code."""
    raise ProcessExitRequested(code)


def h_dir(sh: Dispatcher, directory: str = "."):
    """List the files, then the subdirectories, of a directory."""
    path = sh.resolve_path(directory)
    if not os.path.isdir(path):
        raise HandlerReportedError(f"directory not found: {path}")
    entries = sorted(os.listdir(path))
    files = [e for e in entries if not os.path.isdir(os.path.join(path, e))]
    dirs = [e for e in entries if os.path.isdir(os.path.join(path, e))]
    lines = [f"Directory of {path}", ""]
    lines.extend(files)
    lines.extend(f"{d} [DIR]" for d in dirs)
    return "\n".join(lines)


def h_cd(sh: Dispatcher, path: Optional[str] = None):
    if path is None:
        return f"Current directory: {sh.cwd}"
    sh.change_dir(path)


def h_echo(sh: Dispatcher, message: List[str]):
    return " ".join(message)


def h_mkdir(sh: Dispatcher, directory: str):
    os.makedirs(sh.resolve_path(directory), exist_ok=True)


def h_rmdir(sh: Dispatcher, directory: str):
    os.rmdir(sh.resolve_path(directory))


def h_rd(sh: Dispatcher, directory: str):
    """Remove a directory together with everything below it."""
    path = sh.resolve_path(directory)
    if not os.path.isdir(path):
        raise HandlerReportedError(f"directory not found: {directory}")
    shutil.rmtree(path)


def h_copy(sh: Dispatcher, source: str, destination: str):
    shutil.copy2(sh.resolve_path(source), sh.resolve_path(destination))


def h_move(sh: Dispatcher, source: str, destination: str):
    shutil.move(sh.resolve_path(source), sh.resolve_path(destination))


def h_del(sh: Dispatcher, file: str, more: List[str]):
    """Delete each named file; stops at the first one that cannot be removed."""
    for name in [file] + more:
        path = sh.resolve_path(name)
        if not os.path.isfile(path):
            raise HandlerReportedError(f"Could not find {path}")
        os.remove(path)


def h_type(sh: Dispatcher, file: str):
    path = sh.resolve_path(file)
    if os.path.isdir(path):
        raise HandlerReportedError(f"{file} is a directory")
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return f.read().rstrip("\n")


def h_more(sh: Dispatcher, file: str, lines: int = DEFAULT_PAGE_LINES):
    """Display a file one page at a time, waiting for Enter between pages.

    End of input on stdin stops paging early.
    """
    if lines < 1:
        raise HandlerReportedError("lines per page must be at least 1")
    path = sh.resolve_path(file)
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        content = f.read().splitlines()
    for start in range(0, len(content), lines):
        sh.write("\n".join(content[start:start + lines]), Fore.CYAN)
        if start + lines >= len(content):
            break
        sh.write("-- More -- (press Enter to continue)", Fore.YELLOW)
        if not sh.read_line():
            break


def h_cls(sh: Dispatcher):
    """Clear the screen."""
    out = sh.stdout or sys.stdout
    out.write("\033c")
    out.flush()


def h_help(sh: Dispatcher, command: Optional[str] = None):
    """Show one command's synopsis, or the list of all commands."""
    if command is not None:
        detail = sh.registry.help(command)
        if detail is None:
            # not an error: there is simply nothing to show
            return f"Command not found: {command}"
        return f"Help for {canonical_name(command).upper()}:\n{detail}"
    width = max(len(name) for name in sh.registry.names())
    lines = ["CMD Emulator - a simple CMD clone written in Python", "Commands:"]
    lines.extend(f"  {d.name.upper():<{width}}  {d.synopsis}" for d in sh.registry)
    if sh.config.aliases:
        lines.append("Aliases:")
        lines.extend(f"  {a} -> {t}" for a, t in sorted(sh.config.aliases.items()))
    return "\n".join(lines)


def h_rename(sh: Dispatcher, old: str, new: str):
    source = sh.resolve_path(old)
    destination = sh.resolve_path(new)
    if not os.path.exists(source):
        raise HandlerReportedError(f"File or directory not found: {source}")
    if os.path.exists(destination):
        raise HandlerReportedError(f"File or directory already exists: {destination}")
    os.rename(source, destination)


ATTRIBUTE_FLAGS = {"+r", "-r", "+a", "-a", "+s", "-s", "+h", "-h"}
WRITE_BITS = stat.S_IWUSR | stat.S_IWGRP | stat.S_IWOTH


def _attributes(path: str) -> str:
    """Return an attrib-style flag string for a path."""
    flags = ""
    if os.path.isdir(path):
        flags += "D"
    if not os.stat(path).st_mode & stat.S_IWUSR:
        flags += "R"
    if os.path.basename(path).startswith("."):
        flags += "H"
    return flags or "-"


def h_attrib(sh: Dispatcher, file: str, changes: List[str]):
    """Display or change file attributes.

    Only the read-only flag maps onto portable permission bits; archive,
    system and hidden are recognised but reported as unsupported.
    """
    path = sh.resolve_path(file)
    if not os.path.exists(path):
        raise HandlerReportedError(f"File or directory not found: {path}")
    if not changes:
        return f"{_attributes(path)}\t{path}"
    for token in changes:
        flag = token.lower()
        if flag not in ATTRIBUTE_FLAGS:
            raise HandlerReportedError(f"Invalid attribute: {token}")
        if flag[1] != "r":
            raise HandlerReportedError(f"attribute {token} is not supported on this platform")
    mode = stat.S_IMODE(os.stat(path).st_mode)
    for token in changes:
        if token.lower() == "+r":
            mode &= ~WRITE_BITS
        else:
            mode |= stat.S_IWUSR
    os.chmod(path, mode)


def h_tree(sh: Dispatcher, path: str = "."):
    """Print the folder structure below a path, two spaces per level."""
    root = sh.resolve_path(path)
    if not os.path.isdir(root):
        raise HandlerReportedError(f"Invalid path - {path}")
    lines: List[str] = []
    for current, dirs, _files in os.walk(root):
        dirs.sort()
        rel = os.path.relpath(current, root)
        depth = 0 if rel == os.curdir else rel.count(os.sep) + 1
        lines.append("  " * depth + (os.path.basename(current) or current))
    return "\n".join(lines)


def h_call(sh: Dispatcher, script: str):
    """Run a batch file as a sub-script of the current line."""
    sh.run_script(script)


def h_date(sh: Dispatcher, new_date: Optional[str] = None):
    if new_date is not None:
        raise HandlerReportedError("setting the system date is not supported")
    return time.strftime("%Y-%m-%d")


def h_time(sh: Dispatcher, new_time: Optional[str] = None):
    if new_time is not None:
        raise HandlerReportedError("setting the system time is not supported")
    return time.strftime("%H:%M:%S")


BUILTINS: Tuple[OperationDescriptor, ...] = (
    OperationDescriptor("exit", (TypedScalar("code", INTEGER, optional=True),), h_exit,
                        "Quits the CMD Emulator.\nSyntax: exit [code]"),
    OperationDescriptor("dir", (Text("directory", optional=True),), h_dir,
                        "Displays a list of files and subdirectories in a directory.\nSyntax: dir [directory]"),
    OperationDescriptor("cd", (Text("path", optional=True),), h_cd,
                        "Displays the name of or changes the current directory.\nSyntax: cd [path|..]"),
    OperationDescriptor("echo", (RestOfLine("message"),), h_echo,
                        "Displays messages.\nSyntax: echo [message]"),
    OperationDescriptor("mkdir", (Text("directory"),), h_mkdir,
                        "Creates a new directory.\nSyntax: mkdir directory"),
    OperationDescriptor("md", (Text("directory"),), h_mkdir,
                        "Creates a new directory.\nSyntax: md directory"),
    OperationDescriptor("rmdir", (Text("directory"),), h_rmdir,
                        "Removes an empty directory.\nSyntax: rmdir directory"),
    OperationDescriptor("rd", (Text("directory"),), h_rd,
                        "Removes a directory and everything in it.\nSyntax: rd directory"),
    OperationDescriptor("copy", (Text("source"), Text("destination")), h_copy,
                        "Copies a file to another location.\nSyntax: copy source destination"),
    OperationDescriptor("move", (Text("source"), Text("destination")), h_move,
                        "Moves a file from one directory to another directory.\nSyntax: move source destination"),
    OperationDescriptor("del", (Text("file"), RestOfLine("more")), h_del,
                        "Deletes one or more files.\nSyntax: del file [file2 ...]"),
    OperationDescriptor("type", (Text("file"),), h_type,
                        "Displays the contents of a text file.\nSyntax: type file"),
    OperationDescriptor("more", (Text("file"), TypedScalar("lines", INTEGER, optional=True)), h_more,
                        "Displays a file one screen at a time.\nSyntax: more file [lines]"),
    OperationDescriptor("cls", (), h_cls,
                        "Clears the screen.\nSyntax: cls"),
    OperationDescriptor("help", (Text("command", optional=True),), h_help,
                        "Displays help information for commands.\nSyntax: help [command]"),
    OperationDescriptor("rename", (Text("old"), Text("new")), h_rename,
                        "Renames a file or directory.\nSyntax: rename oldname newname"),
    OperationDescriptor("attrib", (Text("file"), RestOfLine("changes")), h_attrib,
                        "Displays or changes file attributes.\nSyntax: attrib file [+R|-R]"),
    OperationDescriptor("tree", (Text("path", optional=True),), h_tree,
                        "Graphically displays the folder structure of a path.\nSyntax: tree [path]"),
    OperationDescriptor("call", (Text("script"),), h_call,
                        "Executes a batch file.\nSyntax: call script"),
    OperationDescriptor("date", (Text("new_date", optional=True),), h_date,
                        "Displays the date.\nSyntax: date"),
    OperationDescriptor("time", (Text("new_time", optional=True),), h_time,
                        "Displays the time.\nSyntax: time"),
)


def build_registry() -> CommandRegistry:
    return CommandRegistry(BUILTINS)


# ---------- Shell ----------
class CmdShell(Cmd):
    """Interactive read-dispatch loop.

    Every line goes to the dispatcher, ``help`` included, so ``Cmd``'s own
    ``do_*`` lookup is bypassed. The loop ends on ``exit`` or at end of input. The prompt shows the shell's current
    directory and is rebuilt after every command.
    """

    def __init__(self, dispatcher: Optional[Dispatcher] = None, stdin: Optional[TextIO] = None,
                 stdout: Optional[TextIO] = None):
        super().__init__(stdin=stdin, stdout=stdout)
        if stdin is not None:
            self.use_rawinput = False
        self.dispatcher = dispatcher or Dispatcher(build_registry(), load_config(), stdout=stdout, stdin=stdin)
        self.exit_code = 0
        self.intro = self._colour("CMD Emulator - type 'help' for a list of commands, 'exit' to quit.", Fore.MAGENTA)
        self.prompt = self._make_prompt()
        if readline and self.use_rawinput:
            self._setup_readline()

    def _colour(self, text: str, color: Fore) -> str:
        return c(text, color) if self.dispatcher.config.color else text

    def _make_prompt(self) -> str:
        return f"{self.dispatcher.cwd}> "

    def _setup_readline(self) -> None:
        hist = os.path.expanduser(self.dispatcher.config.history_file)
        try:
            readline.read_history_file(hist)
        except OSError:
            pass
        atexit.register(self._save_history, hist)

    @staticmethod
    def _save_history(path: str) -> None:
        try:
            readline.write_history_file(path)
        except OSError:
            pass

    # ---- core overrides
    def cmdloop(self, intro: Optional[str] = None) -> None:
        """Read and dispatch lines until ``exit`` or end of input.

        ``Cmd.cmdloop`` turns end of input into the line ``EOF``, which a user
        could also type; here end of input is its own signal and a typed
        ``EOF`` is dispatched like any other word.
        """
        self.preloop()
        old_completer = None
        if readline and self.use_rawinput and self.completekey:
            old_completer = readline.get_completer()
            readline.set_completer(self.complete)
            readline.parse_and_bind(self.completekey + ": complete")
        try:
            if intro is not None:
                self.intro = intro
            if self.intro:
                self.stdout.write(str(self.intro) + "\n")
            stop = False
            while not stop:
                line = self._read_line()
                if line is None:
                    self.stdout.write("\n")
                    break
                line = self.precmd(line)
                stop = self.onecmd(line)
                stop = self.postcmd(stop, line)
            self.postloop()
        finally:
            if readline and self.use_rawinput and self.completekey:
                readline.set_completer(old_completer)

    def _read_line(self) -> Optional[str]:
        """Return the next input line, or None at end of input."""
        if self.use_rawinput:
            try:
                return input(self.prompt)
            except EOFError:
                return None
        self.stdout.write(self.prompt)
        self.stdout.flush()
        line = self.stdin.readline()
        return line.rstrip("\r\n") if line else None

    def onecmd(self, line: str) -> bool:
        try:
            self.dispatcher.dispatch(line)
        except ProcessExitRequested as e:
            self.exit_code = e.code
            return True
        return False

    def emptyline(self) -> bool:
        # Cmd repeats the last command by default
        return False

    def postcmd(self, stop: bool, line: str) -> bool:
        self.prompt = self._make_prompt()
        return stop

    # ---- tab completion
    def completenames(self, text: str, *ignored) -> List[str]:
        prefix = text.lower()
        return [n for n in self.dispatcher.registry.names() if n.startswith(prefix)]

    def completedefault(self, text: str, line: str, begidx: int, endidx: int) -> List[str]:
        """Complete file and directory names relative to the shell's directory."""
        head, tail = os.path.split(text)
        base = self.dispatcher.resolve_path(head) if head else self.dispatcher.cwd
        try:
            entries = sorted(os.listdir(base))
        except OSError:
            return []
        suggestions: List[str] = []
        for entry in entries:
            if not entry.lower().startswith(tail.lower()):
                continue
            candidate = os.path.join(head, entry) if head else entry
            if os.path.isdir(os.path.join(base, entry)):
                candidate += os.sep
            suggestions.append(candidate)
        return suggestions


# ---------- main ----------
def main(argv: Optional[List[str]] = None) -> int:
    """Run one command from ``argv``, or the interactive loop when there is none."""
    if argv is None:
        argv = sys.argv[1:]
    colorama_init(autoreset=True)
    try:
        try:
            config = load_config()
        except ConfigError as e:
            print(c(f"[ERR] {e.message}", Fore.RED), file=sys.stderr)
            return 2
        dispatcher = Dispatcher(build_registry(), config)
        if argv:
            try:
                frame = dispatcher.dispatch_tokens(argv)
            except ProcessExitRequested as e:
                return e.code
            return 1 if frame.failed else 0
        shell = CmdShell(dispatcher)
        shell.cmdloop()
        return shell.exit_code
    finally:
        colorama_deinit()


if __name__ == "__main__":
    sys.exit(main())
