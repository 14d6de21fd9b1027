"""
Helmsman command layer: register, resolve, and run nested subcommands.

What this module provides
- Commander: a node of the command tree. It owns named records, resolves one token of the
  argument vector against them and hands the rest to the matched handler. A Commander is
  itself a valid handler, so trees nest without limit.
- Capability detection: handlers are plain callables that may additionally expose
  optional hooks; nothing has to be inherited.
    • __flags__(flags)            configure the command's FlagSet
    • __compgens__(terminator)    configure the command's completion surface
    • __route__(qname, parent) +
      __compgen__(args, inword)   behave as a nested dispatcher
- prepare(...) / launch(...): build a handler's flag and completion surfaces, parse, check
  required flags, honour -h, then run.
- invoke(commander, argv) / complete(commander, argv, inword): the process boundary.

Quick start
    from helmsman import Commander, invoke

    root = Commander("git")
    remote = Commander()

    @root.register("version", descr="print the version")
    def version(args):
        print("1.0")

    class Add:
        def __flags__(self, flags):
            self.fetch = flags.flag("f", "fetch", descr="fetch right after adding")

        def __call__(self, args):
            print("adding", args, self.fetch.value)

    remote.register("add", "<url>", "add a remote", Add())
    root.register("remote", "<command>", "manage remotes", remote)

    if __name__ == "__main__":
        invoke(root)

Failure policy
- An empty vector, an unknown command or a missing required flag is terminal: usage is
  printed on stderr together with the fault, and the process exits with status 1. Pass
  shell=False to a Commander to have the fault raised instead.
"""
import difflib
import enum
import inspect
import operator
import os.path
import sys
from collections import defaultdict, namedtuple
from types import MappingProxyType

from rich.box import ROUNDED
from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .completion import Terminator, prefix, values
from .faults import *
from .flags import FlagSet
from .utils import *


class Capability(enum.Flag):
    """
    Optional protocols a handler can satisfy, as detected at dispatch time.
    """
    NONE = 0
    RUNNABLE = enum.auto()
    FLAGS = enum.auto()
    COMPGENS = enum.auto()
    DISPATCH = enum.auto()


def _supports(object, hook):
    return hasattr(object, hook) and callable(getattr(object, hook))


def capabilities(handler, /):
    """
    Inspect a handler and report which protocols it satisfies.

    This is a runtime, duck-typed query: a missing hook is a normal outcome and simply
    leaves the matching member out of the result. It never raises.
    """
    found = Capability.NONE
    if callable(handler):
        found |= Capability.RUNNABLE
    if _supports(handler, "__flags__"):
        found |= Capability.FLAGS
    if _supports(handler, "__compgens__"):
        found |= Capability.COMPGENS
    if _supports(handler, "__route__") and _supports(handler, "__compgen__"):
        found |= Capability.DISPATCH
    return found


class Record(namedtuple("Record", ("name", "syntax", "descr", "handler", "required"))):
    """
    Registration entry binding a name to its display metadata and handler.

    Records are immutable; registering the same name again replaces the record.
    """
    __slots__ = ()


def _summary(handler):
    # First docstring line of plain functions/methods; objects are described explicitly.
    if not inspect.isroutine(handler):
        return ""
    return (inspect.getdoc(handler) or "").partition("\n")[0].strip()


def _stylist(colorful):
    """
    Return (styler, text) helpers bound to the palette and the colorful switch.

    The palette can be overridden with a __styles__ mapping defined in __main__.
    """
    styles = defaultdict(str, {
        "usage-label": "bold #00E6FF",  # CYAN → signature info color
        "program-name": "bold #FF4D94",  # MAGENTA-PINK → brand pop
        "metavar": "bold #FFD600",  # AMBER for parameters
        "section-label": "bold #FFFFFF",  # Pure white headers
        "command-name": "bold #36C5F0",  # Sky-blue subcommands
        "command-syntax": "#FFD600",
        "command-description": "#9CA3AF",  # Muted gray
        "flag-name": "bold #22C55E",  # GREEN for flags
        "flag-default": "#737373",
        "required": "bold #EF4444",
        "footer": "italic #A3A3A3",
        "panel-title": "bold #FF4D94",
    } | getattr(__import__("__main__"), "__styles__", {}))

    def styler(style):
        return styles[style] if colorful else ""

    def text(fragment, style=""):
        if not colorful:
            return Text(str(fragment))
        if isinstance(fragment, Text):
            return fragment
        return Text(str(fragment), style)

    return styler, text


def _table(fancy, styler, *columns):
    if fancy:
        return Table(*columns, box=ROUNDED, header_style=styler("section-label"))
    return Table(*columns, box=None, show_header=False, padding=(0, 2), pad_edge=True)


def _flag_sections(flags, styler, text, fancy, *, label):
    """
    Render the visible switches of a FlagSet and its required names as sections.
    """
    renders = []
    if flags is Unset:
        return renders
    if len(flags):
        renders.append(text(f"\n{label}:", styler("section-label")))
        table = _table(fancy, styler, "flag", "description", "default")
        for switch in flags.defaults():
            names = ", ".join(switch.strings) + (" <value>" if switch.valued else "")
            default = f"(default: {switch.default!r})" if switch.valued and switch.default not in (None, "") else ""
            table.add_row(
                text(names, styler("flag-name")),
                text(switch.descr, styler("command-description")),
                text(default, styler("flag-default")),
            )
        renders.append(table)
    if flags.required:
        renders.append(text("\nrequired flags:", styler("section-label")))
        renders.append(text("  " + ", ".join(flags.required), styler("required")))
    return renders


def _print(renders, *, title, stderr, fancy, styler):
    console = Console(stderr=stderr, highlight=False)
    renderable = Group(*renders)
    if fancy:
        renderable = Panel(
            renderable,
            title=Text.assemble("[", " ", f"{title} HELP".upper(), " ", "]", style=styler("panel-title")),
            title_align="left",
        )
    console.print(renderable)


def _subusage(flags, record, *, colorful, fancy):
    """
    Build the default usage renderer of a leaf command (its own flags and requirements).
    """

    def usage(*, stderr=True):
        styler, text = _stylist(colorful)
        head = Text.assemble(
            text("usage", styler("usage-label")),
            ": ",
            text(flags.name, styler("program-name")),
        )
        if len(flags):
            head.append(" ").append(text("[flags]", styler("metavar")))
        if syntax := getattr(record, "syntax", ""):
            head.append(" ").append(text(syntax, styler("metavar")))
        renders = [head]
        if descr := getattr(record, "descr", ""):
            renders.append(text(f"\n{descr}", styler("command-description")))
        renders.extend(_flag_sections(flags, styler, text, fancy, label="flags"))
        _print(renders, title=flags.name, stderr=stderr, fancy=fancy, styler=styler)

    return usage


def _missing(flags):
    supplied = set(flags.visit())
    return tuple(
        name for name in flags.required
        if name not in flags or flags.lookup("-" + name).name not in supplied
    )


def _prepare(handler, name, parent, record):
    flags = FlagSet(name)
    terminator = Terminator(flags)
    flags.required = tuple(getattr(record, "required", ()))

    found = capabilities(handler)
    if Capability.DISPATCH in found:
        # set before anything else so nested usage is right even if parsing fails
        handler.__route__(name, parent)
    flags.usage = _subusage(
        flags,
        record,
        colorful=getattr(parent, "colorful", False),
        fancy=getattr(parent, "fancy", False),
    )
    if Capability.FLAGS in found:
        handler.__flags__(flags)
    if Capability.COMPGENS in found:
        handler.__compgens__(terminator)

    helper = Unset
    if "h" not in flags and "help" not in flags:
        helper = flags.flag("h", "help", descr="show this help message and exit", hidden=True)
    return flags, terminator, helper


def prepare(handler, name, /, *, parent=Unset, record=Unset):
    """
    Build the flag and completion surfaces of a handler.

    Order
    1. a fresh FlagSet scoped to name, and its Terminator;
    2. nested dispatchers get their display name (and parent) through __route__;
    3. the default usage renderer and the record's required names are attached;
    4. __flags__ and __compgens__ populate the surfaces when the handler supports them;
    5. the built-in hidden -h/--help flag is added unless the handler bound h or help.

    Returns
    - (FlagSet, Terminator)
    """
    flags, terminator, _ = _prepare(handler, name, parent, record)
    return flags, terminator


def _surface(tool, fault, usage):
    if isinstance(tool, Commander):
        tool.trigger(fault, usage=usage)
        return
    usage(stderr=True)
    trigger(fault, shell=True, colorful=False, fancy=False)


def launch(handler, name, args, /, *, parent=Unset, record=Unset, terminate=False):
    """
    Run a handler against an argument vector whose first token names it.

    Behavior
    - Prepares the handler's surfaces (see prepare), answering a pending shell completion
      request first when terminate is True.
    - Parses args[1:]; leftover positional tokens become the handler's arguments.
    - Every required name of the record must have been supplied; otherwise the handler's
      own usage is shown and a MissingRequiredFlagError is surfaced.
    - Then -h short-circuits: __help__(residual) when the handler provides it, its usage
      otherwise.
    - Finally handler(residual) is called. A nested Commander recurses from there.
    """
    if not callable(handler):
        raise TypeError(f"launch() handler for {name!r} must be callable")
    args = list(args)
    flags, terminator, helper = _prepare(handler, name, parent, record)
    if terminate:
        terminator.terminate()
    _, residual = flags.parse(args[1:])

    if missing := _missing(flags):
        tool = parent if parent is not Unset else handler
        _surface(tool, MissingRequiredFlagError(
            "%s requires %s" % (name, ", ".join(map(repr, missing))),
            title="missing required flag",
            code=FaultCode.MISSING_REQUIRED_FLAG,
            hint="supply %s, or run '%s -h' for details" % (
                " ".join("-" + item for item in missing), name
            ),
            docs=getdoc(FaultCode.MISSING_REQUIRED_FLAG),
            missing=missing,
        ), flags.usage)
        return

    if helper and helper.value:
        if _supports(handler, "__help__"):
            handler.__help__(residual)
        else:
            flags.usage(stderr=False)
        return

    handler(residual)


class Commander:
    """
    A node of the command tree: named records plus the display name used in usage.

    Lifecycle
    - Build the tree once (register), then dispatch (invoke or call). Registration during
      dispatch is not guarded against.
    - When a parent dispatches into a Commander, __route__ renames it to
      "<parent name> <record name>" and links the parent, so runtime options left Unset
      (shell/colorful/fancy) are inherited down the tree.

    Runtime options
    - shell: True prints usage + fault on stderr and exits with status 1; False raises.
    - colorful: style usage and faults with the palette.
    - fancy: rounded tables and panels.
    """

    def __init__(self, name=Unset, /, *, shell=Unset, colorful=Unset, fancy=Unset):
        if not isinstance(name, str | Unset):
            raise TypeError("commander 'name' must be a string")
        for option, value in (("shell", shell), ("colorful", colorful), ("fancy", fancy)):
            if not isinstance(value, bool | Unset):
                raise TypeError(f"commander {option!r} must be a boolean")
        self._name = coalesce(name, os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else "helmsman")
        self._named = name is not Unset
        self._records = {}
        self._parent = Unset
        self._flags = Unset
        self._shell = shell
        self._colorful = colorful
        self._fancy = fancy

    @property
    def name(self):
        return self._name

    @property
    def parent(self):
        return self._parent or None

    @property
    def root(self):
        """
        Return the topmost commander of the current dispatch chain.
        """
        child, parent = self, self._parent
        while parent:
            child, parent = parent, getattr(parent, "_parent", Unset)
        return child

    @property
    def records(self):
        return MappingProxyType(self._records)

    @property
    def shell(self):
        return bool(coalesce(self._shell, getattr(self._parent, "shell", True)))

    @property
    def colorful(self):
        return bool(coalesce(self._colorful, getattr(self._parent, "colorful", False)))

    @property
    def fancy(self):
        return bool(coalesce(self._fancy, getattr(self._parent, "fancy", False)))

    def register(self, name, syntax=Unset, descr=Unset, handler=Unset, /, *, required=()):
        """
        Register a handler under name (e.g. `status` in `git status`).

        Modes
        - Direct: register(name, syntax, descr, handler) -> handler
        - Decorator: @register(name, ...) applied to the handler.

        Parameters
        - syntax: usage hint shown next to the name (e.g. "<url>"), display-only.
        - descr: one-line description; defaults to the first docstring line of a function.
        - required: option names that must be supplied when the command runs.

        Registering an existing name silently replaces the previous record.
        """
        if not isinstance(name, str):
            raise TypeError("commander record 'name' must be a string")
        elif not name or name != name.strip() or any(char.isspace() for char in name):
            raise ValueError(f"commander record name {name!r} must be a non-empty word")
        if not isinstance(syntax, str | Unset):
            raise TypeError("commander record 'syntax' must be a string")
        if not isinstance(descr, str | Unset):
            raise TypeError("commander record 'descr' must be a string")
        if isinstance(required, str):
            raise TypeError("commander record 'required' must be an iterable of strings")
        required = tuple(required)
        if not all(isinstance(item, str) for item in required):
            raise TypeError("commander record 'required' must be an iterable of strings")

        @rename("register")
        def wrapper(handler, /):
            if not callable(handler):
                raise TypeError(f"commander handler for {name!r} must be callable")
            self._records[name] = Record(name, coalesce(syntax, ""), coalesce(descr, _summary(handler)), handler, required)
            return handler

        return wrapper(handler) if handler is not Unset else wrapper

    def resolve(self, args, /):
        """
        Exact, case-sensitive lookup of the first token; None when absent or unknown.
        """
        if len(args) >= 1:
            return self._records.get(args[0])
        return None

    def trigger(self, fault, /, *, usage=Unset):
        """
        Surface a fault with this commander's runtime options.

        In shell mode the usage renderer (this commander's usage by default) is printed on
        stderr first, then the fault is rendered and the process exits with status 1.
        """
        if self.shell:
            coalesce(usage, self.usage)(stderr=True)
        trigger(fault, tool=self, shell=self.shell, colorful=self.colorful, fancy=self.fancy)

    def __route__(self, qname, parent=Unset, /):
        self._name = qname
        self._parent = parent

    def __flags__(self, flags):
        self._flags = flags
        flags.usage = self.usage

    def __compgens__(self, terminator):
        terminator.argsgen(self)

    def __compgen__(self, args, inword, /):
        """
        Complete either the command name (position 0) or delegate to the matched handler.
        """
        pos, word = prefix(args, inword)
        if pos == 0:
            return values(*self._records)(word)
        if (record := self.resolve(args)) is None:
            return []
        _, terminator = prepare(record.handler, f"{self.name} {record.name}", parent=self, record=record)
        return terminator.compgen(args, inword)

    def __help__(self, args, /):
        """
        Honour -h at this level: run a registered `help` command, or print the usage.
        """
        if (record := self._records.get("help")) is not None:
            launch(record.handler, f"{self.name} help", ["help", *args], parent=self, record=record)
            return
        self.usage(stderr=False)

    def __call__(self, args, /):
        args = list(args)
        if (record := self.resolve(args)) is not None:
            launch(record.handler, f"{self.name} {record.name}", args, parent=self, record=record)
            return

        route = "sub" * bool(self._parent)
        if not args:
            self.trigger(MissingArgumentsError(
                "%s expects a %scommand" % (self.name, route),
                title="missing %scommand" % route,
                code=FaultCode.MISSING_COMMAND,
                hint="run '%s -h' to see available %scommands" % (self.name, route),
                docs=getdoc(FaultCode.MISSING_COMMAND),
            ))
            return

        suggestions = difflib.get_close_matches(args[0], self._records.keys(), 5)
        try:
            hint = "did you mean %r? you can also run '%s -h' to see available %scommands" % (
                suggestions[0], self.name, route
            )
        except IndexError:
            hint = "run '%s -h' to see available %scommands" % (self.name, route)
        self.trigger(NoSuchCommandError(
            "unknown %scommand %r" % (route, args[0]),
            title="unknown %scommand" % route,
            code=FaultCode.UNKNOWN_SUBCOMMAND if self._parent else FaultCode.UNKNOWN_COMMAND,
            hint=hint,
            docs=getdoc(FaultCode.UNKNOWN_SUBCOMMAND if self._parent else FaultCode.UNKNOWN_COMMAND),
        ))

    def usage(self, *, stderr=True):
        """
        Render this commander's usage.

        Layout
        - header naming the commander;
        - every record sorted by name with its syntax and description in columns;
        - the commander's own visible flags with their defaults, and required names;
        - a hint to pass -h to any subcommand.
        """
        styler, text = _stylist(self.colorful)
        renders = [
            Text.assemble(
                text("usage", styler("usage-label")),
                ": ",
                text(self.name, styler("program-name")),
                " ",
                text("<command>", styler("metavar")),
            ),
            text("\nwhere <command> is one of:", styler("section-label")),
        ]

        table = _table(self.fancy, styler, "command", "syntax", "description")
        for record in sorted(self._records.values(), key=operator.attrgetter("name")):
            table.add_row(
                text(record.name, styler("command-name")),
                text(record.syntax, styler("command-syntax")),
                text(record.descr, styler("command-description")),
            )
        renders.append(table)

        renders.extend(_flag_sections(self._flags, styler, text, self.fancy, label="available flags"))
        renders.append(text(f"\n{self.name} <command> -h for subcommand help", styler("footer")))
        _print(renders, title=self.name, stderr=stderr, fancy=self.fancy, styler=styler)

    def __repr__(self):
        return f"commander(name={self._name!r}, records={sorted(self._records)!r})"

    def __rich_repr__(self):
        yield "name", self._name
        yield "records", sorted(self._records)


def _progname(commander, argv):
    # an explicitly named root keeps its name; otherwise argv[0] names the program
    if getattr(commander, "_named", False) or not (argv and argv[0]):
        return commander.name
    return os.path.basename(argv[0])


def invoke(commander, argv=Unset, /):
    """
    Process entry point: dispatch a full argument vector (program name at index 0).

    Behavior
    - argv defaults to sys.argv. A commander built with an explicit name keeps it; an
      unnamed one takes the basename of argv[0].
    - A pending shell completion request (COMP_LINE) is answered and the process exits 0.
    - Otherwise the root commander parses its own (global) flags and resolves the rest.
      Failures print usage and exit with status 1 (see Commander).
    """
    if not _supports(commander, "__route__") or not callable(commander):
        raise TypeError("invoke() argument must be a commander")
    argv = list(sys.argv if argv is Unset else argv)
    if not all(isinstance(item, str) for item in argv):
        raise TypeError("invoke() argv must be an iterable of strings")
    prog = _progname(commander, argv)
    launch(commander, prog, argv or [prog], terminate=True)


def complete(commander, argv, inword, /):
    """
    Shell-completion entry point: candidates for argv (program name at index 0).

    - inword: whether the cursor sits inside the last token of argv.
    """
    argv = list(argv)
    prog = _progname(commander, argv)
    _, terminator = prepare(commander, prog)
    return terminator.compgen(argv or [prog], inword)


__all__ = (
    "Capability",
    "Commander",
    "Record",
    "capabilities",
    "prepare",
    "launch",
    "invoke",
    "complete",
)
