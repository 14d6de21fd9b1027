"""
Helmsman flag sets: the per-invocation option surface of one command.

What this module provides
- FlagSet: a named, mutable option surface that a command populates (binds options and
  presence flags to storage) and later parses a token list against, producing the
  supplied option names and the leftover positional tokens.
- Switch: the storage handle returned when binding; reads its parsed value back.

Parsing rules
- Tokenizing, value coercion and syntax errors are delegated to argparse. Malformed or
  unknown switches are reported by argparse itself (usage + error on stderr, exit status 2).
- Parsing stops at the first positional token (or after a bare "--"): everything from
  there on is left untouched for the handler or for a nested commander.
- A one-letter name is spelled "-n"; longer names accept "-name" and "--name", and values
  may be attached ("-name=value") or spaced ("-name value").
- Presence is tracked separately from values so required-flag checks can tell
  "not supplied" apart from "supplied with the default value".

Example
    >>> flags = FlagSet("git remote add")
    >>> fetch = flags.flag("f", "fetch", descr="fetch right after adding")
    >>> track = flags.option("t", "track", default="main", descr="branch to track")
    >>> flags.parse(["-f", "origin", "http://x"])
    (frozenset({'f'}), ['origin', 'http://x'])
    >>> fetch.value, track.value
    (True, 'main')
"""
import argparse
import re
import sys

from .utils import Unset, coalesce

# Destination of the hidden REMAINDER positional; the leading underscore keeps it out of
# the name space accepted for switches.
_RESIDUAL = "_residual"


class Switch:
    """
    Storage handle for one bound option or presence flag.

    The first name is canonical: it is the one reported by FlagSet.visit() and the one
    matched against required option names.
    """
    __slots__ = ("_flags", "_names", "_default", "_descr", "_valued", "_hidden")

    def __init__(self, flags, names, default, descr, valued, hidden):
        self._flags = flags
        self._names = names
        self._default = default
        self._descr = descr
        self._valued = valued
        self._hidden = hidden

    @property
    def name(self):
        return self._names[0]

    @property
    def names(self):
        return self._names

    @property
    def default(self):
        return self._default

    @property
    def descr(self):
        return self._descr

    @property
    def valued(self):
        """True for options carrying a value, False for presence-only flags."""
        return self._valued

    @property
    def hidden(self):
        return self._hidden

    @property
    def strings(self):
        """Every spelling accepted on the command line, short forms first."""
        return tuple(string for name in self._names for string in _spellings(name))

    @property
    def value(self):
        """Parsed value, or the default when the switch was not supplied."""
        return self._flags[self.name]

    def __repr__(self):
        return f"switch(name={self.name!r}, default={self._default!r}, valued={self._valued!r})"


def _spellings(name):
    return ("-" + name,) if len(name) == 1 else ("-" + name, "--" + name)


class FlagSet:
    """
    Mutable option surface scoped to one command name.

    Attributes
    - name: the display name of the command this surface belongs to.
    - usage: callable rendering this command's usage; commanders and the launcher
      replace it so help and failures print the right text.
    - required: option names the owning record declared as required.
    """

    def __init__(self, name, /):
        if not isinstance(name, str):
            raise TypeError("flag-set 'name' must be a string")
        self._name = name
        self._parser = argparse.ArgumentParser(prog=name, add_help=False, allow_abbrev=False)
        self._parser.add_argument(_RESIDUAL, nargs=argparse.REMAINDER, help=argparse.SUPPRESS)
        self._switches = {}
        self._order = []
        self._values = {}
        self._residual = []
        self.usage = self._usage
        self.required = ()

    @property
    def name(self):
        return self._name

    @property
    def args(self):
        """Positional tokens left over by the last parse()."""
        return list(self._residual)

    def _bind(self, names, default, descr, valued, hidden, **options):
        if not names:
            raise TypeError("flag-set switch requires at least one name")
        for name in names:
            if not isinstance(name, str):
                raise TypeError("flag-set switch names must be strings")
            if not re.fullmatch(r"[^\W\d_][\w-]*", name):
                raise ValueError(f"flag-set switch name {name!r} is not a valid name")
            if name in self._switches:
                raise ValueError(f"flag-set switch name {name!r} is already in use")
        if not isinstance(descr, str | Unset):
            raise TypeError("flag-set switch 'descr' must be a string")

        switch = Switch(self, tuple(names), default, coalesce(descr, ""), valued, hidden)
        self._parser.add_argument(
            *switch.strings,
            dest=switch.name,
            default=argparse.SUPPRESS,
            help=argparse.SUPPRESS if hidden else switch.descr,
            **options,
        )
        self._switches.update(dict.fromkeys(switch.names, switch))
        self._order.append(switch)
        return switch

    def option(self, *names, default=None, descr=Unset, type=str, hidden=False):
        """
        Bind a value-bearing option and return its handle.

        - type: converter applied by argparse to the supplied string (not to the default).
        """
        if not callable(type):
            raise TypeError("flag-set option 'type' must be callable")
        return self._bind(names, default, descr, True, hidden, type=type)

    def flag(self, *names, descr=Unset, hidden=False):
        """
        Bind a presence-only switch (False unless supplied) and return its handle.
        """
        return self._bind(names, False, descr, False, hidden, action="store_true")

    def parse(self, tokens, /):
        """
        Parse tokens; return (supplied canonical names, leftover positional tokens).
        """
        namespace = self._parser.parse_args(list(tokens))
        values = vars(namespace)
        residual = list(values.pop(_RESIDUAL, None) or ())
        if residual[:1] == ["--"]:
            del residual[0]
        self._values = values
        self._residual = residual
        return frozenset(values), list(residual)

    def visit(self):
        """Canonical names of the switches actually supplied, in binding order."""
        return tuple(switch.name for switch in self._order if switch.name in self._values)

    def defaults(self):
        """Visible switches in binding order (name, default and descr are read from each)."""
        return tuple(switch for switch in self._order if not switch.hidden)

    def lookup(self, token, /):
        """
        Return the switch a command-line token refers to ("-n", "--name", "-name=value"),
        or None when the token is not a known switch.
        """
        if not isinstance(token, str) or not token.startswith("-"):
            return None
        name = token[2:] if token.startswith("--") else token[1:]
        return self._switches.get(name.partition("=")[0])

    def _usage(self, *, stderr=True):
        self._parser.print_help(sys.stderr if stderr else sys.stdout)

    def __getitem__(self, name, /):
        switch = self._switches[name]
        return self._values.get(switch.name, switch.default)

    def __contains__(self, name, /):
        return name in self._switches

    def __iter__(self):
        return iter(self._order)

    def __len__(self):
        return len(self.defaults())

    def __repr__(self):
        return f"flag-set(name={self._name!r}, switches={[switch.name for switch in self._order]!r})"


__all__ = (
    "FlagSet",
    "Switch",
)
