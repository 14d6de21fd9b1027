"""
Helmsman shell completion: candidate generators and the per-command terminator.

What this module provides
- prefix(args, inword): locate the word under the cursor.
- Generators: callables taking the typed prefix and returning candidate strings.
  • values(*candidates): a fixed vocabulary.
  • files(*suffixes) / directories(): filesystem entries relative to the typed path.
- Terminator: the completion surface of one command. It knows the command's FlagSet,
  value strategies for individual options, and an optional positional generator
  (a nested commander plugs itself in here, which is what makes completion recursive).

Protocol
- Argument vectors handed to Terminator.compgen start with the command's own name
  (args[0]); flags follow, then positionals. The walk over the flags mirrors the parser:
  it stops at the first positional token or after a bare "--".
- compgen never raises for unknown input; it returns an empty list instead.

Shell wiring (bash)
    complete -C prog prog

bash then runs `prog` with COMP_LINE/COMP_POINT in the environment; Terminator.terminate
prints one candidate per line and exits.
"""
import glob
import os.path
import shlex
import sys

from .utils import Unset, rename


def prefix(args, inword, /):
    """
    Return (position, word) for the token being completed.

    - inword: the cursor sits inside the last token, which is the partial word.
    - otherwise: a new, still empty word starts right after the last token.
    """
    if inword and args:
        return len(args) - 1, args[-1]
    return len(args), ""


def values(*candidates):
    """Generator over a fixed vocabulary, filtered by prefix and sorted."""
    vocabulary = sorted(set(candidates))

    @rename("values")
    def generator(prefix):
        return [candidate for candidate in vocabulary if candidate.startswith(prefix)]

    return generator


def files(*suffixes):
    """
    Generator over filesystem entries matching the typed path.

    Directories are always offered (with a trailing separator) so the user can keep
    descending; files are offered when no suffixes are given or their name ends with one.
    """

    @rename("files")
    def generator(prefix):
        candidates = []
        for path in sorted(glob.glob(glob.escape(prefix) + "*")):
            if os.path.isdir(path):
                candidates.append(path + os.sep)
            elif not suffixes or path.endswith(suffixes):
                candidates.append(path)
        return candidates

    return generator


def directories():
    """Generator over directories matching the typed path."""

    @rename("directories")
    def generator(prefix):
        return [path + os.sep for path in sorted(glob.glob(glob.escape(prefix) + "*")) if os.path.isdir(path)]

    return generator


def _switchlike(token):
    return token.startswith("-") and token != "-"


class Terminator:
    """
    Completion surface bound to one command's FlagSet.

    Configuration
    - flag(name, generator): value completion for one option.
    - argsgen(generator): completion for positional arguments; either an object exposing
      __compgen__(args, inword) or a plain callable with the same signature.
    """

    def __init__(self, flags, /):
        self._flags = flags
        self._strategies = {}
        self._argsgen = Unset

    @property
    def flags(self):
        return self._flags

    def flag(self, name, generator, /):
        if name not in self._flags:
            raise ValueError(f"terminator flag {name!r} is not bound in {self._flags.name!r}")
        if not callable(generator):
            raise TypeError("terminator flag generator must be callable")
        self._strategies[self._flags.lookup("-" + name).name] = generator

    def argsgen(self, generator, /):
        if hasattr(generator, "__compgen__") and callable(generator.__compgen__):
            generator = generator.__compgen__
        if not callable(generator):
            raise TypeError("terminator argsgen must be callable or implement __compgen__")
        self._argsgen = generator

    def _values(self, switch, word):
        if switch is None or not switch.valued or switch.name not in self._strategies:
            return []
        return list(self._strategies[switch.name](word))

    def _switches(self, word):
        if "=" in word:
            # inline value: -name=partial
            head, _, tail = word.partition("=")
            return [f"{head}={candidate}" for candidate in self._values(self._flags.lookup(head), tail)]
        return sorted(
            string
            for switch in self._flags
            if not switch.hidden
            for string in switch.strings
            if string.startswith(word)
        )

    def compgen(self, args, inword, /):
        """
        Produce candidates for the word under the cursor; args[0] is the command name.
        """
        pos, word = prefix(args, inword)
        index = 1
        terminated = False
        while index < pos:
            token = args[index]
            if token == "--":
                index += 1
                terminated = True
                break
            if not _switchlike(token):
                break
            switch = self._flags.lookup(token)
            index += 2 if switch is not None and switch.valued and "=" not in token else 1

        if index > pos:
            # the cursor sits on the value of the option right before it
            return self._values(self._flags.lookup(args[pos - 1]), word)
        if index == pos and not terminated and word.startswith("-"):
            return self._switches(word)
        if self._argsgen is Unset:
            return []
        return list(self._argsgen(list(args[index:]), inword))

    def terminate(self, environ=Unset, /):
        """
        Answer a shell completion request and exit, if one is pending.

        bash's `complete -C` exports COMP_LINE (the whole line) and COMP_POINT (the cursor
        offset). Without COMP_LINE this is a no-op.
        """
        environ = os.environ if environ is Unset else environ
        if "COMP_LINE" not in environ:
            return
        line = environ["COMP_LINE"]
        try:
            point = int(environ.get("COMP_POINT", -1))
        except ValueError:
            point = -1
        if point >= 0:
            # COMP_POINT counts bytes, not characters
            line = line.encode()[:point].decode(errors="ignore")
        try:
            args = shlex.split(line)
        except ValueError:
            # unbalanced quotes while typing
            args = line.split()
        inword = bool(line) and not line[-1].isspace()
        for candidate in self.compgen(args, inword):
            print(candidate, file=sys.stdout)
        sys.exit(0)

    def __repr__(self):
        return f"terminator(flags={self._flags.name!r}, strategies={sorted(self._strategies)!r})"


__all__ = (
    "Terminator",
    "prefix",
    "values",
    "files",
    "directories",
)
