"""The mutable options bag threaded through one command invocation.

``Options`` holds the parsed CLI flags, the queue of positional arguments that
commands consume from the front, and whatever intermediate results earlier
pipeline steps store for later ones.  ``parse_argv`` turns a raw argument
vector into an ``Options`` instance using the ``--key value`` conventions of
the CLI.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, MutableMapping
from typing import Any, Callable

from .config import Config

# Options copied into every ``options_pull`` subset.
STANDARD_PARAMS: tuple[str, ...] = ("travisCI", "develop")


class Options(MutableMapping[str, Any]):
    """Key/value bag plus a positional-argument queue.

    Assigning ``None`` to a key that already holds a value is ignored, so a
    later step can never silently erase what an earlier step stored.  Use
    ``del options[key]`` to remove a value on purpose.
    """

    def __init__(
        self,
        values: Mapping[str, Any] | None = None,
        positional: Iterable[str] | None = None,
        config: Config | None = None,
    ) -> None:
        self._values: dict[str, Any] = {}
        self.positional: list[str] = list(positional or [])
        self.config = config or Config()
        if values:
            self.update(values)

    # -- Mapping protocol --------------------------------------------------

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __setitem__(self, key: str, value: Any) -> None:
        if value is None and self._values.get(key) is not None:
            return
        self._values[key] = value

    def __delitem__(self, key: str) -> None:
        del self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Options({self._values!r}, positional={self.positional!r})"

    # -- Positional queue --------------------------------------------------

    def shift(self) -> str | None:
        """Remove and return the first positional argument, or ``None``."""
        if not self.positional:
            return None
        return self.positional.pop(0)

    def shift_into(
        self,
        keys: Iterable[str],
        transforms: Mapping[str, Callable[[str], Any]] | None = None,
    ) -> None:
        """Assign queued positionals to *keys* in order until either runs out."""
        transforms = transforms or {}
        for key in keys:
            value = self.shift()
            if value is None:
                return
            self[key] = transforms[key](value) if key in transforms else value

    # -- Helpers -----------------------------------------------------------

    def flag(self, key: str, default: bool = False) -> bool:
        """Return *key* as a boolean, accepting ``"true"``/``"false"`` strings."""
        value = self._values.get(key)
        if value is None:
            return default
        if isinstance(value, str):
            return value.strip().lower() not in ("", "false", "0", "no")
        return bool(value)

    def derive(self, values: Mapping[str, Any] | None = None) -> "Options":
        """Return a new bag for a sub-task.

        With no *values* the child starts from a copy of this bag's values and
        remaining positionals; otherwise it starts from *values* only.  The
        configuration is shared either way.
        """
        if values is None:
            return Options(self._values, self.positional, config=self.config)
        return Options(values, config=self.config)

    def as_dict(self) -> dict[str, Any]:
        return dict(self._values)


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def unstringify_bools(values: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    """Turn ``"true"``/``"false"`` string values into booleans, in place."""
    for key, value in list(values.items()):
        if value == "true":
            values[key] = True
        elif value == "false":
            values[key] = False
    return values


def _coerce(value: str) -> Any:
    if value == "true":
        return True
    if value == "false":
        return False
    return value


def _assign(values: dict[str, Any], key: str, value: Any) -> None:
    parts = key.split(".")
    if len(parts) == 1 or not all(parts):
        values[key] = value
        return
    for part in parts[:-1]:
        child = values.get(part)
        if not isinstance(child, dict):
            child = values[part] = {}
        values = child
    values[parts[-1]] = value


def parse_argv(argv: Iterable[str], config: Config | None = None) -> Options:
    """Parse ``[positional...] [--flag value]...`` into an ``Options`` bag.

    Supported forms::

        --key value    -> {"key": "value"}
        --key=value    -> {"key": "value"}
        --flag         -> {"flag": True}   (when followed by another flag or nothing)
        --no-flag      -> {"flag": False}
        -v             -> {"v": True}
        --             -> everything after is positional
        --db.volume v  -> {"db": {"volume": "v"}}

    ``"true"``/``"false"`` values become booleans.  Repeating a flag keeps the
    last value.
    """
    tokens = list(argv)
    values: dict[str, Any] = {}
    positional: list[str] = []

    i = 0
    while i < len(tokens):
        token = tokens[i]
        if token == "--":
            positional.extend(tokens[i + 1 :])
            break

        if token.startswith("--") and len(token) > 2:
            body = token[2:]
            if "=" in body:
                key, raw = body.split("=", 1)
                _assign(values, key, _coerce(raw))
            elif body.startswith("no-") and len(body) > 3:
                _assign(values, body[3:], False)
            elif i + 1 < len(tokens) and not tokens[i + 1].startswith("-"):
                _assign(values, body, _coerce(tokens[i + 1]))
                i += 1
            else:
                _assign(values, body, True)
        elif token.startswith("-") and len(token) > 1 and not token[1].isdigit():
            for letter in token[1:]:
                values[letter] = True
        else:
            positional.append(token)
        i += 1

    return Options(values, positional, config=config)


def options_pull(options: Mapping[str, Any], index: str) -> dict[str, Any]:
    """Collect the subset of *options* belonging to *index*.

    Both a nested mapping (``options["db"]["volume"]``) and prefixed flat keys
    (``options["dbVolume"]`` -> ``"volume"``) are gathered, plus the standard
    parameters shared by every subset.

    Examples::

        options_pull({"db": {"port": 3306}, "dbVolume": "keep"}, "db")
            -> {"port": 3306, "volume": "keep"}
    """
    pulled: dict[str, Any] = {}

    nested = options.get(index)
    if isinstance(nested, Mapping):
        pulled.update(nested)

    for key, value in options.items():
        if key.startswith(index) and len(key) > len(index):
            rest = key[len(index) :]
            pulled[rest[0].lower() + rest[1:]] = value

    for param in STANDARD_PARAMS:
        if param in options:
            pulled[param] = options[param]

    unstringify_bools(pulled)
    return pulled
