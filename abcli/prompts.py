"""Interactive questions.

Tasks declare the values they need as a list of ``Question`` objects.  Any
value already present in the options (from a CLI flag or an earlier step) is
not asked again.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable

from rich.prompt import Confirm, Prompt

from abcli.options import Options
from abcli.utils import console, print_error


@dataclass
class Question:
    """One value to ask the user for.

    Attributes:
        name: Options key the answer is stored under.
        message: Prompt text.
        kind: ``"input"``, ``"password"``, ``"confirm"``, ``"list"`` or
            ``"checkbox"`` (several comma separated choices, answered as a list).
        default: A value, or a callable receiving the options.
        choices: Allowed answers for ``"list"`` and ``"checkbox"`` questions.
        validate: Returns ``True`` when valid, else ``False`` or an error message.
        filter: Applied to the answer before validation.
        when: Decides whether to ask; by default only when ``name`` is unset.
    """

    name: str
    message: str
    kind: str = "input"
    default: Any = None
    choices: list[str] = field(default_factory=list)
    validate: Callable[[Any], bool | str] | None = None
    filter: Callable[[Any], Any] | None = None
    when: Callable[[Options], bool] | None = None

    def should_ask(self, options: Options) -> bool:
        if self.when is not None:
            return self.when(options)
        return options.get(self.name) is None

    def default_for(self, options: Options) -> Any:
        return self.default(options) if callable(self.default) else self.default


def not_empty(value: Any) -> bool | str:
    return True if value not in (None, "") else "a value is required"


def _prompt(question: Question, default: Any) -> Any:
    if question.kind == "confirm":
        return Confirm.ask(question.message, default=bool(default), console=console)
    if question.kind == "checkbox":
        return _checkbox(question, default)

    kwargs: dict[str, Any] = {"console": console}
    if default is not None:
        kwargs["default"] = default
    if question.kind == "list":
        kwargs["choices"] = question.choices
    if question.kind == "password":
        kwargs["password"] = True
    return Prompt.ask(question.message, **kwargs)


def _checkbox(question: Question, default: Any) -> list[str]:
    for choice in question.choices:
        console.print(f"  - {choice}")
    kwargs: dict[str, Any] = {"console": console}
    if default:
        kwargs["default"] = ",".join(default)
    answer = Prompt.ask(f"{question.message} (comma separated)", **kwargs)
    return split_choices(answer)


def split_choices(answer: str | list[str] | None) -> list[str]:
    if answer is None:
        return []
    if isinstance(answer, str):
        answer = answer.split(",")
    return [item.strip() for item in answer if item and item.strip()]


def _known_choices(question: Question, answer: Any) -> bool | str:
    if question.kind != "checkbox":
        return True
    unknown = [item for item in answer if item not in question.choices]
    return f"unknown choice: {', '.join(unknown)}" if unknown else True


async def ask(questions: list[Question], options: Options) -> Options:
    """Ask every question whose value is still missing and store the answers.

    Invalid answers are reported and the question is asked again.
    """
    for question in questions:
        if not question.should_ask(options):
            continue
        default = question.default_for(options)
        while True:
            answer = await asyncio.to_thread(_prompt, question, default)
            if question.filter is not None:
                answer = question.filter(answer)
            verdict = question.validate(answer) if question.validate else _known_choices(question, answer)
            if verdict is True:
                break
            print_error(verdict if isinstance(verdict, str) else f"invalid value for {question.name}")
        options[question.name] = answer
    return options
