"""Context-sensitive quoting of interpolated values.

A template is split into literal fragments with a value between each pair.
The literal text is scanned to track the shell quoting context at every
interpolation site:

- ``echo {}``          -> the value is shell-escaped
- ``echo "{}"``        -> the value is inserted verbatim (already quoted)
- ``echo '{}'``        -> the value is inserted verbatim (already quoted)
- ``echo "$({})"``     -> the value is shell-escaped (new command context)

The scanner only tracks quotes and command substitutions. It is not a
shell parser and accepts malformed input without complaint.
"""
from __future__ import annotations

import re
import shlex
import string
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Mapping, Sequence, Tuple

from .errors import TemplateError


class ParseState(Enum):
    """Nesting markers tracked while scanning literal fragments."""

    BACKTICK = "`"
    EXPRESSION = "$("
    DOUBLE_QUOTED = '"'
    SINGLE_QUOTED = "'"


@dataclass
class QuoteContext:
    """Running scan state across the fragments of one template."""

    states: List[ParseState] = field(default_factory=list)
    has_subshell: bool = False

    @property
    def top(self) -> ParseState | None:
        return self.states[-1] if self.states else None

    @property
    def should_quote(self) -> bool:
        return self.top not in (ParseState.SINGLE_QUOTED, ParseState.DOUBLE_QUOTED)

    def toggle(self, state: ParseState) -> None:
        if self.top is state:
            self.states.pop()
        elif self.top is not ParseState.SINGLE_QUOTED:
            self.states.append(state)


def parse_fragment(context: QuoteContext, fragment: str) -> QuoteContext:
    """Advance ``context`` over one literal fragment.

    A backslash always skips the next character. While single-quoted, only a
    closing single quote has any effect. A single quote inside double
    quotes is literal. ``$(`` opens an expression that the next ``)``
    closes; an unmatched ``)`` is ignored.
    """
    i = 0
    while i < len(fragment):
        char = fragment[i]
        top = context.top
        if char == "\\":
            i += 1
        elif char == "`":
            if top is not ParseState.SINGLE_QUOTED:
                context.has_subshell = True
            context.toggle(ParseState.BACKTICK)
        elif char == '"':
            context.toggle(ParseState.DOUBLE_QUOTED)
        elif char == "'":
            if top is not ParseState.DOUBLE_QUOTED:
                context.toggle(ParseState.SINGLE_QUOTED)
        elif char == "$" and fragment[i + 1:i + 2] == "(":
            if top is not ParseState.SINGLE_QUOTED:
                context.states.append(ParseState.EXPRESSION)
                context.has_subshell = True
                i += 1
        elif char == ")" and top is ParseState.EXPRESSION:
            context.states.pop()
        i += 1
    return context


@dataclass(frozen=True)
class Raw:
    """Values spliced into a command without any escaping."""

    parts: Tuple[Any, ...] = ()

    def __str__(self) -> str:
        return " ".join(stringify(part) for part in self.parts)


def unquoted(*args: Any) -> Raw:
    """Mark values to be inserted as-is, joined by spaces.

    Example:
        >>> quote("ls {}", unquoted("-l", "-a"))
        'ls -l -a'
    """
    return Raw(args)


def stringify(value: Any) -> str:
    """Plain text form of a value, with ``None`` as the empty string."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def shell_stringify(value: Any) -> str:
    """Convert a value to a single shell word.

    ``None`` becomes ``''`` so that absent values keep their position,
    ``Raw`` values are joined without escaping, and everything else is
    escaped with ``shlex.quote``.
    """
    if value is None:
        return "''"
    if isinstance(value, Raw):
        return str(value)
    return shlex.quote(stringify(value))


@dataclass(frozen=True)
class QuotedCommand:
    """Result of quoting a template."""

    command: str
    has_subshell: bool = False


def quote_fragments(fragments: Sequence[str], values: Sequence[Any]) -> QuotedCommand:
    """Join literal fragments with their values, quoting where needed.

    Args:
        fragments: Literal text; one more item than ``values``
        values: Interpolated values

    Returns:
        QuotedCommand with the command text and whether a subshell was seen

    Raises:
        TemplateError: If an interpolation site has no value
    """
    if len(values) < len(fragments) - 1:
        raise TemplateError("Undefined variable in `" + "{...}".join(fragments) + "`")

    context = QuoteContext()
    if fragments and fragments[0].lstrip().startswith("("):
        context.has_subshell = True
    parts: List[str] = []
    for i, fragment in enumerate(fragments):
        parse_fragment(context, fragment)
        parts.append(fragment)
        if i == len(fragments) - 1:
            break
        value = values[i]
        parts.append(shell_stringify(value) if context.should_quote else stringify(value))
    return QuotedCommand(command="".join(parts), has_subshell=context.has_subshell)


_formatter = string.Formatter()

# Numbered field such as {0}, {1.attr} or {2[key]}
MANUAL_FIELD = re.compile(r"^\d+(?:[.\[]|$)")


def split_template(
    template: str,
    args: Sequence[Any],
    kwargs: Mapping[str, Any],
) -> Tuple[List[str], List[Any]]:
    """Split a ``str.format`` template into fragments and resolved values.

    Without any arguments the template is taken verbatim, so commands may
    contain shell braces. With arguments, literal braces must be doubled.

    Raises:
        TemplateError: If a field refers to a missing argument, the
            template mixes automatic and manual field numbering, or it
            cannot be parsed
    """
    if not args and not kwargs:
        return [template], []

    fragments: List[str] = []
    values: List[Any] = []
    pending = ""
    auto_index = 0
    numbering = None
    try:
        parsed = list(_formatter.parse(template))
    except ValueError as e:
        raise TemplateError(f"Cannot parse template `{template}`: {e}") from e

    for literal, field_name, format_spec, conversion in parsed:
        pending += literal
        if field_name is None:
            continue
        if field_name == "":
            if numbering == "manual":
                raise TemplateError(
                    f"Cannot switch from manual to automatic field numbering in `{template}`"
                )
            numbering = "auto"
            field_name = str(auto_index)
            auto_index += 1
        elif MANUAL_FIELD.match(field_name):
            if numbering == "auto":
                raise TemplateError(
                    f"Cannot switch from automatic to manual field numbering in `{template}`"
                )
            numbering = "manual"
        try:
            value, _ = _formatter.get_field(field_name, args, kwargs)
        except (IndexError, KeyError, AttributeError, TypeError) as e:
            raise TemplateError(
                f"Undefined variable {{{field_name}}} in `{template}`"
            ) from e
        if conversion or format_spec:
            value = _formatter.format_field(_formatter.convert_field(value, conversion), format_spec or "")
        fragments.append(pending)
        values.append(value)
        pending = ""
    fragments.append(pending)
    return fragments, values


def quote_template(template: str, /, *args: Any, **kwargs: Any) -> QuotedCommand:
    """Quote a ``str.format`` template, keeping subshell detection."""
    fragments, values = split_template(template, args, kwargs)
    return quote_fragments(fragments, values)


def quote(template: str, /, *args: Any, **kwargs: Any) -> str:
    """Build a shell command from a template, quoting values as needed.

    Example:
        >>> quote("git commit -m {}", "fix bug")
        "git commit -m 'fix bug'"
        >>> quote('echo "{}"', "fix bug")
        'echo "fix bug"'
    """
    return quote_template(template, *args, **kwargs).command


__all__ = [
    "ParseState",
    "QuoteContext",
    "QuotedCommand",
    "Raw",
    "parse_fragment",
    "quote",
    "quote_fragments",
    "quote_template",
    "shell_stringify",
    "split_template",
    "stringify",
    "unquoted",
]
