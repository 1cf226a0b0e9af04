"""
Tokenizer for AT response parameters.

Splits ``<a>,"<b>",(<c>,<d>)`` style parameter lists. Double quotes protect
separators and are removed; parentheses produce nested lists.
"""

from typing import Union

from ..exceptions import ATParseError

Token = Union[str, list]


def split_tokens(value: str, separator: str = ",") -> list[Token]:
    """
    Split a parameter string into tokens.

    Args:
        value: Parameter text (response line without its prefix)
        separator: Token separator

    Returns:
        List of string tokens and nested lists for parenthesized groups

    Raises:
        ATParseError: On an unterminated quote or unbalanced parenthesis

    Example:

    .. code-block:: python

        split_tokens('"SM",6,40')            # ['SM', '6', '40']
        split_tokens('0,,123')               # ['0', '', '123']
        split_tokens('("GSM","UCS2")')       # [['GSM', 'UCS2']]
        split_tokens('(2,"Op","O","51010",7),,(0-4)')
        # [['2', 'Op', 'O', '51010', '7'], '', ['0-4']]
    """
    stack: list[list[Token]] = [[]]
    current: list[str] = []
    quoted = False
    in_quote = False
    closed = False

    def flush(force: bool) -> None:
        nonlocal current, quoted
        text = "".join(current)
        if not quoted:
            text = text.strip()
        if force or text or quoted:
            stack[-1].append(text)
        current = []
        quoted = False

    for ch in value:
        if in_quote:
            if ch == '"':
                in_quote = False
            else:
                current.append(ch)
            continue

        if ch == '"':
            in_quote = True
            quoted = True
        elif ch == "(":
            stack.append([])
            current = []
            quoted = False
        elif ch == ")":
            if len(stack) == 1:
                raise ATParseError(f"Unbalanced parenthesis in: {value}")
            if not closed:
                flush(force=bool(stack[-1]))
            group = stack.pop()
            stack[-1].append(group)
            closed = True
            continue
        elif ch == separator:
            if not closed:
                flush(force=True)
            current = []
            quoted = False
        elif ch.isspace() and (quoted or not current):
            continue
        else:
            current.append(ch)
        closed = False

    if in_quote:
        raise ATParseError(f"Unterminated quote in: {value}")
    if len(stack) > 1:
        raise ATParseError(f"Unbalanced parenthesis in: {value}")
    if not closed:
        flush(force=bool(stack[0]))

    return stack[0]


def is_number(token: Token) -> bool:
    """Check if a token is a plain integer."""
    if not isinstance(token, str):
        return False
    text = token.strip()
    if text.startswith(("-", "+")):
        text = text[1:]
    return text.isdigit()
