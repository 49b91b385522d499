"""Identifier case conversion.

Identifiers are split into words at separators (anything that is not a
letter or digit) and at case boundaries: ``HTTPServerError2`` splits into
``HTTP``, ``Server``, ``Error2``. Every converter is a pure function of the
word list, so converting between styles is lossless as long as each word
starts with a letter and has at least two characters.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Callable, Iterable

_CHUNK = re.compile(r"[A-Za-z0-9]+")
_WORD = re.compile(r"[A-Z]+(?![a-z])[0-9]*|[A-Z]?[a-z]+[0-9]*|[0-9]+")


class CaseStyle(str, Enum):
    """Supported identifier styles."""

    SNAKE = "snake_case"  # user_name
    CAMEL = "camel_case"  # userName
    PASCAL = "pascal_case"  # UserName
    KEBAB = "kebab_case"  # user-name
    SCREAMING_SNAKE = "screaming_snake_case"  # USER_NAME
    SCREAMING_KEBAB = "screaming_kebab_case"  # USER-NAME
    TITLE = "title_case"  # User Name
    LOWER = "lower_case"  # user name
    UPPER = "upper_case"  # USER NAME


def split_words(text: str) -> list[str]:
    """Split an identifier into its words, keeping their original case."""
    words: list[str] = []
    for chunk in _CHUNK.findall(text):
        words.extend(_WORD.findall(chunk))
    return words


def snake_case(text: str) -> str:
    return "_".join(word.lower() for word in split_words(text))


def kebab_case(text: str) -> str:
    return "-".join(word.lower() for word in split_words(text))


def screaming_snake_case(text: str) -> str:
    return "_".join(word.upper() for word in split_words(text))


def screaming_kebab_case(text: str) -> str:
    return "-".join(word.upper() for word in split_words(text))


def pascal_case(text: str) -> str:
    return "".join(word.capitalize() for word in split_words(text))


def camel_case(text: str) -> str:
    words = split_words(text)
    if not words:
        return ""
    return words[0].lower() + "".join(word.capitalize() for word in words[1:])


def title_case(text: str) -> str:
    return " ".join(word.capitalize() for word in split_words(text))


def lower_case(text: str) -> str:
    return " ".join(word.lower() for word in split_words(text))


def upper_case(text: str) -> str:
    return " ".join(word.upper() for word in split_words(text))


CONVERTERS: dict[CaseStyle, Callable[[str], str]] = {
    CaseStyle.SNAKE: snake_case,
    CaseStyle.CAMEL: camel_case,
    CaseStyle.PASCAL: pascal_case,
    CaseStyle.KEBAB: kebab_case,
    CaseStyle.SCREAMING_SNAKE: screaming_snake_case,
    CaseStyle.SCREAMING_KEBAB: screaming_kebab_case,
    CaseStyle.TITLE: title_case,
    CaseStyle.LOWER: lower_case,
    CaseStyle.UPPER: upper_case,
}


def convert(text: str, style: CaseStyle | str) -> str:
    """Convert ``text`` to ``style`` (a :class:`CaseStyle` or its value)."""
    return CONVERTERS[CaseStyle(style)](text)


def acronym(text: str, acronyms: Iterable[str]) -> str:
    """Rewrite words matching a known acronym (case-insensitively) to its spelling.

    Separators and the surrounding text are preserved, e.g. with
    ``["HTTP", "URL"]``, ``"Http request url"`` becomes ``"HTTP request URL"``.
    """
    spellings = {a.lower(): a for a in acronyms}
    if not spellings:
        return text

    def replace(match: re.Match) -> str:
        word = match.group()
        return spellings.get(word.lower(), word)

    return _CHUNK.sub(lambda m: _WORD.sub(replace, m.group()), text)
