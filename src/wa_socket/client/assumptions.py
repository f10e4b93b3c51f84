"""Expansion of assumption templates into display sentences.

The server describes each assumption as a template such as
``"Assuming ${desc1} is ${word}. Use as ${desc2} instead"`` with a list of
candidate values. Placeholders are resolved left to right:

``${desc}``
    the next value's description. If the first value's description already
    appears verbatim in the template, the walk starts at the second value.
``${separator}``
    a literal ``" | "``.
``${word}``
    the word the assumption is about (see :func:`resolve_word`).

Any other placeholder is copied through unchanged.
"""

from __future__ import annotations

import re
from typing import List, Optional

from wa_socket.protocol import Assumption

PLACEHOLDER_RE = re.compile(r"\$\{\w*\}")

DESC_TOKEN = "${desc}"
SEPARATOR_TOKEN = "${separator}"
WORD_TOKEN = "${word}"

SEPARATOR = " | "
ASSUMING_WORD = "AssumingWord"
THE_INPUT = "the input"


def split_template(template: str) -> tuple[List[str], List[str]]:
    """Return the literal chunks and the placeholder tokens of *template*.

    There is always exactly one more chunk than there are tokens.
    """

    chunks = PLACEHOLDER_RE.split(template)
    tokens = PLACEHOLDER_RE.findall(template)
    return chunks, tokens


def resolve_word(assumption: Assumption, query: str) -> str:
    """Pick the text substituted for ``${word}``, falling back to *query*."""

    values = assumption.values
    first = values[0] if values else None
    if assumption.word == ASSUMING_WORD:
        if first is not None and first.desc is not None:
            return first.desc
        return query
    if assumption.word:
        return assumption.word
    if first is not None and first.word:
        # the server pads this phrase with spaces
        if first.word.strip() == THE_INPUT:
            return query
        return first.word
    return query


def expand_template(assumption: Assumption, original_input: Optional[str] = None) -> str:
    template = assumption.template
    values = assumption.values
    query = assumption.query if assumption.query is not None else (original_input or "")
    chunks, tokens = split_template(template)

    desc_index = 0
    if values and values[0].desc is not None and values[0].desc in template:
        desc_index = 1

    out: List[str] = []
    for chunk, token in zip(chunks, tokens):
        out.append(chunk)
        if token == DESC_TOKEN:
            if desc_index < len(values):
                desc = values[desc_index].desc
                if desc is not None:
                    out.append(desc)
            desc_index += 1
        elif token == SEPARATOR_TOKEN:
            out.append(SEPARATOR)
        elif token == WORD_TOKEN:
            out.append(resolve_word(assumption, query))
        else:
            out.append(token)
    out.append(chunks[len(tokens)])
    return "".join(out)


__all__ = ["PLACEHOLDER_RE", "expand_template", "resolve_word", "split_template"]
