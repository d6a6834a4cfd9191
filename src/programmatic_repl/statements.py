"""Suffix heuristics that decide whether a fragment opens, closes or continues a block.

These are deliberately shallow: a fragment "opens" a block when it ends in
``{`` and "closes" one when it ends in ``}`` followed by any number of ``)``
and then any number of ``()`` call pairs. Nothing looks inside strings or
comments, so ``s = "{"`` counts as an opener.
"""
import enum
import re
from typing import Iterable

CLOSING_TAG = re.compile(r"\}\)*(\(\))*$")


class FragmentKind(enum.Enum):
    COMPLETE = "complete"                # runs on its own
    OPENS_BLOCK = "opens_block"          # starts (or nests) a buffered block
    CONTINUES_BLOCK = "continues_block"  # body line of a buffered block
    CLOSES_BLOCK = "closes_block"        # may finish the buffered block


def opens_block(fragment: str) -> bool:
    return fragment.rstrip().endswith("{")


def closes_block(fragment: str) -> bool:
    return CLOSING_TAG.search(fragment.rstrip()) is not None


def classify(fragment: str, pending: bool) -> FragmentKind:
    """Classify a fragment given whether a block is currently buffered.

    A closing fragment only counts as CLOSES_BLOCK while something is
    buffered; with an empty buffer it is just a COMPLETE statement.
    """
    if pending and closes_block(fragment):
        return FragmentKind.CLOSES_BLOCK
    if opens_block(fragment):
        return FragmentKind.OPENS_BLOCK
    if pending:
        return FragmentKind.CONTINUES_BLOCK
    return FragmentKind.COMPLETE


def count_blocks(statements: Iterable[str]) -> tuple[int, int]:
    """Return (openers, closers) over buffered statements."""
    opening = closing = 0
    for statement in statements:
        if opens_block(statement):
            opening += 1
        elif closes_block(statement):
            closing += 1
    return opening, closing


def nesting_depth(statements: Iterable[str]) -> int:
    opening, closing = count_blocks(statements)
    return opening - closing
