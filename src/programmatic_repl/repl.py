"""The statement-accumulating REPL.

Fragments arrive one at a time. A fragment ending in ``{`` opens a block and
is buffered; so is everything after it until the matching closers bring the
open/close balance back to zero, at which point the buffer is joined into one
composite statement and evaluated.

    repl = REPL(ReplConfig(indentation=2))
    repl.run("point = dict(**{")      # pending, display "point = dict(**{\\n  ..."
    repl.run("'x': 1, 'y': 2")        # pending
    repl.run("})")                    # evaluates the composite
    repl.run("_")                     # None, the value of the assignment
"""
from __future__ import annotations

import asyncio
import io
import logging
import traceback
from contextlib import redirect_stderr, redirect_stdout
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from programmatic_repl.config import ReplConfig
from programmatic_repl.context import Context, build_context
from programmatic_repl.display import format_result
from programmatic_repl.evaluator import evaluate_in_context
from programmatic_repl.statements import FragmentKind, classify, count_blocks, nesting_depth

logger = logging.getLogger(__name__)

CLEAR_COMMAND = ".clear"
CLEARED_MESSAGE = "Successfully cleared variables."
LAST_RESULT_NAME = "_"
ELLIPSIS = "..."


@dataclass
class Result:
    display: str
    value: Any = None
    error: Optional[str] = None
    pending: bool = False
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        """JSON-safe form; the raw value is left out, its display stands in."""
        return {
            "display": self.display,
            "error": self.error,
            "pending": self.pending,
            "stdout": self.stdout,
            "stderr": self.stderr,
        }


def _is_fragment_file(filename: str, name: str) -> bool:
    prefix, _, counter = filename.rpartition("-")
    return prefix == name and counter.isdigit()


def _format_error(exc: BaseException, name: str) -> str:
    # drop the engine's own frames, keep those of the evaluated code
    tb = exc.__traceback__
    while tb is not None and not _is_fragment_file(tb.tb_frame.f_code.co_filename, name):
        tb = tb.tb_next
    return "".join(traceback.format_exception(type(exc), exc, tb)).strip()


class REPL:
    def __init__(self, config: Optional[ReplConfig] = None, ctx: Optional[Mapping] = None):
        self.config = config or ReplConfig()
        self.source_ctx = dict(ctx or {})
        self.ctx: Context = build_context(self.config, self.source_ctx)

        self.statements: list[str] = []
        self.last_result: Any = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._counter = 0

    # --- context lifecycle ---

    def reset(self) -> Context:
        self.ctx.discard()
        self.ctx = build_context(self.config, self.source_ctx)
        self.statements = []
        self.last_result = None
        logger.debug("context reset")
        return self.ctx

    # --- display ---

    def _indentation(self, closing: bool = False) -> str:
        depth = nesting_depth(self.statements)
        if closing:
            depth -= 1  # the closer sits one level left of what it closes
        return " " * (depth * self.config.indentation)

    def prompt(self, command: str, append: bool = False) -> str:
        if append:
            self.statements.append(self._indentation() + command)
        return "\n".join(self.statements) + "\n" + self._indentation() + ELLIPSIS

    @property
    def pending(self) -> bool:
        return bool(self.statements)

    # --- execution ---

    async def execute(self, command: str) -> Result:
        if command == CLEAR_COMMAND:
            self.reset()
            return Result(display=CLEARED_MESSAGE)

        self.ctx[LAST_RESULT_NAME] = self.last_result

        kind = classify(command, self.pending)
        if kind is FragmentKind.CLOSES_BLOCK:
            self.statements.append(self._indentation(closing=True) + command)
            opening, closing = count_blocks(self.statements)
            if opening != closing:
                return Result(display=self.prompt(command), pending=True)
            command = "\n".join(self.statements)
            self.statements = []
        elif kind is not FragmentKind.COMPLETE:
            return Result(display=self.prompt(command, append=True), pending=True)

        return await self._evaluate(command)

    async def _evaluate(self, code: str) -> Result:
        stdout_buf = io.StringIO()
        stderr_buf = io.StringIO()
        self._counter += 1
        # one filename per execution, so tracebacks into earlier fragments keep their source
        label = f"{self.config.name}-{self._counter}"

        try:
            with redirect_stdout(stdout_buf), redirect_stderr(stderr_buf):
                evaluation = evaluate_in_context(code, self.ctx, label=label)
                if self.config.timeout is not None:
                    value = await asyncio.wait_for(evaluation, timeout=self.config.timeout)
                else:
                    value = await evaluation
            display = format_result(value)
        except (Exception, SystemExit) as e:
            self.last_result = None
            error = _format_error(e, self.config.name)
            logger.debug("evaluation failed: %s", error.splitlines()[-1] if error else e)
            return Result(
                display=f"ERROR: {error}",
                error=error,
                stdout=stdout_buf.getvalue(),
                stderr=stderr_buf.getvalue(),
            )

        self.last_result = value
        return Result(
            display=display,
            value=value,
            stdout=stdout_buf.getvalue(),
            stderr=stderr_buf.getvalue(),
        )

    # --- synchronous driver ---

    def run(self, command: str) -> Result:
        """Execute on an event loop owned by this instance.

        The loop outlives each call, so timers scheduled by one fragment can
        fire while a later fragment awaits.
        """
        if self._loop is None or self._loop.is_closed():
            self._loop = asyncio.new_event_loop()
        return self._loop.run_until_complete(self.execute(command))

    def close(self) -> None:
        self.ctx.discard()
        if self._loop is not None and not self._loop.is_closed():
            self._loop.close()
        self._loop = None

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
