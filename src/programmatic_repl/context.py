from __future__ import annotations

import logging
from typing import Mapping, Optional

from programmatic_repl.config import ReplConfig
from programmatic_repl.native import Timers, builtin_lib_bindings, native_bindings

logger = logging.getLogger(__name__)


class Context(dict):
    """The globals dict fragments are evaluated against.

    Subclasses dict so it can be handed straight to eval()/exec(). It also
    owns the Timers registry of its native bundle, so whoever discards a
    context can cancel what it left scheduled.

        ctx = build_context(ReplConfig(include_native=True), {"df": df})
        ctx["df"] is df            # caller bindings win every collision
        ctx["set_timeout"]         # from the native bundle
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.timers = Timers()

    def discard(self) -> None:
        cancelled = self.timers.cancel_all()
        if cancelled:
            logger.debug("cancelled %d pending timer(s) of discarded context", cancelled)


def build_context(
    config: ReplConfig,
    initial_bindings: Optional[Mapping] = None,
) -> Context:
    """Compose a fresh context: builtin libs < native bundle < caller bindings."""
    ctx = Context(__name__="__main__")

    if config.include_builtin_libs:
        ctx.update(builtin_lib_bindings())
    if config.include_native:
        ctx.update(native_bindings(ctx.timers))
    if initial_bindings:
        ctx.update(initial_bindings)

    logger.debug(
        "built context with %d binding(s) (native=%s, builtin_libs=%s)",
        len(ctx), config.include_native, config.include_builtin_libs,
    )
    return ctx
