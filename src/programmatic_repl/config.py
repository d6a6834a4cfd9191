from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_NAME = "programmatic-repl"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


def _env_bool(environ: Mapping[str, str], key: str, default: bool) -> bool:
    raw = environ.get(key)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ValueError(f"{key} must be a boolean, got {raw!r}")


@dataclass(frozen=True)
class ReplConfig:
    # --- context composition ---
    include_native: bool = False        # timers, module loader, process handles
    include_builtin_libs: bool = False  # every public stdlib module, pre-imported

    # --- display / diagnostics ---
    indentation: int = 2                # spaces per nesting level in prompts
    name: str = DEFAULT_NAME            # filename of compiled fragments

    # --- evaluation ---
    timeout: Optional[float] = None     # seconds; None waits forever

    def __post_init__(self):
        if isinstance(self.indentation, bool) or not isinstance(self.indentation, int):
            raise ValueError(f"indentation must be an int, got {self.indentation!r}")
        if self.indentation < 1:
            raise ValueError(f"indentation must be positive, got {self.indentation}")
        if not self.name:
            raise ValueError("name must be a non-empty string")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ReplConfig":
        """Build a config from REPL_* environment variables.

        Unset variables keep their defaults:
          REPL_INCLUDE_NATIVE, REPL_INCLUDE_BUILTIN_LIBS  booleans
          REPL_INDENTATION                                int
          REPL_NAME                                       str
          REPL_TIMEOUT                                    float seconds
        """
        env = os.environ if environ is None else environ

        indentation = env.get("REPL_INDENTATION")
        timeout = env.get("REPL_TIMEOUT")
        try:
            indentation = int(indentation) if indentation else 2
            timeout = float(timeout) if timeout else None
        except ValueError as e:
            raise ValueError(f"invalid REPL_* setting: {e}") from e

        return cls(
            include_native=_env_bool(env, "REPL_INCLUDE_NATIVE", False),
            include_builtin_libs=_env_bool(env, "REPL_INCLUDE_BUILTIN_LIBS", False),
            indentation=indentation,
            name=env.get("REPL_NAME") or DEFAULT_NAME,
            timeout=timeout,
        )

    def to_env(self) -> dict[str, str]:
        """Inverse of from_env, used to hand a config to a spawned server."""
        return {
            "REPL_INCLUDE_NATIVE": "1" if self.include_native else "0",
            "REPL_INCLUDE_BUILTIN_LIBS": "1" if self.include_builtin_libs else "0",
            "REPL_INDENTATION": str(self.indentation),
            "REPL_NAME": self.name,
            "REPL_TIMEOUT": "" if self.timeout is None else str(self.timeout),
        }
