import base64
import json
import os
import socket
import subprocess
import sys
import tempfile
import time

import cloudpickle

from programmatic_repl.config import ReplConfig
from programmatic_repl.context import Context, build_context
from programmatic_repl.display import format_result
from programmatic_repl.repl import REPL, Result
from programmatic_repl.statements import FragmentKind, classify

__all__ = [
    "REPL", "Repl", "ReplConfig", "Result", "Context", "FragmentKind",
    "build_context", "classify", "format_result", "start",
]


class Repl:
    """Handle on a programmatic-repl server running in a child process."""

    def __init__(self, proc: subprocess.Popen, socket_path: str):
        self._proc = proc
        self._socket_path = socket_path

    def _request(self, payload: dict) -> dict:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.connect(self._socket_path)
        with sock, sock.makefile("rb") as f:
            sock.sendall(json.dumps(payload).encode() + b"\n")
            raw = f.readline()
        return json.loads(raw)

    def send(self, code: str) -> dict:
        """Submit one fragment. A ``pending`` response means it was buffered."""
        return self._request({"code": code})

    def preview(self) -> str:
        """The buffered fragments plus the continuation line, without submitting anything."""
        return self._request({"prompt": ""})["display"]

    def set(self, **variables) -> None:
        payload = base64.b64encode(cloudpickle.dumps(variables)).decode()
        result = self._request({"set": payload})
        if result.get("error"):
            raise RuntimeError(result["error"])

    def get(self, name: str):
        result = self._request({"get": name})
        if result.get("value") is None:
            if result["error"].startswith("NameError"):
                raise NameError(result["error"])
            raise RuntimeError(result["error"])
        return cloudpickle.loads(base64.b64decode(result["value"]))

    def close(self) -> None:
        self._proc.terminate()
        self._proc.wait()
        if os.path.exists(self._socket_path):
            os.unlink(self._socket_path)

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


def start(
    socket_path: str | None = None,
    timeout: float = 5.0,
    config: ReplConfig | None = None,
    **variables,
) -> Repl:
    """Start a programmatic-repl server in the background. Returns a Repl instance.

    Keyword arguments are cloudpickled and become the server's initial
    bindings, which survive ``.clear``:
        repl = programmatic_repl.start(df=my_dataframe)
        repl.send("df = {")      # buffered, response["pending"] is True
    """
    env = os.environ.copy()
    resolved = socket_path or env.get("REPL_SOCKET", "/tmp/programmatic-repl.sock")

    if socket_path:
        env["REPL_SOCKET"] = socket_path
    if config is not None:
        env.update(config.to_env())

    if variables:
        tmp = tempfile.NamedTemporaryFile(delete=False, suffix=".pkl")
        cloudpickle.dump(variables, tmp)
        tmp.close()
        env["REPL_INIT"] = tmp.name

    # Remove any leftover socket so the wait loop below always waits for
    # the new server rather than returning immediately against an old one.
    if os.path.exists(resolved):
        os.unlink(resolved)

    proc = subprocess.Popen(
        [sys.executable, "-m", "programmatic_repl.server"],
        env=env,
        stderr=subprocess.PIPE,
    )

    deadline = time.monotonic() + timeout
    while not os.path.exists(resolved):
        if time.monotonic() > deadline:
            proc.kill()
            raise RuntimeError(f"programmatic-repl server did not start within {timeout}s")
        time.sleep(0.05)

    return Repl(proc, resolved)
