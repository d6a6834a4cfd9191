#!/usr/bin/env python3
"""
programmatic-repl server: one statement-accumulating REPL over a Unix domain socket.

Each connection sends one JSON request and receives one JSON response:
  {"code": "..."}    submit a fragment   -> {"display", "error", "pending", "stdout", "stderr"}
  {"prompt": ""}     preview the buffer  -> {"display", "error"}
  {"set": "<b64>"}   cloudpickled dict of bindings to merge into the context
  {"get": "name"}    -> {"value": "<b64 cloudpickle>"}
State (variables, imports, buffered fragments) persists across connections.
"""

import base64
import json
import os
import signal
import socket
import sys
import traceback

import cloudpickle

from programmatic_repl.config import ReplConfig
from programmatic_repl.repl import REPL

SOCKET_PATH = os.environ.get("REPL_SOCKET", "/tmp/programmatic-repl.sock")


def _bad_request(message: str) -> dict:
    return {"display": "", "error": f"Bad request: {message}", "pending": False, "stdout": "", "stderr": ""}


def dispatch(request: dict, repl: REPL) -> dict:
    for key in ("code", "prompt", "get"):
        if key in request and not isinstance(request[key], str):
            return _bad_request(f"'{key}' must be a string")

    if "code" in request:
        return repl.run(request["code"]).to_dict()

    if "prompt" in request:
        return {"display": repl.prompt(request["prompt"]), "error": None}

    if "set" in request:
        try:
            updates = cloudpickle.loads(base64.b64decode(request["set"]))
            repl.ctx.update(updates)
            return {"error": None}
        except Exception:
            return {"error": traceback.format_exc().strip()}

    if "get" in request:
        var_name = request["get"]
        if var_name not in repl.ctx:
            return {"error": f"NameError: name '{var_name}' is not defined", "value": None}
        try:
            encoded = base64.b64encode(cloudpickle.dumps(repl.ctx[var_name])).decode()
            return {"error": None, "value": encoded}
        except Exception:
            return {"error": traceback.format_exc().strip(), "value": None}

    return _bad_request("missing 'code', 'prompt', 'set', or 'get'")


def handle(conn: socket.socket, repl: REPL) -> None:
    with conn:
        data = b""
        while b"\n" not in data:
            chunk = conn.recv(4096)
            if not chunk:
                break
            data += chunk

        raw = data.split(b"\n")[0]
        if not raw:
            return

        try:
            request = json.loads(raw)
        except json.JSONDecodeError as e:
            response = _bad_request(str(e))
        else:
            if isinstance(request, dict):
                response = dispatch(request, repl)
            else:
                response = _bad_request("expected a JSON object")

        conn.sendall(json.dumps(response).encode() + b"\n")


def load_init_bindings() -> dict:
    init_path = os.environ.get("REPL_INIT")
    if not init_path:
        return {}
    try:
        with open(init_path, "rb") as f:
            bindings = cloudpickle.load(f)
    finally:
        os.unlink(init_path)
    return bindings


def serve() -> None:
    if os.path.exists(SOCKET_PATH):
        os.unlink(SOCKET_PATH)

    repl = REPL(ReplConfig.from_env(), load_init_bindings())

    server = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    server.bind(SOCKET_PATH)
    server.listen()

    def shutdown(sig, frame):
        print(f"\nShutting down ({SOCKET_PATH})", file=sys.stderr)
        server.close()
        repl.close()
        if os.path.exists(SOCKET_PATH):
            os.unlink(SOCKET_PATH)
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    print(f"programmatic-repl listening on {SOCKET_PATH}", file=sys.stderr)

    while True:
        try:
            conn, _ = server.accept()
        except OSError:
            break
        handle(conn, repl)


if __name__ == "__main__":
    serve()
