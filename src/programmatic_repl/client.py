#!/usr/bin/env python3
"""
programmatic-repl client: submit fragments to a running server and print the result.

Usage:
    programmatic-repl "x = 42"
    programmatic-repl "x"
    printf 'data = {\n"a": 1\n}\n' | programmatic-repl -

With ``-`` every stdin line is submitted as its own fragment, in order, so
brace blocks spanning lines accumulate exactly as typed.
"""

import json
import os
import socket
import sys

SOCKET_PATH = os.environ.get("REPL_SOCKET", "/tmp/programmatic-repl.sock")


def send(code: str) -> dict:
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    sock.connect(SOCKET_PATH)
    with sock, sock.makefile("rb") as f:
        sock.sendall(json.dumps({"code": code}).encode() + b"\n")
        raw = f.readline()
    return json.loads(raw)


def main() -> None:
    if len(sys.argv) < 2:
        print("usage: programmatic-repl <fragment | ->", file=sys.stderr)
        sys.exit(1)

    if sys.argv[1] == "-":
        fragments = sys.stdin.read().splitlines()
    else:
        fragments = [sys.argv[1]]

    result = None
    for fragment in fragments:
        result = send(fragment)
        if result["stdout"]:
            print(result["stdout"], end="")
        if result["stderr"]:
            print(result["stderr"], end="", file=sys.stderr)
        if result["error"]:
            print(result["error"], file=sys.stderr)
            sys.exit(1)

    if result is not None and result["display"]:
        print(result["display"])


if __name__ == "__main__":
    main()
