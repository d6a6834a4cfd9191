"""Evaluate a code string against a globals dict, REPL style.

If the code ends in an expression its value is returned, otherwise None.
Top-level ``await`` is allowed: code objects flagged CO_COROUTINE are run
as coroutines on the caller's loop.
"""
import ast
import inspect
import linecache
from types import FunctionType

_FLAGS = ast.PyCF_ALLOW_TOP_LEVEL_AWAIT


def _register_source(code: str, label: str) -> None:
    # lets tracebacks show the offending line of the fragment
    linecache.cache[label] = (len(code), None, code.splitlines(keepends=True), label)


def _compile(tree, label: str, mode: str):
    ast.fix_missing_locations(tree)
    return compile(tree, label, mode, flags=_FLAGS)


async def _run(compiled, context: dict):
    if compiled.co_flags & inspect.CO_COROUTINE:
        return await FunctionType(compiled, context)()
    return eval(compiled, context)


async def evaluate_in_context(code: str, context: dict, label: str = "<repl>"):
    """Run ``code`` in ``context`` and return the value of its last expression.

    Raises whatever the code raises, SyntaxError included.
    """
    _register_source(code, label)
    tree = compile(code, label, "exec", flags=ast.PyCF_ONLY_AST | _FLAGS)

    last = tree.body[-1] if tree.body else None
    if not isinstance(last, ast.Expr):
        await _run(_compile(tree, label, "exec"), context)
        return None

    if len(tree.body) > 1:
        statements = ast.Module(body=tree.body[:-1], type_ignores=[])
        await _run(_compile(statements, label, "exec"), context)

    return await _run(_compile(ast.Expression(body=last.value), label, "eval"), context)
