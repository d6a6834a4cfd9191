"""Tests for REPL: fragment accumulation, evaluation and the last-result slot."""
import asyncio

import pytest

from programmatic_repl import REPL, ReplConfig
from programmatic_repl.repl import CLEARED_MESSAGE


@pytest.fixture
def repl():
    with REPL() as r:
        yield r


# ---------------------------------------------------------------------------
# Direct execution
# ---------------------------------------------------------------------------

def test_expression_runs_immediately(repl):
    result = repl.run("1 + 1")
    assert result.value == 2
    assert result.display == "2"
    assert result.ok
    assert not result.pending
    assert repl.statements == []


def test_keeps_types(repl):
    assert repl.run("42").value == 42
    assert repl.run("'foo'").value == "foo"
    assert repl.run("dict(foo='bar')").value == {"foo": "bar"}


def test_strings_display_unquoted(repl):
    assert repl.run("'foo'").display == "foo"


def test_statement_displays_nothing(repl):
    result = repl.run("x = 1")
    assert result.value is None
    assert result.display == ""


def test_last_expression_of_multiple_statements(repl):
    assert repl.run("a = 2; b = 3; a * b").value == 6


def test_execute_is_awaitable():
    r = REPL()
    result = asyncio.run(r.execute("6 * 7"))
    assert result.value == 42


def test_top_level_await(repl):
    repl.run("import asyncio")
    assert repl.run("await asyncio.sleep(0, result=7)").value == 7


def test_top_level_await_in_statements(repl):
    repl.run("import asyncio")
    repl.run("value = await asyncio.sleep(0, result='done')")
    assert repl.run("value").value == "done"


def test_stdout_is_captured(repl):
    result = repl.run("print('hello')")
    assert result.stdout == "hello\n"
    assert result.display == ""


def test_stderr_is_captured(repl):
    repl.run("import sys")
    result = repl.run("print('oops', file=sys.stderr)")
    assert result.stderr == "oops\n"


# ---------------------------------------------------------------------------
# Variables and the evaluation context
# ---------------------------------------------------------------------------

def test_variables_persist(repl):
    repl.run("foo = 'bar'")
    assert repl.run("foo").value == "bar"


def test_functions_persist(repl):
    repl.run("double = lambda n: n * 2")
    assert repl.run("double(21)").value == 42


def test_context_bindings_are_visible():
    r = REPL(ctx={"foo": "bar"})
    assert r.run("foo").value == "bar"


def test_caller_mapping_is_not_mutated():
    bindings = {"foo": "bar"}
    r = REPL(ctx=bindings)
    r.run("x = 1")
    assert bindings == {"foo": "bar"}


def test_clear_drops_variables(repl):
    repl.run("foo = 'bar'")
    assert repl.run(".clear").display == CLEARED_MESSAGE

    result = repl.run("foo")
    assert not result.ok
    assert "NameError" in result.error


def test_clear_restores_original_bindings():
    r = REPL(ctx={"foo": "bar"})
    r.run("foo = 'baz'")
    assert r.run("foo").value == "baz"

    r.run(".clear")
    assert r.run("foo").value == "bar"


def test_clear_replaces_context(repl):
    before = repl.ctx
    repl.run(".clear")
    assert repl.ctx is not before


def test_clear_is_never_evaluated(repl):
    repl.run("clear = 1")
    result = repl.run(".clear")
    assert result.display == CLEARED_MESSAGE
    assert result.ok
    assert "NameError" in repl.run("clear").error


# ---------------------------------------------------------------------------
# _ as the last result
# ---------------------------------------------------------------------------

def test_underscore_is_none_before_any_execution(repl):
    assert repl.run("_").value is None


def test_underscore_is_last_result(repl):
    repl.run("42")
    assert repl.run("_").value == 42


def test_underscore_updates_on_statements(repl):
    repl.run("42")
    repl.run("x = 1")
    assert repl.run("_").value is None


def test_underscore_is_not_updated_by_buffering(repl):
    repl.run("42")
    repl.run("data = {")
    repl.run("'a': _")
    repl.run("}")
    assert repl.run("data").value == {"a": 42}


def test_underscore_resets_after_error(repl):
    repl.run("42")
    repl.run("1 / 0")
    assert repl.run("_").value is None


def test_underscore_resets_on_clear(repl):
    repl.run("42")
    repl.run(".clear")
    assert repl.last_result is None
    assert repl.run("_").value is None


# ---------------------------------------------------------------------------
# Split brackets
# ---------------------------------------------------------------------------

def test_resolves_single_layer_block(repl):
    assert repl.run("{").pending
    assert repl.run("'foo': 1").pending
    result = repl.run("}")
    assert not result.pending
    assert result.value == {"foo": 1}
    assert repl.statements == []


def test_resolves_deeply_nested_blocks(repl):
    repl.run("{")
    for _ in range(49):
        assert repl.run("'k': {").pending
    repl.run("'leaf': 'foo'")
    for _ in range(49):
        assert repl.run("}").pending

    result = repl.run("}")
    assert not result.pending

    node = result.value
    for _ in range(49):
        node = node["k"]
    assert node == {"leaf": "foo"}


def test_splits_immediately_invoked_calls(repl):
    repl.run("(lambda: {")
    repl.run("'x': 'foo'")
    assert repl.run("})()").value == {"x": "foo"}


def test_splits_multi_line_calls(repl):
    repl.run("point = dict(**{")
    repl.run("'x': 1,")
    repl.run("'y': 2")
    repl.run("})")
    assert repl.run("point").value == {"x": 1, "y": 2}


def test_close_without_open_runs_directly(repl):
    result = repl.run("}")
    assert not result.pending
    assert "SyntaxError" in result.error
    assert repl.statements == []


def test_unclosed_block_never_executes(repl):
    repl.run("{")
    for _ in range(5):
        result = repl.run("print('side effect')")
        assert result.pending
        assert result.stdout == ""
    assert len(repl.statements) == 6


def test_clear_kills_statement_queue(repl):
    repl.run("{")
    repl.run(".clear")
    assert repl.statements == []
    assert repl.run("'foo'").value == "foo"


def test_composite_errors_are_reported(repl):
    repl.run("{")
    repl.run("'a': undefined_name")
    result = repl.run("}")
    assert result.display.startswith("ERROR:")
    assert "NameError" in result.error
    assert repl.statements == []


# ---------------------------------------------------------------------------
# Continuation prompts
# ---------------------------------------------------------------------------

def test_prompt_uses_configured_indentation():
    r = REPL(ReplConfig(indentation=4))
    assert r.run("{").display == "{\n    ..."


def test_nested_prompts_indent_and_dedent(repl):
    assert repl.run("{").display == "{\n  ..."
    assert repl.run("'a': {").display == "{\n  'a': {\n    ..."
    assert repl.run("'b': 'foo'").display == "{\n  'a': {\n    'b': 'foo'\n    ..."
    assert repl.run("}").display == "{\n  'a': {\n    'b': 'foo'\n  }\n  ..."
    assert repl.run("}").value == {"a": {"b": "foo"}}


@pytest.mark.parametrize("indentation,depth", [(1, 1), (2, 3), (3, 2), (8, 1)])
def test_prompt_trailing_line_width(indentation, depth):
    r = REPL(ReplConfig(indentation=indentation))
    for _ in range(depth):
        display = r.run("[{").display
    assert display.splitlines()[-1] == " " * (indentation * depth) + "..."


def test_prompt_preview_does_not_append(repl):
    repl.run("{")
    assert repl.prompt("'a': 1") == "{\n  ..."
    assert repl.statements == ["{"]


def test_prompt_append_pushes_indented_fragment(repl):
    repl.run("{")
    assert repl.prompt("'a': 1", append=True) == "{\n  'a': 1\n  ..."
    assert repl.statements == ["{", "  'a': 1"]


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

def test_runtime_error_becomes_string(repl):
    result = repl.run("1 / 0")
    assert not result.ok
    assert result.display == f"ERROR: {result.error}"
    assert "ZeroDivisionError" in result.error


def test_error_traceback_omits_engine_frames(repl):
    result = repl.run("1 / 0")
    assert 'File "programmatic-repl-1"' in result.error
    assert "evaluator.py" not in result.error
    assert "repl.py" not in result.error


def test_error_traceback_uses_configured_name():
    r = REPL(ReplConfig(name="my-bot"))
    assert 'File "my-bot-1"' in r.run("1 / 0").error


def test_failing_repr_becomes_string(repl):
    repl.run("42")
    result = repl.run("type('Loud', (), {'__repr__': lambda self: 1 / 0})()")
    assert result.display.startswith("ERROR:")
    assert "ZeroDivisionError" in result.error
    assert repl.run("_").value is None


def test_traceback_into_earlier_fragment_shows_its_source(repl):
    repl.run("def boom():\n    return 1 / 0")
    repl.run("unrelated = [1, 2, 3]")
    result = repl.run("boom()")
    assert "return 1 / 0" in result.error
    assert "unrelated" not in result.error


def test_syntax_error_becomes_string(repl):
    result = repl.run("x = = 1")
    assert "SyntaxError" in result.error


def test_system_exit_is_absorbed(repl):
    result = repl.run("raise SystemExit(3)")
    assert "SystemExit" in result.error


def test_output_before_error_is_kept(repl):
    result = repl.run("print('before'); 1 / 0")
    assert result.stdout == "before\n"
    assert not result.ok


def test_timeout_leaves_repl_idle():
    r = REPL(ReplConfig(timeout=0.05))
    r.run("import asyncio")
    r.run("{")
    result = r.run("'slow': await asyncio.sleep(5)")
    assert result.pending

    result = r.run("}")
    assert "TimeoutError" in result.error
    assert r.statements == []
    assert r.run("_").value is None
    assert r.run("1 + 1").value == 2


# ---------------------------------------------------------------------------
# Native timers
# ---------------------------------------------------------------------------

@pytest.fixture
def native():
    with REPL(ReplConfig(include_native=True)) as r:
        r.run("import asyncio")
        yield r


def test_set_timeout_fires_on_later_await(native):
    native.run("hits = []")
    native.run("handle = set_timeout(hits.append, 0.01, 'fired')")
    assert native.run("hits").value == []

    native.run("await asyncio.sleep(0.05)")
    assert native.run("hits").value == ["fired"]
    assert native.ctx.timers.pending == 0


def test_clear_timeout_cancels(native):
    native.run("hits = []")
    native.run("handle = set_timeout(hits.append, 0.01, 'fired')")
    native.run("clear_timeout(handle)")
    native.run("await asyncio.sleep(0.05)")
    assert native.run("hits").value == []


def test_set_interval_repeats_until_cleared(native):
    native.run("ticks = []")
    native.run("iv = set_interval(ticks.append, 0.01, 1)")
    native.run("await asyncio.sleep(0.1)")
    native.run("clear_interval(iv)")
    count = len(native.run("ticks").value)
    assert count >= 2

    native.run("await asyncio.sleep(0.05)")
    assert len(native.run("ticks").value) == count


def test_set_immediate_runs_on_next_iteration(native):
    native.run("hits = []")
    native.run("set_immediate(hits.append, 'now')")
    native.run("await asyncio.sleep(0)")
    assert native.run("hits").value == ["now"]


def test_clear_cancels_pending_timers(native):
    native.run("handle = set_timeout(print, 10)")
    timers = native.ctx.timers
    assert timers.pending == 1

    native.run(".clear")
    assert timers.pending == 0
