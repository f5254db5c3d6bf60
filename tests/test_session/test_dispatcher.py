import pytest
from bdl.core.errors import FunctionFailure, ReferenceError, ReferenceErrorKind
from bdl.script.document import Call
from bdl.session.dispatcher import (
    CallResult,
    Fallback,
    FunctionRegistry,
    ScopeView,
    bind_results,
)
from bdl.session.store import SessionState, VariableStore

FALLBACK = Fallback("Something went wrong.", "main.bdl:start")


@pytest.fixture
def state():
    variables = VariableStore(
        "main.bdl",
        global_defaults={"user_name": ""},
        local_defaults={"input": "Alex"},
    )
    return SessionState(entry_file="main.bdl", variables=variables, current_file="main.bdl")


@pytest.fixture
def functions():
    return FunctionRegistry()


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

def test_register_and_unregister(functions):
    functions.register("getTime", lambda scope: ["12:00"])

    @functions.function("getDate")
    def get_date(scope):
        return "2024-01-01"

    assert "getTime" in functions
    assert functions.names() == ["getDate", "getTime"]
    assert len(functions) == 2

    functions.unregister("getTime")
    functions.unregister("never_registered")
    assert functions.names() == ["getDate"]


def test_decorator_returns_function(functions):
    @functions.function("hello")
    def hello(scope):
        return "hi"

    assert hello(None) == "hi"


# ---------------------------------------------------------------------------
# Invocation
# ---------------------------------------------------------------------------

def test_invoke_unknown_function(functions, state):
    with pytest.raises(ReferenceError) as info:
        functions.invoke("missing", ScopeView(state))
    assert info.value.kind is ReferenceErrorKind.UNKNOWN_FUNCTION


@pytest.mark.parametrize("returned, expected", [
    (["a", 1], ["a", 1]),
    (("a", True), ["a", True]),
    ("single", ["single"]),
    (None, []),
    ([{"nested": 1}], [{"nested": 1}]),
])
def test_invoke_normalizes_results(functions, state, returned, expected):
    functions.register("fn", lambda scope: returned)
    result = functions.invoke("fn", ScopeView(state))

    assert result.ok
    assert result.values == expected


def test_non_values_are_stored_as_text(functions, state):
    functions.register("fn", lambda scope: [object.__name__, ["nested", "list"]])
    result = functions.invoke("fn", ScopeView(state))

    assert result.values == ["object", "['nested', 'list']"]


@pytest.mark.parametrize("error", [FunctionFailure("no password"), ValueError("boom")])
def test_raising_function_fails(functions, state, error):
    def failing(scope):
        raise error

    functions.register("fn", failing)
    result = functions.invoke("fn", ScopeView(state))

    assert not result.ok
    assert result.values == []


def test_function_sees_session(functions, state):
    seen = {}

    @functions.function("inspect")
    def inspect(scope):
        seen["input"] = scope.get("input")
        seen["file"] = scope.current_file
        seen["entry"] = scope.entry_file
        seen["greeting"] = scope.interpolate("Hi ${input}")
        scope.set_local("checked", True)
        return None

    state.current_node = "start"
    functions.invoke("inspect", ScopeView(state))

    assert seen == {"input": "Alex", "file": "main.bdl", "entry": "main.bdl", "greeting": "Hi Alex"}
    assert state.variables.get("checked") is True


# ---------------------------------------------------------------------------
# Scope
# ---------------------------------------------------------------------------

def test_scope_view_global_write_in_entry_file(state):
    scope = ScopeView(state)
    assert scope.set_global("user_name", "Alex")
    assert state.variables.globals["user_name"] == "Alex"


def test_scope_view_global_write_outside_entry_file(state):
    violations = []
    state.current_file = "passwords.bdl"
    scope = ScopeView(state, on_violation=violations.append)

    assert not scope.set_global("user_name", "Mallory")
    assert state.variables.get("user_name") == ""
    assert len(violations) == 1
    assert violations[0].name == "user_name"


def test_scope_view_hands_out_copies(state):
    state.variables.set_global("progress", {"passwords": False}, "main.bdl")
    state.current_file = "passwords.bdl"
    scope = ScopeView(state)

    scope.get("progress")["passwords"] = True

    assert state.variables.globals["progress"] == {"passwords": False}


# ---------------------------------------------------------------------------
# Binding
# ---------------------------------------------------------------------------

def test_bind_results_in_order(state):
    call = Call("analyzePassword", ("message", "next"))
    bind_results(call, CallResult(["Strong!", "strong"]), state.variables, FALLBACK)

    assert state.variables.get("message") == "Strong!"
    assert state.variables.get("next") == "strong"


def test_bind_missing_values_are_empty(state):
    call = Call("fn", ("a", "b", "c"))
    bind_results(call, CallResult(["only"]), state.variables, FALLBACK)

    assert state.variables.locals["a"] == "only"
    assert state.variables.locals["b"] is None
    assert "c" in state.variables.locals


def test_bind_extra_values_are_dropped(state):
    call = Call("fn", ("a",))
    bind_results(call, CallResult(["one", "two"]), state.variables, FALLBACK)

    assert state.variables.get("a") == "one"
    assert not state.variables.has("two")


def test_bind_failure_uses_fallback(state):
    call = Call("analyzePassword", ("message", "next", "extra"))
    bind_results(call, CallResult(ok=False), state.variables, FALLBACK)

    assert state.variables.get("message") == FALLBACK.message
    assert state.variables.get("next") == FALLBACK.node
    assert state.variables.get("extra") is None


def test_bindings_are_always_local(state):
    call = Call("fn", ("user_name",))
    bind_results(call, CallResult(["Shadow"]), state.variables, FALLBACK)

    assert state.variables.get("user_name") == "Shadow"
    assert state.variables.globals["user_name"] == ""
