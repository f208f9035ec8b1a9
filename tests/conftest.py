"""Pytest configuration for microhsm tests."""

import json
import re
import signal
import sys

import pytest

from microhsm import process_script

# Compiled scripts are executed with the C quickjs engine when it is present
try:
    import quickjs
    QUICKJS_AVAILABLE = True
except ImportError:
    QUICKJS_AVAILABLE = False

TEST_UNIQUE_ID = "testbuild01"

_SUBSCRIPT = re.compile(r"(?<!\\)#[nlmhf]s\.(\w+)\.(\w+)")
_SIGILS = (
    (re.compile(r"(?<!\\)#db\."), "_db."),
    (re.compile(r"(?<!\\)#FMCL\b"), "_FMCL"),
    (re.compile(r"(?<!\\)#G\b"), "_G"),
    (re.compile(r"(?<!\\)#D\b"), "_D"),
)

# Stand-ins for what the host provides to a running script
HOST_PRELUDE = """
var _ST = Date.now(), _TO = 5000, _FMCL = undefined, _G = {};
var _debug = [], _calls = [];
var _D = function (value) { _debug.push(value); return value };
var _S = function (name) {
    if (name === "scripts.quine") return function () { return _SOURCE };
    return function (args) { _calls.push([name, args === undefined ? null : args]); return {ok: true} };
};
var _db = {};
["i", "r", "f", "u", "u1", "us", "ObjectId"].forEach(function (method) {
    _db[method] = function () { _calls.push(["db." + method].concat([].slice.call(arguments))); return [] };
});
"""


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "timeout(seconds): set custom timeout for test")


def timeout_handler(signum, frame):
    """Handle timeout signal."""
    pytest.fail("Test timed out")


@pytest.fixture(autouse=True)
def test_timeout(request):
    """Apply a timeout to all tests.

    Default is 10 seconds, but tests can use a longer timeout by marking them:
    @pytest.mark.timeout(30)  # 30 second timeout
    """
    if sys.platform != "win32":
        marker = request.node.get_closest_marker("timeout")
        timeout_seconds = marker.args[0] if marker else 10

        old_handler = signal.signal(signal.SIGALRM, timeout_handler)
        signal.alarm(timeout_seconds)
        yield
        signal.alarm(0)
        signal.signal(signal.SIGALRM, old_handler)
    else:
        yield


def host_runnable(script):
    """Rewrite host sigils in a compiled script into calls on the prelude stubs."""
    code = _SUBSCRIPT.sub(r'_S("\1.\2")', script)
    for pattern, replacement in _SIGILS:
        code = pattern.sub(replacement, code)
    return code


@pytest.fixture
def run_script():
    """Compile a script and call it under quickjs.

    The script is called ``invocations`` times in one host run. Returns a
    dict with the compiled ``script``, the ``result`` of the first call, the
    ``results`` of every call, the values passed to debug (``debug``) and
    the subscript and database ``calls`` it made.
    """
    if not QUICKJS_AVAILABLE:
        pytest.skip("quickjs is not installed")

    def run(source, args=None, invocations=1, **options):
        options.setdefault("unique_id", TEST_UNIQUE_ID)
        options.setdefault("script_user", "tester")
        options.setdefault("script_name", "test")
        script = process_script(source, **options).script
        context = {"caller": "caller", "this_script": "tester.test", "calling_script": None}
        code = (
            HOST_PRELUDE
            + f"var _SOURCE = {json.dumps(script)};\n"
            + f"var _script = ({host_runnable(script)}\n);\n"
            + "var _results = [];\n"
            # later calls in one run see the guard set and the same #G
            + f"for (var _i = 0; _i < {invocations}; _i++) {{\n"
            + f"    _results.push(_script({json.dumps(context)}, {json.dumps(args)}));\n"
            + "    _FMCL = true;\n"
            + "}\n"
            + "JSON.stringify({result: _results[0], results: _results, debug: _debug, calls: _calls})"
        )
        outcome = json.loads(quickjs.Context().eval(code))
        outcome["script"] = script
        return outcome

    return run
