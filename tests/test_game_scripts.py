"""Compiled scripts run under quickjs with the host's intrinsics stubbed.

See conftest.run_script for the stand-ins used for subscripts, ``#D``,
``#G``, ``#FMCL`` and ``#db``.
"""

import pytest
from microhsm import ConstReassignmentError, process_script


@pytest.fixture(params=[True, False], ids=["minified", "pretty"])
def minify(request):
    return request.param


class TestThis:
    def test_this_array_in_object(self, run_script, minify):
        outcome = run_script("""
export default () => {
    const test = {
        [0]: "test[0]",
        foo: [
            function () {
                return this[0]
            }
        ],
        bar() {
            return this
        }
    }

    return [test.foo[0]() === test.foo[0], test.bar() === test]
}
""", minify=minify)
        assert outcome["result"] == [True, True]

    def test_this_in_default_argument(self, run_script, minify):
        outcome = run_script("""
export default () => {
    class Foo {
        constructor() {
            this.foo = 1
        }

        bar() {
            return 2
        }

        baz(a = this.foo, b = this.bar()) {
            return a + b
        }
    }

    const obj = {
        foo: 1,
        bar() {
            return 2
        },
        baz(a = this.foo, b = this.bar()) {
            return a + b
        }
    }

    const foo = new Foo()
    return [foo.baz(3, 4), foo.baz(), obj.baz(3, 4), obj.baz()]
}
""", minify=minify)
        assert outcome["result"] == [7, 3, 7, 3]

    def test_this_in_lambda_in_object(self, run_script, minify):
        outcome = run_script("""
export default () => {
    const myObject = {
        a: 0,
        b: function () {
            this.a++
            return this.a
        },
        c: function (value = this.a) {
            this.a = value + 1
        },
        d: function ({ value = this.a }) {
            this.a = value + 1
        }
    }

    const seen = [myObject.a]
    myObject.b()
    seen.push(myObject.a)
    myObject.c()
    seen.push(myObject.a)
    myObject.d({})
    seen.push(myObject.a)
    return seen
}
""", minify=minify)
        assert outcome["result"] == [0, 1, 2, 3]

    def test_class_fields(self, run_script, minify):
        outcome = run_script("""
class Counter {
    start = 10
    count = this.start + 1
    static made = 0
    static make() {
        this.made++
        return new this()
    }
}

export default () => {
    const counter = Counter.make()
    return [counter.count, Counter.made, counter instanceof Counter]
}
""", minify=minify)
        assert outcome["result"] == [11, 1, True]


def test_reassignment_to_const_is_invalid():
    with pytest.raises(ConstReassignmentError):
        process_script("export default () => {\n    const i = 0\n    i = 1\n    return i\n}")


class TestHostIntrinsics:
    def test_debug_and_subscripts(self, run_script, minify):
        outcome = run_script("""
export default (context, args) => {
    $D("start")
    #D(args.n)
    console.log("x", 1)
    return #fs.scripts.trust({n: args.n})
}
""", args={"n": 5}, minify=minify)
        assert outcome["result"] == {"ok": True}
        assert outcome["debug"] == ["start", 5, ["x", 1]]
        assert outcome["calls"] == [["scripts.trust", {"n": 5}]]
        assert "#fs.scripts.trust(" in outcome["script"]

    def test_subscript_as_value(self, run_script, minify):
        outcome = run_script("export default () => { [1, 2].map($ls.a.b) }", minify=minify)
        assert outcome["calls"] == [["a.b", 1], ["a.b", 2]]
        assert "#ls.a.b(" in outcome["script"]

    def test_database(self, run_script, minify):
        outcome = run_script("export default () => #db.i({a: 1})", minify=minify)
        assert outcome["calls"] == [["db.i", {"a": 1}]]

    def test_global_state(self, run_script, minify):
        outcome = run_script("""
let counter = 0

export default () => {
    counter++
    $G.seen = ($G.seen || 0) + 1
    return [counter, $G.seen, $FMCL]
}
""", minify=minify)
        assert outcome["result"] == [1, 1, None]

    def test_global_initializer_runs_once(self, run_script, minify):
        outcome = run_script("""
let calls = 0
let n = (calls++, 10)

export default () => {
    n++
    return [n, calls]
}
""", invocations=2, minify=minify)
        assert outcome["results"] == [[11, 1], [12, 1]]

    def test_identity_from_context(self, run_script, minify):
        outcome = run_script("export default (context) => [_SCRIPT_USER, _FULL_SCRIPT_NAME]",
                             script_user=None, script_name=None, minify=minify)
        assert outcome["result"] == ["tester", "tester.test"]


class TestConstantPool:
    def test_pooled_values(self, run_script):
        outcome = run_script("""
export default () => {
    const greeting = "a long repeated string"
    return [greeting, "a long repeated string", {key: "value", flag: true, none: null}]
}
""", force_quine_cheats=True)
        assert outcome["result"] == ["a long repeated string", "a long repeated string",
                                     {"key": "value", "flag": True, "none": None}]
        assert "JSON.parse(" in outcome["script"]

    def test_prototype_key(self, run_script):
        source = """
export default () => {
    const o = {__proto__: {greet: "hello there"}}
    return [o.greet, Object.keys(o).length]
}
"""
        assert run_script(source)["result"] == ["hello there", 0]
        assert run_script(source, force_quine_cheats=True)["result"] == ["hello there", 0]

    def test_mangled_names(self, run_script):
        outcome = run_script("""
function fibonacci(count) {
    const sequence = [0, 1]
    while (sequence.length < count) {
        sequence.push(sequence[sequence.length - 1] + sequence[sequence.length - 2])
    }
    return sequence
}

export default (context, args) => fibonacci(args.count)
""", args={"count": 8}, mangle_names=True)
        assert outcome["result"] == [0, 1, 1, 2, 3, 5, 8, 13]
        assert "fibonacci" not in outcome["script"]
