"""Tests for the loop unflattener."""

from jsfold.config import Config
from jsfold.core.parser import parse_program
from jsfold.rules import LoopUnflattener
from jsfold.rules.loops import dispatch_variables


class TestDispatchVariables:
    """Tests for dispatch_variables function."""

    def test_declaration(self):
        init = parse_program("for (var s = 1, t = 2; ;) {}").body[0].init
        assert dispatch_variables(init) == {"s", "t"}

    def test_assignments(self):
        init = parse_program("for (s = 1, t = 2, f(); ;) {}").body[0].init
        assert dispatch_variables(init) == {"s", "t"}


class TestUnflatten:
    """Tests for loops the rule linearizes."""

    def test_assignment_initializer(self, apply_rules, assert_same_program):
        source = """
for (s = 0; ;) {
    switch (s) {
    case 0: x = 1; s = 1; continue;
    case 1: y = 2; s = 0; break;
    }
}
"""
        code, context = apply_rules(source, LoopUnflattener())

        assert_same_program(code, "x = 1; y = 2;")
        assert context.stats["loops_unflattened"] == 1

    def test_declared_dispatch_with_trailing_break(self, apply_rules, assert_same_program):
        source = """
for (var state = 2; ;) {
    switch (state) {
    case 1: b(); state = 3; continue;
    case 2: a(); state = 1; continue;
    case 3: c(); state = 0; continue;
    }
    break;
}
"""
        code, _ = apply_rules(source, LoopUnflattener())

        assert_same_program(code, "a(); b(); c();")

    def test_unmatched_value_leaves_through_trailing_break(self, apply_rules, assert_same_program):
        source = """
for (var s = 'a'; ;) {
    switch (s) {
    case 'a': first(); s = 'z'; continue;
    }
    break;
}
"""
        code, _ = apply_rules(source, LoopUnflattener())

        assert_same_program(code, "first();")

    def test_loop_test_and_update(self, apply_rules, assert_same_program):
        source = """
for (var i = 0; i < 3; i++) {
    switch (i) {
    case 0: a(); continue;
    case 1: b(); continue;
    case 2: c(); continue;
    }
}
"""
        code, _ = apply_rules(source, LoopUnflattener())

        assert_same_program(code, "a(); b(); c();")

    def test_repeated_case_is_emitted_each_time(self, apply_rules, assert_same_program):
        source = """
for (var s = 1, n = 0; ;) {
    switch (s) {
    case 1: tick(); n++; s = n < 2 ? 1 : 2; continue;
    case 2: done(); s = 0; continue;
    }
    break;
}
"""
        code, _ = apply_rules(source, LoopUnflattener())

        assert_same_program(code, "tick(); tick(); done();")

    def test_nested_in_function(self, apply_rules, assert_same_program):
        source = """
function run() {
    for (var s = 1; ;) {
        switch (s) {
        case 1: go(); s = 0; continue;
        }
        break;
    }
}
"""
        code, _ = apply_rules(source, LoopUnflattener())

        assert_same_program(code, "function run() { go(); }")

    def test_case_break_leaves_through_trailing_break(self, apply_rules, assert_same_program):
        source = """
for (var s = 1; ;) {
    switch (s) {
    case 1: a(); s = 2; break;
    case 2: b(); s = 0; continue;
    }
    break;
}
"""
        code, _ = apply_rules(source, LoopUnflattener())

        assert_same_program(code, "a();")

    def test_last_case_without_jump_leaves_through_trailing_break(self, apply_rules, assert_same_program):
        source = """
for (var s = 1; ;) {
    switch (s) {
    case 2: b(); s = 0; continue;
    case 1: a(); s = 2;
    }
    break;
}
"""
        code, _ = apply_rules(source, LoopUnflattener())

        assert_same_program(code, "a();")

    def test_case_break_without_trailing_break_keeps_dispatching(self, apply_rules, assert_same_program):
        source = """
for (var s = 1; ;) {
    switch (s) {
    case 1: a(); s = 2; break;
    case 2: b(); s = 0; break;
    }
}
"""
        code, _ = apply_rules(source, LoopUnflattener())

        assert_same_program(code, "a(); b();")


class TestUnsupportedShapes:
    """Tests for loops the rule must leave untouched."""

    def assert_kept(self, apply_rules, assert_same_program, source, run_config=None):
        code, context = apply_rules(source, LoopUnflattener(), run_config=run_config)
        assert_same_program(code, source)
        assert context.stats["loops_unflattened"] == 0
        return context

    def test_ordinary_loop(self, apply_rules, assert_same_program):
        context = self.assert_kept(
            apply_rules, assert_same_program, "for (var i = 0; i < 3; i++) { a(i); }"
        )
        assert context.stats["loops_kept"] == 0

    def test_default_case(self, apply_rules, assert_same_program):
        context = self.assert_kept(apply_rules, assert_same_program, """
for (var s = 1; ;) {
    switch (s) {
    case 1: a(); s = 2; continue;
    default: b(); s = 0; continue;
    }
    break;
}
""")
        assert context.stats["loops_kept"] == 1

    def test_dispatch_read_after_loop(self, apply_rules, assert_same_program):
        self.assert_kept(apply_rules, assert_same_program, """
for (var s = 1; ;) {
    switch (s) {
    case 1: a(); s = 0; continue;
    }
    break;
}
use(s);
""")

    def test_non_literal_case_test(self, apply_rules, assert_same_program):
        self.assert_kept(apply_rules, assert_same_program, """
for (var s = 1; ;) {
    switch (s) {
    case one: a(); s = 0; continue;
    }
    break;
}
""")

    def test_branching_case_body(self, apply_rules, assert_same_program):
        self.assert_kept(apply_rules, assert_same_program, """
for (var s = 1; ;) {
    switch (s) {
    case 1: if (c) { break; } a(); s = 2; continue;
    case 2: b(); s = 0; continue;
    }
    break;
}
""")

    def test_case_body_reading_dispatch_variable(self, apply_rules, assert_same_program):
        self.assert_kept(apply_rules, assert_same_program, """
for (var s = 1; ;) {
    switch (s) {
    case 1: log(s); s = 0; continue;
    }
    break;
}
""")

    def test_nondeterministic_initializer(self, apply_rules, assert_same_program):
        self.assert_kept(apply_rules, assert_same_program, """
for (var s = Math.random(); ;) {
    switch (s) {
    case 1: a(); s = 0; continue;
    }
    break;
}
""")

    def test_fallthrough(self, apply_rules, assert_same_program):
        self.assert_kept(apply_rules, assert_same_program, """
for (var s = 1; ;) {
    switch (s) {
    case 1: a(); s = 2;
    case 2: b(); s = 0; continue;
    }
    break;
}
""")

    def test_no_matching_case_without_break(self, apply_rules, assert_same_program):
        self.assert_kept(apply_rules, assert_same_program, """
for (var s = 1; ;) {
    switch (s) {
    case 1: a(); s = 5; continue;
    }
}
""")

    def test_dispatch_limit(self, apply_rules, assert_same_program):
        limited = Config(_env_file=None, max_dispatch_steps=5)
        self.assert_kept(apply_rules, assert_same_program, """
for (var s = 1; ;) {
    switch (s) {
    case 1: spin(); s = 1; continue;
    }
}
""", run_config=limited)
