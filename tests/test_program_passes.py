from __future__ import annotations

import math
import unittest

from expr_jax import Parser, SecurityError, expression_to_string, get_symbols, simplify, substitute


class SimplifyTests(unittest.TestCase):
    def setUp(self) -> None:
        self.parser = Parser()

    def test_folds_constant_subexpressions(self) -> None:
        expr = self.parser.parse("x * (2 + 3)").simplify()
        self.assertEqual(str(expr), "(x * 5)")
        self.assertEqual(expr.evaluate({"x": 2}), 10)

    def test_inlines_bound_variables(self) -> None:
        expr = self.parser.parse("x * (2 + 3)").simplify({"x": 2})
        self.assertEqual([(item.kind, item.value) for item in expr.tokens], [("NUMBER", 10)])

    def test_unary_folding(self) -> None:
        expr = self.parser.parse("-(1 + 2) + y").simplify()
        self.assertEqual(str(expr), "((-3) + y)")

    def test_member_folding_over_literal_mapping(self) -> None:
        expr = self.parser.parse("o.k + 1").simplify({"o": {"k": 2}})
        self.assertEqual(expr.evaluate(), 3)
        self.assertEqual(len(expr.tokens), 1)

    def test_nested_programs_stay_nested(self) -> None:
        expr = self.parser.parse("a ? 1 + 1 : 2 * 3").simplify()
        self.assertEqual(str(expr), "(a ? (2) : (6))")
        self.assertEqual(expr.evaluate({"a": False}), 6)

    def test_callable_bindings_are_not_inlined(self) -> None:
        expr = self.parser.parse("f(1)").simplify({"f": math.sin})
        self.assertEqual([item.kind for item in expr.tokens], ["VAR", "NUMBER", "FUNCALL"])

    def test_reserved_member_is_rejected(self) -> None:
        with self.assertRaises(SecurityError):
            self.parser.parse("o.__proto__").simplify({"o": {}})

    def test_host_errors_propagate(self) -> None:
        with self.assertRaises(ZeroDivisionError):
            self.parser.parse("1 / 0").simplify()

    def test_function_form_matches_method(self) -> None:
        parser = self.parser
        expr = parser.parse("2 * y + 1")
        program = simplify(expr.tokens, parser.unary_ops, parser.binary_ops, parser.ternary_ops, {"y": 3})
        self.assertEqual(program, expr.simplify({"y": 3}).tokens)

    def test_original_is_unchanged(self) -> None:
        expr = self.parser.parse("x + 1")
        before = expr.tokens
        expr.simplify({"x": 1})
        self.assertEqual(expr.tokens, before)


class SubstituteTests(unittest.TestCase):
    def setUp(self) -> None:
        self.parser = Parser()

    def test_substitute_with_source_text(self) -> None:
        expr = self.parser.parse("x + 1").substitute("x", "y * 2")
        self.assertEqual(str(expr), "((y * 2) + 1)")
        self.assertEqual(expr.evaluate({"y": 3}), 7)

    def test_substitute_with_number_and_expression(self) -> None:
        self.assertEqual(self.parser.parse("x + 1").substitute("x", 5).evaluate(), 6)
        replacement = self.parser.parse("a - b")
        expr = self.parser.parse("x * x").substitute("x", replacement)
        self.assertEqual(expr.evaluate({"a": 5, "b": 2}), 9)

    def test_substitute_with_literal_values(self) -> None:
        expr = self.parser.parse("x ? 1 : 2").substitute("x", True)
        self.assertEqual(expr.symbols(), [])
        self.assertEqual(expr.evaluate(), 1)
        self.assertTrue(math.isnan(self.parser.parse("x + 1").substitute("x", math.nan).evaluate()))
        self.assertEqual(self.parser.parse("x * 2").substitute("x", -math.inf).evaluate(), -math.inf)

    def test_substitute_reaches_nested_programs(self) -> None:
        expr = self.parser.parse("x > 0 ? x : 0").substitute("x", "z")
        self.assertEqual(expr.symbols(), ["z"])

    def test_substitute_leaves_other_names(self) -> None:
        expr = self.parser.parse("x + xx")
        program = substitute(expr.tokens, "x", self.parser.parse("2").tokens)
        self.assertEqual(expression_to_string(program), "(2 + xx)")


class SymbolTests(unittest.TestCase):
    def setUp(self) -> None:
        self.parser = Parser()

    def test_symbols_are_unique_and_ordered(self) -> None:
        self.assertEqual(self.parser.parse("x * y + x").symbols(), ["x", "y"])

    def test_symbols_include_functions_and_bindings(self) -> None:
        expr = self.parser.parse("user.name || min(a, b)")
        self.assertEqual(expr.symbols(), ["user", "min", "a", "b"])
        self.assertEqual(expr.variables(), ["user", "a", "b"])

    def test_symbols_with_members(self) -> None:
        expr = self.parser.parse("user.name || min(a, b)")
        self.assertEqual(expr.symbols(with_members=True), ["user.name", "min", "a", "b"])
        self.assertEqual(expr.variables(with_members=True), ["user.name", "a", "b"])

    def test_assignment_targets_are_symbols(self) -> None:
        self.assertEqual(self.parser.parse("x = 1; y").symbols(), ["x", "y"])

    def test_nested_programs_are_scanned(self) -> None:
        program = self.parser.parse("a ? b : c and d").tokens
        self.assertEqual(get_symbols(program), ["a", "b", "c", "d"])


class RenderTests(unittest.TestCase):
    def setUp(self) -> None:
        self.parser = Parser()

    def test_render_forms(self) -> None:
        cases = {
            "2 + 3 * 4": "(2 + (3 * 4))",
            "-x": "(-x)",
            "x!": "(x!)",
            "sin x": "(sin x)",
            '"a\\"b"': '"a\\"b"',
            "[1, 2]": "[1, 2]",
            "a[1]": "a[1]",
            "a ? b : c": "(a ? (b) : (c))",
            "f(x, y)": "f(x, y)",
            "f(x) = x": "(f(x) = (x))",
            "o.k": "o.k",
            "o.k = 1": "(o.k = (1))",
            "x = 1": "(x = (1))",
            "a; b": "(a;b)",
        }
        for source, expected in cases.items():
            with self.subTest(source=source):
                self.assertEqual(str(self.parser.parse(source)), expected)

    def test_literal_rendering(self) -> None:
        expr = self.parser.parse("x").simplify({"x": [1, "two", True]})
        self.assertEqual(str(expr), '[1, "two", true]')
        self.assertEqual(str(self.parser.parse("x").simplify({"x": -2})), "(-2)")

    def test_round_trip_preserves_value(self) -> None:
        sources = [
            "2 + 3 * 4",
            "-2^2",
            "x > 1 ? x : -x",
            "sin(x) + cos(x)",
            "[1, 2, 3][x]",
            '"a" || "b\\n"',
            "not (x == 1)",
            "5!",
            "x = 3; x * 2",
            "(f(y) = y * y)(4)",
            "min(x, 2) + max([1, 5])",
            "x in [1, 2] and x < 10 or false",
        ]
        for source in sources:
            with self.subTest(source=source):
                original = self.parser.parse(source)
                rendered = self.parser.parse(original.to_string())
                self.assertEqual(rendered.evaluate({"x": 1}), original.evaluate({"x": 1}))


if __name__ == "__main__":
    unittest.main()
