from __future__ import annotations

import unittest

from expr_jax import Instruction, LexicalError, ParseError, Parser, ParserOptions


def _shape(tokens) -> list[tuple[str, object]]:
    out: list[tuple[str, object]] = []
    for item in tokens:
        if item.kind == "EXPR":
            out.append(("EXPR", _shape(item.value)))
        else:
            out.append((item.kind, item.value))
    return out


class ParserGrammarTests(unittest.TestCase):
    def setUp(self) -> None:
        self.parser = Parser()

    def test_precedence_produces_postfix_order(self) -> None:
        expr = self.parser.parse("2 + 3 * 4")
        self.assertEqual(
            _shape(expr.tokens),
            [("NUMBER", 2), ("NUMBER", 3), ("NUMBER", 4), ("OP2", "*"), ("OP2", "+")],
        )

    def test_exponent_is_right_associative(self) -> None:
        expr = self.parser.parse("2 ^ 3 ^ 2")
        self.assertEqual(
            _shape(expr.tokens),
            [("NUMBER", 2), ("NUMBER", 3), ("NUMBER", 2), ("OP2", "^"), ("OP2", "^")],
        )

    def test_unary_minus_binds_looser_than_exponent(self) -> None:
        expr = self.parser.parse("-2^2")
        self.assertEqual(_shape(expr.tokens), [("NUMBER", 2), ("NUMBER", 2), ("OP2", "^"), ("OP1", "-")])

    def test_prefix_operator_call_syntax(self) -> None:
        expr = self.parser.parse("sin(x)")
        self.assertEqual(_shape(expr.tokens), [("VAR", "x"), ("OP1", "sin")])

    def test_prefix_operator_as_identifier(self) -> None:
        expr = self.parser.parse("map(abs, xs)")
        self.assertEqual(
            _shape(expr.tokens),
            [("VAR", "map"), ("VAR", "abs"), ("VAR", "xs"), ("FUNCALL", 2)],
        )

    def test_lazy_operands_are_nested(self) -> None:
        expr = self.parser.parse("a and b or c")
        self.assertEqual(
            _shape(expr.tokens),
            [
                ("VAR", "a"),
                ("EXPR", [("VAR", "b")]),
                ("OP2", "and"),
                ("EXPR", [("VAR", "c")]),
                ("OP2", "or"),
            ],
        )

    def test_conditional_arms_are_nested(self) -> None:
        expr = self.parser.parse("a ? b : c")
        self.assertEqual(
            _shape(expr.tokens),
            [("VAR", "a"), ("EXPR", [("VAR", "b")]), ("EXPR", [("VAR", "c")]), ("OP3", "?")],
        )

    def test_assignment_compiles_to_varname(self) -> None:
        expr = self.parser.parse("x = 1 + 2")
        self.assertEqual(
            _shape(expr.tokens),
            [("VARNAME", "x"), ("EXPR", [("NUMBER", 1), ("NUMBER", 2), ("OP2", "+")]), ("OP2", "=")],
        )

    def test_member_assignment_compiles_to_ternary(self) -> None:
        expr = self.parser.parse("o.k = 5")
        self.assertEqual(
            _shape(expr.tokens),
            [("VAR", "o"), ("VARNAME", "k"), ("EXPR", [("NUMBER", 5)]), ("OP3", "=")],
        )

    def test_function_definition(self) -> None:
        expr = self.parser.parse("f(x, y) = x + y")
        self.assertEqual(
            _shape(expr.tokens),
            [
                ("VARNAME", "f"),
                ("VARNAME", "x"),
                ("VARNAME", "y"),
                ("EXPR", [("VAR", "x"), ("VAR", "y"), ("OP2", "+")]),
                ("FUNDEF", 2),
            ],
        )

    def test_statement_sequence(self) -> None:
        expr = self.parser.parse("a; b")
        self.assertEqual(_shape(expr.tokens), [("EXPR", [("VAR", "a"), ("ENDSTATEMENT", 0), ("VAR", "b")])])

    def test_trailing_semicolon_is_allowed(self) -> None:
        self.assertEqual(_shape(self.parser.parse("a;").tokens), [("EXPR", [("VAR", "a")])])
        self.assertEqual(_shape(self.parser.parse("(a;)").tokens), [("EXPR", [("VAR", "a")])])

    def test_member_and_index_chain(self) -> None:
        expr = self.parser.parse("a.b[1].c")
        self.assertEqual(
            _shape(expr.tokens),
            [("VAR", "a"), ("MEMBER", "b"), ("NUMBER", 1), ("OP2", "["), ("MEMBER", "c")],
        )

    def test_named_operator_is_a_member_name(self) -> None:
        expr = self.parser.parse("obj.abs(-5)")
        self.assertEqual(
            _shape(expr.tokens),
            [("VAR", "obj"), ("MEMBER", "abs"), ("NUMBER", 5), ("OP1", "-"), ("FUNCALL", 1)],
        )

    def test_empty_lists(self) -> None:
        self.assertEqual(_shape(self.parser.parse("[]").tokens), [("ARRAY", 0)])
        self.assertEqual(_shape(self.parser.parse("f()").tokens), [("VAR", "f"), ("FUNCALL", 0)])

    def test_postfix_factorial(self) -> None:
        self.assertEqual(_shape(self.parser.parse("3!").tokens), [("NUMBER", 3), ("OP1", "!")])

    def test_tokens_are_instructions(self) -> None:
        expr = self.parser.parse("1")
        self.assertIsInstance(expr.tokens, tuple)
        self.assertEqual(expr.tokens, (Instruction("NUMBER", 1),))

    def test_unexpected_end_of_input(self) -> None:
        with self.assertRaises(ParseError) as ctx:
            self.parser.parse("1 +")
        self.assertEqual((ctx.exception.line, ctx.exception.column), (1, 4))
        self.assertEqual(ctx.exception.found, "EOF")
        self.assertIn("parse error [1:4]", str(ctx.exception))

    def test_missing_close_paren_reports_expected(self) -> None:
        with self.assertRaises(ParseError) as ctx:
            self.parser.parse("(1 + 2")
        self.assertEqual(ctx.exception.expected, (")",))
        self.assertEqual(ctx.exception.found, "EOF")

    def test_trailing_tokens_are_rejected(self) -> None:
        with self.assertRaises(ParseError) as ctx:
            self.parser.parse("1 2")
        self.assertEqual(ctx.exception.expected, ("EOF",))
        self.assertEqual(ctx.exception.found, "NUMBER(2)")

    def test_invalid_assignment_targets(self) -> None:
        for source in ("3 = 4", "a + b = 1", "f(a + b) = 1", "a[0] = 1"):
            with self.subTest(source=source):
                with self.assertRaises(ParseError):
                    self.parser.parse(source)

    def test_unknown_instruction_kind_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            Instruction("BOGUS", 1)


class ParserOptionTests(unittest.TestCase):
    def test_member_access_can_be_disabled(self) -> None:
        parser = Parser(ParserOptions(allow_member_access=False))
        with self.assertRaises(ParseError) as ctx:
            parser.parse("a.b")
        self.assertIn("member access is not permitted", str(ctx.exception))

    def test_function_definition_can_be_disabled(self) -> None:
        parser = Parser(ParserOptions(operators={"fndef": False}))
        with self.assertRaises(ParseError):
            parser.parse("f(x) = x")
        self.assertEqual(parser.evaluate("y = 2", {}), 2)

    def test_feature_groups(self) -> None:
        cases = [
            ({"conditional": False}, "a ? b : c"),
            ({"logical": False}, "a and b"),
            ({"comparison": False}, "a < b"),
            ({"assignment": False}, "a = 1"),
            ({"concatenate": False}, "a || b"),
            ({"factorial": False}, "3!"),
        ]
        for operators, source in cases:
            with self.subTest(operators=operators):
                parser = Parser(ParserOptions(operators=operators))
                with self.assertRaises(ParseError):
                    parser.parse(source)
                self.assertIsNotNone(Parser().parse(source))

    def test_explicitly_enabled_option_behaves_as_default(self) -> None:
        parser = Parser(ParserOptions(operators={"add": True}))
        self.assertEqual(parser.evaluate("1 + 2"), 3)

    def test_is_operator_enabled_maps_option_names(self) -> None:
        parser = Parser(ParserOptions(operators={"comparison": False, "sin": False}))
        self.assertFalse(parser.is_operator_enabled("<="))
        self.assertFalse(parser.is_operator_enabled("sin"))
        self.assertTrue(parser.is_operator_enabled("+"))

    def test_lexical_error_is_a_parse_error(self) -> None:
        with self.assertRaises(ParseError):
            Parser().parse("1 # 2")
        with self.assertRaises(LexicalError):
            Parser().parse("1 # 2")


if __name__ == "__main__":
    unittest.main()
