import ast
import unittest

import chainorder


TABLE = chainorder.OrderTable.from_names(["abstract", "params", "returns", "void"])


def chain_for(text: str):
    return chainorder.extract_chain(ast.parse(text, mode="eval").body, TABLE)


class OrderValidatorTests(unittest.TestCase):
    def test_out_of_order_pair_needs_reorder(self) -> None:
        result = chainorder.validate_chain(chain_for("void().abstract()"), TABLE)
        self.assertEqual(result.status, "needs_reorder")
        self.assertEqual(result.expected_names, ["abstract", "void"])

    def test_params_after_returns_needs_reorder(self) -> None:
        chain = chain_for("returns(X).params(y=X)")
        result = chainorder.validate_chain(chain, TABLE)
        self.assertEqual(result.status, "needs_reorder")
        self.assertEqual(result.expected_names, ["params", "returns"])
        self.assertIs(result.target[0], chain[1])
        self.assertIs(result.target[1], chain[0])

    def test_sorted_chain_is_canonical(self) -> None:
        for text in ("abstract().void()", "abstract().params(x=int).returns(int)", "void()"):
            with self.subTest(text=text):
                result = chainorder.validate_chain(chain_for(text), TABLE)
                self.assertEqual(result.status, "canonical")

    def test_unconfigured_method_makes_chain_indeterminate(self) -> None:
        for text in ("abstract().frobnicate()", "void().abstract().frobnicate()", "returns(int).oops().params()"):
            with self.subTest(text=text):
                result = chainorder.validate_chain(chain_for(text), TABLE)
                self.assertEqual(result.status, "indeterminate")
                self.assertEqual(result.target, ())

    def test_single_misplaced_call_anywhere_is_detected(self) -> None:
        result = chainorder.validate_chain(chain_for("abstract().params(x=int).void().returns(int)"), TABLE)
        self.assertEqual(result.status, "needs_reorder")
        self.assertEqual(result.expected_names, ["abstract", "params", "returns", "void"])

    def test_repeated_methods_keep_relative_order(self) -> None:
        chain = chain_for("params(x=int).returns(int).params(y=str)")
        result = chainorder.validate_chain(chain, TABLE)
        self.assertEqual(result.status, "needs_reorder")
        self.assertEqual(result.expected_names, ["params", "params", "returns"])
        self.assertIs(result.target[0], chain[0])
        self.assertIs(result.target[1], chain[2])

        canonical = chainorder.validate_chain(chain_for("params(a=1).params(b=2).returns(int)"), TABLE)
        self.assertEqual(canonical.status, "canonical")


class OrderMessageTests(unittest.TestCase):
    def test_message_lists_expected_order(self) -> None:
        message = chainorder.order_message(["abstract", "void"], fixable=True)
        self.assertEqual(message, "Sig builders must be invoked in the following order: abstract, void.")

    def test_message_mentions_libcst_when_not_fixable(self) -> None:
        message = chainorder.order_message(["params", "returns"], fixable=False)
        self.assertTrue(message.startswith("Sig builders must be invoked in the following order: params, returns."))
        self.assertIn("add the `libcst` package", message)


if __name__ == "__main__":
    unittest.main()
