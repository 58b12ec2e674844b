import unittest

from escala.models.enums import DutyCode
from escala.services.duty_codes import code_values, needs_description, needs_description_values, normalize_code


class TestDutyCodes(unittest.TestCase):
    def test_spelling_variants_normalize(self) -> None:
        cases = {
            "EXP": DutyCode.EXP,
            "exp ": DutyCode.EXP,
            "ferias": DutyCode.FERIAS,
            "Férias ": DutyCode.FERIAS,
            "FERIAS": DutyCode.FERIAS,
            "cfp dia": DutyCode.CFP_DIA,
            "CFP-NOITE": DutyCode.CFP_NOITE,
            "fo*": DutyCode.FO_DESC,
            "FO *": DutyCode.FO_DESC,
            "foj": DutyCode.FOJ,
            "outros": DutyCode.OUTROS,
        }
        for raw, expected in cases.items():
            with self.subTest(raw=raw):
                self.assertEqual(normalize_code(raw), expected)

    def test_unknown_or_empty_is_none(self) -> None:
        for raw in ("", None, "XYZ", "FO+"):
            with self.subTest(raw=raw):
                self.assertIsNone(normalize_code(raw))

    def test_description_codes(self) -> None:
        self.assertTrue(needs_description(DutyCode.OUTROS))
        self.assertTrue(needs_description(DutyCode.FO_DESC))
        self.assertFalse(needs_description(DutyCode.EXP))
        self.assertFalse(needs_description(None))
        self.assertEqual(set(needs_description_values()), {"FO*", "OUTROS"})

    def test_catalog_order(self) -> None:
        values = code_values()
        self.assertEqual(values[0], "EXP")
        self.assertIn("FÉRIAS", values)
        self.assertEqual(len(values), len(set(values)))


if __name__ == "__main__":
    unittest.main()
