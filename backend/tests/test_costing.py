import unittest
from decimal import Decimal

from stockledger.services import costing_service


class WeightedAverageCostTests(unittest.TestCase):
    def test_blends_receipt_into_existing_stock(self):
        # 100 @ 10.00 + 50 @ 12.00 -> 1600 / 150
        wac = costing_service.apply_receipt("100", "10.00", "50", "12.00")
        self.assertEqual(wac, Decimal("10.6667"))

    def test_first_receipt_takes_unit_price(self):
        wac = costing_service.apply_receipt(0, 0, "40", "7.125")
        self.assertEqual(wac, Decimal("7.1250"))

    def test_zero_resulting_quantity_gives_zero(self):
        self.assertEqual(costing_service.apply_receipt(0, "9.50", 0, "12"), Decimal("0.0000"))

    def test_rounds_half_up_to_four_places(self):
        # 2 * 0.00015 / 2 = 0.00015 -> 0.0002
        self.assertEqual(costing_service.apply_receipt(0, 0, "2", "0.00015"), Decimal("0.0002"))

    def test_accepts_decimals_without_float_drift(self):
        wac = costing_service.apply_receipt(Decimal("0.1"), Decimal("0.2"), Decimal("0.2"), Decimal("0.1"))
        # (0.02 + 0.02) / 0.3 = 0.13333..
        self.assertEqual(wac, Decimal("0.1333"))

    def test_line_value_is_money_precision(self):
        self.assertEqual(costing_service.line_value("3", "10.6667"), Decimal("32.00"))
        self.assertEqual(costing_service.line_value("50", "8"), Decimal("400.00"))

    def test_stock_value(self):
        self.assertEqual(costing_service.stock_value("150", "10.6667"), Decimal("1600.01"))

    def test_rejects_non_numeric_input(self):
        with self.assertRaises(ValueError):
            costing_service.apply_receipt("abc", 0, 1, 1)
