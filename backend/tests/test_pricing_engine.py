from __future__ import annotations

import itertools
import os
import unittest
from decimal import Decimal
from unittest.mock import patch

from pickupmarket.config import FeeSchedule
from pickupmarket.errors import ValidationError
from pickupmarket.services.pricing import (
    LineItem,
    allocate_vendor_payouts,
    amount_to_minimum,
    calculate_buyer_price,
    calculate_item_display_price,
    calculate_order_pricing,
    calculate_vendor_payout,
    format_display_price,
    format_price,
    meets_minimum_order,
    validate_line_items,
    vertical_minimum,
)


class OrderPricingTestCase(unittest.TestCase):
    def test_single_ten_dollar_item(self):
        pricing = calculate_order_pricing([LineItem(1000, 1)])
        self.assertEqual(pricing.subtotal_cents, 1000)
        self.assertEqual(pricing.buyer_total_cents, 1080)
        self.assertEqual(pricing.vendor_payout_cents, 920)
        self.assertEqual(pricing.platform_fee_cents, 160)

    def test_percent_fee_rounds_once_on_subtotal(self):
        pricing = calculate_order_pricing([LineItem(1000, 2), LineItem(500, 1)])
        self.assertEqual(pricing.subtotal_cents, 2500)
        self.assertEqual(pricing.buyer_percent_fee_cents, 163)
        self.assertEqual(pricing.buyer_total_cents, 2678)

    def test_item_order_does_not_change_result(self):
        lines = [LineItem(333, 1), LineItem(1999, 2), LineItem(75, 3), LineItem(1, 1)]
        results = {calculate_order_pricing(list(p)) for p in itertools.permutations(lines)}
        self.assertEqual(len(results), 1)

    def test_flat_fee_charged_once_per_order(self):
        pricing = calculate_order_pricing([LineItem(100, 1)] * 10)
        self.assertEqual(pricing.buyer_flat_fee_cents, 15)
        self.assertEqual(pricing.vendor_flat_fee_cents, 15)
        self.assertEqual(pricing.buyer_total_cents, 1000 + 65 + 15)

    def test_all_money_fields_are_ints(self):
        pricing = calculate_order_pricing([(1234, 3), {"unit_price_cents": 99, "quantity": 7}])
        for key, value in pricing.to_dict().items():
            self.assertIsInstance(value, int, key)

    def test_platform_fee_is_sum_of_both_sides(self):
        pricing = calculate_order_pricing([LineItem(4321, 1)])
        self.assertEqual(
            pricing.platform_fee_cents,
            pricing.buyer_total_cents - pricing.vendor_payout_cents,
        )

    def test_tiny_subtotal_gives_negative_payout(self):
        pricing = calculate_order_pricing([LineItem(10, 1)])
        self.assertEqual(pricing.vendor_payout_cents, 10 - 1 - 15)

    def test_custom_schedule(self):
        schedule = FeeSchedule(buyer_fee_percent=Decimal("10"), buyer_flat_fee_cents=0, vendor_fee_percent=Decimal("0"), vendor_flat_fee_cents=0)
        pricing = calculate_order_pricing([LineItem(1000, 1)], schedule)
        self.assertEqual(pricing.buyer_total_cents, 1100)
        self.assertEqual(pricing.vendor_payout_cents, 1000)

    def test_single_item_helpers_match_order_engine(self):
        pricing = calculate_order_pricing([LineItem(2500, 1)])
        self.assertEqual(calculate_buyer_price(2500), pricing.buyer_total_cents)
        self.assertEqual(calculate_vendor_payout(2500), pricing.vendor_payout_cents)

    def test_display_price_has_no_flat_fee(self):
        self.assertEqual(calculate_item_display_price(1000), 1065)
        self.assertEqual(format_display_price(1000), "$10.65")

    def test_validate_rejects_bad_lines(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_line_items([(100, 0)])
        self.assertEqual(ctx.exception.code, "INVALID_QUANTITY")
        with self.assertRaises(ValidationError):
            validate_line_items([(-1, 1)])
        with self.assertRaises(ValidationError):
            validate_line_items([])


class FormatPriceTestCase(unittest.TestCase):
    def test_formats_dollars(self):
        self.assertEqual(format_price(0), "$0.00")
        self.assertEqual(format_price(1234), "$12.34")
        self.assertEqual(format_price(5), "$0.05")
        self.assertEqual(format_price(-6), "-$0.06")


class MinimumOrderTestCase(unittest.TestCase):
    def test_boundary(self):
        self.assertTrue(meets_minimum_order(1000, "farmers_market"))
        self.assertFalse(meets_minimum_order(999, "farmers_market"))
        self.assertEqual(amount_to_minimum(999, "farmers_market"), 1)
        self.assertEqual(amount_to_minimum(1500, "farmers_market"), 0)

    def test_vertical_table(self):
        self.assertEqual(vertical_minimum("food_trucks"), 500)
        self.assertEqual(vertical_minimum("fire_works"), 4000)
        self.assertEqual(vertical_minimum("unknown_vertical"), 1000)

    def test_env_override(self):
        with patch.dict(os.environ, {"VERTICAL_MINIMUMS_JSON": '{"food_trucks": 750}'}):
            self.assertEqual(vertical_minimum("food_trucks"), 750)
            self.assertEqual(vertical_minimum("fire_works"), 4000)


class AllocateVendorPayoutsTestCase(unittest.TestCase):
    def test_shares_sum_to_order_payout(self):
        subtotals = [333, 333, 334, 1999]
        pricing = calculate_order_pricing([LineItem(s, 1) for s in subtotals])
        shares = allocate_vendor_payouts(pricing, subtotals)
        self.assertEqual(sum(shares), pricing.vendor_payout_cents)
        self.assertTrue(all(isinstance(s, int) for s in shares))

    def test_single_item_gets_everything(self):
        pricing = calculate_order_pricing([LineItem(1000, 1)])
        self.assertEqual(allocate_vendor_payouts(pricing, [1000]), [920])

    def test_ties_favour_earlier_items(self):
        pricing = calculate_order_pricing([LineItem(500, 1), LineItem(500, 1)])
        shares = allocate_vendor_payouts(pricing, [500, 500])
        # Fee 80 splits evenly.
        self.assertEqual(shares, [460, 460])
        pricing = calculate_order_pricing([LineItem(500, 1)] * 3)
        fee = pricing.subtotal_cents - pricing.vendor_payout_cents
        shares = allocate_vendor_payouts(pricing, [500, 500, 500])
        fees = [500 - s for s in shares]
        self.assertEqual(sum(fees), fee)
        self.assertGreaterEqual(fees[0], fees[2])


if __name__ == "__main__":
    unittest.main()
