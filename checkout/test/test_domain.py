"""
Unit tests for domain models.
"""
from datetime import timedelta
from decimal import Decimal
from itertools import permutations

from django.test import TestCase
from django.utils import timezone

from checkout.domain.errors import InvalidOrderState
from checkout.domain.inventory import StockLine
from checkout.domain.order import Order, OrderItem, OrderStatus
from checkout.domain.pricing import (
    ProductRef,
    Promotion,
    PromotionScope,
    PromotionType,
    calculate_discount,
    calculate_discounted_price,
    select_best_promotion,
)
from checkout.domain.voucher import Voucher, VoucherErrorCode, VoucherType, evaluate_voucher, normalize_code


def promotion(id, value, type=PromotionType.PERCENTAGE, priority=0, **kwargs):
    now = timezone.now()
    kwargs.setdefault("start_date", now - timedelta(days=1))
    kwargs.setdefault("end_date", now + timedelta(days=1))
    return Promotion(
        id=id,
        name=f"promo {id}",
        type=type,
        value=Decimal(value),
        priority=priority,
        **kwargs,
    )


def voucher(**kwargs):
    now = timezone.now()
    kwargs.setdefault("start_date", now - timedelta(days=1))
    kwargs.setdefault("end_date", now + timedelta(days=1))
    kwargs.setdefault("type", VoucherType.FIXED_AMOUNT)
    kwargs.setdefault("value", Decimal("10000"))
    return Voucher(code="SAVE10", name="Save 10k", **kwargs)


class OrderItemTest(TestCase):
    """Tests for OrderItem value object."""

    def test_create_order_item(self):
        """Test creating order item with valid data."""
        item = OrderItem(inventory_id=1, quantity=2, price=Decimal("180000"), base_price=Decimal("200000"))
        self.assertEqual(item.subtotal, Decimal("360000"))
        self.assertEqual(item.base_subtotal, Decimal("400000"))

    def test_base_price_defaults_to_price(self):
        item = OrderItem(inventory_id=1, quantity=1, price=Decimal("50000"))
        self.assertEqual(item.base_price, Decimal("50000"))

    def test_order_item_non_positive_quantity_fails(self):
        """Test that zero or negative quantity raises error."""
        for quantity in (0, -1):
            with self.assertRaises(ValueError):
                OrderItem(inventory_id=1, quantity=quantity, price=Decimal("100"))

    def test_order_item_negative_price_fails(self):
        """Test that negative price raises error."""
        with self.assertRaises(ValueError):
            OrderItem(inventory_id=1, quantity=1, price=Decimal("-100"))

    def test_stock_line_rejects_non_positive_quantity(self):
        with self.assertRaises(ValueError):
            StockLine(inventory_id=1, quantity=0)


class OrderTest(TestCase):
    """Tests for Order aggregate."""

    def make_order(self, **kwargs):
        items = [
            OrderItem(inventory_id=1, quantity=2, price=Decimal("180000"), base_price=Decimal("200000")),
            OrderItem(inventory_id=2, quantity=1, price=Decimal("50000")),
        ]
        return Order(user_id="U1", items=items, **kwargs)

    def test_amounts_default_from_items(self):
        """Test original and total amounts are derived from the lines."""
        order = self.make_order()
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertEqual(order.original_amount, Decimal("450000"))
        self.assertEqual(order.total_amount, Decimal("410000"))
        self.assertEqual(order.discount_amount, Decimal("40000"))

    def test_discount_is_original_minus_total(self):
        order = self.make_order(original_amount=Decimal("400000"), total_amount=Decimal("350000"))
        self.assertEqual(order.discount_amount, Decimal("50000"))

    def test_total_cannot_exceed_original(self):
        with self.assertRaises(ValueError):
            self.make_order(original_amount=Decimal("100"), total_amount=Decimal("200"))

    def test_total_cannot_be_negative(self):
        with self.assertRaises(ValueError):
            self.make_order(original_amount=Decimal("100"), total_amount=Decimal("-1"))

    def test_gateway_order_lifecycle(self):
        """Test pending -> pending payment -> paid -> preparing."""
        order = self.make_order()
        order.await_payment()
        self.assertEqual(order.status, OrderStatus.PENDING_PAYMENT)
        order.mark_paid()
        self.assertEqual(order.status, OrderStatus.PAID)
        order.transition_to(OrderStatus.PREPARING)
        self.assertEqual(order.status, OrderStatus.PREPARING)

    def test_cancel_records_note(self):
        order = self.make_order()
        order.cancel("Out of size 42")
        self.assertEqual(order.status, OrderStatus.CANCELLED)
        self.assertEqual(order.admin_note, "Out of size 42")

    def test_terminal_states_reject_transitions(self):
        """Test completed, cancelled and rejected orders cannot move."""
        for terminal in (OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.REJECTED):
            order = self.make_order(status=terminal)
            for target in OrderStatus:
                self.assertFalse(order.can_transition_to(target))
            with self.assertRaises(InvalidOrderState):
                order.cancel()

    def test_cannot_skip_to_completed(self):
        order = self.make_order()
        with self.assertRaises(InvalidOrderState):
            order.transition_to(OrderStatus.COMPLETED)
        self.assertEqual(order.status, OrderStatus.PENDING)


class PromotionDiscountTest(TestCase):
    """Tests for per-unit promotion discounts."""

    def test_percentage_discount(self):
        self.assertEqual(calculate_discount(Decimal("200000"), promotion(1, "10")), Decimal("20000"))

    def test_percentage_discount_is_capped(self):
        capped = promotion(1, "50", max_discount_amount=Decimal("30000"))
        self.assertEqual(calculate_discount(Decimal("200000"), capped), Decimal("30000"))

    def test_fixed_discount_never_exceeds_price(self):
        fixed = promotion(1, "500000", type=PromotionType.FIXED_AMOUNT)
        self.assertEqual(calculate_discount(Decimal("200000"), fixed), Decimal("200000"))
        self.assertEqual(calculate_discounted_price(Decimal("200000"), fixed), Decimal("0"))

    def test_buy_x_get_y_gives_no_discount(self):
        bxgy = promotion(1, "1", type=PromotionType.BUY_X_GET_Y)
        self.assertEqual(calculate_discount(Decimal("200000"), bxgy), Decimal("0"))
        self.assertEqual(calculate_discounted_price(Decimal("200000"), bxgy), Decimal("200000"))

    def test_discount_rounds_half_up_to_currency_unit(self):
        self.assertEqual(calculate_discount(Decimal("99995"), promotion(1, "10")), Decimal("10000"))
        self.assertEqual(calculate_discount(Decimal("99994"), promotion(1, "10")), Decimal("9999"))

    def test_no_promotion_keeps_price(self):
        self.assertEqual(calculate_discounted_price(Decimal("123"), None), Decimal("123"))


class BestPromotionTest(TestCase):
    """Tests for best promotion selection."""

    def setUp(self):
        self.product = ProductRef(id="p1", price=Decimal("200000"), category_id=7, brand_id=3)
        self.now = timezone.now()

    def best(self, promotions, order_total=None):
        return select_best_promotion(promotions, self.product, self.product.unit_price, self.now, order_total)

    def test_priority_beats_discount_size(self):
        small_but_urgent = promotion(1, "5", priority=10)
        large = promotion(2, "50", priority=1)
        self.assertEqual(self.best([large, small_but_urgent]).id, 1)

    def test_equal_priority_ranks_by_discount_at_real_price(self):
        """Test 10% of 200,000 beats a fixed 15,000 off."""
        percent = promotion(1, "10")
        fixed = promotion(2, "15000", type=PromotionType.FIXED_AMOUNT)
        self.assertEqual(self.best([fixed, percent]).id, 1)

    def test_full_tie_breaks_on_lowest_id(self):
        self.assertEqual(self.best([promotion(9, "10"), promotion(4, "10")]).id, 4)

    def test_result_does_not_depend_on_input_order(self):
        candidates = [
            promotion(1, "10"),
            promotion(2, "25000", type=PromotionType.FIXED_AMOUNT),
            promotion(3, "10"),
            promotion(4, "5", priority=-1),
        ]
        winners = {self.best(list(order)).id for order in permutations(candidates)}
        self.assertEqual(winners, {2})

    def test_inactive_expired_and_upcoming_are_ignored(self):
        candidates = [
            promotion(1, "50", is_active=False),
            promotion(2, "50", start_date=self.now - timedelta(days=2), end_date=self.now),
            promotion(3, "50", start_date=self.now + timedelta(hours=1)),
        ]
        self.assertIsNone(self.best(candidates))

    def test_min_order_amount_gates_promotion(self):
        gated = promotion(1, "20", min_order_amount=Decimal("500000"))
        self.assertIsNone(self.best([gated], order_total=Decimal("400000")))
        self.assertEqual(self.best([gated], order_total=Decimal("500000")).id, 1)
        self.assertEqual(self.best([gated]).id, 1)

    def test_scope_targets(self):
        """Test product, category and brand scopes only match their targets."""
        other = promotion(1, "10", scope=PromotionScope.PRODUCT, product_ids=frozenset({"p2"}))
        by_category = promotion(2, "10", scope=PromotionScope.CATEGORY, category_ids=frozenset({7}))
        by_brand = promotion(3, "10", scope=PromotionScope.BRAND, brand_ids=frozenset({99}))
        self.assertIsNone(self.best([other, by_brand]))
        self.assertEqual(self.best([other, by_category, by_brand]).id, 2)

    def test_sale_price_is_the_reference(self):
        on_sale = ProductRef(id="p1", price=Decimal("200000"), sale_price=Decimal("150000"))
        self.assertEqual(on_sale.unit_price, Decimal("150000"))


class VoucherEvaluationTest(TestCase):
    """Tests for the voucher validation pipeline."""

    def evaluate(self, v, amount="360000", already_used=False, code="SAVE10", now=None):
        return evaluate_voucher(v, code, Decimal(amount), now or timezone.now(), already_used)

    def test_valid_fixed_voucher(self):
        result = self.evaluate(voucher(min_order_amount=Decimal("50000")))
        self.assertTrue(result.is_valid)
        self.assertEqual(result.discount_amount, Decimal("10000"))
        self.assertEqual(result.final_amount, Decimal("350000"))

    def test_percentage_voucher_is_capped(self):
        v = voucher(type=VoucherType.PERCENTAGE, value=Decimal("20"), max_discount_amount=Decimal("50000"))
        self.assertEqual(self.evaluate(v).discount_amount, Decimal("50000"))

    def test_discount_never_exceeds_order_amount(self):
        result = self.evaluate(voucher(value=Decimal("50000")), amount="30000")
        self.assertEqual(result.discount_amount, Decimal("30000"))
        self.assertEqual(result.final_amount, Decimal("0"))

    def test_blank_and_unknown_codes(self):
        self.assertEqual(self.evaluate(None, code="").error_code, VoucherErrorCode.INVALID_VOUCHER_CODE)
        self.assertEqual(self.evaluate(None).error_code, VoucherErrorCode.VOUCHER_NOT_FOUND)

    def test_checks_run_in_fixed_order(self):
        """Test the first failing check decides the error code."""
        now = timezone.now()
        everything_wrong = voucher(
            is_active=False,
            end_date=now - timedelta(hours=1),
            start_date=now - timedelta(days=2),
            usage_limit=1,
            used_count=1,
            min_order_amount=Decimal("1000000"),
        )
        self.assertEqual(
            self.evaluate(everything_wrong, already_used=True, now=now).error_code,
            VoucherErrorCode.VOUCHER_INACTIVE,
        )
        expired_and_full = voucher(end_date=now, start_date=now - timedelta(days=2), usage_limit=1, used_count=1)
        self.assertEqual(self.evaluate(expired_and_full, now=now).error_code, VoucherErrorCode.VOUCHER_EXPIRED)
        full_and_low = voucher(usage_limit=1, used_count=1, min_order_amount=Decimal("1000000"))
        self.assertEqual(self.evaluate(full_and_low).error_code, VoucherErrorCode.USAGE_LIMIT_EXCEEDED)
        low_and_used = voucher(min_order_amount=Decimal("1000000"))
        self.assertEqual(
            self.evaluate(low_and_used, already_used=True).error_code,
            VoucherErrorCode.ORDER_AMOUNT_TOO_LOW,
        )
        self.assertEqual(self.evaluate(voucher(), already_used=True).error_code, VoucherErrorCode.USER_ALREADY_USED)

    def test_not_started_voucher(self):
        v = voucher(start_date=timezone.now() + timedelta(hours=1))
        self.assertEqual(self.evaluate(v).error_code, VoucherErrorCode.VOUCHER_NOT_STARTED)

    def test_failure_carries_message_and_no_discount(self):
        result = self.evaluate(None)
        self.assertFalse(result.is_valid)
        self.assertEqual(result.discount_amount, Decimal("0"))
        self.assertTrue(result.error_message)

    def test_normalize_code(self):
        self.assertEqual(normalize_code("  save10 "), "SAVE10")
        self.assertEqual(normalize_code(None), "")
