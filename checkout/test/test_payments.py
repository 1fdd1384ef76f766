"""
Tests for payment gateways, strategies and the transaction lifecycle.
"""
import json
from datetime import timedelta
from decimal import Decimal
from unittest import mock
from urllib.parse import parse_qsl, urlsplit
from uuid import uuid4

import requests
from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone

from checkout.domain.errors import InvalidPaymentCallback, PaymentMethodNotSupported, PaymentTransactionNotFound
from checkout.domain.inventory import StockLine
from checkout.domain.order import OrderStatus, PaymentMethod
from checkout.domain.payment import PaymentRequest, PaymentTransactionStatus
from checkout.infra.models import InventoryORM, OrderORM, PaymentTransactionORM, VoucherORM
from checkout.services.gateways import (
    MoMoGateway,
    PaymentGatewayFactory,
    VnPayGateway,
    ZaloPayGateway,
    hmac_hex,
)
from checkout.services.catalog import CatalogService
from checkout.services.orders import OrderCreationRequest
from checkout.services.payments import (
    CodPaymentStrategy,
    GatewayPaymentStrategy,
    PaymentService,
    PaymentStrategyFactory,
)
from checkout.test.factories import (
    MOMO_CONFIG,
    VNPAY_CONFIG,
    ZALOPAY_CONFIG,
    make_inventory,
    make_product,
    make_voucher,
    order_service_with_gateways,
)


def payment_request(amount="350000", method=PaymentMethod.MOMO):
    return PaymentRequest(order_id=uuid4(), amount=Decimal(amount), payment_method=method)


def vnpay_callback(gateway, txn_ref, amount, response_code="00"):
    params = {
        "vnp_Amount": str(int(Decimal(amount) * 100)),
        "vnp_OrderInfo": "Payment for order",
        "vnp_ResponseCode": response_code,
        "vnp_TmnCode": VNPAY_CONFIG["TMN_CODE"],
        "vnp_TransactionStatus": response_code,
        "vnp_TxnRef": txn_ref,
    }
    params["vnp_SecureHash"] = gateway.sign(params)
    return params


class MoMoGatewayTest(TestCase):
    """Tests for the MoMo gateway."""

    def setUp(self):
        self.session = mock.Mock()
        self.gateway = MoMoGateway(config=MOMO_CONFIG, session=self.session)

    def test_payment_url(self):
        self.session.post.return_value.json.return_value = {"resultCode": 0, "payUrl": "https://momo.example/pay/1"}

        result = self.gateway.create_payment_url(payment_request())

        self.assertTrue(result.success)
        self.assertTrue(result.requires_redirect)
        self.assertEqual(result.payment_url, "https://momo.example/pay/1")
        _, kwargs = self.session.post.call_args
        self.assertEqual(kwargs["timeout"], 3.0)
        self.assertEqual(kwargs["json"]["amount"], "350000")
        self.assertEqual(kwargs["json"]["requestId"], result.transaction_id)

    def test_timeout_is_a_failed_result(self):
        self.session.post.side_effect = requests.Timeout("slow")
        result = self.gateway.create_payment_url(payment_request())
        self.assertFalse(result.success)
        self.assertFalse(result.requires_redirect)
        self.assertEqual(result.error_message, "Could not reach MoMo")

    def test_refused_payment(self):
        self.session.post.return_value.json.return_value = {"resultCode": 1006, "message": "Transaction denied"}
        result = self.gateway.create_payment_url(payment_request())
        self.assertFalse(result.success)
        self.assertEqual(result.error_message, "Transaction denied")

    def test_unreadable_body(self):
        self.session.post.return_value.json.side_effect = ValueError("not json")
        self.assertFalse(self.gateway.create_payment_url(payment_request()).success)

    def test_http_error(self):
        self.session.post.return_value.raise_for_status.side_effect = requests.HTTPError("502")
        self.assertFalse(self.gateway.create_payment_url(payment_request()).success)

    def test_amount_over_limit_never_calls_gateway(self):
        result = self.gateway.create_payment_url(payment_request(amount="60000000"))
        self.assertFalse(result.success)
        self.session.post.assert_not_called()

    def test_callback_signature(self):
        params = {
            "partnerCode": MOMO_CONFIG["PARTNER_CODE"],
            "orderId": str(uuid4()),
            "requestId": "req-1",
            "amount": "350000",
            "orderInfo": "Payment",
            "orderType": "momo_wallet",
            "transId": "2800001",
            "resultCode": "0",
            "message": "Successful.",
            "payType": "qr",
            "responseTime": "1700000000000",
            "extraData": "",
        }
        params["signature"] = self.gateway.callback_signature(params)

        callback = self.gateway.parse_callback(params)

        self.assertEqual(callback.transaction_id, "req-1")
        self.assertEqual(callback.amount, Decimal("350000"))
        self.assertTrue(self.gateway.verify_payment(callback).success)

        tampered = self.gateway.parse_callback({**params, "amount": "1000"})
        self.assertFalse(self.gateway.validate_callback(tampered))

    def test_non_numeric_callback_amount(self):
        with self.assertRaises(InvalidPaymentCallback):
            self.gateway.parse_callback({"requestId": "req-1", "amount": "abc", "resultCode": "0"})


class VnPayGatewayTest(TestCase):
    """Tests for the VnPay gateway."""

    def setUp(self):
        self.gateway = VnPayGateway(config=VNPAY_CONFIG)

    def test_signed_url_verifies(self):
        result = self.gateway.create_payment_url(payment_request(method=PaymentMethod.VNPAY))

        self.assertTrue(result.success)
        parts = urlsplit(result.payment_url)
        self.assertEqual(f"{parts.scheme}://{parts.netloc}{parts.path}", VNPAY_CONFIG["BASE_URL"])
        params = dict(parse_qsl(parts.query))
        self.assertEqual(params["vnp_Amount"], "35000000")
        self.assertEqual(params["vnp_TxnRef"], result.transaction_id)
        self.assertTrue(self.gateway.validate_callback(self.gateway.parse_callback(params)))

    def test_tampered_callback(self):
        params = vnpay_callback(self.gateway, "123", "350000")
        params["vnp_Amount"] = "100"
        self.assertFalse(self.gateway.validate_callback(self.gateway.parse_callback(params)))

    def test_declined_payment(self):
        callback = self.gateway.parse_callback(vnpay_callback(self.gateway, "123", "350000", response_code="24"))
        result = self.gateway.verify_payment(callback)
        self.assertFalse(result.success)
        self.assertEqual(result.error_message, "Customer cancelled the transaction")

    def test_no_network_call(self):
        with mock.patch.object(requests, "post") as post:
            self.gateway.create_payment_url(payment_request(method=PaymentMethod.VNPAY))
        post.assert_not_called()

    def test_malformed_amount(self):
        for amount in ("1e", "abc", "NaN"):
            params = vnpay_callback(self.gateway, "123", "350000")
            params["vnp_Amount"] = amount
            with self.assertRaises(InvalidPaymentCallback):
                self.gateway.parse_callback(params)


class ZaloPayGatewayTest(TestCase):
    """Tests for the ZaloPay gateway."""

    def setUp(self):
        self.session = mock.Mock()
        self.gateway = ZaloPayGateway(config=ZALOPAY_CONFIG, session=self.session)

    def test_payment_url(self):
        self.session.post.return_value.json.return_value = {
            "return_code": 1,
            "order_url": "https://zalopay.example/order/1",
        }
        result = self.gateway.create_payment_url(payment_request(method=PaymentMethod.ZALOPAY))

        self.assertTrue(result.success)
        body = self.session.post.call_args.kwargs["data"]
        self.assertEqual(body["app_trans_id"], result.transaction_id)
        mac_data = "|".join([
            body["app_id"],
            body["app_trans_id"],
            body["app_user"],
            str(body["amount"]),
            str(body["app_time"]),
            body["embed_data"],
            body["item"],
        ])
        self.assertEqual(body["mac"], hmac_hex(ZALOPAY_CONFIG["KEY1"], mac_data))

    def test_callback_is_signed_with_key2(self):
        order_id = str(uuid4())
        data = json.dumps({
            "app_trans_id": "241016_abc",
            "amount": 350000,
            "embed_data": json.dumps({"order_id": order_id}),
        })
        params = {"data": data, "mac": hmac_hex(ZALOPAY_CONFIG["KEY2"], data)}

        callback = self.gateway.parse_callback(params)

        self.assertEqual(callback.transaction_id, "241016_abc")
        self.assertEqual(callback.order_id, order_id)
        self.assertEqual(callback.amount, Decimal("350000"))
        self.assertTrue(self.gateway.verify_payment(callback).success)

        signed_with_key1 = {"data": data, "mac": hmac_hex(ZALOPAY_CONFIG["KEY1"], data)}
        self.assertFalse(self.gateway.validate_callback(self.gateway.parse_callback(signed_with_key1)))

    def test_malformed_callback_data(self):
        """Test data that is not a JSON object is rejected before any lookup."""
        for data in ("[1]", "42", json.dumps({"embed_data": "[]"}), json.dumps({"amount": "x"})):
            with self.assertRaises(InvalidPaymentCallback):
                self.gateway.parse_callback({"data": data, "mac": hmac_hex(ZALOPAY_CONFIG["KEY2"], data)})

        # unreadable JSON parses to an empty callback that fails the signature check
        callback = self.gateway.parse_callback({"data": "{", "mac": "x"})
        self.assertEqual(callback.transaction_id, "")
        self.assertFalse(self.gateway.validate_callback(callback))


class PaymentStrategyFactoryTest(TestCase):
    """Tests for payment strategy selection."""

    def test_strategies(self):
        factory = PaymentStrategyFactory(PaymentService())
        self.assertIsInstance(factory.get_strategy(PaymentMethod.COD), CodPaymentStrategy)
        for method in (PaymentMethod.MOMO, PaymentMethod.VNPAY, PaymentMethod.ZALOPAY):
            strategy = factory.get_strategy(method)
            self.assertIsInstance(strategy, GatewayPaymentStrategy)
            self.assertEqual(strategy.method, method)
        for method in (PaymentMethod.BANK_TRANSFER, PaymentMethod.CREDIT_CARD, PaymentMethod.PAYPAL):
            self.assertIsInstance(factory.get_strategy(method), CodPaymentStrategy)

    def test_gateway_factory(self):
        factory = PaymentGatewayFactory()
        self.assertIsInstance(factory.get_gateway(PaymentMethod.VNPAY), VnPayGateway)
        self.assertIs(factory.get_gateway(PaymentMethod.VNPAY), factory.get_gateway(PaymentMethod.VNPAY))
        self.assertFalse(factory.supports(PaymentMethod.COD))
        with self.assertRaises(PaymentMethodNotSupported):
            factory.get_gateway(PaymentMethod.COD)


class PaymentLifecycleTest(TestCase):
    """Tests for gateway callbacks and payment expiry."""

    def setUp(self):
        cache.clear()
        self.gateway = VnPayGateway(config=VNPAY_CONFIG)
        self.orders = order_service_with_gateways({PaymentMethod.VNPAY: self.gateway})
        self.payments = self.orders.payment_strategies.payment_service
        self.inventory = make_inventory(make_product(price="200000"), quantity=5)
        make_voucher(code="SAVE10", value="10000")

    def place_order(self):
        result = self.orders.create_order(
            OrderCreationRequest(
                items=(StockLine(self.inventory.id, 2),),
                payment_method=PaymentMethod.VNPAY,
                voucher_code="SAVE10",
            ),
            user_id="U1",
        )
        self.assertTrue(result.success)
        self.assertEqual(result.order.total_amount, Decimal("390000"))
        return result.order, result.payment.transaction_id

    def order_status(self, order):
        return OrderORM.objects.get(id=order.id).status

    def quantity(self):
        return InventoryORM.objects.get(id=self.inventory.id).quantity

    def test_successful_callback_marks_order_paid(self):
        order, txn_ref = self.place_order()
        params = vnpay_callback(self.gateway, txn_ref, "390000")

        outcome = self.payments.process_payment_callback(PaymentMethod.VNPAY, params)

        self.assertTrue(outcome.success)
        self.assertEqual(outcome.order_id, order.id)
        self.assertEqual(outcome.status, PaymentTransactionStatus.SUCCESS)
        self.assertEqual(self.order_status(order), OrderStatus.PAID.value)
        payment = self.payments.get_payment_transaction(order.id)
        self.assertEqual(payment.status, "SUCCESS")
        self.assertIsNotNone(payment.paid_at)

        replay = self.payments.process_payment_callback(PaymentMethod.VNPAY, params)
        self.assertTrue(replay.success)
        self.assertEqual(replay.message, "Payment already processed")
        self.assertEqual(self.order_status(order), OrderStatus.PAID.value)

    def test_bad_signature_changes_nothing(self):
        order, txn_ref = self.place_order()
        params = vnpay_callback(self.gateway, txn_ref, "390000")
        params["vnp_SecureHash"] = "0" * 128

        outcome = self.payments.process_payment_callback(PaymentMethod.VNPAY, params)

        self.assertFalse(outcome.success)
        self.assertEqual(outcome.message, "Invalid signature")
        self.assertEqual(self.order_status(order), OrderStatus.PENDING_PAYMENT.value)
        self.assertEqual(self.payments.get_payment_transaction(order.id).status, "PROCESSING")

    def test_amount_mismatch_fails_and_expiry_cancels(self):
        """Test an underpaid callback fails the transaction and expiry later cancels the order."""
        order, txn_ref = self.place_order()

        outcome = self.payments.process_payment_callback(
            PaymentMethod.VNPAY,
            vnpay_callback(self.gateway, txn_ref, "1000"),
        )

        self.assertFalse(outcome.success)
        self.assertEqual(outcome.status, PaymentTransactionStatus.FAILED)
        self.assertEqual(self.order_status(order), OrderStatus.PENDING_PAYMENT.value)

        expired = self.payments.expire_stale_transactions(now=timezone.now() + timedelta(hours=1))

        self.assertEqual(expired, 1)
        self.assertEqual(self.order_status(order), OrderStatus.CANCELLED.value)
        self.assertEqual(self.payments.get_payment_transaction(order.id).status, "FAILED")
        self.assertEqual(self.quantity(), 5)
        self.assertEqual(VoucherORM.objects.get(code="SAVE10").used_count, 0)

    def test_declined_callback(self):
        order, txn_ref = self.place_order()
        outcome = self.payments.process_payment_callback(
            PaymentMethod.VNPAY,
            vnpay_callback(self.gateway, txn_ref, "390000", response_code="24"),
        )
        self.assertFalse(outcome.success)
        self.assertEqual(self.payments.get_payment_transaction(order.id).failure_reason,
                         "Customer cancelled the transaction")

    def test_expiry_of_open_payment(self):
        order, _ = self.place_order()
        self.assertEqual(self.payments.expire_stale_transactions(), 0)

        expired = self.payments.expire_stale_transactions(now=timezone.now() + timedelta(hours=1))

        self.assertEqual(expired, 1)
        self.assertEqual(self.payments.get_payment_transaction(order.id).status, "EXPIRED")
        self.assertEqual(self.order_status(order), OrderStatus.CANCELLED.value)
        self.assertEqual(self.quantity(), 5)
        self.assertEqual(self.payments.expire_stale_transactions(now=timezone.now() + timedelta(hours=2)), 0)

    def test_expiry_invalidates_cache_after_commit(self):
        self.place_order()

        with mock.patch.object(CatalogService, "remove_product_cache") as invalidate:
            with self.captureOnCommitCallbacks() as callbacks:
                self.payments.expire_stale_transactions(now=timezone.now() + timedelta(hours=1))
                invalidate.assert_not_called()

            self.assertTrue(callbacks)
            for callback in callbacks:
                callback()
            invalidate.assert_called_once_with()

    def test_expiry_leaves_paid_orders_alone(self):
        order, txn_ref = self.place_order()
        self.payments.process_payment_callback(PaymentMethod.VNPAY, vnpay_callback(self.gateway, txn_ref, "390000"))
        self.assertEqual(self.payments.expire_stale_transactions(now=timezone.now() + timedelta(hours=1)), 0)
        self.assertEqual(self.order_status(order), OrderStatus.PAID.value)

    def test_unknown_transaction(self):
        with self.assertRaises(PaymentTransactionNotFound):
            self.payments.process_payment_callback(
                PaymentMethod.VNPAY,
                vnpay_callback(self.gateway, "no-such-ref", "390000"),
            )
        self.assertFalse(PaymentTransactionORM.objects.exists())
