"""
Payment gateway integrations (MoMo, VnPay, ZaloPay).

Gateways never raise on transport problems: timeouts, non-2xx answers and
unreadable bodies come back as ``PaymentResult(success=False)``.
"""
from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from abc import ABC, abstractmethod
from datetime import timedelta, timezone as dt_timezone
from decimal import Decimal, InvalidOperation
from urllib.parse import quote_plus, urlencode
from uuid import uuid4

import requests
from django.conf import settings
from django.utils import timezone

from checkout.conf import max_gateway_amount
from checkout.domain.errors import InvalidPaymentCallback, PaymentMethodNotSupported
from checkout.domain.order import PaymentMethod
from checkout.domain.payment import PaymentCallback, PaymentRequest, PaymentResult

logger = logging.getLogger(__name__)

VIETNAM_TZ = dt_timezone(timedelta(hours=7))


def hmac_hex(key: str, message: str, digestmod=hashlib.sha256) -> str:
    return hmac.new(key.encode("utf-8"), message.encode("utf-8"), digestmod).hexdigest()


def parse_amount(value, field: str) -> Decimal:
    """Callback amount as a finite Decimal; empty means zero."""
    try:
        amount = Decimal(str(value or 0))
    except InvalidOperation:
        amount = None
    if amount is None or not amount.is_finite():
        raise InvalidPaymentCallback(f"Malformed {field}: {value!r}")
    return amount


class PaymentGateway(ABC):
    """Contract the checkout core uses to talk to a payment provider."""

    name = "gateway"
    settings_name = ""

    def __init__(self, config: dict | None = None, session: requests.Session | None = None):
        self.config = config if config is not None else getattr(settings, self.settings_name, {})
        self.session = session or requests

    @property
    def timeout(self) -> float:
        return float(self.config.get("TIMEOUT_SECONDS", 10))

    @abstractmethod
    def create_payment_url(self, request: PaymentRequest) -> PaymentResult:
        """Open a payment and return the redirect URL."""

    @abstractmethod
    def validate_callback(self, callback: PaymentCallback) -> bool:
        """Check the callback signature."""

    @abstractmethod
    def verify_payment(self, callback: PaymentCallback) -> PaymentResult:
        """Validate the callback and normalize its outcome."""

    @abstractmethod
    def parse_callback(self, params: dict) -> PaymentCallback:
        """Map raw provider parameters to a PaymentCallback."""

    def _check_amount(self, request: PaymentRequest) -> PaymentResult | None:
        if request.amount <= 0:
            return PaymentResult.failed("Payment amount must be positive")
        if request.amount > max_gateway_amount():
            return PaymentResult.failed(f"Amount exceeds the {self.name} limit")
        return None

    def _post(self, url: str, **kwargs) -> dict | None:
        """POST and decode JSON; None on any transport or decoding failure."""
        try:
            response = self.session.post(url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
            return response.json()
        except requests.Timeout:
            logger.warning("payment_gateway_timeout", extra={"gateway": self.name})
        except requests.RequestException as e:
            logger.warning("payment_gateway_error", extra={"gateway": self.name, "error": str(e)})
        except ValueError as e:
            logger.warning("payment_gateway_bad_response", extra={"gateway": self.name, "error": str(e)})
        return None


class MoMoGateway(PaymentGateway):
    """MoMo wallet, signed JSON API."""

    name = "momo"
    settings_name = "MOMO"

    CALLBACK_SIGNATURE_FIELDS = (
        "accessKey",
        "amount",
        "extraData",
        "message",
        "orderId",
        "orderInfo",
        "orderType",
        "partnerCode",
        "payType",
        "requestId",
        "responseTime",
        "resultCode",
        "transId",
    )

    def create_payment_url(self, request: PaymentRequest) -> PaymentResult:
        invalid = self._check_amount(request)
        if invalid:
            return invalid

        request_id = str(uuid4())
        amount = str(int(request.amount))
        order_id = str(request.order_id)
        order_info = request.order_info or f"Payment for order {order_id}"
        return_url = request.return_url or self.config.get("RETURN_URL", "")
        notify_url = self.config.get("NOTIFY_URL", "")
        raw_signature = (
            f"partnerCode={self.config.get('PARTNER_CODE', '')}"
            f"&accessKey={self.config.get('ACCESS_KEY', '')}"
            f"&requestId={request_id}"
            f"&amount={amount}"
            f"&orderId={order_id}"
            f"&orderInfo={order_info}"
            f"&returnUrl={return_url}"
            f"&notifyUrl={notify_url}"
            f"&extraData="
        )
        body = {
            "partnerCode": self.config.get("PARTNER_CODE", ""),
            "accessKey": self.config.get("ACCESS_KEY", ""),
            "requestId": request_id,
            "amount": amount,
            "orderId": order_id,
            "orderInfo": order_info,
            "returnUrl": return_url,
            "notifyUrl": notify_url,
            "extraData": "",
            "requestType": self.config.get("REQUEST_TYPE", "captureMoMoWallet"),
            "signature": hmac_hex(self.config.get("SECRET_KEY", ""), raw_signature),
        }

        data = self._post(self.config.get("API_URL", ""), json=body)
        if data is None:
            return PaymentResult.failed("Could not reach MoMo", transaction_id=request_id)
        pay_url = data.get("payUrl")
        if str(data.get("resultCode", data.get("errorCode"))) == "0" and pay_url:
            return PaymentResult(success=True, payment_url=pay_url, transaction_id=request_id)
        return PaymentResult.failed(
            data.get("message") or data.get("localMessage") or "MoMo refused the payment",
            transaction_id=request_id,
        )

    def callback_signature(self, params: dict) -> str:
        raw = "&".join(
            f"{name}={self.config.get('ACCESS_KEY', '') if name == 'accessKey' else params.get(name, '')}"
            for name in self.CALLBACK_SIGNATURE_FIELDS
        )
        return hmac_hex(self.config.get("SECRET_KEY", ""), raw)

    def validate_callback(self, callback: PaymentCallback) -> bool:
        expected = self.callback_signature(callback.parameters)
        return hmac.compare_digest(expected, callback.signature or "")

    def verify_payment(self, callback: PaymentCallback) -> PaymentResult:
        if not self.validate_callback(callback):
            return PaymentResult.failed("Invalid signature", transaction_id=callback.transaction_id)
        if callback.status == "0":
            return PaymentResult(success=True, transaction_id=callback.transaction_id)
        return PaymentResult.failed(
            callback.parameters.get("message") or f"MoMo result code {callback.status}",
            transaction_id=callback.transaction_id,
        )

    def parse_callback(self, params: dict) -> PaymentCallback:
        return PaymentCallback(
            transaction_id=str(params.get("requestId", "")),
            order_id=str(params.get("orderId", "")),
            amount=parse_amount(params.get("amount"), "amount"),
            status=str(params.get("resultCode", "")),
            signature=str(params.get("signature", "")),
            parameters=dict(params),
        )


class VnPayGateway(PaymentGateway):
    """VnPay, signed redirect URL."""

    name = "vnpay"
    settings_name = "VNPAY"

    RESPONSE_MESSAGES = {
        "00": "Transaction successful",
        "07": "Money deducted, transaction suspected of fraud",
        "09": "Card or account not registered for internet banking",
        "10": "Card or account authentication failed too many times",
        "11": "Payment window expired",
        "12": "Card or account is locked",
        "13": "Wrong one-time password",
        "24": "Customer cancelled the transaction",
        "51": "Insufficient balance",
        "65": "Daily transaction limit exceeded",
        "75": "Bank is under maintenance",
        "79": "Wrong payment password too many times",
        "99": "Unknown error",
    }

    def _query(self, params: dict) -> str:
        return urlencode(sorted(params.items()), quote_via=quote_plus)

    def sign(self, params: dict) -> str:
        return hmac_hex(self.config.get("HASH_SECRET", ""), self._query(params), hashlib.sha512)

    def create_payment_url(self, request: PaymentRequest) -> PaymentResult:
        invalid = self._check_amount(request)
        if invalid:
            return invalid

        txn_ref = str(time.time_ns() // 100)
        now = timezone.now().astimezone(VIETNAM_TZ)
        params = {
            "vnp_Version": self.config.get("VERSION", "2.1.0"),
            "vnp_Command": self.config.get("COMMAND", "pay"),
            "vnp_TmnCode": self.config.get("TMN_CODE", ""),
            "vnp_Amount": str(int(request.amount * 100)),
            "vnp_CreateDate": now.strftime("%Y%m%d%H%M%S"),
            "vnp_CurrCode": "VND",
            "vnp_IpAddr": request.client_ip,
            "vnp_Locale": self.config.get("LOCALE", "vn"),
            "vnp_OrderInfo": request.order_info or f"Payment for order {request.order_id}",
            "vnp_OrderType": "other",
            "vnp_ReturnUrl": request.return_url or self.config.get("RETURN_URL", ""),
            "vnp_TxnRef": txn_ref,
        }
        params = {key: value for key, value in params.items() if value != ""}
        url = f"{self.config.get('BASE_URL', '')}?{self._query(params)}&vnp_SecureHash={self.sign(params)}"
        return PaymentResult(success=True, payment_url=url, transaction_id=txn_ref)

    def validate_callback(self, callback: PaymentCallback) -> bool:
        signed = {
            key: value for key, value in callback.parameters.items()
            if key.startswith("vnp_") and key not in ("vnp_SecureHash", "vnp_SecureHashType") and value != ""
        }
        return hmac.compare_digest(self.sign(signed).lower(), (callback.signature or "").lower())

    def verify_payment(self, callback: PaymentCallback) -> PaymentResult:
        if not self.validate_callback(callback):
            return PaymentResult.failed("Invalid signature", transaction_id=callback.transaction_id)
        transaction_status = callback.parameters.get("vnp_TransactionStatus", "00")
        if callback.status == "00" and transaction_status == "00":
            return PaymentResult(success=True, transaction_id=callback.transaction_id)
        return PaymentResult.failed(
            self.RESPONSE_MESSAGES.get(callback.status, self.RESPONSE_MESSAGES["99"]),
            transaction_id=callback.transaction_id,
        )

    def parse_callback(self, params: dict) -> PaymentCallback:
        amount = parse_amount(params.get("vnp_Amount"), "vnp_Amount") / 100
        return PaymentCallback(
            transaction_id=params.get("vnp_TxnRef", ""),
            order_id=params.get("vnp_OrderInfo", ""),
            amount=amount,
            status=params.get("vnp_ResponseCode", ""),
            signature=params.get("vnp_SecureHash", ""),
            parameters=dict(params),
        )


class ZaloPayGateway(PaymentGateway):
    """ZaloPay v2 create-order API; callbacks are signed with key2."""

    name = "zalopay"
    settings_name = "ZALOPAY"

    def create_payment_url(self, request: PaymentRequest) -> PaymentResult:
        invalid = self._check_amount(request)
        if invalid:
            return invalid

        now = timezone.now().astimezone(VIETNAM_TZ)
        app_trans_id = f"{now:%y%m%d}_{uuid4().hex[:12]}"
        app_time = int(time.time() * 1000)
        app_user = "shoestore"
        amount = int(request.amount)
        embed_data = json.dumps({"redirecturl": request.return_url or "", "order_id": str(request.order_id)})
        item = "[]"
        app_id = str(self.config.get("APP_ID", ""))
        mac_data = f"{app_id}|{app_trans_id}|{app_user}|{amount}|{app_time}|{embed_data}|{item}"
        body = {
            "app_id": app_id,
            "app_trans_id": app_trans_id,
            "app_user": app_user,
            "app_time": app_time,
            "amount": amount,
            "item": item,
            "embed_data": embed_data,
            "description": request.order_info or f"Payment for order {request.order_id}",
            "bank_code": "",
            "callback_url": self.config.get("CALLBACK_URL", ""),
            "mac": hmac_hex(self.config.get("KEY1", ""), mac_data),
        }

        data = self._post(self.config.get("API_URL", ""), data=body)
        if data is None:
            return PaymentResult.failed("Could not reach ZaloPay", transaction_id=app_trans_id)
        order_url = data.get("order_url")
        if data.get("return_code") == 1 and order_url:
            return PaymentResult(success=True, payment_url=order_url, transaction_id=app_trans_id)
        return PaymentResult.failed(
            data.get("return_message") or "ZaloPay refused the payment",
            transaction_id=app_trans_id,
        )

    def validate_callback(self, callback: PaymentCallback) -> bool:
        expected = hmac_hex(self.config.get("KEY2", ""), callback.parameters.get("data", ""))
        return hmac.compare_digest(expected, callback.signature or "")

    def verify_payment(self, callback: PaymentCallback) -> PaymentResult:
        if not self.validate_callback(callback):
            return PaymentResult.failed("Invalid signature", transaction_id=callback.transaction_id)
        if callback.status == "1":
            return PaymentResult(success=True, transaction_id=callback.transaction_id)
        return PaymentResult.failed("ZaloPay reported a failed payment", transaction_id=callback.transaction_id)

    def parse_callback(self, params: dict) -> PaymentCallback:
        raw = params.get("data") or "{}"
        if not isinstance(raw, str):
            raise InvalidPaymentCallback("ZaloPay data must be a JSON string")
        try:
            data = json.loads(raw)
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            raise InvalidPaymentCallback("ZaloPay data must be a JSON object")
        embed = data.get("embed_data") or "{}"
        if isinstance(embed, str):
            try:
                embed = json.loads(embed)
            except ValueError:
                embed = {}
        if not isinstance(embed, dict):
            raise InvalidPaymentCallback("ZaloPay embed_data must be a JSON object")
        return PaymentCallback(
            transaction_id=str(data.get("app_trans_id", "")),
            order_id=str(embed.get("order_id", "")),
            amount=parse_amount(data.get("amount"), "amount"),
            # ZaloPay only calls back for paid orders
            status=str(params.get("status", "1")),
            signature=str(params.get("mac", "")),
            parameters=dict(params),
        )


class PaymentGatewayFactory:
    """Gateway lookup by payment method."""

    GATEWAYS = {
        PaymentMethod.MOMO: MoMoGateway,
        PaymentMethod.VNPAY: VnPayGateway,
        PaymentMethod.ZALOPAY: ZaloPayGateway,
    }

    def __init__(self, gateways: dict[PaymentMethod, PaymentGateway] | None = None):
        self._gateways = gateways or {}

    def supports(self, method: PaymentMethod) -> bool:
        return method in self._gateways or method in self.GATEWAYS

    def get_gateway(self, method: PaymentMethod) -> PaymentGateway:
        method = PaymentMethod(method)
        if method in self._gateways:
            return self._gateways[method]
        gateway_class = self.GATEWAYS.get(method)
        if gateway_class is None:
            raise PaymentMethodNotSupported(method.name)
        gateway = gateway_class()
        self._gateways[method] = gateway
        return gateway
