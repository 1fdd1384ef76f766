"""
GraphQL and payment callback views with idempotency and logging support.
"""
import hashlib
import json
import logging
from uuid import uuid4

from ariadne import graphql_sync
from django.conf import settings
from django.db import IntegrityError, transaction
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from checkout.api.middleware import ErrorHandler, ValidationError
from checkout.api.schema import schema
from checkout.domain.order import PaymentMethod
from checkout.infra.models import IdempotencyKey
from checkout.infra.pii_masker import mask_pii_in_dict
from checkout.services.payments import PaymentService

logger = logging.getLogger(__name__)

CALLBACK_METHODS = {
    "momo": PaymentMethod.MOMO,
    "vnpay": PaymentMethod.VNPAY,
    "zalopay": PaymentMethod.ZALOPAY,
}

MUTATION_OPERATIONS = (
    ("createOrder", "CREATE_ORDER"),
    ("cancelOrder", "CANCEL_ORDER"),
    ("rejectOrder", "REJECT_ORDER"),
    ("updateOrderStatus", "UPDATE_ORDER_STATUS"),
)


class CheckoutGraphQLView:
    """GraphQL view with idempotency and structured logging."""

    def dispatch(self, request, *args, **kwargs):
        """Handle GraphQL request with idempotency."""
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        idempotency_key = request.headers.get("Idempotency-Key")
        owner_id = request.headers.get("X-User-ID") or request.headers.get("X-Guest-ID")

        logger.info(
            "graphql_request",
            extra=mask_pii_in_dict({
                "request_id": request_id,
                "user_id": owner_id,
                "idempotency_key": idempotency_key[:8] + "..." if idempotency_key else None,
                "operation": "graphql",
            }),
        )

        if request.method == "GET":
            return JsonResponse({"message": "GraphQL endpoint. Use POST for queries."})

        try:
            data = json.loads(request.body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return ErrorHandler.handle_error(ValidationError("Invalid JSON"))
        if not isinstance(data, dict):
            return ErrorHandler.handle_error(ValidationError("Request body must be a JSON object"))

        query = data.get("query") or ""
        is_mutation = query.lstrip().lower().startswith("mutation")
        if idempotency_key and is_mutation and owner_id:
            return self._dispatch_idempotent(request, data, request_id, idempotency_key, owner_id)

        return self._execute(request, data, request_id, owner_id)

    def _dispatch_idempotent(self, request, data, request_id, idempotency_key, owner_id):
        """Replay a stored response or execute and store it."""
        query = data.get("query") or ""
        request_hash = self._create_request_hash(query, data.get("variables") or {})
        operation = self._extract_operation(data.get("operationName") or "", query)

        existing = IdempotencyKey.objects.filter(
            key=idempotency_key,
            user_id=owner_id,
            operation=operation,
        ).first()
        if existing:
            if existing.request_hash == request_hash:
                logger.info(
                    "idempotent_request_cached",
                    extra={
                        "request_id": request_id,
                        "idempotency_key": idempotency_key,
                        "operation": operation,
                    },
                )
                return JsonResponse(existing.response_payload, safe=False)

            logger.warning(
                "idempotency_key_conflict",
                extra={"request_id": request_id, "idempotency_key": idempotency_key},
            )
            return ErrorHandler.handle_error(ValidationError(
                "Idempotency key already used with different request",
                code="DUPLICATE_REQUEST",
            ))

        response = self._execute(request, data, request_id, owner_id)
        if response.status_code == 200:
            try:
                with transaction.atomic():
                    IdempotencyKey.objects.create(
                        key=idempotency_key,
                        user_id=owner_id,
                        operation=operation,
                        request_hash=request_hash,
                        response_payload=json.loads(response.content),
                    )
            except IntegrityError as e:
                logger.error(
                    "failed_to_save_idempotency",
                    extra={"request_id": request_id, "error": str(e)},
                )
        return response

    def _execute(self, request, data, request_id, owner_id):
        _, result = graphql_sync(
            schema,
            data,
            context_value={"request": request},
            debug=settings.DEBUG,
            error_formatter=ErrorHandler.format_graphql_error,
        )
        response = JsonResponse(result, status=400 if result.get("errors") else 200)
        logger.info(
            "graphql_response",
            extra=mask_pii_in_dict({
                "request_id": request_id,
                "user_id": owner_id,
                "status": response.status_code,
            }),
        )
        return response

    def _create_request_hash(self, query: str, variables: dict) -> str:
        """Create hash of request for deduplication."""
        content = json.dumps({"query": query, "variables": variables}, sort_keys=True)
        return hashlib.sha256(content.encode()).hexdigest()

    def _extract_operation(self, operation_name: str, query: str) -> str:
        """Extract operation type from operation name or query text."""
        for field_name, operation in MUTATION_OPERATIONS:
            if field_name.lower() in operation_name.lower() or field_name in query:
                return operation
        return "UNKNOWN"


@csrf_exempt
@require_http_methods(["GET", "POST"])
def graphql_view(request):
    """GraphQL endpoint."""
    view = CheckoutGraphQLView()
    return view.dispatch(request)


def get_callback_params(request) -> dict:
    """Gateway parameters from the query string, a JSON body or a form body."""
    params = request.GET.dict()
    if request.method == "POST":
        if request.content_type == "application/json":
            try:
                body = json.loads(request.body or b"{}")
            except (json.JSONDecodeError, UnicodeDecodeError):
                raise ValidationError("Invalid JSON")
            if not isinstance(body, dict):
                raise ValidationError("Callback body must be a JSON object")
            params.update(body)
        else:
            params.update(request.POST.dict())
    return params


@csrf_exempt
@require_http_methods(["GET", "POST"])
def payment_callback_view(request, method):
    """Gateway return URL and IPN endpoint."""
    try:
        payment_method = CALLBACK_METHODS.get(method.lower())
        if payment_method is None:
            raise ValidationError(f"Unsupported payment gateway: {method}", code="PAYMENT_METHOD_NOT_SUPPORTED")
        result = PaymentService().process_payment_callback(payment_method, get_callback_params(request))
    except Exception as e:
        return ErrorHandler.handle_error(e)

    return JsonResponse({
        "success": result.success,
        "orderId": str(result.order_id) if result.order_id else None,
        "status": result.status.value if result.status else None,
        "message": result.message,
    })
