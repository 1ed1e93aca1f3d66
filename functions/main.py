"""Cloud Function entry points for BuildBid.

Provides HTTP endpoints for:
- Submitting, reading and revising builder quotes
- Quote status changes
- Distributing a scope of work to builders and recording their responses
- Builder/homeowner communications
- Quote comparison
"""

import asyncio
import json
from typing import Dict, Any
from datetime import datetime, date

import structlog
from firebase_functions import https_fn, options
from firebase_admin import initialize_app
from pydantic import ValidationError as PydanticValidationError

from config.errors import BuildBidError, ErrorCode, RequestValidationError
from models.quote import QuoteSubmissionRequest
from models.results import ServiceResponse, SubmissionResult
from services.quote_service import QuoteService
from utils.logging import configure_logging

# Initialize Firebase Admin SDK
try:
    initialize_app()
except ValueError:
    # Already initialized
    pass

configure_logging()
logger = structlog.get_logger()

# ============================================================================
# Helper Functions
# ============================================================================

NOT_FOUND_CODES = (
    ErrorCode.SOW_NOT_FOUND,
    ErrorCode.QUOTE_NOT_FOUND,
    ErrorCode.NO_QUOTES_FOUND,
    ErrorCode.DISTRIBUTION_NOT_FOUND,
)
CONFLICT_CODES = (
    ErrorCode.DUPLICATE_QUOTE,
    ErrorCode.INVALID_STATUS_TRANSITION,
    ErrorCode.QUOTE_NOT_MODIFIABLE,
    ErrorCode.QUOTE_SUPERSEDED,
    ErrorCode.INVALID_RESPONSE_TRANSITION,
)


def success_response(data: Any) -> Dict[str, Any]:
    """Build success response."""
    return {"success": True, "data": data}


def error_response(code: str, message: str, details: Dict[str, Any] = None) -> Dict[str, Any]:
    """Build error response."""
    return {
        "success": False,
        "error": {
            "code": code,
            "message": message,
            "details": details or {}
        }
    }


def status_for_code(code: str) -> int:
    """HTTP status for a domain error code."""
    if code in NOT_FOUND_CODES:
        return 404
    if code in CONFLICT_CODES:
        return 409
    return 400


def get_request_json(req: https_fn.Request) -> Dict[str, Any]:
    """Extract JSON from request body.

    Raises:
        RequestValidationError: If JSON is invalid.
    """
    try:
        return req.get_json(force=True) or {}
    except Exception as e:
        raise RequestValidationError(
            message=f"Invalid JSON in request body: {str(e)}"
        )


def require_fields(data: Dict[str, Any], *fields: str) -> None:
    for name in fields:
        if not data.get(name):
            raise RequestValidationError(message=f"Missing {name} in request", field=name)


def _service_result(result: ServiceResponse) -> https_fn.Response:
    if result.success:
        return _json_response(success_response(result.data))
    return _json_response(
        error_response(result.error.code, result.error.message, result.error.details),
        status=status_for_code(result.error.code)
    )


def _submission_result(result: SubmissionResult) -> https_fn.Response:
    body = result.to_dict()
    if result.success:
        return _json_response(success_response(body))
    codes = result.error_codes
    status = 400
    if codes and all(code in NOT_FOUND_CODES + CONFLICT_CODES for code in codes):
        status = status_for_code(codes[0])
    return _json_response(
        error_response(ErrorCode.VALIDATION_ERROR, "Quote rejected", {"validationErrors": body["validationErrors"]}),
        status=status
    )


def _handle(req: https_fn.Request, event: str, handler) -> https_fn.Response:
    """Run one endpoint with the shared CORS and error mapping."""
    if req.method == "OPTIONS":
        return _cors_response()

    try:
        data = get_request_json(req)
        return handler(data)
    except RequestValidationError as e:
        return _json_response(error_response(e.code, e.message, e.details), status=400)
    except PydanticValidationError as e:
        return _json_response(
            error_response(
                ErrorCode.INVALID_SCHEMA,
                "Request does not match the expected schema",
                {"errors": json.loads(e.json())}
            ),
            status=400
        )
    except ValueError as e:
        return _json_response(error_response(ErrorCode.INVALID_VALUE, str(e)), status=400)
    except BuildBidError as e:
        logger.error(f"{event}_error", error=e.message, code=e.code)
        return _json_response(error_response(e.code, e.message, e.details), status=500)
    except Exception as e:
        logger.exception(f"{event}_exception", error=str(e))
        return _json_response(
            error_response(ErrorCode.INTERNAL_ERROR, f"Request failed: {str(e)}"),
            status=500
        )


# ============================================================================
# Quote Endpoints
# ============================================================================


@https_fn.on_request(
    timeout_sec=60,
    memory=options.MemoryOption.MB_512,
    region="us-central1"
)
def submit_quote(req: https_fn.Request) -> https_fn.Response:
    """Submit a builder quote for a scope of work.

    Request body:
    {
        "sowId": "sow-123",
        "builderId": "builder-456",
        "quote": {...}  // QuoteInput
    }

    Response:
    {
        "success": true,
        "data": {
            "success": true,
            "quoteId": "...",
            "quote": {...},
            "warnings": [],
            "estimatedProcessingTime": 24
        }
    }
    """
    def handler(data: Dict[str, Any]) -> https_fn.Response:
        request = QuoteSubmissionRequest.model_validate(data)
        logger.info("quote_request_received", sow_id=request.sow_id, builder_id=request.builder_id)
        result = asyncio.run(QuoteService().submit_quote(request))
        return _submission_result(result)

    return _handle(req, "quote_submit", handler)


@https_fn.on_request(
    timeout_sec=30,
    memory=options.MemoryOption.MB_256,
    region="us-central1"
)
def get_quote(req: https_fn.Request) -> https_fn.Response:
    """Get one quote by id.

    Request body:
    {
        "quoteId": "..."
    }
    """
    def handler(data: Dict[str, Any]) -> https_fn.Response:
        require_fields(data, "quoteId")
        return _service_result(asyncio.run(QuoteService().get_quote(data["quoteId"])))

    return _handle(req, "quote_get", handler)


@https_fn.on_request(
    timeout_sec=30,
    memory=options.MemoryOption.MB_256,
    region="us-central1"
)
def get_quotes_for_sow(req: https_fn.Request) -> https_fn.Response:
    """List all quotes submitted against a scope of work."""
    def handler(data: Dict[str, Any]) -> https_fn.Response:
        require_fields(data, "sowId")
        return _service_result(asyncio.run(QuoteService().get_quotes_for_sow(data["sowId"])))

    return _handle(req, "sow_quotes_get", handler)


@https_fn.on_request(
    timeout_sec=30,
    memory=options.MemoryOption.MB_256,
    region="us-central1"
)
def get_builder_quotes(req: https_fn.Request) -> https_fn.Response:
    """List a builder's quotes, optionally filtered by status.

    Request body:
    {
        "builderId": "builder-456",
        "status": "submitted"  // Optional
    }
    """
    def handler(data: Dict[str, Any]) -> https_fn.Response:
        require_fields(data, "builderId")
        return _service_result(asyncio.run(
            QuoteService().get_builder_quotes(data["builderId"], data.get("status"))
        ))

    return _handle(req, "builder_quotes_get", handler)


@https_fn.on_request(
    timeout_sec=30,
    memory=options.MemoryOption.MB_256,
    region="us-central1"
)
def update_quote_status(req: https_fn.Request) -> https_fn.Response:
    """Move a quote to a new status.

    Request body:
    {
        "quoteId": "...",
        "status": "under-review"
    }
    """
    def handler(data: Dict[str, Any]) -> https_fn.Response:
        require_fields(data, "quoteId", "status")
        return _service_result(asyncio.run(
            QuoteService().update_quote_status(data["quoteId"], data["status"])
        ))

    return _handle(req, "quote_status_update", handler)


@https_fn.on_request(
    timeout_sec=60,
    memory=options.MemoryOption.MB_512,
    region="us-central1"
)
def revise_quote(req: https_fn.Request) -> https_fn.Response:
    """Store a revised version of a draft or clarification-requested quote.

    Request body:
    {
        "quoteId": "...",
        "updates": {"totalPrice": 26000, ...}
    }
    """
    def handler(data: Dict[str, Any]) -> https_fn.Response:
        require_fields(data, "quoteId", "updates")
        result = asyncio.run(QuoteService().revise_quote(data["quoteId"], data["updates"]))
        return _submission_result(result)

    return _handle(req, "quote_revise", handler)


@https_fn.on_request(
    timeout_sec=60,
    memory=options.MemoryOption.MB_512,
    region="us-central1"
)
def compare_quotes(req: https_fn.Request) -> https_fn.Response:
    """Compare every quote on a scope of work.

    Response data carries metrics, rankings, recommendations and the risk
    analysis.
    """
    def handler(data: Dict[str, Any]) -> https_fn.Response:
        require_fields(data, "sowId")
        return _service_result(asyncio.run(QuoteService().compare_quotes(data["sowId"])))

    return _handle(req, "quote_compare", handler)


# ============================================================================
# Distribution Endpoints
# ============================================================================


@https_fn.on_request(
    timeout_sec=30,
    memory=options.MemoryOption.MB_256,
    region="us-central1"
)
def distribute_quotes(req: https_fn.Request) -> https_fn.Response:
    """Invite builders to quote on a scope of work.

    Request body:
    {
        "sowId": "sow-123",
        "homeownerId": "user-1",
        "builderIds": ["builder-1", "builder-2"],
        "dueDate": "2026-03-01"
    }
    """
    def handler(data: Dict[str, Any]) -> https_fn.Response:
        require_fields(data, "sowId", "homeownerId", "builderIds", "dueDate")
        return _service_result(asyncio.run(QuoteService().distribute_to_builders(
            sow_id=data["sowId"],
            homeowner_id=data["homeownerId"],
            builder_ids=data["builderIds"],
            due_date=data["dueDate"],
        )))

    return _handle(req, "sow_distribute", handler)


@https_fn.on_request(
    timeout_sec=30,
    memory=options.MemoryOption.MB_256,
    region="us-central1"
)
def record_builder_response(req: https_fn.Request) -> https_fn.Response:
    """Record a builder viewing, quoting on or declining an invitation."""
    def handler(data: Dict[str, Any]) -> https_fn.Response:
        require_fields(data, "sowId", "distributionId", "builderId", "status")
        return _service_result(asyncio.run(QuoteService().record_builder_response(
            sow_id=data["sowId"],
            distribution_id=data["distributionId"],
            builder_id=data["builderId"],
            status=data["status"],
            quote_id=data.get("quoteId"),
            decline_reason=data.get("declineReason"),
        )))

    return _handle(req, "builder_response_record", handler)


# ============================================================================
# Communication Endpoints
# ============================================================================


@https_fn.on_request(
    timeout_sec=30,
    memory=options.MemoryOption.MB_256,
    region="us-central1"
)
def create_communication(req: https_fn.Request) -> https_fn.Response:
    """Send a clarification request, query or response about a scope of work."""
    def handler(data: Dict[str, Any]) -> https_fn.Response:
        require_fields(data, "sowId", "builderId", "homeownerId", "type", "subject", "message")
        return _service_result(asyncio.run(QuoteService().create_communication(
            sow_id=data["sowId"],
            builder_id=data["builderId"],
            homeowner_id=data["homeownerId"],
            type=data["type"],
            subject=data["subject"],
            message=data["message"],
        )))

    return _handle(req, "communication_create", handler)


@https_fn.on_request(
    timeout_sec=30,
    memory=options.MemoryOption.MB_256,
    region="us-central1"
)
def get_communications(req: https_fn.Request) -> https_fn.Response:
    def handler(data: Dict[str, Any]) -> https_fn.Response:
        require_fields(data, "sowId")
        return _service_result(asyncio.run(QuoteService().get_communications(data["sowId"])))

    return _handle(req, "communications_get", handler)


CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Max-Age": "3600"
}


def _cors_response() -> https_fn.Response:
    """Return CORS preflight response."""
    return https_fn.Response(
        "",
        status=204,
        headers=CORS_HEADERS
    )


def _json_response(data: dict, status: int = 200) -> https_fn.Response:
    """Return JSON response with CORS headers."""

    def _json_default(o: Any):
        """Firestore timestamps behave like datetimes but are not JSON serializable."""
        if isinstance(o, (datetime, date)):
            return o.isoformat()
        if hasattr(o, "isoformat"):
            return o.isoformat()
        return str(o)

    return https_fn.Response(
        json.dumps(data, default=_json_default),
        status=status,
        mimetype="application/json",
        headers=CORS_HEADERS
    )
