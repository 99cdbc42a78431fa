from __future__ import annotations

import logging
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Optional

from flask import jsonify

from revsplit.api.validators import ApiValidationError
from revsplit.db.repository import DuplicateError, RepositoryError
from revsplit.domain.revenue_split import FieldError, ValidationError
from revsplit.services.invoicing import RecurringScheduleError
from revsplit.services.splits import OverAllocationError

logger = logging.getLogger(__name__)


def json_error(
    message: str,
    *,
    status: int = 400,
    code: str = "bad_request",
    fields: Optional[Iterable[FieldError]] = None,
):
    body: dict = {"code": code, "message": message}
    if fields is not None:
        body["fields"] = [f.to_dict() for f in fields]
    return jsonify({"error": body}), status


def to_json(value: Any) -> Any:
    """
    Records -> JSON-ready data. Decimals become strings so no precision is
    lost; datetimes become ISO 8601.
    """
    if is_dataclass(value) and not isinstance(value, type):
        value = asdict(value)
    if isinstance(value, dict):
        return {k: to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json(v) for v in value]
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def register_error_handlers(target) -> None:
    """Map domain/store errors to the JSON error envelope on an app or blueprint."""

    @target.errorhandler(ApiValidationError)
    def _api_validation(e: ApiValidationError):
        return json_error(str(e), status=400, code="invalid_input", fields=e.errors)

    @target.errorhandler(ValidationError)
    def _split_validation(e: ValidationError):
        return json_error("Invalid revenue split.", status=400, code="invalid_input", fields=e.errors)

    @target.errorhandler(OverAllocationError)
    def _over_allocated(e: OverAllocationError):
        return json_error(str(e), status=422, code="over_allocated")

    @target.errorhandler(RecurringScheduleError)
    def _schedule(e: RecurringScheduleError):
        return json_error(str(e), status=409, code="conflict")

    @target.errorhandler(DuplicateError)
    def _duplicate(e: DuplicateError):
        return json_error(str(e), status=409, code="conflict")

    @target.errorhandler(RepositoryError)
    def _store_failure(e: RepositoryError):
        logger.error("store failure: %s", e)
        return json_error("Database error.", status=503, code="db_error")
