"""Shared translation of wallet operation results into HTTP responses."""

from fastapi import status
from fastapi.responses import JSONResponse

from wallet_engine.schemas.wallet import OperationResponse
from wallet_engine.services import wallet_service
from wallet_engine.services.wallet_service import OperationResult

# A duplicate is a conflict with an in-flight request; the other denials are
# a well-formed request the wallet's state can't honour
DENIAL_STATUS = {
    wallet_service.DENIED_DUPLICATE: status.HTTP_409_CONFLICT,
    wallet_service.DENIED_LIMIT_EXCEEDED: status.HTTP_422_UNPROCESSABLE_ENTITY,
    wallet_service.DENIED_INSUFFICIENT_FUNDS: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def operation_response(result: OperationResult) -> OperationResponse | JSONResponse:
    if result.success:
        return OperationResponse(
            success=True,
            operation_type=result.operation_type,
            amount_kobo=result.amount,
            balance_before_kobo=result.balance_before,
            balance_after_kobo=result.balance_after,
            audit_id=result.audit_id,
        )

    content = {
        "detail": result.detail,
        "error_type": result.denial,
        "audit_id": str(result.audit_id),
        "balance_kobo": result.balance_after,
    }
    if result.limit_check is not None and result.denial == wallet_service.DENIED_LIMIT_EXCEEDED:
        content["daily_limit_kobo"] = result.limit_check.daily_limit
        content["current_spent_kobo"] = result.limit_check.current_spent
        content["would_be_total_kobo"] = result.limit_check.would_be_total
        content["remaining_kobo"] = result.limit_check.remaining
    return JSONResponse(status_code=DENIAL_STATUS[result.denial], content=content)
