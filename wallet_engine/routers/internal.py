"""
Internal router — credits reported by trusted services.

Deposits come from the payment gateway once a bank transfer settles.
Refunds come from the provider integration when a purchase it was asked to
fulfil fails downstream. Neither is something a wallet owner may trigger,
so both require the shared service key (X-API-Key) instead of a user token.

Endpoints:
  POST /internal/wallets/{wallet_id}/deposits
  POST /internal/wallets/{wallet_id}/refunds
"""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from wallet_engine.database import get_db
from wallet_engine.dependencies import require_service_key
from wallet_engine.routers.responses import operation_response
from wallet_engine.schemas.wallet import DepositRequest, OperationResponse, RefundRequest
from wallet_engine.services import wallet_service

router = APIRouter(dependencies=[Depends(require_service_key)])


@router.post(
    "/wallets/{wallet_id}/deposits",
    response_model=OperationResponse,
    summary="Credit a settled deposit",
)
async def create_deposit(
    wallet_id: uuid.UUID,
    request: DepositRequest,
    db: AsyncSession = Depends(get_db),
):
    result = await wallet_service.deposit(
        db,
        account_id=wallet_id,
        amount_kobo=request.amount_kobo,
        details=request.details,
        external_reference=request.external_reference,
    )
    return operation_response(result)


@router.post(
    "/wallets/{wallet_id}/refunds",
    response_model=OperationResponse,
    summary="Refund a failed purchase",
)
async def create_refund(
    wallet_id: uuid.UUID,
    request: RefundRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Credit the wallet back. Refunds do not restore daily spending headroom.
    """
    result = await wallet_service.refund(
        db,
        account_id=wallet_id,
        amount_kobo=request.amount_kobo,
        original_reference=request.original_reference,
        reason=request.reason,
        details=request.details,
    )
    return operation_response(result)
