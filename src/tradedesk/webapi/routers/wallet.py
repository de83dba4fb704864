"""Wallet balance, funding and ledger endpoints."""

from fastapi import APIRouter, Depends, Query, Request

from ...services import TradingService
from ..dependencies import get_trading_service, get_user_id
from ..models.requests import WalletFundsRequest
from ..models.responses import (
    ReconciliationData,
    ReconciliationResponse,
    TransactionData,
    TransactionListResponse,
    WalletData,
    WalletResponse,
)

router = APIRouter()


def _wallet_response(wallet, request: Request, message=None) -> WalletResponse:
    return WalletResponse(
        data=WalletData.model_validate(wallet),
        message=message,
        request_id=getattr(request.state, "request_id", None),
    )


@router.get("", response_model=WalletResponse, summary="Get Wallet")
async def get_wallet(
    request: Request,
    user_id: str = Depends(get_user_id),
    service: TradingService = Depends(get_trading_service),
):
    return _wallet_response(service.get_wallet(user_id), request)


@router.post("/deposit", response_model=WalletResponse, summary="Deposit Funds")
async def deposit(
    body: WalletFundsRequest,
    request: Request,
    user_id: str = Depends(get_user_id),
    service: TradingService = Depends(get_trading_service),
):
    wallet = await service.deposit(user_id, body.amount, body.method)
    return _wallet_response(wallet, request, message="Deposit completed")


@router.post("/withdraw", response_model=WalletResponse, summary="Withdraw Funds")
async def withdraw(
    body: WalletFundsRequest,
    request: Request,
    user_id: str = Depends(get_user_id),
    service: TradingService = Depends(get_trading_service),
):
    wallet = await service.withdraw(user_id, body.amount, body.method)
    return _wallet_response(wallet, request, message="Withdrawal completed")


@router.get("/ledger", response_model=TransactionListResponse, summary="Wallet Ledger")
async def get_ledger(
    request: Request,
    limit: int = Query(100, ge=1, le=500, description="Maximum entries returned"),
    user_id: str = Depends(get_user_id),
    service: TradingService = Depends(get_trading_service),
):
    entries = service.get_ledger(user_id, limit)
    return TransactionListResponse(
        data=[TransactionData.model_validate(e) for e in entries],
        request_id=getattr(request.state, "request_id", None),
    )


@router.get(
    "/reconcile",
    response_model=ReconciliationResponse,
    summary="Reconcile Wallet",
    description="Compare the stored balance with the seed plus completed ledger entries",
)
async def reconcile(
    request: Request,
    user_id: str = Depends(get_user_id),
    service: TradingService = Depends(get_trading_service),
):
    report = service.reconcile(user_id)
    return ReconciliationResponse(
        data=ReconciliationData.model_validate(report),
        request_id=getattr(request.state, "request_id", None),
    )
