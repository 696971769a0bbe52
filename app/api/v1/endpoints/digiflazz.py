from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.core.config import get_provider_config, get_settings
from app.core.database import get_db
from app.dependencies import CurrentUser, get_current_user
from app.middlewares.rate_limit import limiter
from app.models import PpobStatus, PpobTransaction
from app.schemas.digiflazz import (
    DigiflazzProductOut,
    InquiryPascaRequest,
    InquiryPlnRequest,
    PayPascaRequest,
    PpobTransactionOut,
    SaldoOut,
    TopupRequest,
)
from app.services.catalog import ProductCatalog
from app.services.digiflazz import DigiflazzClient
from app.services.ledger import SqlLedgerGateway
from app.services.ppob import PaymentOrchestrator
from app.services.ppob_records import TransactionStore
from app.utils.audit import audit

router = APIRouter()
settings = get_settings()


def get_digiflazz_client() -> DigiflazzClient:
    return DigiflazzClient(get_provider_config())


def get_orchestrator(
    db: Session = Depends(get_db),
    client: DigiflazzClient = Depends(get_digiflazz_client),
) -> PaymentOrchestrator:
    return PaymentOrchestrator(
        ledger=SqlLedgerGateway(db),
        provider=client,
        catalog=ProductCatalog(db),
        store=TransactionStore(db),
        config=client.config,
        status_delay_seconds=settings.digiflazz_status_delay_seconds,
    )


def _to_out(row: PpobTransaction) -> dict:
    raw = row.raw_response if isinstance(row.raw_response, dict) else {}
    data = raw.get("data")
    return {
        "ref_id": row.ref_id,
        "buyer_sku_code": row.buyer_sku_code,
        "customer_no": row.customer_no,
        "product_type": row.product_type,
        "status": row.status,
        "price": row.price,
        "amount_nominal": row.amount_nominal,
        "rc": row.rc,
        "message": row.message,
        "sn": row.sn,
        "reversed": row.status == PpobStatus.REVERSED.value,
        "data": data if isinstance(data, dict) else None,
        "created_at": getattr(row, "created_at", None),
        "updated_at": getattr(row, "updated_at", None),
    }


def _audit_row(db: Session, user: CurrentUser, action: str, row: PpobTransaction) -> None:
    audit(
        db,
        user.id,
        action,
        row.ref_id,
        {
            "buyer_sku_code": row.buyer_sku_code,
            "customer_no": row.customer_no,
            "price": row.price,
            "status": row.status,
        },
    )


@router.get("/products", response_model=list[DigiflazzProductOut])
def list_products(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
    return ProductCatalog(db).list_products()


@router.get("/cek-saldo", response_model=SaldoOut)
def cek_saldo(user: CurrentUser = Depends(get_current_user), client: DigiflazzClient = Depends(get_digiflazz_client)):
    return {"deposit": client.check_balance()}


@router.post("/inquiry-pln")
@limiter.limit("20/minute")
def inquiry_pln(
    request: Request,
    payload: InquiryPlnRequest,
    user: CurrentUser = Depends(get_current_user),
    client: DigiflazzClient = Depends(get_digiflazz_client),
):
    return {"data": client.inquiry_pln(payload.customer_no.strip())}


@router.post("/topup", response_model=PpobTransactionOut)
@limiter.limit("5/minute")
def topup(
    request: Request,
    payload: TopupRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    row = orchestrator.topup(
        user.id,
        account_id=payload.account_id,
        buyer_sku_code=payload.buyer_sku_code,
        customer_no=payload.customer_no,
        pin=payload.pin,
        amount=payload.amount,
    )
    _audit_row(db, user, "ppob_topup", row)
    return _to_out(row)


@router.get("/cek-status/{ref_id}", response_model=PpobTransactionOut)
def cek_status(
    ref_id: str,
    user: CurrentUser = Depends(get_current_user),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    return _to_out(orchestrator.check_status(user.id, ref_id))


@router.post("/inq-pasca", response_model=PpobTransactionOut)
@limiter.limit("10/minute")
def inquiry_pasca(
    request: Request,
    payload: InquiryPascaRequest,
    user: CurrentUser = Depends(get_current_user),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    row = orchestrator.inquire_pasca(
        user.id,
        buyer_sku_code=payload.buyer_sku_code,
        customer_no=payload.customer_no,
        account_id=payload.account_id,
        amount=payload.amount,
    )
    return _to_out(row)


@router.post("/pay-pasca", response_model=PpobTransactionOut)
@limiter.limit("5/minute")
def pay_pasca(
    request: Request,
    payload: PayPascaRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    row = orchestrator.pay_pasca(user.id, ref_id=payload.ref_id, account_id=payload.account_id, pin=payload.pin)
    _audit_row(db, user, "ppob_pay_pasca", row)
    return _to_out(row)


@router.get("/status-pasca/{ref_id}", response_model=PpobTransactionOut)
def status_pasca(
    ref_id: str,
    user: CurrentUser = Depends(get_current_user),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    return _to_out(orchestrator.status_pasca(user.id, ref_id))
