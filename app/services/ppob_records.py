from datetime import datetime
import logging

from sqlalchemy.orm import Session

from app.models import ApiLog, OPEN_DEBIT_STATUSES, PpobTransaction


logger = logging.getLogger(__name__)


class TransactionStore:
    """Persists PPOB transaction rows. Writes are upserts keyed on ref_id and commit immediately."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, ref_id: str) -> PpobTransaction | None:
        return self.db.query(PpobTransaction).filter(PpobTransaction.ref_id == ref_id).first()

    def upsert(self, ref_id: str, **fields) -> PpobTransaction:
        row = self.get(ref_id)
        if not row:
            row = PpobTransaction(ref_id=ref_id)
            self.db.add(row)
        for key, value in fields.items():
            setattr(row, key, value)
        self.db.commit()
        self.db.refresh(row)
        return row

    def transition(self, ref_id: str, from_status: str, to_status: str, **fields) -> PpobTransaction | None:
        """Conditional status change; returns None when the row is no longer in `from_status`."""
        updated = (
            self.db.query(PpobTransaction)
            .filter(PpobTransaction.ref_id == ref_id, PpobTransaction.status == from_status)
            .update({"status": to_status, **fields}, synchronize_session=False)
        )
        self.db.commit()
        if not updated:
            return None
        return self.get(ref_id)

    def list_open_debits(self, updated_before: datetime, limit: int = 100) -> list[PpobTransaction]:
        return (
            self.db.query(PpobTransaction)
            .filter(
                PpobTransaction.status.in_(sorted(OPEN_DEBIT_STATUSES)),
                PpobTransaction.updated_at <= updated_before,
            )
            .order_by(PpobTransaction.updated_at.asc(), PpobTransaction.id.asc())
            .limit(limit)
            .all()
        )

    def log_call(self, *, user_id: str | None, endpoint: str, status_code: int, duration_ms: float, reference: str | None) -> None:
        try:
            self.db.add(
                ApiLog(
                    user_id=user_id,
                    service="digiflazz",
                    endpoint=endpoint,
                    status_code=status_code,
                    duration_ms=duration_ms,
                    reference=reference,
                    success=1 if 200 <= status_code < 300 else 0,
                )
            )
            self.db.commit()
        except Exception as exc:
            self.db.rollback()
            logger.warning("Failed to write api log for %s: %s", reference, exc)
