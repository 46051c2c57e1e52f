from sqlalchemy.orm import Session
from reservapp.models.payment import Payment, PaymentStatus, GatewayEventRecord


class PaymentRepository:
    """Repository for Payment model operations"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, payment_id: str) -> Payment | None:
        return self.db.query(Payment).filter(Payment.id == payment_id).first()

    def get_by_gateway_id(self, gateway_payment_id: str) -> Payment | None:
        """Get payment by the gateway's payment intent ID"""
        return (
            self.db.query(Payment)
            .filter(Payment.gateway_payment_id == gateway_payment_id)
            .first()
        )

    def find_many(
        self,
        user_id: str | None = None,
        status: PaymentStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Payment], int]:
        """
        List payments, newest first.

        Returns:
            Tuple of (payments, total_count)
        """
        query = self.db.query(Payment)
        if user_id is not None:
            query = query.filter(Payment.user_id == user_id)
        if status is not None:
            query = query.filter(Payment.status == status)

        total = query.count()
        payments = query.order_by(Payment.created_at.desc()).offset(offset).limit(limit).all()
        return payments, total

    def create(self, payment: Payment) -> Payment:
        self.db.add(payment)
        self.db.commit()
        self.db.refresh(payment)
        return payment

    def update(self, payment: Payment, commit: bool = True) -> Payment:
        """
        Persist payment changes.

        With commit=False the change is only flushed, so the caller can
        commit it together with other writes.

        Raises:
            StaleDataError: If another transaction updated the row first
        """
        if not commit:
            self.db.flush()
            return payment
        self.db.commit()
        self.db.refresh(payment)
        return payment


class GatewayEventRepository:
    """Repository for the processed gateway event ledger"""

    def __init__(self, db: Session):
        self.db = db

    def exists(self, event_id: str) -> bool:
        return self.db.get(GatewayEventRecord, event_id) is not None

    def add(self, event_id: str, event_type: str, payment_id: str | None) -> GatewayEventRecord:
        """Stage a ledger row in the current transaction (not committed)."""
        record = GatewayEventRecord(event_id=event_id, event_type=event_type, payment_id=payment_id)
        self.db.add(record)
        return record
