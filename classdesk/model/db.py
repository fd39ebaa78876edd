from sqlalchemy.orm import declarative_base
from sqlalchemy import (
    Column,
    String,
    Float,
    Index,
)


Base = declarative_base()


# ----------------------------
# ORM models
# ----------------------------
class RegistrationRow(Base):
    __tablename__ = "registrations"
    reference_id = Column(String, primary_key=True)
    full_name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    phone = Column(String, nullable=False)

    # CREATED | ORDER_CREATED | PAID | FAILED
    status = Column(String, nullable=False, default="CREATED")
    # gateway order id; NULLs don't collide under UNIQUE
    order_id = Column(String, nullable=True, unique=True)
    transaction_id = Column(String, nullable=True)
    failure_reason = Column(String, nullable=True)

    created_at = Column(Float, nullable=False)
    order_created_at = Column(Float, nullable=True)
    paid_at = Column(Float, nullable=True)
    failed_at = Column(Float, nullable=True)

    __table_args__ = (
        Index("idx_registrations_created_at", "created_at"),
    )
