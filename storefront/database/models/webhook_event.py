"""
Ledger of payment gateway events that have already been reconciled.

The gateway delivers events at least once; a row here means the event id
has been handled and any replay must be acknowledged without side effects.
The exception is a ``deferred`` row: the event arrived before the order it
pays for was committed. Checkout applies it, and a redelivery retries it.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from storefront.database.base import Base, utc_now

OUTCOME_DEFERRED = "deferred"


class ProcessedWebhookEvent(Base):
    __tablename__ = "processed_webhook_events"

    event_id: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        comment="Gateway event identifier",
    )
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    order_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    payment_intent_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        index=True,
        comment="Payment intent the event refers to",
    )
    outcome: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="applied, unchanged, ignored, dropped or deferred",
    )
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )

    @property
    def is_deferred(self) -> bool:
        return self.outcome == OUTCOME_DEFERRED
