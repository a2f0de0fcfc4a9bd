"""ErrorLogEntry -- persisted record of a failed run (Timestamp/Function/Message/Stack/Context)."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base


class ErrorLogEntry(Base):
    __tablename__ = "error_log"

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    function: Mapped[str] = mapped_column(String(200), nullable=False)
    # StockKernelError.code when available
    error_code: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    message: Mapped[str] = mapped_column(Text, nullable=False)
    stack: Mapped[str] = mapped_column(Text, nullable=False, default="")
    # JSON object
    context: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
