from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, PrimaryKeyConstraint, Text
from sqlalchemy.orm import Mapped, mapped_column

from datacoin_indexer.app.infrastructure.db.db_base import BaseDB


class AccessGrantsDB(BaseDB):
    """
    Latest download grant per (user, symbol).

    Re-issuing a grant for the same pair overwrites the row; the monetary
    ledger lives on chain, this is only the download permission.
    """

    __tablename__ = "access_grants"
    __table_args__ = (
        PrimaryKeyConstraint("user_address", "symbol"),
        Index("ix_access_grants_token_address", "token_address"),
    )

    user_address: Mapped[str] = mapped_column(Text, nullable=False)
    symbol: Mapped[str] = mapped_column(Text, nullable=False)
    token_address: Mapped[str] = mapped_column(Text, nullable=False)
    # uint256 as a decimal string; exceeds every SQL integer type
    amount: Mapped[str] = mapped_column(Text, nullable=False)
    download_url: Mapped[str] = mapped_column(Text, nullable=False)
    granted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
