from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Index, PrimaryKeyConstraint, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from datacoin_indexer.app.infrastructure.db.db_base import BaseDB


class CoinsDB(BaseDB):
    """
    Dataset registry: one row per data coin created through the platform.

    Owned by the dataset API; the indexer only reads it to discover which
    token and marketplace contracts to watch.
    """

    __tablename__ = "coins"
    __table_args__ = (
        PrimaryKeyConstraint("token_address"),
        Index("idx_coins_creator", "creator_address"),
        Index("idx_coins_symbol", "symbol"),
        Index("idx_coins_created_at", "created_at"),
    )

    # Lower-case 0x hex address of the ERC-20 data coin
    token_address: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    symbol: Mapped[str] = mapped_column(Text, nullable=False)
    # Content identifier, usually "ipfs://<cid>" or a bare CID
    cid: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    creator_address: Mapped[str] = mapped_column(Text, nullable=False)
    marketplace_address: Mapped[str] = mapped_column(Text, nullable=False)
    total_supply: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
