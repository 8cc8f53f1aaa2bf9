from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, Mapping, assert_never

from datacoin_indexer.app.domain.events import (
    AccessGranted,
    Bought,
    DomainEvent,
    Redeemed,
    Sold,
    TokensBurned,
    Transfer,
)
from datacoin_indexer.app.domain.models import ZERO_ADDRESS, AccessGrant, DatasetRecord, RawLog
from datacoin_indexer.app.domain.ports.out import AccessGranter, EventDecoder
from datacoin_indexer.app.observability import log_contained_error


logger = logging.getLogger(__name__)

_URI_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://")


def strip_uri_scheme(content_id: str) -> str:
    """ipfs://bafy... -> bafy..."""
    return _URI_SCHEME_RE.sub("", content_id.strip())


@dataclass
class DispatchStats:
    decoded: int = 0
    grants: int = 0


class TradeAccountingHandler:
    """
    Bought / Sold sink.

    On-chain balances are authoritative, so nothing is recorded here; the
    events are only logged.
    """

    async def handle(self, event: Bought | Sold, *, emitter: str) -> None:
        if isinstance(event, Bought):
            logger.info(
                "Trade: buy token=%s buyer=%s usdc_in=%s fee=%s tokens_out=%s marketplace=%s",
                event.token,
                event.buyer,
                event.usdc_in,
                event.fee,
                event.tokens_out,
                emitter,
            )
        else:
            logger.info(
                "Trade: sell token=%s seller=%s tokens_in=%s usdc_out=%s marketplace=%s",
                event.token,
                event.seller,
                event.tokens_in,
                event.usdc_out,
                emitter,
            )


class EventDispatcher:
    """
    Routes decoded events to their handlers.

    - burn Transfer (to zero address), Redeemed, AccessGranted, TokensBurned
      -> access grant for the user
    - Bought, Sold -> trade accounting

    Granting is idempotent: a replayed event re-issues an equivalent grant.
    """

    def __init__(
        self,
        *,
        decoder: EventDecoder,
        access_granter: AccessGranter,
        trade_handler: TradeAccountingHandler | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._decoder = decoder
        self._access_granter = access_granter
        self._trade_handler = trade_handler or TradeAccountingHandler()
        self._clock = clock

    async def process_logs(
        self,
        logs: Iterable[RawLog],
        *,
        snapshot: Mapping[str, DatasetRecord],
    ) -> DispatchStats:
        stats = DispatchStats()
        for raw_log in logs:
            event = self._decoder.decode(raw_log.topic0, raw_log)
            if event is None:
                continue
            stats.decoded += 1
            grant = await self.dispatch(event, emitter=raw_log.address, snapshot=snapshot)
            if grant is not None:
                stats.grants += 1
        return stats

    async def dispatch(
        self,
        event: DomainEvent,
        *,
        emitter: str,
        snapshot: Mapping[str, DatasetRecord],
    ) -> AccessGrant | None:
        match event:
            case Transfer(from_address=sender, to_address=recipient, value=value):
                if recipient.lower() != ZERO_ADDRESS:
                    return None
                return await self.handle_redeem_or_burn(
                    token_address=emitter,
                    user_address=sender,
                    amount=value,
                    snapshot=snapshot,
                )
            case Redeemed(user=user, amount=amount):
                return await self.handle_redeem_or_burn(
                    token_address=emitter,
                    user_address=user,
                    amount=amount,
                    snapshot=snapshot,
                )
            case AccessGranted(token=token, buyer=buyer):
                return await self.handle_redeem_or_burn(
                    token_address=token,
                    user_address=buyer,
                    amount=0,
                    snapshot=snapshot,
                )
            case TokensBurned(token=token, burner=burner, amount_burned=amount_burned):
                return await self.handle_redeem_or_burn(
                    token_address=token,
                    user_address=burner,
                    amount=amount_burned,
                    snapshot=snapshot,
                )
            case Bought() | Sold():
                await self._trade_handler.handle(event, emitter=emitter)
                return None
            case _:
                assert_never(event)

    async def handle_redeem_or_burn(
        self,
        *,
        token_address: str,
        user_address: str,
        amount: int,
        snapshot: Mapping[str, DatasetRecord],
        symbol: str | None = None,
    ) -> AccessGrant | None:
        """
        Issue and persist a download grant for ``user_address``.

        The grant always carries the registered symbol; ``symbol`` is only a
        hint for the log line when the token is unknown.
        """
        token = token_address.lower()
        record = snapshot.get(token)
        if record is None:
            log_contained_error(
                logger,
                "dispatcher.unknown_token",
                token=token,
                user=user_address.lower(),
                symbol=symbol,
            )
            return None

        content_id = strip_uri_scheme(record.content_id)
        try:
            download_url = self._access_granter.sign_download_url(content_id, user_address)
            grant = AccessGrant(
                user=user_address.lower(),
                symbol=record.symbol,
                token_address=token,
                amount=int(amount),
                download_url=download_url,
                timestamp=self._clock(),
            )
            await self._access_granter.save_access(grant)
        except Exception as exc:
            log_contained_error(
                logger,
                "dispatcher.grant_failed",
                exc_info=True,
                token=token,
                user=user_address.lower(),
                symbol=record.symbol,
                err_type=type(exc).__name__,
                err=str(exc),
            )
            return None

        logger.info(
            "Granting access: user=%s symbol=%s token=%s amount=%s",
            grant.user,
            grant.symbol,
            grant.token_address,
            grant.amount,
        )
        return grant
