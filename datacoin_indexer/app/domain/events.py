"""
Closed set of on-chain events the indexer understands.

Token contracts (DataCoin ERC-20):
  Transfer(address indexed from, address indexed to, uint256 value)
  Redeemed(address indexed user, uint256 amount, string indexed ticker)

Marketplace (bonding curve) contracts:
  AccessGranted(address indexed token, address indexed buyer)
  Bought(address indexed token, address indexed buyer, uint256 usdcIn, uint256 fee, uint256 tokensOut)
  Sold(address indexed token, address indexed seller, uint256 tokenIn, uint256 usdcOut)
  TokensBurned(address indexed token, address indexed burner, uint256 amountBurned, uint256 newPrice)

Indexed ``string`` arguments only reach us as keccak hashes, so
``Redeemed.ticker`` holds the 32-byte topic, not the ticker text.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class Transfer:
    from_address: str
    to_address: str
    value: int


@dataclass(frozen=True)
class Redeemed:
    user: str
    amount: int
    ticker: bytes


@dataclass(frozen=True)
class AccessGranted:
    token: str
    buyer: str


@dataclass(frozen=True)
class Bought:
    token: str
    buyer: str
    usdc_in: int
    fee: int
    tokens_out: int


@dataclass(frozen=True)
class Sold:
    token: str
    seller: str
    tokens_in: int
    usdc_out: int


@dataclass(frozen=True)
class TokensBurned:
    token: str
    burner: str
    amount_burned: int
    new_price: int


DomainEvent = Union[Transfer, Redeemed, AccessGranted, Bought, Sold, TokensBurned]
