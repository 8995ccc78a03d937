"""
One-time token preparation for an account on test deployments.

Mints mock base / quote tokens when the balance is below the minimum and
approves the balance manager for MAX_UINT256 when the allowance is low.
Every write goes through the account's ExecutionQueue via ExchangeService.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import List

from baristabot.core.errors import WorkerInitError
from baristabot.infra.abis import MAX_UINT256
from baristabot.strategy.ladder import scale_amount

log = logging.getLogger("baristabot")


@dataclass
class TokenSetupConfig:
    # human units, scaled by each token's decimals
    min_balance: str = "100000000000"
    mint_amount: str = "100000000000"
    min_allowance: str = "1000"


@dataclass
class TokenSetupResult:
    minted: List[str] = field(default_factory=list)
    approved: List[str] = field(default_factory=list)


class TokenSetup:
    def __init__(self, exchange, balance_manager: str | None, config: TokenSetupConfig | None = None) -> None:
        self.exchange = exchange
        self.balance_manager = balance_manager
        self.config = config or TokenSetupConfig()

    async def run(self) -> TokenSetupResult:
        """Raises WorkerInitError on any failure."""
        if not self.balance_manager:
            raise WorkerInitError("token setup needs BALANCE_MANAGER_ADDRESS")
        pool = self.exchange.pool
        result = TokenSetupResult()
        tokens = (
            ("base", pool.key.base, pool.base_decimals),
            ("quote", pool.key.quote, pool.quote_decimals),
        )
        try:
            for name, token, decimals in tokens:
                balance = await self.exchange.token_balance(token)
                if balance < scale_amount(self.config.min_balance, decimals):
                    await self.exchange.mint(token, scale_amount(self.config.mint_amount, decimals))
                    result.minted.append(name)
                    log.info(json.dumps({"event": "token_minted", "account": self.exchange.account, "token": name, "balance": balance}))

            for name, token, decimals in tokens:
                allowance = await self.exchange.token_allowance(token, self.balance_manager)
                if allowance < scale_amount(self.config.min_allowance, 18):
                    await self.exchange.approve(token, self.balance_manager, MAX_UINT256)
                    result.approved.append(name)
                    log.info(json.dumps({"event": "token_approved", "account": self.exchange.account, "token": name}))
        except Exception as exc:
            raise WorkerInitError(f"token setup failed for {self.exchange.account}: {exc}") from exc

        log.info(json.dumps({
            "event": "token_setup_complete",
            "account": self.exchange.account,
            "minted": result.minted,
            "approved": result.approved,
        }))
        return result
