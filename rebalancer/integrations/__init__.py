"""외부 서비스 어댑터 (1-Click API, NEAR RPC, 서명자 로딩)."""

from rebalancer.integrations.intents_balances import IntentsBalanceReader, format_balance
from rebalancer.integrations.one_click import OneClickClient
from rebalancer.integrations.signer import load_signer

__all__ = ["IntentsBalanceReader", "OneClickClient", "format_balance", "load_signer"]
