"""
Minimal contract ABIs for the exchange, ERC-20 tokens and price aggregators.

Deployments that ship their own router / pool manager ABI can point
ROUTER_ABI_PATH / POOL_MANAGER_ABI_PATH at a JSON file; load_abi accepts
either a bare ABI list or a {"abi": [...]} artifact.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Optional

MAX_UINT256 = 2**256 - 1

_POOL_KEY = {
    "name": "key",
    "type": "tuple",
    "components": [
        {"name": "baseCurrency", "type": "address"},
        {"name": "quoteCurrency", "type": "address"},
    ],
}

POOL_MANAGER_ABI: List[dict] = [
    {
        "type": "function",
        "name": "getPool",
        "stateMutability": "view",
        "inputs": [_POOL_KEY],
        "outputs": [
            {
                "name": "",
                "type": "tuple",
                "components": [
                    {"name": "orderBook", "type": "address"},
                    {"name": "baseCurrency", "type": "address"},
                    {"name": "quoteCurrency", "type": "address"},
                ],
            }
        ],
    },
]

ROUTER_ABI: List[dict] = [
    {
        "type": "function",
        "name": "getBestPrice",
        "stateMutability": "view",
        "inputs": [_POOL_KEY, {"name": "side", "type": "uint8"}],
        "outputs": [
            {
                "name": "",
                "type": "tuple",
                "components": [
                    {"name": "price", "type": "uint128"},
                    {"name": "volume", "type": "uint256"},
                ],
            }
        ],
    },
    {
        "type": "function",
        "name": "getUserActiveOrders",
        "stateMutability": "view",
        "inputs": [_POOL_KEY, {"name": "user", "type": "address"}],
        "outputs": [
            {
                "name": "",
                "type": "tuple[]",
                "components": [
                    {"name": "side", "type": "uint8"},
                    {"name": "id", "type": "uint48"},
                    {"name": "price", "type": "uint128"},
                    {"name": "quantity", "type": "uint128"},
                ],
            }
        ],
    },
    {
        "type": "function",
        "name": "placeOrderWithDeposit",
        "stateMutability": "nonpayable",
        "inputs": [
            _POOL_KEY,
            {"name": "price", "type": "uint128"},
            {"name": "quantity", "type": "uint128"},
            {"name": "side", "type": "uint8"},
        ],
        "outputs": [{"name": "orderId", "type": "uint48"}],
    },
    {
        "type": "function",
        "name": "placeMarketOrderWithDeposit",
        "stateMutability": "nonpayable",
        "inputs": [
            _POOL_KEY,
            {"name": "quantity", "type": "uint128"},
            {"name": "side", "type": "uint8"},
        ],
        "outputs": [{"name": "orderId", "type": "uint48"}],
    },
    {
        "type": "function",
        "name": "cancelOrder",
        "stateMutability": "nonpayable",
        "inputs": [
            _POOL_KEY,
            {"name": "side", "type": "uint8"},
            {"name": "price", "type": "uint128"},
            {"name": "orderId", "type": "uint48"},
        ],
        "outputs": [],
    },
]

ERC20_ABI: List[dict] = [
    {"type": "function", "name": "decimals", "stateMutability": "view", "inputs": [],
     "outputs": [{"name": "", "type": "uint8"}]},
    {"type": "function", "name": "balanceOf", "stateMutability": "view",
     "inputs": [{"name": "account", "type": "address"}],
     "outputs": [{"name": "", "type": "uint256"}]},
    {"type": "function", "name": "allowance", "stateMutability": "view",
     "inputs": [{"name": "owner", "type": "address"}, {"name": "spender", "type": "address"}],
     "outputs": [{"name": "", "type": "uint256"}]},
    {"type": "function", "name": "approve", "stateMutability": "nonpayable",
     "inputs": [{"name": "spender", "type": "address"}, {"name": "amount", "type": "uint256"}],
     "outputs": [{"name": "", "type": "bool"}]},
]

# test deployments use mintable mock tokens
MOCK_TOKEN_ABI: List[dict] = ERC20_ABI + [
    {"type": "function", "name": "mint", "stateMutability": "nonpayable",
     "inputs": [{"name": "to", "type": "address"}, {"name": "amount", "type": "uint256"}],
     "outputs": []},
]

AGGREGATOR_ABI: List[dict] = [
    {
        "type": "function",
        "name": "latestRoundData",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [
            {"name": "roundId", "type": "uint80"},
            {"name": "answer", "type": "int256"},
            {"name": "startedAt", "type": "uint256"},
            {"name": "updatedAt", "type": "uint256"},
            {"name": "answeredInRound", "type": "uint80"},
        ],
    },
    {"type": "function", "name": "decimals", "stateMutability": "view", "inputs": [],
     "outputs": [{"name": "", "type": "uint8"}]},
]


def load_abi(path: Optional[str], default: List[dict]) -> List[Any]:
    if not path:
        return default
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("abi", [])
    if not isinstance(data, list) or not data:
        raise ValueError(f"no ABI entries found in {path}")
    return data
