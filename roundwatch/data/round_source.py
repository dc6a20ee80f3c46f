from __future__ import annotations

import logging
from typing import Any, Sequence

from web3 import Web3
from web3.middleware import ExtraDataToPOAMiddleware

from roundwatch.domain.models import RoundData

LOG = logging.getLogger("roundwatch.source")

PREDICTION_ABI = [
    {
        "inputs": [],
        "name": "currentEpoch",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "treasuryFee",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "", "type": "uint256"}],
        "name": "rounds",
        "outputs": [
            {"name": "epoch", "type": "uint256"},
            {"name": "startTimestamp", "type": "uint256"},
            {"name": "lockTimestamp", "type": "uint256"},
            {"name": "closeTimestamp", "type": "uint256"},
            {"name": "lockPrice", "type": "int256"},
            {"name": "closePrice", "type": "int256"},
            {"name": "lockOracleId", "type": "uint256"},
            {"name": "closeOracleId", "type": "uint256"},
            {"name": "totalAmount", "type": "uint256"},
            {"name": "bullAmount", "type": "uint256"},
            {"name": "bearAmount", "type": "uint256"},
            {"name": "rewardBaseCalAmount", "type": "uint256"},
            {"name": "rewardAmount", "type": "uint256"},
            {"name": "oracleCalled", "type": "bool"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
]


class RoundSourceError(RuntimeError):
    """Raised when no configured RPC endpoint could answer a contract read."""


def parse_round(raw: Sequence[Any]) -> RoundData:
    """Map the positional ``rounds(epoch)`` tuple onto :class:`RoundData`."""
    if len(raw) < 14:
        raise ValueError(f"rounds() returned {len(raw)} fields, expected 14")
    return RoundData(
        epoch=int(raw[0]),
        start_timestamp=int(raw[1]),
        lock_timestamp=int(raw[2]),
        close_timestamp=int(raw[3]),
        lock_price=int(raw[4]),
        close_price=int(raw[5]),
        lock_oracle_id=int(raw[6]),
        close_oracle_id=int(raw[7]),
        total_amount=int(raw[8]),
        bull_amount=int(raw[9]),
        bear_amount=int(raw[10]),
        reward_base_cal_amount=int(raw[11]),
        reward_amount=int(raw[12]),
        oracle_called=bool(raw[13]),
    )


class Web3RoundSource:
    """Read-only view of the prediction contract over a rotating list of RPCs."""

    def __init__(self, rpc_urls: Sequence[str], contract_address: str, *, timeout: float = 30.0):
        if not rpc_urls:
            raise ValueError("rpc_urls must not be empty")
        self.rpc_urls = list(rpc_urls)
        self.address = Web3.to_checksum_address(contract_address)
        self.timeout = timeout
        self._rpc_index = 0
        self._contract = None

    @property
    def rpc_url(self) -> str:
        return self.rpc_urls[self._rpc_index]

    def _build_w3(self, rpc: str) -> Web3:
        _w3 = Web3(Web3.HTTPProvider(rpc, request_kwargs={"timeout": self.timeout}))
        _w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        return _w3

    def _get_contract(self):
        if self._contract is None:
            w3 = self._build_w3(self.rpc_url)
            self._contract = w3.eth.contract(address=self.address, abi=PREDICTION_ABI)
        return self._contract

    def _rotate(self) -> None:
        self._rpc_index = (self._rpc_index + 1) % len(self.rpc_urls)
        self._contract = None
        LOG.warning("switching rpc to %s", self.rpc_url)

    def _call(self, fn_name: str, *args: Any) -> Any:
        last_err: Exception | None = None
        for _ in range(len(self.rpc_urls)):
            try:
                fn = getattr(self._get_contract().functions, fn_name)
                return fn(*args).call()
            except Exception as exc:
                last_err = exc
                LOG.warning("rpc call failed fn=%s rpc=%s err=%s", fn_name, self.rpc_url, exc)
                self._rotate()
        raise RoundSourceError(f"{fn_name}{args!r} failed on every rpc: {last_err}") from last_err

    def get_current_epoch(self) -> int:
        return int(self._call("currentEpoch"))

    def get_round(self, epoch: int) -> RoundData:
        return parse_round(self._call("rounds", int(epoch)))

    def get_treasury_fee(self) -> int:
        return int(self._call("treasuryFee"))
