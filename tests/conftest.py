"""
Shared fixtures: a temp-dir Config, an offline chain provider backed by real
bsv transactions, and a canned indexer.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List

import pytest
from bsv import P2PKH, Network, PrivateKey, Transaction, TransactionOutput

from memowallet.config import Config
from memowallet.crypto_provider import BsvCryptoProvider
from memowallet.state_store import StateStore


def make_source_tx(address: str, amounts: List[int]) -> Transaction:
    """A funding transaction paying `amounts` to `address`, one output each."""
    tx = Transaction()
    for amount in amounts:
        tx.add_output(TransactionOutput(locking_script=P2PKH().lock(address), satoshis=amount))
    return tx


class FakeChain:
    """
    Offline Chain Connectivity Provider.

    UTXOs are created on first use for whatever address is asked for, backed
    by a real funding transaction so the memo input can be signed.
    """

    def __init__(self, amounts: List[int] | None = None, owner: str | None = None,
                 balance: Dict[str, int] | None = None):
        self.amounts = amounts if amounts is not None else [10_000]
        self.owner = owner
        self.balance = balance
        self.source_txs: Dict[str, str] = {}
        self.utxos: List[Dict[str, Any]] | None = None
        self.broadcasts: List[str] = []
        self.broadcast_txid_override: str | None = None
        self.calls: List[str] = []

    def _fund(self, address: str):
        if self.utxos is not None:
            return
        self.utxos = []
        if not self.amounts:
            return
        source_tx = make_source_tx(address, self.amounts)
        txid = source_tx.txid()
        self.source_txs[txid] = source_tx.hex()
        for vout, amount in enumerate(self.amounts):
            self.utxos.append({"txid": txid, "vout": vout, "satoshis": amount, "height": -1})

    async def get_balance(self, address: str) -> Dict[str, int]:
        self.calls.append("get_balance")
        if self.balance is not None:
            return self.balance
        return {"confirmed": sum(self.amounts), "unconfirmed": 0}

    async def get_utxos(self, address: str) -> Dict[str, Any]:
        self.calls.append("get_utxos")
        self._fund(address)
        return {"address": self.owner if self.owner is not None else address, "utxos": list(self.utxos)}

    async def fetch_raw_transaction_hex(self, txid: str) -> str:
        self.calls.append("fetch_raw_transaction_hex")
        return self.source_txs[txid]

    async def broadcast(self, raw_hex: str) -> str:
        self.calls.append("broadcast")
        self.broadcasts.append(raw_hex)
        if self.broadcast_txid_override is not None:
            return self.broadcast_txid_override
        return Transaction.from_hex(raw_hex).txid()


class FakeIndexerClient:
    """Returns a canned body; `addr=None` means "echo nothing confirmed"."""

    def __init__(self, body: str | None = None):
        self.body = body
        self.urls: List[str] = []

    async def fetch(self, url: str) -> str:
        self.urls.append(url)
        return self.body if self.body is not None else json.dumps({"u": [], "c": []})


def indexer_body(address: str | None, txid: str, message: str = "hello", unconfirmed: int = 0) -> str:
    confirmed = [] if address is None else [{"addr": address, "msg": message, "txid": txid}]
    return json.dumps({"u": [{"addr": address, "msg": message, "txid": txid}] * unconfirmed, "c": confirmed})


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(network_name="test", fee_satoshis=750, data_marker=bytes.fromhex("6d02"),
                  state_dir=str(tmp_path / "state"), timeout_connect=2.0)


@pytest.fixture
def store(config: Config) -> StateStore:
    return StateStore(config.state_dir, config.network_name)


@pytest.fixture
def crypto() -> BsvCryptoProvider:
    return BsvCryptoProvider()


@pytest.fixture
def identity() -> Dict[str, str]:
    """A testnet identity made from a single random key (no HD derivation)."""
    key = PrivateKey(network=Network.TESTNET)
    address = str(key.address(network=Network.TESTNET))
    return {
        "mnemonic": "abandon abandon abandon abandon abandon abandon abandon abandon abandon abandon abandon about",
        "cashAddress": address,
        "legacyAddress": address,
        "WIF": key.wif(),
    }
