# -----------------------------------------------------------------------------
# Project: MemoWallet v0.1
# File:    publisher.py
# (c)      2025-2026 Wolfgang Lohmann
# License: MIT
# -----------------------------------------------------------------------------

# publisher.py
'''
Memo transaction: one input, a zero-value OP_RETURN data output and a change
output back to the sender. Fee is a flat amount from the configuration.

Stages: SELECT_UTXO -> BUILD -> SIGN -> BROADCAST -> RECORD. A failing stage
aborts the whole post; calling post_memo again starts over with a fresh
UTXO selection.
'''

import logging
from typing import Any, Dict

from bsv import Transaction

from memowallet import core_defs
from memowallet.blockchain_api import WhatsOnChainClient
from memowallet.config import Config
from memowallet.core_defs import ChainConnectivityError, InsufficientFundsError
from memowallet.crypto_provider import SIGHASH_ALL, BsvCryptoProvider
from memowallet.state_store import StateStore
from memowallet.utxo_selector import UtxoSelector

logger = logging.getLogger(__name__)


def compute_change(input_satoshis: int, fee_satoshis: int, address: str | None = None) -> int:
    """Change left after the flat fee. Refuses inputs that do not cover the fee."""
    if input_satoshis <= fee_satoshis:
        raise InsufficientFundsError(
            f"UTXO of {input_satoshis} satoshis does not cover the fee of {fee_satoshis} satoshis. "
            f"Fund this address with a larger amount.", address)
    return input_satoshis - fee_satoshis


class MemoPublisher:
    """Memo Transaction Builder."""

    def __init__(self, config: Config, store: StateStore, chain: WhatsOnChainClient,
                 crypto: BsvCryptoProvider, selector: UtxoSelector | None = None):
        self.config = config
        self.store = store
        self.chain = chain
        self.crypto = crypto
        self.selector = selector or UtxoSelector(chain, config.owner_mismatch_policy)

    async def build_memo_transaction(self, identity: Dict[str, str], utxo: Dict[str, Any],
                                     payload_text: str) -> Dict[str, Any]:
        """
        BUILD stage. Returns the unsigned transaction and its amounts.
        """
        address = identity["cashAddress"]
        input_sats = utxo["satoshis"]
        change_sats = compute_change(input_sats, self.config.fee_satoshis, address)

        source_tx_hex = await self.chain.fetch_raw_transaction_hex(utxo["txid"])
        source_sats = self.crypto.source_amount(source_tx_hex, utxo["vout"])
        if source_sats != input_sats:
            raise ChainConnectivityError(
                f"UTXO {utxo['txid']}:{utxo['vout']} reported with {input_sats} satoshis, "
                f"source transaction says {source_sats}")

        data_script = self.crypto.encode_data_script(self.config.data_marker, payload_text.encode('utf-8'))
        logger.info(f"OP_RETURN script (Hex): {data_script.hex()}")

        tx_input = self.crypto.make_input(source_tx_hex, utxo["txid"], utxo["vout"],
                                          identity["WIF"], self.config.network, SIGHASH_ALL)
        tx = self.crypto.build_transaction(
            [tx_input],
            [
                self.crypto.data_output(data_script),
                self.crypto.pay_output(address, change_sats),
            ],
        )

        logger.info(f"Input: {input_sats} satoshis, Fee: {self.config.fee_satoshis} satoshis, "
                    f"Change to {address}: {change_sats} satoshis")
        return {
            "tx": tx,
            "input_satoshis": input_sats,
            "fee_satoshis": self.config.fee_satoshis,
            "change_satoshis": change_sats,
        }

    def sign_memo_transaction(self, tx: Transaction, input_satoshis: int) -> Dict[str, Any]:
        """SIGN stage. Returns raw hex and locally computed txid."""
        self.crypto.sign_input(tx, 0, input_satoshis)
        raw_tx_hex = self.crypto.serialize_to_hex(tx)
        txid = self.crypto.transaction_id(tx)

        logger.info(f"TX SIZE: {len(raw_tx_hex) // 2} bytes")
        logger.info(f"TXID (local): {txid}")
        logger.debug(f"Raw Hex: {raw_tx_hex}")
        return {"raw_tx_hex": raw_tx_hex, "txid": txid}

    async def post_memo(self, identity: Dict[str, str], payload_text: str,
                        dry_run: bool = False) -> Dict[str, Any]:
        """
        Posts `payload_text` on chain and records {message, txid}.

        With dry_run the transaction is built and signed but neither broadcast
        nor recorded.
        """
        address = identity["cashAddress"]
        logger.info(f"--- Posting memo from {address} ---")
        stage = core_defs.STAGE_SELECT_UTXO
        try:
            utxo = await self.selector.select_utxo(address)

            stage = core_defs.STAGE_BUILD
            built = await self.build_memo_transaction(identity, utxo, payload_text)

            stage = core_defs.STAGE_SIGN
            signed = self.sign_memo_transaction(built["tx"], built["input_satoshis"])

            if dry_run:
                logger.info("--- DRY RUN --- Transaction will NOT be broadcast or recorded.")
                return {
                    "message": payload_text,
                    "txid": signed["txid"],
                    "raw_tx_hex": signed["raw_tx_hex"],
                    "dry_run": True,
                }

            stage = core_defs.STAGE_BROADCAST
            broadcast_txid = await self.chain.broadcast(signed["raw_tx_hex"])
            if broadcast_txid != signed["txid"]:
                raise ChainConnectivityError(
                    f"Broadcast returned txid {broadcast_txid}, locally computed txid is {signed['txid']}")

            stage = core_defs.STAGE_RECORD
            memo_record = {"message": payload_text, "txid": signed["txid"]}
            self.store.save(core_defs.KIND_MEMO, memo_record)

        except core_defs.WalletWorkflowError as e:
            logger.error(f"Memo post failed at stage {stage}: {e}")
            raise

        logger.info(f"MEMO POST TXID: {memo_record['txid']}")
        return memo_record
