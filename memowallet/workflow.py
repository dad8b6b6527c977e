# -----------------------------------------------------------------------------
# Project: MemoWallet v0.1
# File:    workflow.py
# (c)      2025-2026 Wolfgang Lohmann
# License: MIT
# -----------------------------------------------------------------------------

# workflow.py
'''
Stage-gated run: identity (once) -> balance check -> memo post (once) ->
indexer reconciliation. Safe to re-run against the same state directory;
completed stages are skipped.
'''

import logging
from typing import Any, Dict

from memowallet import core_defs
from memowallet.blockchain_api import WhatsOnChainClient
from memowallet.config import Config
from memowallet.core_defs import InsufficientFundsError
from memowallet.crypto_provider import BsvCryptoProvider
from memowallet.indexer import IndexerClient, Reconciler
from memowallet.publisher import MemoPublisher
from memowallet.state_store import StateStore
from memowallet.utxo_selector import UtxoSelector
from memowallet.wallet_manager import IdentityManager

logger = logging.getLogger(__name__)


class Workflow:
    """Wires the components together around one Config and one StateStore."""

    def __init__(self, config: Config,
                 store: StateStore | None = None,
                 crypto: BsvCryptoProvider | None = None,
                 chain: WhatsOnChainClient | None = None,
                 indexer_client: IndexerClient | None = None):
        self.config = config
        self.store = store or StateStore(config.state_dir, config.network_name)
        self.crypto = crypto or BsvCryptoProvider()
        self.chain = chain or WhatsOnChainClient(config)
        self.identity_manager = IdentityManager(config, self.store, self.crypto)
        self.publisher = MemoPublisher(config, self.store, self.chain, self.crypto,
                                       UtxoSelector(self.chain, config.owner_mismatch_policy))
        self.reconciler = Reconciler(config, self.store, indexer_client)

    async def check_balance(self, address: str) -> Dict[str, int]:
        balance = await self.chain.get_balance(address)
        total = balance["confirmed"] + balance["unconfirmed"]
        required = self.config.fee_satoshis + 1
        if total < required:
            logger.warning(f"Balance of {total} satoshis is below the required {required} satoshis.")
            logger.warning("Go to a testnet faucet to get some coins." if self.config.network_name == "test"
                           else "Send some coins to the wallet.")
            logger.warning(f"Send at least {required} satoshis to address {address}")
            raise InsufficientFundsError(
                f"Balance {total} < {required} satoshis. Fund address {address} and run again.", address)
        return balance

    async def run(self, message: str, dry_run: bool = False, reconcile: bool = True,
                  strict: bool = False) -> Dict[str, Any]:
        """
        Runs every stage that is not yet completed.

        Returns a summary: address, balance (None when not checked), memo,
        posted (True only if this run broadcast), reconciliation (None when skipped).
        """
        summary: Dict[str, Any] = {
            "address": None,
            "balance": None,
            "memo": None,
            "posted": False,
            "reconciliation": None,
        }

        logger.info("--- Stage: wallet identity ---")
        identity = self.identity_manager.ensure_identity()
        address = identity["cashAddress"]
        summary["address"] = address

        if not self.store.exists(core_defs.KIND_MEMO):
            logger.info("--- Stage: balance check ---")
            summary["balance"] = await self.check_balance(address)

            logger.info("--- Stage: memo post ---")
            memo = await self.publisher.post_memo(identity, message, dry_run=dry_run)
            summary["memo"] = memo
            if dry_run:
                return summary
            summary["posted"] = True
        else:
            memo = self.store.load(core_defs.KIND_MEMO)
            summary["memo"] = memo
            logger.info(f"Memo already posted, skipping broadcast. MEMO POST TXID: {memo['txid']}")

        if reconcile:
            logger.info("--- Stage: indexer reconciliation ---")
            summary["reconciliation"] = await self.reconciler.reconcile(address, memo["txid"], strict=strict)

        return summary


async def run_workflow(config: Config, message: str, **kwargs) -> Dict[str, Any]:
    """Convenience wrapper with the default (network-backed) providers."""
    return await Workflow(config).run(message, **kwargs)
