# -----------------------------------------------------------------------------
# Project: MemoWallet v0.1
# File:    utxo_selector.py
# (c)      2025-2026 Wolfgang Lohmann
# License: MIT
# -----------------------------------------------------------------------------

# utxo_selector.py
'''
Single-UTXO selection: the largest output wins. No coin accumulation.
'''

import logging
from typing import Any, Dict, List

from memowallet.blockchain_api import WhatsOnChainClient
from memowallet.core_defs import ChainConnectivityError, NoFundsError

logger = logging.getLogger(__name__)


def pick_largest(utxos: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Largest amount; on ties the earlier UTXO is kept."""
    best = utxos[0]
    for utxo in utxos[1:]:
        if utxo["satoshis"] > best["satoshis"]:
            best = utxo
    return best


class UtxoSelector:
    """
    Picks the UTXO to spend for an address.

    owner_mismatch_policy decides what happens when the provider reports a
    different owning address than the one queried:
      "first" - spend the first returned UTXO (long-standing behaviour)
      "error" - refuse with ChainConnectivityError
    """

    def __init__(self, chain: WhatsOnChainClient, owner_mismatch_policy: str = "first"):
        self.chain = chain
        self.owner_mismatch_policy = owner_mismatch_policy

    async def select_utxo(self, address: str) -> Dict[str, Any]:
        details = await self.chain.get_utxos(address)
        utxos = [u for u in details.get("utxos", []) if u.get("satoshis", 0) > 0]

        if not utxos:
            logger.error(f"No spendable UTXOs for {address}.")
            raise NoFundsError(f"No spendable UTXOs for {address}. Fund this address and run again.", address)

        owner = details.get("address")
        if owner == address:
            best_utxo = pick_largest(utxos)
        elif self.owner_mismatch_policy == "error":
            logger.error(f"UTXO owner mismatch: queried {address}, provider reports {owner}.")
            raise ChainConnectivityError(f"UTXO set for {address} is reported as owned by {owner}")
        else:
            logger.warning(f"UTXO owner mismatch: queried {address}, provider reports {owner}. "
                           f"Falling back to the first returned UTXO.")
            best_utxo = utxos[0]

        logger.info(f"Selected UTXO {best_utxo['txid']}:{best_utxo['vout']} ({best_utxo['satoshis']} satoshis) "
                    f"out of {len(utxos)}")
        return best_utxo
