# -----------------------------------------------------------------------------
# Project: MemoWallet v0.1
# File:    wallet_manager.py
# (c)      2025-2026 Wolfgang Lohmann
# License: MIT
# -----------------------------------------------------------------------------

# wallet_manager.py
'''
Wallet identity: created once from a fresh BIP39 mnemonic, persisted, and
reused unchanged on every later run.
'''

import logging
from typing import Dict, List, Tuple

from memowallet import core_defs
from memowallet.config import Config
from memowallet.core_defs import CryptoProviderError, StorageError
from memowallet.crypto_provider import BsvCryptoProvider
from memowallet.state_store import StateStore

logger = logging.getLogger(__name__)


def check_identity_record(identity: Dict, crypto: BsvCryptoProvider, config: Config):
    """Raises StorageError if a loaded identity is incomplete or its key does not match its address."""
    missing = [k for k in core_defs.IDENTITY_KEYS if not identity.get(k)]
    if missing:
        raise StorageError(f"Identity record is missing fields: {', '.join(missing)}")

    key_address = crypto.address_from_wif(identity["WIF"], config.network)
    if key_address != identity["cashAddress"]:
        raise StorageError(
            f"Identity record is inconsistent: WIF belongs to {key_address}, record says {identity['cashAddress']}")


class IdentityManager:
    """Wallet Identity Manager."""

    def __init__(self, config: Config, store: StateStore, crypto: BsvCryptoProvider):
        self.config = config
        self.store = store
        self.crypto = crypto

    def ensure_identity(self) -> Dict[str, str]:
        """
        Returns the persisted identity, creating and persisting it first if
        this is the first run. An existing identity is never regenerated.
        """
        if self.store.exists(core_defs.KIND_IDENTITY):
            identity = self.store.load(core_defs.KIND_IDENTITY)
            check_identity_record(identity, self.crypto, self.config)
            logger.info(f"Using existing wallet identity: {identity['cashAddress']}")
            return identity

        logger.info("No wallet identity found. Creating a new HD wallet.")
        identity, report = self.create_identity()

        # Report first, identity last: the identity marker is what gates reuse.
        try:
            self.store.write_report(report)
            self.store.save(core_defs.KIND_IDENTITY, identity)
        except StorageError:
            logger.error("Wallet identity could NOT be saved. Do not fund or use this wallet.")
            raise

        logger.info(f"Wallet identity created: {identity['cashAddress']}")
        return identity

    def create_identity(self) -> Tuple[Dict[str, str], str]:
        """
        Derives a new identity. Returns (identity record, derivation report).
        Nothing is persisted here.
        """
        config = self.config
        lang = config.wordlist_lang

        mnemonic = self.crypto.generate_mnemonic(config.mnemonic_strength_bits, lang)
        seed = self.crypto.seed_from_mnemonic(mnemonic, lang)
        master_node = self.crypto.master_node_from_seed(seed, config.network)

        lines: List[str] = [
            "BIP44 $BSV Wallet",
            "",
            f"{config.mnemonic_strength_bits} bit {lang} BIP39 Mnemonic:",
            mnemonic,
            "",
            f"Network: {config.network_name}",
            f'BIP44 Account: "{config.account_path}"',
        ]
        logger.info(f'BIP44 Account: "{config.account_path}"')

        identity: Dict[str, str] = {}
        for i in range(config.address_count):
            path = config.derivation_path(i)
            child_node = self.crypto.derive_child(master_node, path)
            address = self.crypto.node_to_address(child_node, "cash", config.network)
            logger.info(f"{path}: {address}")
            lines.append(f"{path}: {address}")

            if i == 0:
                identity = {
                    "mnemonic": mnemonic,
                    "cashAddress": address,
                    "legacyAddress": self.crypto.node_to_address(child_node, "legacy", config.network),
                    "WIF": self.crypto.node_to_private_key_export(child_node),
                }

        if self.crypto.address_from_wif(identity["WIF"], config.network) != identity["cashAddress"]:
            raise CryptoProviderError("Derived private key does not match the derived address.")

        return identity, "\n".join(lines) + "\n"
