# -----------------------------------------------------------------------------
# Project: MemoWallet v0.1
# File:    core_defs.py
# (c)      2025-2026 Wolfgang Lohmann
# License: MIT
# -----------------------------------------------------------------------------

# core_defs.py
'''
Common definitions, constants and the error taxonomy shared between
the wallet, publisher, state store and reconciliation modules.
'''

# --- Script opcodes used for the data output ---
OP_FALSE = b'\x00'
OP_RETURN = b'\x6a'
OP_PUSHDATA1 = b'\x4c'
OP_PUSHDATA2 = b'\x4d'
OP_PUSHDATA4 = b'\x4e'

# --- Record kinds kept by the state store ---
KIND_IDENTITY = "identity"
KIND_MEMO = "memo"
KIND_INDEXER_SNAPSHOT = "indexer_snapshot"
RECORD_KINDS = (KIND_IDENTITY, KIND_MEMO, KIND_INDEXER_SNAPSHOT)

# --- Stage status values persisted next to each record ---
STATUS_NOT_STARTED = "not_started"
STATUS_COMPLETED = "completed"

# --- Publisher stages, in order ---
STAGE_SELECT_UTXO = "SELECT_UTXO"
STAGE_BUILD = "BUILD"
STAGE_SIGN = "SIGN"
STAGE_BROADCAST = "BROADCAST"
STAGE_RECORD = "RECORD"
PUBLISH_STAGES = (STAGE_SELECT_UTXO, STAGE_BUILD, STAGE_SIGN, STAGE_BROADCAST, STAGE_RECORD)

# --- Reconciliation outcomes ---
RECONCILE_MATCH = "match"
RECONCILE_MISMATCH = "mismatch"
RECONCILE_EMPTY = "empty"
RECONCILE_PENDING = "pending"

# Identity record keys (wallet file layout)
IDENTITY_KEYS = ("mnemonic", "cashAddress", "legacyAddress", "WIF")


# region --- Error taxonomy ---

class WalletWorkflowError(Exception):
    """Base class for every error the workflow reports to the runner."""


class CryptoProviderError(WalletWorkflowError):
    """Mnemonic, derivation, script or signing failure in the crypto library."""


class ChainConnectivityError(WalletWorkflowError):
    """Balance/UTXO lookup or broadcast failed, or returned inconsistent data."""


class ProviderTimeoutError(WalletWorkflowError, TimeoutError):
    """An external call did not answer within the configured timeout."""


class InsufficientFundsError(WalletWorkflowError):
    """The address cannot pay the fixed fee. Carries the address to fund."""

    def __init__(self, message: str, address: str | None = None):
        super().__init__(message)
        self.address = address


class NoFundsError(InsufficientFundsError):
    """No spendable outputs at all for the address."""


class StorageError(WalletWorkflowError):
    """Persisted state could not be read or written, or is inconsistent."""


class NotFoundError(StorageError):
    """The requested record has not been completed yet."""


class IndexerError(WalletWorkflowError):
    """The indexer could not be queried or returned an unreadable document."""


class IndexerMismatchError(WalletWorkflowError):
    """The indexer reports a different sender address than the wallet's own."""

    def __init__(self, wallet_address: str, indexer_address: str, txid: str):
        super().__init__(
            f"Indexer reports sender {indexer_address} for {txid}, wallet address is {wallet_address}")
        self.wallet_address = wallet_address
        self.indexer_address = indexer_address
        self.txid = txid

# endregion
