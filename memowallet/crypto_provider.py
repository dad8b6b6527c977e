# -----------------------------------------------------------------------------
# Project: MemoWallet v0.1
# File:    crypto_provider.py
# (c)      2025-2026 Wolfgang Lohmann
# License: MIT
# -----------------------------------------------------------------------------

# crypto_provider.py
'''
Thin adapter over bsv-sdk. Every key, address, script and transaction
operation the workflow needs goes through here, so the rest of the code
never touches the library directly and every library failure surfaces
as a CryptoProviderError.
'''

import logging
import secrets
from typing import List, Optional, cast

from bsv import (
    PrivateKey,
    P2PKH,
    Network,
    Script,
    Transaction,
    TransactionInput,
    TransactionOutput,
    UnlockingScriptTemplate,
)
from bsv.constants import SIGHASH
from bsv.hd import Xprv, ckd, master_xprv_from_seed, mnemonic_from_entropy, seed_from_mnemonic

from memowallet import core_defs
from memowallet.core_defs import CryptoProviderError

logger = logging.getLogger(__name__)

ADDRESS_FORMATS = ("cash", "legacy")

# SIGHASH_ALL with the fork id bit, the only mode BSV nodes accept
SIGHASH_ALL = SIGHASH.ALL_FORKID


def push_data(data: bytes) -> bytes:
    """Minimal push encoding for a single data element."""
    length = len(data)
    if length < 76:
        prefix = bytes([length])
    elif length <= 255:
        prefix = core_defs.OP_PUSHDATA1 + length.to_bytes(1, 'little')
    elif length <= 65535:
        prefix = core_defs.OP_PUSHDATA2 + length.to_bytes(2, 'little')
    elif length <= 4294967295:
        prefix = core_defs.OP_PUSHDATA4 + length.to_bytes(4, 'little')
    else:
        raise CryptoProviderError("Data push too large.")
    return prefix + data


class BsvCryptoProvider:
    """Wallet Crypto Provider backed by bsv-sdk."""

    # region --- HD wallet ---

    def generate_mnemonic(self, strength_bits: int = 128, lang: str = "en") -> str:
        if strength_bits % 32 != 0:
            raise CryptoProviderError(f"Invalid entropy strength {strength_bits} bits.")
        try:
            return mnemonic_from_entropy(secrets.token_bytes(strength_bits // 8), lang)
        except Exception as e:
            raise CryptoProviderError(f"Mnemonic generation failed: {e}") from e

    def seed_from_mnemonic(self, phrase: str, lang: str = "en") -> bytes:
        try:
            return seed_from_mnemonic(phrase, lang)
        except Exception as e:
            raise CryptoProviderError(f"Seed derivation failed: {e}") from e

    def master_node_from_seed(self, seed: bytes, network: Network) -> Xprv:
        try:
            return master_xprv_from_seed(seed, network)
        except Exception as e:
            raise CryptoProviderError(f"Master key derivation failed: {e}") from e

    def derive_child(self, node: Xprv, path: str) -> Xprv:
        try:
            return cast(Xprv, ckd(node, path))
        except Exception as e:
            raise CryptoProviderError(f"Child derivation failed for path {path}: {e}") from e

    def node_to_address(self, node: Xprv, fmt: str = "cash", network: Optional[Network] = None) -> str:
        """
        P2PKH address of an HD node.

        BSV has a single (base58check) address encoding, so both formats
        resolve to the same string. The format argument is kept so the
        identity record can carry both fields.
        """
        if fmt not in ADDRESS_FORMATS:
            raise CryptoProviderError(f"Unknown address format '{fmt}'.")
        try:
            return str(node.private_key().address(network=network or node.network))
        except Exception as e:
            raise CryptoProviderError(f"Address encoding failed: {e}") from e

    def node_to_private_key_export(self, node: Xprv) -> str:
        try:
            return node.private_key().wif()
        except Exception as e:
            raise CryptoProviderError(f"WIF export failed: {e}") from e

    def address_from_wif(self, wif: str, network: Network) -> str:
        try:
            return str(PrivateKey(wif, network=network).address(network=network))
        except Exception as e:
            raise CryptoProviderError(f"Could not read private key: {e}") from e

    # endregion

    # region --- Transactions ---

    def encode_data_script(self, marker: bytes, payload: bytes) -> Script:
        """OP_FALSE OP_RETURN <marker> <payload>: provably unspendable, carries the memo."""
        script_bytes = core_defs.OP_FALSE + core_defs.OP_RETURN + push_data(marker) + push_data(payload)
        return Script(script_bytes.hex())

    def make_input(self, source_tx_hex: str, txid: str, vout: int, wif: str, network: Network,
                   sighash: SIGHASH = SIGHASH_ALL) -> TransactionInput:
        try:
            source_tx = Transaction.from_hex(source_tx_hex)
            if source_tx is None:
                raise ValueError("source transaction hex could not be parsed")
            priv_key = PrivateKey(wif, network=network)
            tx_input = TransactionInput(
                source_transaction=source_tx,
                source_txid=txid,
                source_output_index=vout,
                unlocking_script_template=cast(UnlockingScriptTemplate, P2PKH().unlock(priv_key)),
            )
            tx_input.sighash = sighash
            return tx_input
        except Exception as e:
            raise CryptoProviderError(f"Could not prepare input {txid}:{vout}: {e}") from e

    def source_amount(self, source_tx_hex: str, vout: int) -> int:
        """Satoshis of output `vout` in a raw transaction."""
        try:
            source_tx = Transaction.from_hex(source_tx_hex)
            return source_tx.outputs[vout].satoshis
        except Exception as e:
            raise CryptoProviderError(f"Could not read output {vout} of source transaction: {e}") from e

    def data_output(self, script: Script) -> TransactionOutput:
        return TransactionOutput(locking_script=script, satoshis=0)

    def pay_output(self, address: str, satoshis: int) -> TransactionOutput:
        try:
            return TransactionOutput(locking_script=P2PKH().lock(address), satoshis=satoshis)
        except Exception as e:
            raise CryptoProviderError(f"Could not build output for {address}: {e}") from e

    def build_transaction(self, inputs: List[TransactionInput], outputs: List[TransactionOutput]) -> Transaction:
        try:
            return Transaction(inputs, outputs)
        except Exception as e:
            raise CryptoProviderError(f"Transaction assembly failed: {e}") from e

    def sign_input(self, tx: Transaction, index: int, input_amount: int) -> Transaction:
        """
        Signs the transaction's inputs and checks that input `index`
        commits to exactly `input_amount` satoshis.
        """
        tx_input = tx.inputs[index]
        committed = tx_input.source_transaction.outputs[tx_input.source_output_index].satoshis
        if committed != input_amount:
            raise CryptoProviderError(
                f"Input {index} commits to {committed} satoshis, expected {input_amount}.")
        try:
            tx.sign()
        except Exception as e:
            raise CryptoProviderError(f"Signing failed: {e}") from e
        if tx_input.unlocking_script is None:
            raise CryptoProviderError(f"Input {index} was not signed.")
        return tx

    def serialize_to_hex(self, tx: Transaction) -> str:
        return tx.hex()

    def transaction_id(self, tx: Transaction) -> str:
        return tx.txid()

    # endregion
