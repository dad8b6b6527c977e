# -----------------------------------------------------------------------------
# Project: MemoWallet v0.1
# File:    config.py
# (c)      2025-2026 Wolfgang Lohmann
# License: MIT
# -----------------------------------------------------------------------------

# memowallet/config.py
import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv
from bsv import Network

# Project root (memowallet/config.py -> two levels up)
BASE_DIR = Path(__file__).resolve().parent.parent

# Path to .env (flexible location)
ENV_PATH = BASE_DIR / "local_config" / ".env"

if ENV_PATH.exists():
    load_dotenv(ENV_PATH)

NETWORK_API_ENDPOINTS = {
    "main": "https://api.whatsonchain.com/v1/bsv/main",
    "test": "https://api.whatsonchain.com/v1/bsv/test"
}

INDEXER_ENDPOINTS = {
    "main": "https://bitdb.bitcoin.com/q/",
    "test": "https://tbitdb.bitcoin.com/q/"
}

EXPLORER_ENDPOINTS = {
    "main": "https://whatsonchain.com/address/",
    "test": "https://test.whatsonchain.com/address/"
}

VALID_MNEMONIC_STRENGTHS = (128, 160, 192, 224, 256)


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    return value if value not in (None, "") else default


class Config:
    """
    Central Configuration.

    One instance is built at startup and handed to every component. Keyword
    arguments win over environment variables (.env), which win over defaults.
    Nothing here is read from module globals after construction.
    """

    def __init__(
        self,
        network_name: Optional[str] = None,
        fee_satoshis: Optional[int] = None,
        data_marker: Optional[bytes] = None,
        state_dir: Optional[str] = None,
        wordlist_lang: Optional[str] = None,
        mnemonic_strength_bits: Optional[int] = None,
        coin_type: Optional[int] = None,
        address_count: Optional[int] = None,
        woc_api_base_url: Optional[str] = None,
        indexer_base_url: Optional[str] = None,
        explorer_base_url: Optional[str] = None,
        timeout_connect: Optional[float] = None,
        owner_mismatch_policy: Optional[str] = None,
    ):
        # --- Network ---
        self.network_name = (network_name or _env("NETWORK", "test")).lower()

        if self.network_name == "test":
            prefix = "TESTNET_"
            self.network = Network.TESTNET
        elif self.network_name == "main":
            prefix = "MAINNET_"
            self.network = Network.MAINNET
        else:
            raise ValueError(f"Invalid NETWORK '{self.network_name}' specified. Use 'test' or 'main'.")

        self.woc_api_base_url = (woc_api_base_url
                                 or _env(f"{prefix}WOC_API_BASE_URL")
                                 or NETWORK_API_ENDPOINTS[self.network_name]).rstrip("/")
        self.indexer_base_url = (indexer_base_url
                                 or _env(f"{prefix}INDEXER_BASE_URL")
                                 or INDEXER_ENDPOINTS[self.network_name])
        self.explorer_base_url = (explorer_base_url
                                  or _env(f"{prefix}EXPLORER_BASE_URL")
                                  or EXPLORER_ENDPOINTS[self.network_name])

        # --- Memo transaction policy ---
        self.fee_satoshis = int(fee_satoshis if fee_satoshis is not None else _env("FEE_SATOSHIS", "750"))
        if self.fee_satoshis <= 0:
            raise ValueError(f"FEE_SATOSHIS must be positive, got {self.fee_satoshis}.")

        if data_marker is None:
            marker_hex = _env("DATA_MARKER_HEX", "6d02")
            try:
                data_marker = bytes.fromhex(marker_hex)
            except ValueError:
                raise ValueError(f"DATA_MARKER_HEX '{marker_hex}' is not valid hex.")
        if len(data_marker) != 2:
            raise ValueError(f"Data marker must be exactly 2 bytes, got {len(data_marker)}.")
        self.data_marker = data_marker

        self.owner_mismatch_policy = (owner_mismatch_policy or _env("OWNER_MISMATCH_POLICY", "first")).lower()
        if self.owner_mismatch_policy not in ("first", "error"):
            raise ValueError(f"Invalid OWNER_MISMATCH_POLICY '{self.owner_mismatch_policy}'. Use 'first' or 'error'.")

        # --- HD wallet ---
        self.wordlist_lang = wordlist_lang or _env("WORDLIST_LANG", "en")
        self.mnemonic_strength_bits = int(mnemonic_strength_bits if mnemonic_strength_bits is not None else _env("MNEMONIC_STRENGTH", "128"))
        if self.mnemonic_strength_bits not in VALID_MNEMONIC_STRENGTHS:
            raise ValueError(f"MNEMONIC_STRENGTH must be one of {VALID_MNEMONIC_STRENGTHS}.")
        self.coin_type = int(coin_type if coin_type is not None else _env("COIN_TYPE", "236"))
        self.address_count = int(address_count if address_count is not None else _env("ADDRESS_COUNT", "10"))
        if self.address_count < 1:
            raise ValueError(f"ADDRESS_COUNT must be at least 1, got {self.address_count}.")

        # --- Timeouts ---
        self.timeout_connect = float(timeout_connect if timeout_connect is not None else _env("TIMEOUT_CONNECT", "10.0"))
        if self.timeout_connect <= 0:
            raise ValueError(f"TIMEOUT_CONNECT must be positive, got {self.timeout_connect}.")

        # --- File Paths ---
        self.state_dir = Path(state_dir or _env("STATE_DIR", str(BASE_DIR / "output")))
        os.makedirs(self.state_dir, exist_ok=True)

        self.log_file = str(self.state_dir / f"application_{self.network_name}.log")

    @property
    def account_path(self) -> str:
        return f"m/44'/{self.coin_type}'/0'"

    def derivation_path(self, index: int) -> str:
        """BIP44 receive path: account 0, external chain 0."""
        return f"{self.account_path}/0/{index}"

    def explorer_url(self, address: str) -> str:
        return f"{self.explorer_base_url}{address}"

    def __repr__(self) -> str:
        return (f"Config(network={self.network_name}, fee={self.fee_satoshis}, "
                f"marker={self.data_marker.hex()}, state_dir={self.state_dir})")
