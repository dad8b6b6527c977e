# -----------------------------------------------------------------------------
# Project: MemoWallet v0.1
# File:    blockchain_api.py
# (c)      2025-2026 Wolfgang Lohmann
# License: MIT
# -----------------------------------------------------------------------------

# blockchain_api.py
'''
All functions related to the blockchain inquiry (WhatsOnChain).
Balance, UTXO listing, source transaction lookup and broadcast.
Uses aiohttp with an explicit total timeout on every request.
'''

from typing import Dict, Any, Optional, List
import logging
import time
from collections import deque
import asyncio

import aiohttp

from memowallet.config import Config
from memowallet.core_defs import ChainConnectivityError, ProviderTimeoutError

MEASUREMENT_WINDOW_SECONDS = 60  # time for sliding average

logger = logging.getLogger(__name__)


def _normalize_utxo(u: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Normalises UTXO-Dicts to Keys: txid, vout, satoshis, height(optional)
    Accepts { txid, vout, satoshis } and { tx_hash, tx_pos, value }.
    """
    txid = u.get("txid") or u.get("tx_hash")
    vout = u.get("vout")
    if vout is None:
        vout = u.get("tx_pos")
    sats = u.get("satoshis")
    if sats is None:
        sats = u.get("value")

    if txid is None or vout is None or sats is None:
        return None

    return {
        "txid": str(txid),
        "vout": int(vout),
        "satoshis": int(sats),
        "height": int(u.get("height", -1)) if u.get("height") is not None else -1,
    }


class WhatsOnChainClient:
    """Chain Connectivity Provider backed by the WhatsOnChain REST API."""

    def __init__(self, config: Config):
        self.base_url = config.woc_api_base_url
        self.timeout_seconds = config.timeout_connect
        self.api_call_timestamps: deque = deque()

    # --- Helper to count and compute rate
    def _record_api_call(self):
        """Records the current timestamp and logs the average call rate over the window."""
        now = time.time()
        self.api_call_timestamps.append(now)

        while self.api_call_timestamps and self.api_call_timestamps[0] < now - MEASUREMENT_WINDOW_SECONDS:
            self.api_call_timestamps.popleft()

        count_in_window = len(self.api_call_timestamps)
        rate_per_minute = count_in_window / MEASUREMENT_WINDOW_SECONDS * 60

        logger.debug(f"[API Rate] Calls in last {MEASUREMENT_WINDOW_SECONDS}s: {count_in_window}. Avg Rate: {rate_per_minute:.2f} calls/min.")

    async def _error_message(self, response: aiohttp.ClientResponse) -> str:
        try:
            error_data = await response.json(content_type=None)
            if isinstance(error_data, dict):
                return str(error_data.get('message', error_data))
            return str(error_data)
        except (aiohttp.ContentTypeError, ValueError):
            return await response.text()

    async def _request(self, method: str, path: str, context: str,
                       json_body: Optional[Dict[str, Any]] = None, as_json: bool = True) -> Any:
        """
        Central function for an API call.
        Raises ProviderTimeoutError on timeout and ChainConnectivityError on
        any other failure (connection, non-200, unreadable body).
        """
        self._record_api_call()
        url = f"{self.base_url}{path}"
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)

        logger.debug(f"API Request ({context}): {method} {url}")
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(method, url, json=json_body) as response:
                    if response.status != 200:
                        error_message = await self._error_message(response)
                        logger.error(f"Request failed for {context}: Status {response.status}, Error: {error_message}")
                        if "missing inputs" in error_message.lower():
                            logger.warning("Hint: 'Missing inputs' means the selected UTXO is already spent or unknown to the node.")
                        raise ChainConnectivityError(f"{context} failed with HTTP {response.status}: {error_message}")
                    if as_json:
                        return await response.json(content_type=None)
                    return await response.text()
        except asyncio.TimeoutError as e:
            logger.error(f"Timeout Error: {context} to {url} timed out after {self.timeout_seconds} seconds.")
            raise ProviderTimeoutError(f"{context} timed out after {self.timeout_seconds} seconds") from e
        except aiohttp.ClientError as e:
            logger.error(f"Connection Error: {context} to {url}: {e}")
            raise ChainConnectivityError(f"{context} failed: {e}") from e
        except ValueError as e:
            logger.error(f"Unreadable response for {context} from {url}: {e}")
            raise ChainConnectivityError(f"{context} returned an unreadable response: {e}") from e

    async def get_balance(self, address: str) -> Dict[str, int]:
        """Confirmed and unconfirmed balance of an address, in satoshis."""
        data = await self._request("GET", f"/address/{address}/balance", f"get_balance for {address}")
        if not isinstance(data, dict) or "confirmed" not in data:
            raise ChainConnectivityError(f"Unexpected balance response for {address}: {data}")
        balance = {
            "confirmed": int(data.get("confirmed", 0)),
            "unconfirmed": int(data.get("unconfirmed", 0)),
        }
        logger.info(f"Balance for {address}: {balance['confirmed']} confirmed, {balance['unconfirmed']} unconfirmed satoshis")
        return balance

    async def _fetch_unspent(self, address: str, which: str) -> Dict[str, Any]:
        data = await self._request("GET", f"/address/{address}/{which}/unspent", f"get_utxos ({which}) for {address}")
        if not isinstance(data, dict) or not isinstance(data.get("result"), list):
            raise ChainConnectivityError(f"Unexpected {which} unspent response for {address}: {data}")
        if data.get("error"):
            raise ChainConnectivityError(f"WhatsOnChain reported an error for {address}: {data['error']}")
        return data

    async def get_utxos(self, address: str) -> Dict[str, Any]:
        """
        Fetch all unspent outputs (confirmed and mempool) for an address.

        Returns:
            Dict: {"address": <owner reported by the API>, "utxos": [normalized UTXO, ...]}
        """
        confirmed = await self._fetch_unspent(address, "confirmed")
        unconfirmed = await self._fetch_unspent(address, "unconfirmed")

        utxos: List[Dict[str, Any]] = []
        for u in confirmed["result"] + unconfirmed["result"]:
            if u.get("isSpentInMempoolTx"):
                continue
            nu = _normalize_utxo(u)
            if not nu:
                logger.warning(f"Skipping unrecognized UTXO format: keys={list(u.keys())}")
                continue
            utxos.append(nu)

        owner = confirmed.get("address") or unconfirmed.get("address") or ""
        logger.info(f"Found {len(utxos)} UTXOs for {address} (reported owner: {owner})")
        return {"address": owner, "utxos": utxos}

    async def fetch_raw_transaction_hex(self, txid: str) -> str:
        """Fetches the raw transaction hex for a given txid."""
        raw_hex = await self._request("GET", f"/tx/{txid}/hex", f"fetch_raw_transaction_hex for {txid}", as_json=False)
        raw_hex = raw_hex.strip()
        if not raw_hex:
            raise ChainConnectivityError(f"Empty raw transaction for {txid}")
        return raw_hex

    async def broadcast(self, signed_raw_tx_string: str) -> str:
        """Broadcasts a signed raw transaction. Returns the txid reported by the node."""
        logger.info(f"--- Broadcasting Transaction to {self.base_url}/tx/raw ---")
        txid_raw = await self._request("POST", "/tx/raw", "broadcast_transaction",
                                       json_body={"txhex": signed_raw_tx_string}, as_json=False)

        # The response is sometimes quoted
        txid = txid_raw.strip().strip('"')
        if not txid:
            raise ChainConnectivityError("Broadcast returned an empty txid")
        logger.info(f"Success: Transaction broadcasted with txid: {txid}")
        return txid
