# -----------------------------------------------------------------------------
# Project: MemoWallet v0.1
# File:    indexer.py
# (c)      2025-2026 Wolfgang Lohmann
# License: MIT
# -----------------------------------------------------------------------------

# indexer.py
'''
Cross-check of a posted memo against an independent BitDB-style indexer.

The query is a find/project document, base64-encoded into the URL. The raw
response is kept as the indexer snapshot; it is advisory only and never
overrides local state.
'''

import asyncio
import base64
import json
import logging
from typing import Any, Dict, Optional

import aiohttp

from memowallet import core_defs
from memowallet.config import Config
from memowallet.core_defs import IndexerError, IndexerMismatchError, ProviderTimeoutError
from memowallet.state_store import StateStore

logger = logging.getLogger(__name__)

# in[0].e.a: sender of the first input; out[0].s3: memo text (chunks: 0 OP_FALSE, 1 OP_RETURN, 2 marker, 3 payload)
PROJECTION = "[ .[] | {addr: .in[0].e.a, msg: .out[0].s3, txid: .tx.h} ]"


def build_query(txid: str) -> Dict[str, Any]:
    return {
        "v": 3,
        "q": {
            "find": {"tx.h": txid},
        },
        "r": {
            "f": PROJECTION
        }
    }


def build_query_url(base_url: str, txid: str) -> str:
    query_str = json.dumps(build_query(txid), separators=(",", ":"))
    query_b64 = base64.b64encode(query_str.encode('utf-8')).decode('ascii')
    return base_url + query_b64


def normalize_address(address: Optional[str]) -> Optional[str]:
    """Drops a 'network:' label, e.g. 'bchtest:qq...' -> 'qq...'. Case is kept."""
    if address is None:
        return None
    return address.split(":", 1)[1] if ":" in address else address


class IndexerClient:
    """Indexer Query Provider: plain GET of the query URL."""

    def __init__(self, config: Config):
        self.timeout_seconds = config.timeout_connect

    async def fetch(self, url: str) -> str:
        logger.info("LOADING INDEXER RESULT")
        logger.info(url)
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as response:
                    body = await response.text()
                    if response.status != 200:
                        logger.error(f"Indexer request failed: Status {response.status}, Body: {body[:200]}")
                        raise IndexerError(f"Indexer returned HTTP {response.status}")
                    return body
        except asyncio.TimeoutError as e:
            logger.error(f"Timeout Error: indexer request timed out after {self.timeout_seconds} seconds.")
            raise ProviderTimeoutError(f"Indexer request timed out after {self.timeout_seconds} seconds") from e
        except aiohttp.ClientError as e:
            logger.error(f"Connection Error: indexer request failed: {e}")
            raise IndexerError(f"Indexer request failed: {e}") from e


class Reconciler:
    """Compares the indexer's view of a memo transaction with the wallet's own address."""

    def __init__(self, config: Config, store: StateStore, client: IndexerClient | None = None):
        self.config = config
        self.store = store
        self.client = client or IndexerClient(config)

    async def reconcile(self, identity_address: str, txid: str, strict: bool = False) -> Dict[str, Any]:
        """
        Returns {match, status, indexer_address, indexer_message, indexer_txid, query_url}.

        status is one of match / mismatch / empty / pending. An address
        mismatch raises IndexerMismatchError only when strict is set.
        """
        query_url = build_query_url(self.config.indexer_base_url, txid)
        body = await self.client.fetch(query_url)
        self.store.save(core_defs.KIND_INDEXER_SNAPSHOT, body)

        try:
            document = json.loads(body)
        except json.JSONDecodeError as e:
            logger.error(f"Indexer response is not JSON: {e}")
            raise IndexerError(f"Indexer response is not JSON: {e}") from e
        if not isinstance(document, dict):
            raise IndexerError(f"Unexpected indexer response type {type(document).__name__}")

        confirmed = document.get("c") or []
        unconfirmed = document.get("u") or []
        if not isinstance(confirmed, list) or not isinstance(unconfirmed, list):
            raise IndexerError("Indexer response 'c'/'u' entries must be lists")
        if confirmed:
            if not isinstance(confirmed[0], dict):
                raise IndexerError(f"Unexpected indexer match type {type(confirmed[0]).__name__}")
            addr = confirmed[0].get("addr")
            if addr is not None and not isinstance(addr, str):
                raise IndexerError(f"Indexer match has a non-text sender address: {addr!r}")

        result: Dict[str, Any] = {
            "match": False,
            "status": None,
            "indexer_address": None,
            "indexer_message": None,
            "indexer_txid": None,
            "query_url": query_url,
        }

        if not confirmed:
            result["status"] = core_defs.RECONCILE_PENDING if unconfirmed else core_defs.RECONCILE_EMPTY
            logger.warning(f"Indexer has no confirmed match for {txid} "
                           f"({len(unconfirmed)} unconfirmed). Indexer lag or query mismatch; try again later.")
            return result

        first = confirmed[0]
        indexer_address = first.get("addr")
        result.update({
            "indexer_address": indexer_address,
            "indexer_message": first.get("msg"),
            "indexer_txid": first.get("txid"),
        })

        if indexer_address is not None and normalize_address(indexer_address) == normalize_address(identity_address):
            result["match"] = True
            result["status"] = core_defs.RECONCILE_MATCH
            logger.info(f"Wallet and indexer use the same address: {identity_address}")
            return result

        result["status"] = core_defs.RECONCILE_MISMATCH
        mismatch = IndexerMismatchError(identity_address, str(indexer_address), txid)
        logger.warning(f"Wallet and indexer use different addresses: (wallet) {identity_address} -- (indexer) {indexer_address}")
        logger.warning(f"Check wallet address: {self.config.explorer_url(identity_address)}")
        logger.warning(f"Check indexer address: {self.config.explorer_url(normalize_address(str(indexer_address)))}")
        if strict:
            raise mismatch
        return result
