# mw_run.py
'''
Entry point for the memo workflow.

First run creates the HD wallet (output/wallet_<net>.json) and stops with
funding instructions until the address holds coins. Once funded it posts a
single memo, records its txid and cross-checks the sender address with the
indexer. Later runs only repeat the cross-check.

--dry-run       build and sign the memo transaction, no broadcast, nothing recorded
--show          print the state of all records and exit
--strict        exit with an error if the indexer reports a different address
'''

import argparse
import asyncio
import json
import logging
import sys

import memowallet
from memowallet import utils
from memowallet.config import Config
from memowallet.core_defs import InsufficientFundsError, WalletWorkflowError
from memowallet.state_store import StateStore
from memowallet.workflow import Workflow

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="MemoWallet: post one memo from an HD wallet and cross-check it with an indexer.",
        formatter_class=argparse.RawTextHelpFormatter
    )
    parser.add_argument('--message', type=str, default=None, help="Memo text, or '@path' to read it from a file. Default: 'TEST MESSAGE: <utc now>'.")
    parser.add_argument('--dry-run', action='store_true', help="Build and sign the transaction without broadcasting or recording it.")
    parser.add_argument('--skip-reconcile', action='store_true', help="Do not query the indexer.")
    parser.add_argument('--strict', action='store_true', help="Treat an indexer address mismatch as an error.")
    parser.add_argument('--show', action='store_true', help="Show the state of all records and exit.")
    parser.add_argument('--mainnet', action='store_true', help="Required when NETWORK=main. A safety flag.")
    parser.add_argument('--verbose', action='store_true', help="Debug logging (includes raw transaction hex).")
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    args = parse_args(argv)
    config = Config()
    utils.setup_logging(config, args.verbose)

    logger.info(f"MemoWallet {memowallet.__version__} (network={config.network_name})")

    # Safety check for mainnet
    if config.network_name == "main" and not args.mainnet:
        logger.error("ERROR: Network is set to 'main' in .env, but --mainnet flag was not provided.")
        logger.error("This is a safety feature. Add --mainnet to your command if you are sure.")
        return 1
    elif config.network_name == "test" and args.mainnet:
        logger.error("ERROR: --mainnet flag is set, but .env network is 'test'.")
        return 1

    store = StateStore(config.state_dir, config.network_name)
    if args.show:
        print(json.dumps(store.describe(), indent=2))
        return 0

    try:
        message = utils.get_content_from_source(args.message) or utils.default_memo_message()
    except OSError as e:
        logger.error(f"Could not read message file: {e}")
        return 1

    try:
        summary = await Workflow(config, store=store).run(
            message,
            dry_run=args.dry_run,
            reconcile=not args.skip_reconcile,
            strict=args.strict,
        )
    except InsufficientFundsError as e:
        logger.error(str(e))
        if e.address:
            logger.error(f"Send funds to {e.address} ({config.explorer_url(e.address)})")
        return 1
    except WalletWorkflowError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        return 1

    logger.info(f"Workflow finished: {json.dumps({k: v for k, v in summary.items() if k != 'memo'}, default=str)}")
    return 0


def cli():
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
