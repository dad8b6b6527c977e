# utils.py
# little helpers shared by the command line scripts

import logging
import os
from datetime import datetime, timezone

from memowallet.config import Config

logger = logging.getLogger(__name__)


def get_content_from_source(source: str | None) -> str | None:
    """
    Reads content either directly from a string or from a file path.
    A leading '@' forces file mode ('@./note.txt').

    Raises:
        OSError: if a referenced file cannot be read.
    """
    if source is None:
        return None

    if source.startswith('@'):
        file_path = source[1:]
    elif os.path.isfile(source):
        file_path = source
    else:
        file_path = None

    if file_path:
        with open(file_path, 'r', encoding='utf-8') as f:
            return f.read()
    return source


def default_memo_message() -> str:
    return f"TEST MESSAGE: {datetime.now(timezone.utc).isoformat()}"


def setup_logging(config: Config, verbose: bool = False):
    """Log to the network's application log file and to the console."""
    log_dir = os.path.dirname(config.log_file)
    if log_dir and not os.path.exists(log_dir):
        os.makedirs(log_dir, exist_ok=True)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(config.log_file, mode='a', encoding='utf-8'),
            logging.StreamHandler()
        ]
    )
