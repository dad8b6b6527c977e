# memowallet: HD wallet memo posting with indexer cross-check
__version__ = "0.1.0"
