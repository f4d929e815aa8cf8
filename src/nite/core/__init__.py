"""Core ledger runtime: chain state, signing, configuration and contracts."""
