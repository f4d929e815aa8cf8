"""Command line tools for the nite ledger."""
