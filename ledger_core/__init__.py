"""Ledger core: transaction processing for deposits, withdrawals, bill pay and transfers."""
