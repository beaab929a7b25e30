"""
Account ledger: addresses, accounts, transactions, and the runtime that executes them atomically
"""
