"""
Atomic NFT issuance on an in-memory account ledger
"""
