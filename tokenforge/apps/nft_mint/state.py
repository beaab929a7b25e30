"""
NFT issuance flow states
"""

from enum import IntEnum, auto


class MintFlowState(IntEnum):
    """
    The flow starts out `UNINITIALIZED` and advances one state per completed step. `EDITION_FINALIZED` is the
    terminal success state.

    Any failure moves the flow to `ABORTED`. Because the ledger commits the transaction atomically, none of the
    steps completed before the failure are visible once the flow is aborted.

    The holding account is provisioned between `MINT_CREATED` and `SUPPLY_ISSUED` and does not have its own state,
    because it may already exist.
    """

    UNINITIALIZED = auto()
    MINT_CREATED = auto()
    SUPPLY_ISSUED = auto()
    METADATA_ATTACHED = auto()
    EDITION_FINALIZED = auto()

    ABORTED = auto()

    def next(self) -> "MintFlowState":
        """
        :exception ValueError: if the state is terminal
        """
        if self in (MintFlowState.EDITION_FINALIZED, MintFlowState.ABORTED):
            raise ValueError(f"{self!r} is a terminal state")
        return MintFlowState(self.value + 1)

    def __repr__(self) -> str:
        return f"{self.name}({self.value})"
