"""
Ledger related errors

Every error raised while executing a transaction derives from :class:`LedgerError`.
Errors are raised either by the runtime itself, by a program's local account validation,
or by a program invoked through a cross-program call. They are never caught and retried:
the runtime discards all tentative writes and re-raises the error to the caller.

`step` identifies where the error surfaced, i.e., the name of the validation check or
flow step that failed. It is filled in by whoever has that context first.
"""

from solders.pubkey import Pubkey


class LedgerError(Exception):
    """
    Base exception class for ledger errors
    """

    def __init__(self, message: str, step: str | None = None):
        super().__init__(message)
        self.step = step

    def __str__(self) -> str:
        message = super().__str__()
        if self.step is None:
            return message
        return f"[{self.step}] {message}"


class ConstraintViolation(LedgerError):
    """
    An account does not satisfy its declared role: signer, writable, derived address, or canonical program.
    Raised before any state is mutated.
    """

    def __init__(self, check: str, message: str):
        super().__init__(message, step=check)

    @property
    def check(self) -> str:
        return self.step  # type: ignore


class MalformedRequest(LedgerError):
    """
    The transaction or instruction is structurally invalid, e.g., missing accounts, missing or bad signatures,
    unknown instruction, or unknown program.
    """


class AlreadyInitialized(LedgerError):
    """
    The target account already holds state.
    """

    def __init__(self, address: Pubkey, message: str | None = None, step: str | None = None):
        super().__init__(
            message if message else f"account is already initialized: {address}",
            step=step,
        )
        self.address = address


class InsufficientFunds(LedgerError):
    """
    The payer cannot cover the lamports required, e.g., rent exemption for a new account.
    """

    def __init__(self, payer: Pubkey, required: int, available: int):
        super().__init__(
            f"insufficient funds: payer={payer} required={required} available={available}"
        )
        self.payer = payer
        self.required = required
        self.available = available


class PayloadTooLarge(LedgerError):
    """
    A descriptive field exceeds the registry's maximum byte length.
    """

    def __init__(self, field: str, size: int, limit: int, step: str | None = None):
        super().__init__(
            f"{field} is too long: {size} bytes > {limit} bytes", step=step
        )
        self.field = field
        self.size = size
        self.limit = limit


class AuthorityMismatch(LedgerError):
    """
    The supplied authority is not the authority recorded on the account.
    """


class AccountNotFound(LedgerError):
    """
    Raised if a required account does not exist.
    """


class InvalidAccountData(LedgerError):
    """
    Account data cannot be decoded as the expected account type, or the account is owned by the wrong program.
    """


class PrivilegeEscalation(LedgerError):
    """
    A program tried to grant a signer or writable privilege it does not hold, or to modify an account it does
    not own.
    """


class ArithmeticOverflow(LedgerError):
    """
    An amount exceeded the 64-bit unsigned range.
    """


class DerivationError(LedgerError):
    """
    Raised if a derived address cannot be produced from the given seeds.
    """
