"""
In-memory ledger runtime

The runtime executes one transaction at a time. Each transaction runs against a copy-on-write overlay of the account
store. The overlay is merged into the store only if every instruction succeeds; on any error it is discarded, which
means no partial state from a failed transaction is ever observable.

Programs are plain Python objects registered with :meth:`Ledger.deploy`. An instruction is dispatched to the program
registered at its `program_id`. Programs call other programs through :meth:`InvokeContext.invoke`, which enforces that
a callee never receives signer or writable privileges its caller does not hold. A program may sign for addresses
derived from its own program id by presenting the derivation seeds.

Account ownership rules enforced on every write:

- only writable accounts may change
- only the owning program may change an account's data, or debit its lamports
- only the owning program may reassign ownership, and only while the account holds no data
"""
import threading
from abc import ABC, abstractmethod
from typing import Final, Sequence

from reactivex.subject import Subject
from solders.pubkey import Pubkey
from ulid import ULID

from tokenforge.core.logging import get_logger
from tokenforge.ledger.errors import (
    LedgerError,
    MalformedRequest,
    PrivilegeEscalation,
    InvalidAccountData,
    AccountNotFound,
)
from tokenforge.ledger.model import Account, Instruction, TxnId
from tokenforge.ledger.pda import create_program_address
from tokenforge.ledger.pubkeys import SYSTEM_PROGRAM_ID, BPF_LOADER_ID, RENT_SYSVAR_ID
from tokenforge.ledger.rent import Rent
from tokenforge.ledger.transaction import (
    Transaction,
    TransactionResult,
    TransactionStatus,
)

MAX_INVOKE_DEPTH: Final[int] = 4

# space allocated to program and sysvar accounts at genesis
PROGRAM_ACCOUNT_SPACE: Final[int] = 36


class Program(ABC):
    """
    On-ledger program
    """

    program_id: Pubkey

    @abstractmethod
    def process(self, ctx: "InvokeContext") -> None:
        """
        Executes the instruction bound to the context.

        :exception LedgerError: aborts the whole transaction
        """


class AccountsOverlay:
    """
    Tentative account writes layered over the committed account store
    """

    def __init__(self, accounts: dict[Pubkey, Account]):
        self.__accounts = accounts
        self.__changes: dict[Pubkey, Account] = {}

    def get(self, address: Pubkey) -> Account | None:
        if address in self.__changes:
            account = self.__changes[address]
        else:
            account = self.__accounts.get(address)
        return None if account is None or account.is_empty else account.copy()

    def put(self, address: Pubkey, account: Account):
        self.__changes[address] = account.copy()

    def commit(self):
        for address, account in self.__changes.items():
            if account.is_empty:
                self.__accounts.pop(address, None)
            else:
                self.__accounts[address] = account
        self.__changes.clear()


class InvokeContext:
    """
    Execution context for a single instruction, either top level or invoked by another program.
    """

    def __init__(
        self,
        ledger: "Ledger",
        overlay: AccountsOverlay,
        instruction: Instruction,
        depth: int,
        logs: list[str],
    ):
        self.__ledger = ledger
        self.__overlay = overlay
        self.instruction = instruction
        self.depth = depth
        self.__logs = logs
        self.__signers = frozenset(
            meta.pubkey for meta in instruction.accounts if meta.is_signer
        )
        self.__writable = frozenset(
            meta.pubkey for meta in instruction.accounts if meta.is_writable
        )
        self.__referenced = frozenset(meta.pubkey for meta in instruction.accounts)

    @property
    def program_id(self) -> Pubkey:
        return self.instruction.program_id

    @property
    def rent(self) -> Rent:
        account = self.__overlay.get(RENT_SYSVAR_ID)
        if account is None:
            raise AccountNotFound("rent sysvar account does not exist")
        return Rent.unpack(account.data)

    def is_signer(self, address: Pubkey) -> bool:
        return address in self.__signers

    def is_writable(self, address: Pubkey) -> bool:
        return address in self.__writable

    def get_account(self, address: Pubkey) -> Account | None:
        """
        :return: None if the account does not exist
        :exception MalformedRequest: if the account was not passed to the instruction
        """
        if address not in self.__referenced and address != self.program_id:
            raise MalformedRequest(f"account was not passed to the instruction: {address}")
        return self.__overlay.get(address)

    def set_account(self, address: Pubkey, account: Account):
        """
        Stores the account in the transaction overlay after checking the ownership rules.

        :exception PrivilegeEscalation: if the program is not allowed to make the change
        """
        pre = self.get_account(address) or Account(lamports=0, owner=SYSTEM_PROGRAM_ID)
        if pre == account:
            return
        if not self.is_writable(address):
            raise PrivilegeEscalation(f"account is not writable: {address}")
        owned = pre.owner == self.program_id
        if account.executable != pre.executable:
            raise PrivilegeEscalation(f"executable flag cannot be changed: {address}")
        if account.owner != pre.owner and (not owned or pre.data):
            raise PrivilegeEscalation(f"account owner cannot be changed: {address}")
        if (account.data != pre.data or account.space != pre.space) and not owned:
            raise PrivilegeEscalation(
                f"account data can only be modified by its owner: {address}"
            )
        if account.lamports < pre.lamports and not owned:
            raise PrivilegeEscalation(
                f"lamports can only be debited by the account owner: {address}"
            )
        if len(account.data) > account.space:
            raise InvalidAccountData(
                f"account data exceeds allocated space: {len(account.data)} > {account.space}"
            )
        self.__overlay.put(address, account)

    def invoke(self, instruction: Instruction, signer_seeds: Sequence[Sequence[bytes]] = ()):
        """
        Cross program invocation

        :param signer_seeds: seeds for addresses derived from this program's id, which are treated as signers
        :exception PrivilegeEscalation: if the callee instruction requires a privilege the caller does not hold
        """
        if self.depth >= MAX_INVOKE_DEPTH:
            raise MalformedRequest(f"max invoke depth exceeded: {MAX_INVOKE_DEPTH}")
        derived_signers = {
            create_program_address(seeds, self.program_id) for seeds in signer_seeds
        }
        for meta in instruction.accounts:
            if meta.is_signer and not (
                meta.pubkey in self.__signers or meta.pubkey in derived_signers
            ):
                raise PrivilegeEscalation(f"signer privilege escalated: {meta.pubkey}")
            if meta.is_writable and meta.pubkey not in self.__writable:
                raise PrivilegeEscalation(f"writable privilege escalated: {meta.pubkey}")
        self.__ledger._process(self.__overlay, instruction, self.depth + 1, self.__logs)

    def log(self, message: str):
        self.__logs.append(f"Program {self.program_id}: {message}")


class Ledger:
    """
    Account store plus program registry.

    Transactions are serialized: :meth:`send_transaction` holds a lock for the whole execution, thus two transactions
    that write the same account are always ordered and the second sees the first one's committed state.

    Every processed transaction is published on :attr:`transactions`.
    """

    def __init__(self, rent: Rent | None = None):
        self.__accounts: dict[Pubkey, Account] = {}
        self.__programs: dict[Pubkey, Program] = {}
        self.__lock = threading.RLock()
        self.transactions: Subject[TransactionResult] = Subject()
        self.logger = get_logger(self)

        rent = rent if rent else Rent()
        self.__accounts[RENT_SYSVAR_ID] = Account(
            lamports=rent.minimum_balance(PROGRAM_ACCOUNT_SPACE),
            owner=SYSTEM_PROGRAM_ID,
            space=PROGRAM_ACCOUNT_SPACE,
            data=rent.pack(),
        )

    @property
    def rent(self) -> Rent:
        return Rent.unpack(self.__accounts[RENT_SYSVAR_ID].data)

    def deploy(self, program: Program):
        """
        Registers the program and creates its executable account
        """
        with self.__lock:
            self.__programs[program.program_id] = program
            self.__accounts[program.program_id] = Account(
                lamports=self.rent.minimum_balance(PROGRAM_ACCOUNT_SPACE),
                owner=BPF_LOADER_ID,
                space=PROGRAM_ACCOUNT_SPACE,
                executable=True,
            )
            self.logger.info("deployed program: %s", program.program_id)

    def airdrop(self, address: Pubkey, lamports: int):
        """
        Credits lamports to the address, creating a system owned account if needed
        """
        with self.__lock:
            account = self.__accounts.get(address)
            if account is None:
                account = Account(lamports=0, owner=SYSTEM_PROGRAM_ID)
                self.__accounts[address] = account
            account.lamports += lamports

    def get_account(self, address: Pubkey) -> Account | None:
        """
        :return: committed account state, or None if the account does not exist
        """
        with self.__lock:
            account = self.__accounts.get(address)
            return None if account is None else account.copy()

    def get_balance(self, address: Pubkey) -> int:
        account = self.get_account(address)
        return account.lamports if account else 0

    def send_transaction(self, txn: Transaction) -> TxnId:
        """
        Executes the transaction atomically.

        :return: transaction id
        :exception LedgerError: if any instruction fails - nothing is committed
        """
        with self.__lock:
            result = self.__execute(txn)
        # subscribers are notified after the lock is released, thus they are free to use the ledger
        self.transactions.on_next(result)
        if result.error is not None:
            raise result.error
        return result.txn_id

    def __execute(self, txn: Transaction) -> TransactionResult:
        txn_id = TxnId(str(ULID()))
        logs: list[str] = []
        failed_instruction: int | None = None
        try:
            invalid_signers = txn.verify_signatures()
            if invalid_signers:
                raise MalformedRequest(
                    f"missing or invalid signatures: {[str(signer) for signer in invalid_signers]}",
                    step="signatures",
                )
            overlay = AccountsOverlay(self.__accounts)
            for index, instruction in enumerate(txn.instructions):
                failed_instruction = index
                self._process(overlay, instruction, 1, logs)
            overlay.commit()
        except LedgerError as err:
            self.logger.info("transaction failed: %s : %s", txn_id, err)
            return TransactionResult(
                txn_id=txn_id,
                status=TransactionStatus.FAILED,
                failed_instruction=failed_instruction,
                error=err,
                logs=tuple(logs),
            )

        self.logger.info("transaction committed: %s", txn_id)
        return TransactionResult(
            txn_id=txn_id,
            status=TransactionStatus.COMMITTED,
            logs=tuple(logs),
        )

    def _process(
        self,
        overlay: AccountsOverlay,
        instruction: Instruction,
        depth: int,
        logs: list[str],
    ):
        program = self.__programs.get(instruction.program_id)
        if program is None:
            raise MalformedRequest(f"program is not deployed: {instruction.program_id}")
        self.logger.debug(
            "invoke [%s] program: %s", depth, instruction.program_id
        )
        program.process(InvokeContext(self, overlay, instruction, depth, logs))
