from __future__ import annotations

from typing import Any, Callable, Dict, Tuple, Type

from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from ..connector.interface import LedgerRpc
from ..core.errors import GatewayError, TransactionError
from ..core.identity import Identity
from ..utils.logging import get_logger
from .instructions import (
    CancelOrderAccounts,
    CancelOrderParams,
    DepositAccounts,
    DepositParams,
    Operation,
    PlaceOrderAccounts,
    PlaceOrderParams,
    WithdrawAccounts,
    WithdrawParams,
    cancel_order_instruction,
    deposit_instruction,
    place_order_instruction,
    withdraw_instruction,
)

_Factory = Callable[[Pubkey, Any, Any], Instruction]

_OPERATIONS: Dict[Operation, Tuple[Type, Type, _Factory]] = {
    Operation.DEPOSIT: (DepositParams, DepositAccounts, deposit_instruction),
    Operation.WITHDRAW: (WithdrawParams, WithdrawAccounts, withdraw_instruction),
    Operation.PLACE_PERP_ORDER: (PlaceOrderParams, PlaceOrderAccounts, place_order_instruction),
    Operation.CANCEL_PERP_ORDER: (CancelOrderParams, CancelOrderAccounts, cancel_order_instruction),
}


class TransactionBuilder:
    """Composes, signs and submits single-instruction program transactions."""

    def __init__(self, *, rpc: LedgerRpc, identity: Identity, program_id: Pubkey) -> None:
        self._rpc = rpc
        self._identity = identity
        self._program_id = program_id
        self._logger = get_logger(__name__)

    def instruction(self, operation: Operation, params: Any, accounts: Any) -> Instruction:
        params_type, accounts_type, factory = _OPERATIONS[operation]
        if not isinstance(params, params_type) or not isinstance(accounts, accounts_type):
            raise TypeError(
                f"{operation.value} expects {params_type.__name__}/{accounts_type.__name__}, "
                f"got {type(params).__name__}/{type(accounts).__name__}"
            )
        return factory(self._program_id, params, accounts)

    def compose(self, instruction: Instruction, blockhash: Hash) -> Transaction:
        """Build the message with the identity as fee payer and sign it."""
        try:
            message = Message.new_with_blockhash([instruction], self._identity.pubkey, blockhash)
            signature = self._identity.sign(bytes(message))
            return Transaction.populate(message, [signature])
        except (ValueError, TypeError) as exc:
            raise TransactionError(f"could not assemble transaction: {exc}") from exc

    async def submit(self, instruction: Instruction) -> str:
        blockhash = await self._rpc.get_latest_blockhash()
        transaction = self.compose(instruction, blockhash)
        return await self._rpc.send_transaction(bytes(transaction))

    async def build_and_submit(self, operation: Operation, params: Any, accounts: Any) -> str:
        """Encode, sign and submit ``operation``; return the transaction signature.

        A request whose client disconnects mid-submit may still land its
        transaction without anyone receiving the signature.
        """
        instruction = self.instruction(operation, params, accounts)
        try:
            sig = await self.submit(instruction)
        except GatewayError as exc:
            self._logger.warning("tx_failed", extra={"operation": operation.value, "error": str(exc)})
            raise
        self._logger.info("tx_submitted", extra={"operation": operation.value, "sig": sig})
        return sig


__all__ = ["TransactionBuilder"]
