"""
Assembly of unsigned transactions.
"""
import logging
from typing import Optional

from .models import ActionIntent, EncodedAction, UnsignedTransaction
from .timeutil import add_milliseconds

logger = logging.getLogger(__name__)

TX_EXPIRATION_IN_MILSEC = 30000
DEFAULT_PERMISSION = "active"


class TransactionBuilder:
    """
    Builds single-action transactions anchored to a head block.

    The authorization of every action is ``{account}@{permission}``, where
    ``permission`` is ``active`` unless configured otherwise.
    """

    def __init__(
        self,
        permission: str = DEFAULT_PERMISSION,
        expiration_ms: int = TX_EXPIRATION_IN_MILSEC,
        logger: Optional[logging.Logger] = None
    ):
        self.permission = permission
        self.expiration_ms = expiration_ms
        self.logger = logger or logging.getLogger(__name__)

    def authorization_for(self, account: str) -> str:
        return f"{account}@{self.permission}"

    def encode_action(self, intent: ActionIntent, account: str, binargs: str) -> EncodedAction:
        """Attach the node-encoded arguments and the caller's authorization to ``intent``."""
        return EncodedAction(
            contract_account=intent.contract_account,
            action_name=intent.action_name,
            authorization=(self.authorization_for(account),),
            binary_data=binargs,
        )

    def build(
        self,
        encoded_action: EncodedAction,
        head_block_id: str,
        head_block_time: str
    ) -> UnsignedTransaction:
        """
        Build an unsigned transaction around ``encoded_action``.

        The reference block id is the head block id as reported by the node.
        The signature list is left empty; the node needs the fully shaped
        transaction to work out which keys must sign it.

        Args:
            encoded_action: Action with authorization and binary data
            head_block_id: Head block id from chain info
            head_block_time: Head block time from chain info

        Returns:
            UnsignedTransaction expiring ``expiration_ms`` after the head block
        """
        expiration = add_milliseconds(head_block_time, self.expiration_ms)
        self.logger.debug(
            f"Building {encoded_action.contract_account}::{encoded_action.action_name} "
            f"ref_block={head_block_id[:16]} expiration={expiration}"
        )
        return UnsignedTransaction(
            actions=(encoded_action,),
            reference_block_id=head_block_id,
            expiration=expiration,
            signatures=(),
        )
