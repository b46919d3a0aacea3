"""Bookkeeping for balance transfers between users.

Transfers are recorded as requested.  Sender balances and ownership are not
checked.
"""
from __future__ import annotations

import logging
from typing import List

from .database import Database
from .errors import InvalidInputError, NotFoundError
from .models import Transfer

logger = logging.getLogger("accounts.transfers")


class TransferService:
    def __init__(self, database: Database) -> None:
        self._database = database

    def list_transfers(self) -> List[Transfer]:
        return self._database.list_transfers()

    def get_transfer(self, transfer_id: int) -> Transfer:
        transfer = self._database.get_transfer(transfer_id)
        if transfer is None:
            raise NotFoundError("Unknown transfer")
        return transfer

    def create_transfer(self, from_user_id: int, to_user_id: int, amount: float) -> Transfer:
        if from_user_id == to_user_id:
            raise InvalidInputError("Sender and recipient must be different users")
        if amount <= 0:
            raise InvalidInputError("Amount must be positive")
        for user_id in (from_user_id, to_user_id):
            if self._database.get_user(user_id) is None:
                raise NotFoundError(f"Unknown user {user_id}")

        transfer = self._database.create_transfer(from_user_id, to_user_id, amount)
        logger.info(
            "Recorded transfer %s of %.2f from user %s to user %s",
            transfer.id,
            transfer.amount,
            from_user_id,
            to_user_id,
        )
        return transfer

    def update_transfer(self, transfer_id: int, amount: float) -> Transfer:
        if amount <= 0:
            raise InvalidInputError("Amount must be positive")
        updated = self._database.update_transfer(transfer_id, amount=amount)
        if updated is None:
            raise NotFoundError("Unknown transfer")
        logger.info("Updated transfer %s", transfer_id)
        return updated

    def delete_transfer(self, transfer_id: int) -> None:
        if not self._database.delete_transfer(transfer_id):
            raise NotFoundError("Unknown transfer")
        logger.info("Deleted transfer %s", transfer_id)


__all__ = ["TransferService"]
