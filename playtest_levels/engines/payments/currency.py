"""
Currency ledger used by the payment processor.

The credit joins the caller's transaction: the payment processor commits the
balance change and the paid status together.
"""

import uuid
from typing import Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from playtest_levels.engines.errors import CurrencyCreditError
from playtest_levels.kernel.models import CurrencyAccount, CurrencyTransaction


class CurrencyLedger(Protocol):
    async def credit(
        self,
        user_id: uuid.UUID,
        amount: int,
        reason: str,
        reference_id: Optional[uuid.UUID] = None,
    ) -> None:
        """Credit `amount` or raise CurrencyCreditError."""
        ...


class SqlCurrencyLedger:
    """Balances and journal in the platform database."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def credit(
        self,
        user_id: uuid.UUID,
        amount: int,
        reason: str,
        reference_id: Optional[uuid.UUID] = None,
    ) -> None:
        if amount <= 0:
            raise CurrencyCreditError(f"Refusing non-positive credit of {amount}")
        try:
            account = await self.session.get(CurrencyAccount, user_id, with_for_update=True)
            if account is None:
                account = CurrencyAccount(user_id=user_id, balance=0)
                self.session.add(account)
            account.balance += amount
            self.session.add(
                CurrencyTransaction(
                    user_id=user_id,
                    amount=amount,
                    reason=reason,
                    reference_id=reference_id,
                )
            )
            await self.session.flush()
        except SQLAlchemyError as exc:
            raise CurrencyCreditError(f"Balance update failed: {exc}") from exc

    async def balance(self, user_id: uuid.UUID) -> int:
        account = await self.session.get(CurrencyAccount, user_id)
        return account.balance if account else 0
