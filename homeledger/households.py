"""
Household Resolver

Maps human-shareable join codes to households and manages membership.

DESIGN DECISION: A household can only be discovered through an exact
match on its 6-digit code. Codes are random, not derived from anything,
and regenerating one immediately invalidates the old code.
Collisions between households are not checked; at six digits and
household-scale usage the chance is accepted.
"""

import secrets
from datetime import datetime
from typing import Optional

from homeledger.audit import get_logger
from homeledger.config import get_settings
from homeledger.models.household import (
    Household,
    HouseholdMember,
    MemberRole,
    parse_household_code,
)
from homeledger.storage.interface import InvalidCodeError, RemoteChannel


def generate_household_code() -> str:
    """Random 6-digit join code, 100000-999999."""
    return str(100000 + secrets.randbelow(900000))


class HouseholdResolver:
    """
    Join-code lookup and membership changes against the remote store.
    """

    def __init__(self, remote: RemoteChannel):
        self._remote = remote
        self._logger = get_logger(__name__)

    async def find_by_code(self, code: str) -> str:
        """
        Resolve a join code to a household identity.

        Accepts the bare code or its display form ("748-392").

        Raises:
            InvalidCodeError: Malformed code, no match, or more than one match
        """
        normalized = parse_household_code(code)
        if normalized is None:
            raise InvalidCodeError(f"'{code}' is not a 6-digit household code")

        matches = await self._remote.find_households_by_code(normalized)
        if len(matches) != 1:
            self._logger.warning("household_code_unresolved", matches=len(matches))
            raise InvalidCodeError(f"No household matches code {normalized}")
        return matches[0]

    async def attach_member(self, household_id: str, user_id: str) -> None:
        """Add a user to the household. Re-adding an existing member is a no-op."""
        await self._remote.add_household_member(household_id, user_id)
        self._logger.info("household_member_attached", household_id=household_id, user_id=user_id)

    async def generate_code(self, household_id: str) -> str:
        """
        Give the household a fresh join code, replacing any previous one.

        Raises:
            NotFoundError: If the household does not exist
        """
        code = generate_household_code()
        await self._remote.update_household_fields(household_id, {"householdCode": code})
        self._logger.info("household_code_generated", household_id=household_id)
        return code

    async def create_household(
        self,
        owner_id: str,
        name: Optional[str] = None,
        currency: Optional[str] = None,
    ) -> HouseholdMember:
        """Register a new household owned by owner_id, with a fresh join code."""
        now = datetime.utcnow()
        household = Household(
            name=name or f"Household of {owner_id}",
            currency=currency or get_settings().app.default_currency,
            initial_balance=0.0,
            balance_updated_at=now,
            owner_ids=[owner_id],
            household_code=generate_household_code(),
            created_at=now,
        )
        household_id = await self._remote.create_household(household)
        self._logger.info("household_created", household_id=household_id, owner_id=owner_id)
        return HouseholdMember(
            user_id=owner_id,
            household_id=household_id,
            role=MemberRole.OWNER,
        )

    async def join_household(self, code: str, user_id: str) -> HouseholdMember:
        """
        Attach user_id to the household behind a join code.

        Raises:
            InvalidCodeError: If the code does not resolve
        """
        household_id = await self.find_by_code(code)
        await self.attach_member(household_id, user_id)
        return HouseholdMember(
            user_id=user_id,
            household_id=household_id,
            role=MemberRole.MEMBER,
        )
