"""
Lockup and vesting restrictions on outgoing transfers.
"""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from compliance.models.base import utcnow
from compliance.schemas.compliance import ComplianceViolation
from compliance.services.interfaces import LockupChecker

LOCKUP_RESTRICTED = "LOCKUP_RESTRICTED"


class UnlockEvent(BaseModel):
    """One tranche of a vesting schedule."""

    label: str
    unlocks_at: datetime
    fraction: Decimal = Field(..., gt=0, le=1)


class VestingSchedule(BaseModel):
    """Locked allocation released in evenly spaced tranches.

    With ``days=360`` and ``events=4`` a quarter unlocks every 90 days after
    ``start``.
    """

    total_amount: Decimal = Field(..., ge=0, description="Total locked allocation")
    start: datetime = Field(..., description="Start of the vesting period (UTC)")
    days: int = Field(360, gt=0, description="Length of the vesting period in days")
    events: int = Field(4, gt=0, description="Number of unlock events")

    def unlock_events(self) -> List[UnlockEvent]:
        gap = self.days // self.events
        fraction = Decimal(1) / Decimal(self.events)
        return [
            UnlockEvent(
                label=f"Unlock {i + 1}",
                unlocks_at=self.start + timedelta(days=(i + 1) * gap),
                fraction=fraction,
            )
            for i in range(self.events)
        ]

    def unlocked_amount(self, now: datetime) -> Decimal:
        passed = sum(1 for event in self.unlock_events() if now >= event.unlocks_at)
        if passed == self.events:
            return self.total_amount
        return self.total_amount * passed / self.events


class NoLockupChecker(LockupChecker):
    """Applies no lockup restrictions."""

    async def check(self, address: str, amount: Decimal) -> List[ComplianceViolation]:
        return []


class VestingLockupChecker(LockupChecker):
    """Restricts transfers to the amount a sender's vesting schedule has unlocked."""

    def __init__(
        self,
        schedules: Optional[Dict[str, VestingSchedule]] = None,
        clock: Callable = utcnow,
    ):
        self.schedules: Dict[str, VestingSchedule] = dict(schedules or {})
        self.clock = clock

    def set_schedule(self, address: str, schedule: VestingSchedule) -> None:
        self.schedules[address] = schedule

    async def check(self, address: str, amount: Decimal) -> List[ComplianceViolation]:
        schedule = self.schedules.get(address)
        if schedule is None:
            return []

        unlocked = schedule.unlocked_amount(self.clock())
        if Decimal(amount) > unlocked:
            return [
                ComplianceViolation(
                    code=LOCKUP_RESTRICTED,
                    message=f"Transfer amount exceeds unlocked balance of {unlocked}",
                )
            ]
        return []
