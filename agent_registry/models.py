"""
Data models for the agent identity registry.
"""
from enum import Enum
from typing import Dict, Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .utils import ZERO_ADDRESS, ZERO_KEY


class IdentityStatus(str, Enum):
    """Lifecycle state of an identity record"""
    UNREGISTERED = "unregistered"
    ACTIVE = "active"
    DEACTIVATING = "deactivating"
    WITHDRAWN = "withdrawn"


class Identity(BaseModel):
    """
    A registered agent identity.

    A default-constructed Identity is the zeroed record returned for
    unknown identity keys.
    """
    model_config = ConfigDict(populate_by_name=True)

    identity_key: str = Field(ZERO_KEY, alias="identityKey")
    owner: str = ZERO_ADDRESS
    signing_key: str = Field(ZERO_ADDRESS, alias="signingKey")
    name: str = ""
    metadata_pointer: str = Field("", alias="metadataPointer")
    staked_amount: int = Field(0, alias="stakedAmount", ge=0)
    registered_at: int = Field(0, alias="registeredAt")
    deactivated_at: Optional[int] = Field(None, alias="deactivatedAt")
    withdrawn_at: Optional[int] = Field(None, alias="withdrawnAt")
    total_vouches_received: int = Field(0, alias="totalVouchesReceived", ge=0)

    @property
    def exists(self) -> bool:
        return self.owner != ZERO_ADDRESS

    @property
    def status(self) -> IdentityStatus:
        if not self.exists:
            return IdentityStatus.UNREGISTERED
        if self.withdrawn_at is not None:
            return IdentityStatus.WITHDRAWN
        if self.deactivated_at is not None:
            return IdentityStatus.DEACTIVATING
        return IdentityStatus.ACTIVE


class Vouch(BaseModel):
    """A voucher's staked endorsement slot on an identity"""
    model_config = ConfigDict(populate_by_name=True)

    voucher: str
    amount: int = Field(..., ge=0)
    timestamp: int

    @property
    def active(self) -> bool:
        return self.amount > 0


class EventType(str, Enum):
    """Kinds of state change recorded in the event log"""
    IDENTITY_REGISTERED = "IdentityRegistered"
    PLATFORM_LINKED = "PlatformLinked"
    SIGNING_KEY_UPDATED = "SigningKeyUpdated"
    IDENTITY_DEACTIVATED = "IdentityDeactivated"
    IDENTITY_REACTIVATED = "IdentityReactivated"
    STAKE_WITHDRAWN = "StakeWithdrawn"
    VOUCHED = "Vouched"
    VOUCH_WITHDRAWN = "VouchWithdrawn"
    MIN_STAKE_UPDATED = "MinStakeUpdated"
    DEACTIVATION_COOLDOWN_UPDATED = "DeactivationCooldownUpdated"
    ADMIN_TRANSFERRED = "AdminTransferred"


class RegistryEvent(BaseModel):
    """Durable record of one committed state change"""
    model_config = ConfigDict(populate_by_name=True)

    sequence: int = Field(..., ge=1)
    event_type: EventType = Field(..., alias="eventType")
    identity_key: Optional[str] = Field(None, alias="identityKey")
    timestamp: int
    data: Dict[str, Any] = Field(default_factory=dict)
