"""
Post-deployment configuration of staking factories.

Subscription plans and APR tiers are appended to a factory one transaction at
a time. The factory assigns indexes in submission order, so entry i always
becomes index i; a failed entry stops the sequence and entries that already
mined are left in place.
"""

import json
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from eth_typing import ChecksumAddress
from web3 import Web3

from rollout.constants import ADD_APR_METHOD, ADD_SUBSCRIPTION_METHOD, Role
from rollout.exceptions import InitializationFailed, RolloutConfigError, RolloutError
from rollout.executor import ContractFactory


def to_base_units(amount: str) -> int:
    """Converts a decimal token amount (e.g. "1.5") into 18-decimal base units."""
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation:
        raise RolloutConfigError(f"'{amount}' is not a valid token amount")
    if not value.is_finite() or value < 0:
        raise RolloutConfigError(f"Token amount must be a non-negative number, got '{amount}'")

    try:
        base_units = Web3.to_wei(value, "ether")
    except ValueError as e:
        raise RolloutConfigError(f"Token amount '{amount}' is out of range: {e}")
    if Web3.from_wei(base_units, "ether") != value:
        raise RolloutConfigError(f"Token amount '{amount}' has more than 18 decimals")
    return base_units


class SubscriptionPlan(NamedTuple):
    name: str
    period: int
    price: int
    price_literal: str = ""

    @classmethod
    def from_config(cls, data: Dict[str, Any]) -> "SubscriptionPlan":
        if not isinstance(data, dict):
            raise RolloutConfigError(f"Malformed subscription entry: {data}")
        try:
            name, period, price = data["name"], data["period"], data["price"]
        except KeyError as e:
            raise RolloutConfigError(f"Subscription entry {data} is missing {e}")

        if not isinstance(name, str) or not name.strip():
            raise RolloutConfigError(f"Subscription name must be a non-empty string, got {name!r}")
        if isinstance(period, bool) or not isinstance(period, int) or period <= 0:
            raise RolloutConfigError(
                f"Subscription period must be a positive number of seconds, got {period!r}"
            )
        price_literal = str(price)
        return cls(
            name=name,
            period=period,
            price=to_base_units(price_literal),
            price_literal=price_literal,
        )

    def to_json(self) -> str:
        return json.dumps({"name": self.name, "period": self.period, "price": self.price_literal})


class AprTier(NamedTuple):
    rate: int

    @classmethod
    def from_config(cls, value: Any) -> "AprTier":
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise RolloutConfigError(f"APR must be a non-negative integer, got {value!r}")
        return cls(rate=value)


class InitializationTarget(NamedTuple):
    role: Role
    factory_address: ChecksumAddress
    subscriptions: Tuple[SubscriptionPlan, ...]
    aprs: Tuple[AprTier, ...]


class EntryState(Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    MINED = "mined"
    FAILED = "failed"


class InitializationEntry:
    """One configuration transaction against a factory."""

    def __init__(self, method: str, arguments: Tuple[Any, ...], description: str):
        self.method = method
        self.arguments = arguments
        self.description = description
        self.state = EntryState.PENDING
        self.tx_hash: Optional[str] = None

    def __repr__(self):
        return f"<{self.method}{self.arguments} {self.state.value}>"


class InitializationSequencer:
    """Issues the configuration transactions for a factory strictly one after another."""

    def __init__(self, factory: ContractFactory):
        self.factory = factory

    @staticmethod
    def plan(target: InitializationTarget) -> List[InitializationEntry]:
        entries = list()
        for subscription in target.subscriptions:
            entries.append(
                InitializationEntry(
                    method=ADD_SUBSCRIPTION_METHOD,
                    arguments=(subscription.name, subscription.period, subscription.price),
                    description=f"Add subscription : {subscription.to_json()}",
                )
            )
        for apr in target.aprs:
            entries.append(
                InitializationEntry(
                    method=ADD_APR_METHOD,
                    arguments=(apr.rate,),
                    description=f"Add apr : {apr.rate}",
                )
            )
        return entries

    def initialize(self, target: InitializationTarget) -> List[InitializationEntry]:
        entries = self.plan(target)
        print(f"\nInitialize {target.role.contract_name} at {target.factory_address}...")
        for position, entry in enumerate(entries):
            entry.state = EntryState.SUBMITTED
            try:
                receipt = self.factory.transact(
                    target.role, target.factory_address, entry.method, *entry.arguments
                )
            except RolloutError as e:
                entry.state = EntryState.FAILED
                raise InitializationFailed(target, entries, position) from e
            entry.tx_hash = receipt.tx_hash
            entry.state = EntryState.MINED
            print(entry.description)
        return entries
