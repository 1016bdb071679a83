from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, List, NamedTuple, Optional, Tuple

from eth_typing import ChecksumAddress

from rollout.constants import DEFAULT_PROXY_INITIALIZER, Role
from rollout.exceptions import TransactionFailed
from rollout.registry import AddressRegistry


class ConfirmationState(Enum):
    PENDING = "pending"
    MINED = "mined"
    VERIFIED = "verified"
    VERIFICATION_FAILED = "verification_failed"
    ATTACHED = "attached"


class Receipt(NamedTuple):
    """A mined transaction, reduced to what a rollout needs to know."""

    address: ChecksumAddress
    tx_hash: str
    block_number: Optional[int] = None


class ContractArtifactReference(NamedTuple):
    role: Role
    arguments: Tuple[Any, ...] = ()


class ProxyDeployment(NamedTuple):
    proxy_address: ChecksumAddress
    implementation_address: ChecksumAddress
    initializer_arguments: Tuple[Any, ...]
    tx_hash: str
    block_number: Optional[int] = None


class DeployedContract(NamedTuple):
    role: Role
    address: ChecksumAddress
    tx_hash: Optional[str]
    block_number: Optional[int]
    state: ConfirmationState
    arguments: Tuple[Any, ...] = ()
    # set on proxies whose implementation is known
    implementation: Optional[ChecksumAddress] = None

    @classmethod
    def attached(cls, role: Role, address: ChecksumAddress) -> "DeployedContract":
        return cls(
            role=role,
            address=address,
            tx_hash=None,
            block_number=None,
            state=ConfirmationState.ATTACHED,
        )


class ContractFactory(ABC):
    """
    Capability to create and call the contracts of a rollout.

    Every method blocks until its transaction(s) are mined and raises
    TransactionFailed if submission or mining fails.
    """

    @property
    @abstractmethod
    def chain_id(self) -> int:
        raise NotImplementedError

    @property
    def is_local(self) -> bool:
        return False

    @property
    @abstractmethod
    def deployer_address(self) -> ChecksumAddress:
        raise NotImplementedError

    @abstractmethod
    def deploy(self, role: Role, *args) -> Receipt:
        raise NotImplementedError

    @abstractmethod
    def deploy_proxy(
        self,
        role: Role,
        initializer: str,
        arguments: Tuple[Any, ...],
        implementation: Optional[ChecksumAddress] = None,
    ) -> ProxyDeployment:
        """
        Deploys a proxy for role, initialized with `initializer(*arguments)`.
        A fresh implementation is deployed unless one is given; if it is mined
        and a later step fails, TransactionFailed.implementation holds its receipt.
        """
        raise NotImplementedError

    @abstractmethod
    def upgrade_proxy(self, role: Role, proxy_address: ChecksumAddress) -> Receipt:
        """Deploys a new implementation for role and points the proxy at it."""
        raise NotImplementedError

    @abstractmethod
    def implementation_of(self, proxy_address: ChecksumAddress) -> Optional[ChecksumAddress]:
        """Returns the implementation behind an EIP-1967 proxy, or None if it is not a proxy."""
        raise NotImplementedError

    @abstractmethod
    def transact(self, role: Role, address: ChecksumAddress, method: str, *args) -> Receipt:
        raise NotImplementedError


class StageExecutor:
    """Submits creation transactions one at a time and records their addresses."""

    def __init__(self, factory: ContractFactory, registry: AddressRegistry):
        self.factory = factory
        self.registry = registry

    def deploy(self, artifact: ContractArtifactReference) -> DeployedContract:
        role = artifact.role
        self.registry.ensure_unbound(role)

        print(f"\nDeploying {role.contract_name} as '{role.value}'...")
        receipt = self.factory.deploy(role, *artifact.arguments)
        address = self.registry.record(role, receipt.address)
        print(f"{role.contract_name} deployed to: {address}")

        return DeployedContract(
            role=role,
            address=address,
            tx_hash=receipt.tx_hash,
            block_number=receipt.block_number,
            state=ConfirmationState.MINED,
            arguments=tuple(artifact.arguments),
        )

    def deploy_proxy(
        self,
        role: Role,
        arguments: Tuple[Any, ...],
        initializer: str = DEFAULT_PROXY_INITIALIZER,
        implementation_role: Optional[Role] = None,
    ) -> List[DeployedContract]:
        """
        Deploys a proxy for role and returns the deployed contracts, proxy first.

        With an implementation_role the proxy delegates to that already recorded
        address, otherwise a new implementation is deployed and recorded as
        role.implementation.
        """
        self.registry.ensure_unbound(role)
        implementation = None
        if implementation_role is not None:
            implementation = self.registry.resolve(implementation_role)
        else:
            self.registry.ensure_unbound(role.implementation)

        print(f"\nDeploying {role.contract_name} proxy as '{role.value}'...")
        try:
            deployment = self.factory.deploy_proxy(
                role, initializer, tuple(arguments), implementation=implementation
            )
        except TransactionFailed as e:
            self._keep_implementation(role, e)
            raise
        proxy_address = self.registry.record(role, deployment.proxy_address)
        print(f"{role.contract_name} proxy deployed: {proxy_address}")
        print(
            f"{role.contract_name} Implementation address: {deployment.implementation_address}"
        )

        proxy = DeployedContract(
            role=role,
            address=proxy_address,
            tx_hash=deployment.tx_hash,
            block_number=deployment.block_number,
            state=ConfirmationState.MINED,
            arguments=deployment.initializer_arguments,
            implementation=deployment.implementation_address,
        )
        if implementation_role is not None:
            return [proxy]

        implementation_address = self.registry.record(
            role.implementation, deployment.implementation_address
        )
        logic = DeployedContract(
            role=role.implementation,
            address=implementation_address,
            tx_hash=deployment.tx_hash,
            block_number=deployment.block_number,
            state=ConfirmationState.MINED,
        )
        return [proxy, logic]

    def upgrade(self, role: Role) -> DeployedContract:
        """Upgrades the proxy recorded for role to a freshly deployed implementation."""
        proxy_address = self.registry.resolve(role)
        self.registry.ensure_unbound(role.implementation)

        print(f"\nUpgrading {role.contract_name} at {proxy_address}...")
        try:
            receipt = self.factory.upgrade_proxy(role, proxy_address)
        except TransactionFailed as e:
            self._keep_implementation(role, e)
            raise
        address = self.registry.record(role.implementation, receipt.address)
        print(f"{role.contract_name} upgraded: {proxy_address} -> {address}")

        return DeployedContract(
            role=role.implementation,
            address=address,
            tx_hash=receipt.tx_hash,
            block_number=receipt.block_number,
            state=ConfirmationState.MINED,
        )

    def transact(self, role: Role, method: str, *args) -> Receipt:
        address = self.registry.resolve(role)
        print(f"\nTransacting {role.contract_name}[{address[:10]}].{method}")
        receipt = self.factory.transact(role, address, method, *args)
        print(f"(i) {role.contract_name}.{method} mined in {receipt.tx_hash}")
        return receipt

    def _keep_implementation(self, role: Role, error: TransactionFailed) -> None:
        """Records an implementation that was mined before the transaction that failed."""
        if error.implementation is None:
            return
        address = self.registry.record(role.implementation, error.implementation.address)
        print(f"(i) {role.contract_name} implementation remains deployed at {address}")
        error.deployed.append(
            DeployedContract(
                role=role.implementation,
                address=address,
                tx_hash=error.implementation.tx_hash,
                block_number=error.implementation.block_number,
                state=ConfirmationState.MINED,
            )
        )
