"""ape-backed implementations of the rollout collaborators."""

import os
from pathlib import Path
from typing import Any, Optional, Tuple

from ape import chain, networks, project
from ape.api import AccountAPI, ReceiptAPI
from ape.cli.choices import select_account
from ape.contracts import ContractContainer, ContractInstance
from ape.exceptions import ApeException
from ape.utils import EMPTY_BYTES32
from ape_etherscan.utils import API_KEY_ENV_KEY_MAP
from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address
from web3.auto import w3

from rollout.constants import (
    EIP1967_ADMIN_SLOT,
    EIP1967_IMPLEMENTATION_SLOT,
    LOCAL_NETWORKS,
    OZ_DEPENDENCY_NAME,
    OZ_DEPENDENCY_VERSION,
    Role,
)
from rollout.exceptions import RolloutConfigError, TransactionFailed
from rollout.executor import ContractFactory, DeployedContract, ProxyDeployment, Receipt
from rollout.explorer import EtherscanIndexer
from rollout.runner import Rollout
from rollout.utils import _load_yaml
from rollout.verify import ContractExplorer


def is_local_network() -> bool:
    return networks.provider.network.name in LOCAL_NETWORKS


def check_etherscan_plugin() -> None:
    """
    Checks that the ape-etherscan plugin is usable and that the
    appropriate API key environment variable is set.
    """
    if is_local_network():
        # unnecessary for local deployment
        return
    ecosystem_name = networks.provider.network.ecosystem.name
    explorer_envvar = API_KEY_ENV_KEY_MAP.get(ecosystem_name)
    api_key = os.environ.get(explorer_envvar) if explorer_envvar else None
    if not api_key:
        raise ValueError(f"{explorer_envvar or 'Explorer API key'} is not set.")


def get_oz_dependency():
    return project.dependencies[OZ_DEPENDENCY_NAME][OZ_DEPENDENCY_VERSION]


def _get_dependency_contract_container(contract: str) -> ContractContainer:
    for dependency_name, dependency_versions in project.dependencies.items():
        if len(dependency_versions) > 1:
            raise ValueError(f"Ambiguous {dependency_name} dependency for {contract}")
        try:
            dependency_api = list(dependency_versions.values())[0]
            contract_container = getattr(dependency_api, contract)
            return contract_container
        except AttributeError:
            continue
    raise ValueError(f"No contract found with name '{contract}'.")


def get_contract_container(contract: str) -> ContractContainer:
    try:
        contract_container = getattr(project, contract)
    except AttributeError:
        # not in root project; check dependencies
        contract_container = _get_dependency_contract_container(contract)

    return contract_container


def _receipt(address: str, receipt: ReceiptAPI) -> Receipt:
    return Receipt(
        address=to_checksum_address(address),
        tx_hash=receipt.txn_hash,
        block_number=receipt.block_number,
    )


def _address_from_slot(value: bytes) -> Optional[ChecksumAddress]:
    if not value or bytes(value) == EMPTY_BYTES32:
        return None
    return to_checksum_address(bytes(value)[-20:])


def _validate_method_args(container: ContractContainer, method_name: str, args: Tuple) -> None:
    """Checks args against the ABI of container.method_name before anything is sent."""
    contract_name = container.contract_type.name
    method_abis = [abi for abi in container.contract_type.methods if abi.name == method_name]
    if len(method_abis) == 0:
        raise RolloutConfigError(f"{contract_name} has no method '{method_name}'")

    abis_matching_args_length = [abi for abi in method_abis if len(abi.inputs) == len(args)]
    for abi in abis_matching_args_length:
        if all(w3.is_encodable(i.canonical_type, arg) for i, arg in zip(abi.inputs, args)):
            return
    raise RolloutConfigError(
        f"Could not find ABI for '{contract_name}.{method_name}' with {len(args)} arg(s) "
        f"and given type(s)"
    )


class ApeContractFactory(ContractFactory):
    """Deploys and calls rollout contracts from a single ape account."""

    def __init__(self, account: AccountAPI):
        self.account = account

    @property
    def chain_id(self) -> int:
        return networks.provider.network.chain_id

    @property
    def is_local(self) -> bool:
        return is_local_network()

    @property
    def deployer_address(self) -> ChecksumAddress:
        return to_checksum_address(self.account.address)

    def _container(self, role: Role) -> ContractContainer:
        try:
            return get_contract_container(role.contract_name)
        except ValueError as e:
            raise TransactionFailed(role, "Contract lookup", str(e)) from e

    def _oz_container(self, role: Role, contract: str) -> ContractContainer:
        try:
            return getattr(get_oz_dependency(), contract)
        except (KeyError, AttributeError, ApeException) as e:
            raise TransactionFailed(role, f"{contract} lookup", str(e)) from e

    def _deploy(
        self, role: Role, container: ContractContainer, *args, implementation=None
    ) -> ContractInstance:
        try:
            return self.account.deploy(container, *args)
        except ApeException as e:
            raise TransactionFailed(
                role,
                f"Deployment of {container.contract_type.name}",
                str(e),
                implementation=implementation,
            ) from e

    def deploy(self, role: Role, *args) -> Receipt:
        instance = self._deploy(role, self._container(role), *args)
        return _receipt(instance.address, instance.receipt)

    def deploy_proxy(
        self,
        role: Role,
        initializer: str,
        arguments: Tuple[Any, ...],
        implementation: Optional[ChecksumAddress] = None,
    ) -> ProxyDeployment:
        container = self._container(role)
        _validate_method_args(container, initializer, arguments)
        proxy_container = self._oz_container(role, "TransparentUpgradeableProxy")

        mined_implementation = None
        if implementation is None:
            logic = self._deploy(role, container)
            mined_implementation = _receipt(logic.address, logic.receipt)
            implementation = mined_implementation.address
        else:
            try:
                logic = container.at(implementation)
            except ApeException as e:
                raise TransactionFailed(role, f"Lookup of {implementation}", str(e)) from e

        try:
            data = getattr(logic, initializer).encode_input(*arguments)
        except (AttributeError, ValueError, ApeException) as e:
            raise TransactionFailed(
                role, f"Encoding {initializer}", str(e), implementation=mined_implementation
            ) from e

        print(
            f"\nDeploying {proxy_container.contract_type.name} "
            f"contract to proxy {role.contract_name}."
        )
        proxy = self._deploy(
            role,
            proxy_container,
            implementation,
            self.account.address,
            data,
            implementation=mined_implementation,
        )
        receipt = proxy.receipt
        return ProxyDeployment(
            proxy_address=to_checksum_address(proxy.address),
            implementation_address=implementation,
            initializer_arguments=tuple(arguments),
            tx_hash=receipt.txn_hash,
            block_number=receipt.block_number,
        )

    def upgrade_proxy(self, role: Role, proxy_address: ChecksumAddress) -> Receipt:
        try:
            admin_slot = chain.provider.get_storage(proxy_address, EIP1967_ADMIN_SLOT)
        except ApeException as e:
            raise TransactionFailed(role, "Upgrade", f"Cannot read admin slot: {e}") from e
        admin_address = _address_from_slot(admin_slot)
        if admin_address is None:
            raise TransactionFailed(
                role,
                "Upgrade",
                f"Admin slot for contract at {proxy_address} is empty. "
                "Are you sure this is an EIP1967-compatible proxy?",
            )
        proxy_admin_container = self._oz_container(role, "ProxyAdmin")
        try:
            proxy_admin = proxy_admin_container.at(admin_address)
        except ApeException as e:
            raise TransactionFailed(role, "Upgrade", str(e)) from e

        implementation = self._deploy(role, self._container(role))
        mined_implementation = _receipt(implementation.address, implementation.receipt)
        try:
            receipt = proxy_admin.upgradeAndCall(
                proxy_address, implementation.address, b"", sender=self.account
            )
        except ApeException as e:
            raise TransactionFailed(
                role, "Upgrade", str(e), implementation=mined_implementation
            ) from e
        return _receipt(implementation.address, receipt)

    def implementation_of(self, proxy_address: ChecksumAddress) -> Optional[ChecksumAddress]:
        value = chain.provider.get_storage(proxy_address, EIP1967_IMPLEMENTATION_SLOT)
        return _address_from_slot(value)

    def transact(self, role: Role, address: ChecksumAddress, method: str, *args) -> Receipt:
        container = self._container(role)
        try:
            instance = container.at(address)
            receipt = getattr(instance, method)(*args, sender=self.account)
        except (AttributeError, ApeException) as e:
            raise TransactionFailed(role, method, str(e)) from e
        if receipt.failed:
            raise TransactionFailed(role, method, "transaction reverted", receipt.txn_hash)
        return _receipt(address, receipt)


class ApeExplorer(ContractExplorer):
    """Publishes contract source through the network's ape explorer plugin."""

    def publish(self, contract: DeployedContract, address: str) -> None:
        explorer = networks.provider.network.explorer
        if explorer is None:
            raise ValueError(f"No explorer configured for {networks.provider.network.name}")
        explorer.publish_contract(address)


class ApeRollout(Rollout):
    """A rollout signed by an ape account on the connected network."""

    @classmethod
    def from_yaml(
        cls,
        filepath: Path,
        account: Optional[AccountAPI] = None,
        verify: bool = True,
        autosign: bool = False,
        **kwargs,
    ) -> "ApeRollout":
        if account is None:
            account = select_account()
        if autosign:
            print("WARNING: Autosign is enabled. Transactions will be signed automatically.")
        if hasattr(account, "set_autosign"):
            account.set_autosign(autosign)

        local = is_local_network()
        verify = verify and not local
        if verify:
            check_etherscan_plugin()

        factory = ApeContractFactory(account)
        indexer = None if local else EtherscanIndexer.from_environment(factory.chain_id)
        return cls(
            _load_yaml(filepath),
            filepath,
            factory=factory,
            explorer=ApeExplorer() if verify else None,
            indexer=indexer,
            verify=verify,
            autosign=autosign,
            **kwargs,
        )
