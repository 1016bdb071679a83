import json
from collections import OrderedDict, defaultdict
from pathlib import Path
from typing import Iterable, List, NamedTuple, Optional

from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address

from rollout.constants import Role
from rollout.exceptions import DuplicateRoleError, UnresolvedDependencyError
from rollout.utils import _load_json

ChainId = int

STANDARD_REGISTRY_JSON_FORMAT = {"indent": 4, "separators": (",", ": ")}


class AddressRegistry:
    """
    Role to address bindings for a single rollout.

    Every role is bound at most once, either by a deployment or by
    attaching a pre-known address.
    """

    def __init__(self):
        self._addresses = OrderedDict()

    def __contains__(self, role: Role) -> bool:
        return role in self._addresses

    def __iter__(self):
        return iter(self._addresses.items())

    def __len__(self) -> int:
        return len(self._addresses)

    def ensure_unbound(self, role: Role) -> None:
        if role in self._addresses:
            raise DuplicateRoleError(role, self._addresses[role])

    def record(self, role: Role, address: str) -> ChecksumAddress:
        """Binds role to address; a role can only be bound once per run."""
        self.ensure_unbound(role)
        address = to_checksum_address(address)
        self._addresses[role] = address
        return address

    def attach(self, role: Role, address: str) -> ChecksumAddress:
        """Binds a pre-known address to a role without any transaction."""
        address = self.record(role, address)
        print(f"(i) Attached {role.contract_name} as '{role.value}' at {address}")
        return address

    def resolve(self, role: Role, stage: Optional[str] = None) -> ChecksumAddress:
        try:
            return self._addresses[role]
        except KeyError:
            raise UnresolvedDependencyError(role, stage=stage)


class RegistryEntry(NamedTuple):
    """Represents a single entry in a rollout artifact file."""

    chain_id: ChainId
    name: str
    contract: str
    address: ChecksumAddress
    tx_hash: Optional[str]
    block_number: Optional[int]
    deployer: Optional[str]
    state: str


def _get_entry(deployment, chain_id: ChainId, deployer: Optional[str]) -> RegistryEntry:
    entry = RegistryEntry(
        chain_id=chain_id,
        name=deployment.role.value,
        contract=deployment.role.contract_name,
        address=to_checksum_address(deployment.address),
        tx_hash=deployment.tx_hash,
        block_number=deployment.block_number,
        # attached contracts were not deployed by us
        deployer=deployer if deployment.tx_hash else None,
        state=deployment.state.value,
    )
    return entry


def read_registry(filepath: Path) -> List[RegistryEntry]:
    data = _load_json(filepath)
    registry_entries = list()
    for chain_id, entries in data.items():
        for name, artifacts in entries.items():
            registry_entry = RegistryEntry(
                chain_id=int(chain_id),
                name=name,
                contract=artifacts["contract"],
                address=artifacts["address"],
                tx_hash=artifacts["tx_hash"],
                block_number=artifacts["block_number"],
                deployer=artifacts["deployer"],
                state=artifacts["state"],
            )
            registry_entries.append(registry_entry)
    return registry_entries


def write_registry(entries: List[RegistryEntry], filepath: Path, silent: bool = False) -> Path:
    """Writes a rollout artifact file, never overwriting a chain that is already present."""

    if not entries:
        if not silent:
            print("No entries provided.")
        return filepath

    entries = sorted(entries, key=lambda entry: (str(entry.chain_id), entry.name))

    data = defaultdict(dict)
    for entry in entries:
        data[str(entry.chain_id)][entry.name] = {
            "contract": entry.contract,
            "address": entry.address,
            "tx_hash": entry.tx_hash,
            "block_number": entry.block_number,
            "deployer": entry.deployer,
            "state": entry.state,
        }

    filepath.parent.mkdir(parents=True, exist_ok=True)

    if filepath.exists():
        if not silent:
            print(f"Updating existing registry at {filepath}.")
        existing_data = _load_json(filepath)

        if any(chain_id in existing_data for chain_id in data):
            filepath = filepath.with_suffix(".unmerged.json")
            if not silent:
                print(
                    "Cannot merge registries with overlapping chain IDs.\n"
                    f"Writing to {filepath} to avoid overwriting existing data."
                )
        else:
            existing_data.update(data)
            data = existing_data
    elif not silent:
        print(f"Creating new registry at {filepath}.")

    with open(filepath, "w") as file:
        json.dump(data, file, **STANDARD_REGISTRY_JSON_FORMAT)

    return filepath


def registry_from_deployments(
    deployments: Iterable,
    chain_id: ChainId,
    output_filepath: Path,
    deployer: Optional[str] = None,
) -> Path:
    """Writes the contracts deployed or attached during a rollout to an artifact file."""
    entries = [_get_entry(d, chain_id=chain_id, deployer=deployer) for d in deployments]
    output_filepath = write_registry(entries=entries, filepath=output_filepath)
    if entries:
        print(f"(i) Registry written to {output_filepath}!")
    return output_filepath
