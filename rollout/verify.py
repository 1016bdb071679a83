from abc import ABC, abstractmethod
from typing import NamedTuple, Optional

from ape.logging import logger

from rollout.executor import ConfirmationState, ContractFactory, DeployedContract


class ContractExplorer(ABC):
    """Publishes contract source to a block explorer."""

    @abstractmethod
    def publish(self, contract: DeployedContract, address: str) -> None:
        raise NotImplementedError


class VerificationResult(NamedTuple):
    contract: DeployedContract
    reason: Optional[str] = None

    @property
    def verified(self) -> bool:
        return self.contract.state == ConfirmationState.VERIFIED


class Verifier:
    """
    Best-effort source verification.

    Explorer failures (network errors, "already verified", rate limits) are
    logged and reported as VERIFICATION_FAILED; they never abort a rollout
    and are never retried.
    """

    def __init__(self, explorer: ContractExplorer, factory: ContractFactory):
        self.explorer = explorer
        self.factory = factory

    def _target(self, contract: DeployedContract) -> str:
        """Proxies are verified through their implementation."""
        if contract.implementation:
            return contract.implementation
        implementation = self.factory.implementation_of(contract.address)
        if implementation:
            print(f"Proxy detected; verifying implementation contract at {implementation}")
            return implementation
        return contract.address

    def verify(self, contract: DeployedContract, stage: str = "") -> VerificationResult:
        contract_name = contract.role.contract_name
        target = contract.address
        try:
            target = self._target(contract)
            print(f"(i) Verifying {contract_name} at {target}...")
            self.explorer.publish(contract, target)
        except Exception as e:
            logger.error(
                f"[{stage or contract.role.value}] {contract_name} verification failed "
                f"at {target}: {e!r}"
            )
            failed = contract._replace(state=ConfirmationState.VERIFICATION_FAILED)
            return VerificationResult(contract=failed, reason=str(e))

        print(f"{contract_name} verified")
        verified = contract._replace(state=ConfirmationState.VERIFIED)
        return VerificationResult(contract=verified)
