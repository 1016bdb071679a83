import typing
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from ape.logging import logger

from rollout.confirm import _continue
from rollout.constants import Role
from rollout.exceptions import RolloutConfigError, RolloutError
from rollout.executor import ContractFactory, DeployedContract, StageExecutor
from rollout.initialize import InitializationSequencer
from rollout.plan import DeploymentPlan, DeploymentPlanner
from rollout.registry import AddressRegistry, registry_from_deployments
from rollout.stages import StageContext
from rollout.utils import _load_yaml
from rollout.verify import ContractExplorer, Verifier
from rollout.waiter import ConfirmationWaiter, Indexer


class Rollout:
    """
    A single rollout run: a plan plus the collaborators needed to carry it out.

    Everything runs sequentially from one signing account.
    """

    def __init__(
        self,
        config: typing.Dict,
        path: Optional[Path],
        factory: ContractFactory,
        explorer: Optional[ContractExplorer] = None,
        indexer: Optional[Indexer] = None,
        waiter: Optional[ConfirmationWaiter] = None,
        verify: bool = True,
        autosign: bool = False,
        enable: Iterable[str] = (),
        disable: Iterable[str] = (),
        attach: Optional[Dict[Role, str]] = None,
    ):
        self.path = path
        self.config = config
        self.factory = factory
        self.autosign = autosign
        self.plan = DeploymentPlan.from_config(
            config, enable=enable, disable=disable, attach=attach
        )
        self._check_chain_id()

        self.registry = AddressRegistry()
        self.verify = verify and explorer is not None
        verifier = Verifier(explorer=explorer, factory=factory) if self.verify else None
        self.context = StageContext(
            registry=self.registry,
            executor=StageExecutor(factory=factory, registry=self.registry),
            waiter=waiter or ConfirmationWaiter(indexer=indexer),
            sequencer=InitializationSequencer(factory=factory),
            verifier=verifier,
            deployer_address=factory.deployer_address,
        )
        self.planner = DeploymentPlanner(
            stages=self.plan.stages,
            flags=self.plan.flags,
            context=self.context,
            autosign=autosign,
        )

    @classmethod
    def from_yaml(cls, filepath: Path, *args, **kwargs) -> "Rollout":
        config = _load_yaml(filepath)
        return cls(config, filepath, *args, **kwargs)

    def _check_chain_id(self) -> None:
        chain_id = self.factory.chain_id
        if self.plan.chain_id != chain_id and not self.factory.is_local:
            raise RolloutConfigError(
                f"chain_id in params file ({self.plan.chain_id}) does not match "
                f"chain_id of current network ({chain_id})."
            )

    @property
    def deployments(self) -> List[DeployedContract]:
        return self.planner.deployments

    def execute(self) -> List[DeployedContract]:
        """Runs every enabled stage; raises on the first fatal failure."""
        self._print_rollout_info()
        if not self.autosign:
            _continue()
        try:
            return self.planner.execute()
        finally:
            self.finalize()

    def run(self) -> int:
        """Runs the rollout and returns a process exit code."""
        try:
            self.execute()
        except RolloutError as e:
            logger.error(f"Rollout '{self.plan.name}' aborted: {e}")
            return 1
        print(f"\n(i) Rollout '{self.plan.name}' complete.")
        return 0

    def finalize(self) -> Path:
        """Writes everything deployed or attached so far to the artifact file."""
        return registry_from_deployments(
            deployments=self.deployments,
            chain_id=self.factory.chain_id,
            output_filepath=self.plan.artifact_filepath,
            deployer=self.factory.deployer_address,
        )

    def _print_rollout_info(self):
        enabled = [name for name, on in self.plan.flags.items() if on]
        print(
            f"Rollout: {self.plan.name}",
            f"Account: {self.factory.deployer_address}",
            f"Config: {self.path}",
            f"Registry: {self.plan.artifact_filepath}",
            f"Verify: {self.verify}",
            f"Chain ID: {self.factory.chain_id}",
            f"Stages: {', '.join(enabled) or '(none)'}",
            sep="\n",
        )
