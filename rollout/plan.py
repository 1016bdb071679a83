from collections.abc import Mapping
from pathlib import Path
from typing import Any, Dict, Iterable, List, NamedTuple, Optional

from rollout.confirm import _confirm_resolution
from rollout.constants import Role
from rollout.exceptions import (
    DuplicateRoleError,
    RolloutConfigError,
    TransactionFailed,
    UnresolvedDependencyError,
)
from rollout.executor import DeployedContract
from rollout.stages import Stage, StageContext, stage_from_config
from rollout.utils import get_artifact_filepath


class DeploymentFlagSet(Mapping):
    """Read-only stage name -> enabled mapping, fixed for the whole run."""

    def __init__(self, flags: Dict[str, bool]):
        for name, value in flags.items():
            if not isinstance(value, bool):
                raise RolloutConfigError(f"Flag '{name}' must be true or false, got {value!r}")
        self._flags = dict(flags)

    def __getitem__(self, stage_name: str) -> bool:
        return self._flags[stage_name]

    def __iter__(self):
        return iter(self._flags)

    def __len__(self) -> int:
        return len(self._flags)

    def __repr__(self):
        return f"DeploymentFlagSet({self._flags})"

    def with_overrides(
        self, enable: Iterable[str] = (), disable: Iterable[str] = ()
    ) -> "DeploymentFlagSet":
        """Returns a new flag set; used to adjust flags before a run starts."""
        enable, disable = set(enable), set(disable)
        both = enable & disable
        if both:
            names = ", ".join(sorted(both))
            raise RolloutConfigError(f"Stage(s) both enabled and disabled: {names}")
        flags = dict(self._flags)
        for name in enable | disable:
            if name not in flags:
                raise RolloutConfigError(f"No flag for stage '{name}'")
            flags[name] = name in enable
        return DeploymentFlagSet(flags)


class DeploymentPlan(NamedTuple):
    name: str
    chain_id: int
    constants: Dict[str, Any]
    flags: DeploymentFlagSet
    stages: List[Stage]
    artifact_filepath: Path

    @classmethod
    def from_config(
        cls,
        config: Dict,
        enable: Iterable[str] = (),
        disable: Iterable[str] = (),
        attach: Optional[Dict[Role, str]] = None,
    ) -> "DeploymentPlan":
        print("Processing rollout parameters...")
        if not isinstance(config, dict):
            raise RolloutConfigError("Malformed params file.")

        deployment = config.get("deployment")
        if not deployment:
            raise RolloutConfigError("deployment is not set in params file.")
        chain_id = deployment.get("chain_id")
        if not chain_id:
            raise RolloutConfigError("chain_id is not set in params file.")

        constants = config.get("constants") or dict()
        stages = _get_stages(config, constants)
        flags = DeploymentFlagSet(config.get("flags") or dict())
        _check_flags(flags, stages)
        flags = flags.with_overrides(enable=enable, disable=disable)

        for role, address in (attach or dict()).items():
            _override_address(stages, role, address)

        return cls(
            name=deployment.get("name", ""),
            chain_id=int(chain_id),
            constants=constants,
            flags=flags,
            stages=stages,
            artifact_filepath=get_artifact_filepath(config),
        )


def _get_stages(config: Dict, constants: Dict[str, Any]) -> List[Stage]:
    stages_config = config.get("stages")
    if not stages_config:
        raise RolloutConfigError("Params file missing 'stages' field.")

    stages = list()
    for stage_info in stages_config:
        if not isinstance(stage_info, dict) or len(stage_info) != 1:
            raise RolloutConfigError("Malformed stages in params file.")
        stage_name = list(stage_info.keys())[0]  # only one entry
        if any(stage.name == stage_name for stage in stages):
            raise RolloutConfigError(f"Stage '{stage_name}' is declared more than once.")
        stages.append(stage_from_config(stage_name, stage_info[stage_name], constants))
    return stages


def _check_flags(flags: DeploymentFlagSet, stages: List[Stage]) -> None:
    stage_names = [stage.name for stage in stages]
    missing = [name for name in stage_names if name not in flags]
    if missing:
        raise RolloutConfigError(f"No flag set for stage(s): {', '.join(missing)}")
    unknown = [name for name in flags if name not in stage_names]
    if unknown:
        raise RolloutConfigError(f"Flag(s) without a stage: {', '.join(unknown)}")


def _override_address(stages: List[Stage], role: Role, address: str) -> None:
    for stage in stages:
        if stage.role == role and role in stage.produces():
            stage.address = address
            return
    raise RolloutConfigError(f"No stage deploys role '{role.value}'; cannot attach it.")


class DeploymentPlanner:
    """
    Runs the stages of a plan in declaration order.

    For every stage exactly one of these happens: it runs (flag on), its
    literal address is attached (flag off, address given), or nothing.
    """

    def __init__(
        self,
        stages: List[Stage],
        flags: DeploymentFlagSet,
        context: StageContext,
        autosign: bool = True,
    ):
        self.stages = stages
        self.flags = flags
        self.context = context
        self.autosign = autosign

    @property
    def deployments(self) -> List[DeployedContract]:
        return list(self.context.deployments.values())

    def enabled(self, stage: Stage) -> bool:
        return self.flags[stage.name]

    def validate(self) -> None:
        """
        Checks, before any transaction, that every role a stage needs is bound
        by an earlier stage and that no role is bound twice.
        """
        bound = set(role for role, _ in self.context.registry)
        for stage in self.stages:
            if self.enabled(stage):
                for role in stage.requires():
                    if role not in bound:
                        raise UnresolvedDependencyError(role, stage=stage.name)
                roles = stage.produces()
            else:
                roles = stage.attaches()

            for role in roles:
                if role in bound:
                    raise DuplicateRoleError(role)
                bound.add(role)

    def _attach(self, stage: Stage) -> None:
        address = self.context.registry.attach(stage.role, stage.address)
        self.context.track([DeployedContract.attached(stage.role, address)])

    def execute(self) -> List[DeployedContract]:
        self.validate()
        for stage in self.stages:
            if not self.enabled(stage):
                if stage.address:
                    self._attach(stage)
                else:
                    print(f"(i) Skipping {stage.name}")
                continue

            print(f"\n*** {stage.name} ***")
            if not self.autosign:
                _confirm_resolution(stage.describe(self.context), stage.name)
            try:
                contracts = stage.execute(self.context)
            except TransactionFailed as e:
                # whatever was mined before the failure still goes into the artifact
                self.context.track(e.deployed)
                raise
            self.context.track(contracts)

        return self.deployments
