import typing
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from rollout.constants import (
    DEFAULT_PROXY_INITIALIZER,
    DEPLOY_SETTLE_SECONDS,
    PROXY_SETTLE_SECONDS,
    Role,
)
from rollout.exceptions import RolloutConfigError
from rollout.executor import (
    ContractArtifactReference,
    DeployedContract,
    StageExecutor,
)
from rollout.initialize import (
    AprTier,
    InitializationSequencer,
    InitializationTarget,
    SubscriptionPlan,
)
from rollout.params import (
    ADDRESS_KEY,
    ARGUMENTS_KEY,
    CONTRACT_CONSTRUCTOR_PARAMETER_KEY,
    PUBLISH_KEY,
    WAIT_KEY,
    VariableContext,
    _process_raw_values,
    _resolve_params,
    parse_address,
    parse_role,
    referenced_roles,
)
from rollout.registry import AddressRegistry
from rollout.verify import Verifier
from rollout.waiter import ConfirmationWaiter


class StageContext:
    """Everything a stage needs while it runs."""

    def __init__(
        self,
        registry: AddressRegistry,
        executor: StageExecutor,
        waiter: ConfirmationWaiter,
        sequencer: InitializationSequencer,
        verifier: Optional[Verifier] = None,
        deployer_address: Optional[str] = None,
    ):
        self.registry = registry
        self.executor = executor
        self.waiter = waiter
        self.sequencer = sequencer
        self.verifier = verifier
        self.deployer_address = deployer_address
        self.deployments: typing.OrderedDict[Role, DeployedContract] = OrderedDict()

    def resolve(self, parameters: OrderedDict) -> OrderedDict:
        return _resolve_params(parameters, self)

    def track(self, contracts: List[DeployedContract]) -> None:
        for contract in contracts:
            self.deployments[contract.role] = contract

    def settle(self, contract: DeployedContract, seconds: float) -> None:
        # proxies are published through their implementation
        self.waiter.settle(contract.implementation or contract.address, seconds)

    def publish(self, contract: DeployedContract, stage_name: str) -> DeployedContract:
        if self.verifier is None:
            print(f"(i) Verification disabled; skipping {contract.role.contract_name}")
            return contract
        return self.verifier.verify(contract, stage=stage_name).contract


class Stage(ABC):
    KIND = None
    DEFAULT_WAIT = 0
    OPTIONS = frozenset()

    def __init__(
        self,
        name: str,
        role: Role,
        parameters: Optional[OrderedDict] = None,
        address: Optional[str] = None,
        wait: Optional[float] = None,
        publish: bool = False,
    ):
        self.name = name
        self.role = role
        self.parameters = parameters or OrderedDict()
        self.address = address
        self.wait = self.DEFAULT_WAIT if wait is None else wait
        self.publish = publish

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.name} ({self.KIND} {self.role.value})>"

    def requires(self) -> List[Role]:
        """Roles that must be bound before this stage runs."""
        return referenced_roles(self.parameters)

    def produces(self) -> List[Role]:
        """Roles this stage binds when it runs."""
        return list()

    def attaches(self) -> List[Role]:
        """Roles this stage binds when it is disabled."""
        return [self.role] if self.address else list()

    def describe(self, context: StageContext) -> OrderedDict:
        return context.resolve(self.parameters)

    @abstractmethod
    def execute(self, context: StageContext) -> List[DeployedContract]:
        raise NotImplementedError

    @classmethod
    def _common_options(cls, name: str, data: Dict) -> Dict[str, Any]:
        options = dict()
        if ADDRESS_KEY in data:
            options["address"] = parse_address(data[ADDRESS_KEY], name)
        if WAIT_KEY in data:
            wait = data[WAIT_KEY]
            if isinstance(wait, bool) or not isinstance(wait, (int, float)) or wait < 0:
                raise RolloutConfigError(f"'{WAIT_KEY}' for stage '{name}' must be >= 0 seconds.")
            options["wait"] = wait
        if PUBLISH_KEY in data:
            if not isinstance(data[PUBLISH_KEY], bool):
                raise RolloutConfigError(f"'{PUBLISH_KEY}' for stage '{name}' must be true/false.")
            options["publish"] = data[PUBLISH_KEY]
        return options

    @classmethod
    def from_config(
        cls, name: str, role: Role, data: Dict, variable_context: VariableContext
    ) -> "Stage":
        return cls(name=name, role=role, **cls._common_options(name, data))


class DeployStage(Stage):
    """Deploys a single contract, e.g. a template that factories clone."""

    KIND = "deploy"
    DEFAULT_WAIT = DEPLOY_SETTLE_SECONDS
    OPTIONS = frozenset({CONTRACT_CONSTRUCTOR_PARAMETER_KEY, ADDRESS_KEY, WAIT_KEY, PUBLISH_KEY})

    def produces(self) -> List[Role]:
        return [self.role]

    def execute(self, context: StageContext) -> List[DeployedContract]:
        arguments = context.resolve(self.parameters)
        artifact = ContractArtifactReference(role=self.role, arguments=tuple(arguments.values()))
        contract = context.executor.deploy(artifact)
        context.settle(contract, self.wait)
        if self.publish:
            contract = context.publish(contract, self.name)
        return [contract]

    @classmethod
    def from_config(cls, name, role, data, variable_context):
        parameters = _process_raw_values(
            data.get(CONTRACT_CONSTRUCTOR_PARAMETER_KEY), variable_context
        )
        return cls(name=name, role=role, parameters=parameters, **cls._common_options(name, data))


class ProxyStage(Stage):
    """Deploys an upgradeable proxy (and, unless given, its implementation)."""

    KIND = "proxy"
    DEFAULT_WAIT = PROXY_SETTLE_SECONDS
    INITIALIZER_KEY = "initializer"
    IMPLEMENTATION_KEY = "implementation"
    OPTIONS = frozenset(
        {INITIALIZER_KEY, IMPLEMENTATION_KEY, ARGUMENTS_KEY, ADDRESS_KEY, WAIT_KEY, PUBLISH_KEY}
    )

    def __init__(
        self,
        *args,
        initializer: str = DEFAULT_PROXY_INITIALIZER,
        implementation_role: Optional[Role] = None,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.initializer = initializer
        self.implementation_role = implementation_role

    def requires(self) -> List[Role]:
        roles = super().requires()
        if self.implementation_role and self.implementation_role not in roles:
            roles.append(self.implementation_role)
        return roles

    def produces(self) -> List[Role]:
        if self.implementation_role:
            return [self.role]
        return [self.role, self.role.implementation]

    def execute(self, context: StageContext) -> List[DeployedContract]:
        arguments = context.resolve(self.parameters)
        contracts = context.executor.deploy_proxy(
            self.role,
            tuple(arguments.values()),
            initializer=self.initializer,
            implementation_role=self.implementation_role,
        )
        proxy = contracts[0]
        context.settle(proxy, self.wait)
        if self.publish:
            proxy = context.publish(proxy, self.name)
            contracts = [proxy] + [c._replace(state=proxy.state) for c in contracts[1:]]
        return contracts

    @classmethod
    def from_config(cls, name, role, data, variable_context):
        initializer = data.get(cls.INITIALIZER_KEY, DEFAULT_PROXY_INITIALIZER)
        if not isinstance(initializer, str) or not initializer:
            raise RolloutConfigError(f"Invalid initializer for stage '{name}'.")

        implementation_role = None
        if cls.IMPLEMENTATION_KEY in data:
            implementation_role = parse_role(data[cls.IMPLEMENTATION_KEY], name)
        else:
            _check_proxied(role, name)

        parameters = _process_raw_values(data.get(ARGUMENTS_KEY), variable_context)
        return cls(
            name=name,
            role=role,
            parameters=parameters,
            initializer=initializer,
            implementation_role=implementation_role,
            **cls._common_options(name, data),
        )


class UpgradeStage(Stage):
    """Deploys a new implementation and upgrades an existing proxy to it."""

    KIND = "upgrade"
    DEFAULT_WAIT = PROXY_SETTLE_SECONDS
    OPTIONS = frozenset({WAIT_KEY, PUBLISH_KEY})

    def requires(self) -> List[Role]:
        return [self.role]

    def produces(self) -> List[Role]:
        return [self.role.implementation]

    def execute(self, context: StageContext) -> List[DeployedContract]:
        implementation = context.executor.upgrade(self.role)
        context.settle(implementation, self.wait)
        if self.publish:
            implementation = context.publish(implementation, self.name)
        return [implementation]

    @classmethod
    def from_config(cls, name, role, data, variable_context):
        _check_proxied(role, name)
        return super().from_config(name, role, data, variable_context)


class TransactStage(Stage):
    """Sends a single transaction to a contract bound to a role."""

    KIND = "transact"
    METHOD_KEY = "method"
    OPTIONS = frozenset({METHOD_KEY, ARGUMENTS_KEY})

    def __init__(self, *args, method: str, **kwargs):
        super().__init__(*args, **kwargs)
        self.method = method

    def requires(self) -> List[Role]:
        roles = [self.role]
        roles.extend(r for r in super().requires() if r != self.role)
        return roles

    def execute(self, context: StageContext) -> List[DeployedContract]:
        arguments = context.resolve(self.parameters)
        context.executor.transact(self.role, self.method, *arguments.values())
        return list()

    @classmethod
    def from_config(cls, name, role, data, variable_context):
        method = data.get(cls.METHOD_KEY)
        if not isinstance(method, str) or not method:
            raise RolloutConfigError(f"'{cls.METHOD_KEY}' is not set for stage '{name}'.")
        parameters = _process_raw_values(data.get(ARGUMENTS_KEY), variable_context)
        return cls(name=name, role=role, parameters=parameters, method=method)


class VerifyStage(Stage):
    """Verifies the source of a contract bound to a role."""

    KIND = "verify"

    def requires(self) -> List[Role]:
        return [self.role]

    def execute(self, context: StageContext) -> List[DeployedContract]:
        address = context.registry.resolve(self.role, stage=self.name)
        contract = context.deployments.get(self.role) or DeployedContract.attached(
            self.role, address
        )
        return [context.publish(contract, self.name)]


class InitializeStage(Stage):
    """Registers subscription plans and APR tiers on a staking factory."""

    KIND = "initialize"
    SUBSCRIPTIONS_KEY = "subscriptions"
    APRS_KEY = "aprs"
    OPTIONS = frozenset({SUBSCRIPTIONS_KEY, APRS_KEY})

    def __init__(self, *args, subscriptions=(), aprs=(), **kwargs):
        super().__init__(*args, **kwargs)
        self.subscriptions = tuple(subscriptions)
        self.aprs = tuple(aprs)

    def requires(self) -> List[Role]:
        return [self.role]

    def describe(self, context: StageContext) -> OrderedDict:
        description = OrderedDict()
        for index, subscription in enumerate(self.subscriptions):
            description[f"subscription[{index}]"] = subscription.to_json()
        for index, apr in enumerate(self.aprs):
            description[f"apr[{index}]"] = apr.rate
        return description

    def execute(self, context: StageContext) -> List[DeployedContract]:
        target = InitializationTarget(
            role=self.role,
            factory_address=context.registry.resolve(self.role, stage=self.name),
            subscriptions=self.subscriptions,
            aprs=self.aprs,
        )
        context.sequencer.initialize(target)
        return list()

    @classmethod
    def from_config(cls, name, role, data, variable_context):
        subscriptions = data.get(cls.SUBSCRIPTIONS_KEY) or list()
        aprs = data.get(cls.APRS_KEY) or list()
        if not isinstance(subscriptions, list) or not isinstance(aprs, list):
            raise RolloutConfigError(
                f"'{cls.SUBSCRIPTIONS_KEY}' and '{cls.APRS_KEY}' of stage '{name}' must be lists."
            )
        return cls(
            name=name,
            role=role,
            subscriptions=[SubscriptionPlan.from_config(s) for s in subscriptions],
            aprs=[AprTier.from_config(a) for a in aprs],
        )


STAGE_TYPES = {
    stage_type.KIND: stage_type
    for stage_type in (
        DeployStage,
        ProxyStage,
        UpgradeStage,
        TransactStage,
        VerifyStage,
        InitializeStage,
    )
}


def _check_proxied(role: Role, stage_name: str) -> None:
    try:
        role.implementation
    except ValueError as e:
        raise RolloutConfigError(f"{e} (stage '{stage_name}')")


def stage_from_config(name: str, data: Any, constants: Dict[str, Any]) -> Stage:
    """Builds a stage from its params file entry."""
    if not isinstance(data, dict):
        raise RolloutConfigError(f"Malformed stage '{name}'.")

    kinds = [key for key in data if key in STAGE_TYPES]
    if len(kinds) != 1:
        raise RolloutConfigError(
            f"Stage '{name}' must declare exactly one of: {', '.join(STAGE_TYPES)}."
        )
    kind = kinds[0]
    stage_type = STAGE_TYPES[kind]

    unknown = set(data) - {kind} - stage_type.OPTIONS
    if unknown:
        raise RolloutConfigError(
            f"Unsupported option(s) for {kind} stage '{name}': {', '.join(sorted(unknown))}"
        )

    role = parse_role(data[kind], name)
    variable_context = VariableContext(stage_name=name, constants=constants)
    return stage_type.from_config(name, role, data, variable_context)
