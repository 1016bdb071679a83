import os
import typing
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Iterator, List

from eth_utils import is_address, to_checksum_address

from rollout.constants import Role
from rollout.exceptions import RolloutConfigError

CONTRACT_CONSTRUCTOR_PARAMETER_KEY = "constructor"
ARGUMENTS_KEY = "arguments"
ADDRESS_KEY = "address"
WAIT_KEY = "wait"
PUBLISH_KEY = "publish"


class VariableContext:
    def __init__(self, stage_name: str, constants: typing.Dict[str, Any] = None):
        self.stage_name = stage_name
        self.constants = constants or dict()


# Variables


class Variable(ABC):
    VARIABLE_PREFIX = "$"

    @abstractmethod
    def resolve(self, context) -> Any:
        raise NotImplementedError

    @classmethod
    def is_variable(cls, param: Any) -> bool:
        """Returns True if the param is a variable."""
        result = isinstance(param, str) and param.startswith(cls.VARIABLE_PREFIX)
        return result


class DeployerAccount(Variable):
    DEPLOYER_INDICATOR = "deployer"

    @classmethod
    def is_deployer(cls, value: str) -> bool:
        """Returns True if the variable is a special deployer variable."""
        return value == cls.DEPLOYER_INDICATOR

    def resolve(self, context) -> Any:
        return context.deployer_address


class Constant(Variable):
    def __init__(self, constant_name: str, context: VariableContext):
        try:
            constant_value = context.constants[constant_name]
        except KeyError:
            raise RolloutConfigError(
                f"Constant '{constant_name}' not found in params file "
                f"(stage '{context.stage_name}')."
            )
        # constants may be read from the environment, e.g. FEE_ADDRESS: $env:FEE_ADDRESS
        if Variable.is_variable(constant_value):
            constant_value = _variable_from_value(constant_value, context)
            if not isinstance(constant_value, Environment):
                raise RolloutConfigError(
                    f"Constant '{constant_name}' may only refer to an environment variable."
                )
        self.constant_value = constant_value

    @classmethod
    def is_constant(cls, value: str) -> bool:
        """Returns True if the variable is a rollout constant."""
        return value.isupper()

    def resolve(self, context) -> Any:
        return _resolve_param(self.constant_value, context)


class Environment(Variable):
    ENV_PREFIX = "env:"

    def __init__(self, variable: str, context: VariableContext):
        self.name = variable[len(self.ENV_PREFIX) :]
        value = os.environ.get(self.name)
        if not value:
            raise RolloutConfigError(
                f"Environment variable {self.name} is not set (stage '{context.stage_name}')."
            )
        self.value = value

    @classmethod
    def is_environment(cls, value: str) -> bool:
        return value.startswith(cls.ENV_PREFIX)

    def resolve(self, context) -> Any:
        return self.value


class RoleAddress(Variable):
    """The address bound to a role; only known once the role is deployed or attached."""

    def __init__(self, role_name: str, context: VariableContext):
        self.role = parse_role(role_name, context.stage_name)
        self.stage_name = context.stage_name

    def resolve(self, context) -> Any:
        return context.registry.resolve(self.role, stage=self.stage_name)


def parse_role(value: Any, stage_name: str) -> Role:
    try:
        return Role(value)
    except ValueError:
        roles = ", ".join(role.value for role in Role)
        raise RolloutConfigError(
            f"Unknown role '{value}' in stage '{stage_name}'; expected one of: {roles}"
        )


def parse_address(value: Any, stage_name: str) -> str:
    if not isinstance(value, str) or not is_address(value):
        raise RolloutConfigError(f"Invalid address '{value}' in stage '{stage_name}'.")
    return to_checksum_address(value)


def _resolve_param(value: Any, context) -> Any:
    """Resolves a single parameter value or a list of parameter values."""
    if isinstance(value, list):
        return [_resolve_param(v, context) for v in value]

    if isinstance(value, Variable):
        return value.resolve(context)

    return value  # literally a value


def _resolve_params(parameters: OrderedDict, context) -> OrderedDict:
    resolved_parameters = OrderedDict()
    for name, value in parameters.items():
        resolved_parameters[name] = _resolve_param(value, context)

    return resolved_parameters


def _variable_from_value(variable: Any, context: VariableContext) -> Variable:
    variable = variable[len(Variable.VARIABLE_PREFIX) :]
    if DeployerAccount.is_deployer(variable):
        return DeployerAccount()
    elif Environment.is_environment(variable):
        return Environment(variable, context)
    elif Constant.is_constant(variable):
        return Constant(variable, context)
    else:
        return RoleAddress(variable, context)


def _process_raw_value(value: Any, variable_context: VariableContext) -> Any:
    if isinstance(value, list):
        return [_process_raw_value(v, variable_context) for v in value]

    if Variable.is_variable(value):
        value = _variable_from_value(value, variable_context)

    return value


def _process_raw_values(values: Any, variable_context: VariableContext) -> OrderedDict:
    if values is None:
        return OrderedDict()
    if not isinstance(values, dict):
        raise RolloutConfigError(
            f"Malformed parameters for stage '{variable_context.stage_name}'; "
            f"expected a mapping of name to value."
        )
    processed_parameters = OrderedDict()
    for name, value in values.items():
        processed_parameters[name] = _process_raw_value(value, variable_context)

    return processed_parameters


def referenced_roles(parameters: OrderedDict) -> List[Role]:
    """Returns the roles referenced by processed parameters, in order of appearance."""

    def _walk(value: Any) -> Iterator[Role]:
        if isinstance(value, list):
            for v in value:
                yield from _walk(v)
        elif isinstance(value, RoleAddress):
            yield value.role

    roles = list()
    for value in parameters.values():
        for role in _walk(value):
            if role not in roles:
                roles.append(role)
    return roles
