import pytest

from rollout.constants import Role
from rollout.exceptions import (
    DuplicateRoleError,
    TransactionFailed,
    UnresolvedDependencyError,
)
from rollout.executor import ConfirmationState, ContractArtifactReference
from tests.conftest import COMMON_OWNER, MERCHANT_TEMPLATE


def test_deploy(executor, factory, registry):
    contract = executor.deploy(ContractArtifactReference(role=Role.MERCHANT))

    assert contract.role == Role.MERCHANT
    assert contract.state == ConfirmationState.MINED
    assert contract.tx_hash
    assert registry.resolve(Role.MERCHANT) == contract.address
    assert factory.transactions == [("deploy", Role.MERCHANT, ())]


def test_deploy_with_constructor_arguments(executor, factory):
    artifact = ContractArtifactReference(role=Role.MERCHANT, arguments=(COMMON_OWNER, 3))
    contract = executor.deploy(artifact)
    assert contract.arguments == (COMMON_OWNER, 3)
    assert factory.transactions == [("deploy", Role.MERCHANT, (COMMON_OWNER, 3))]


def test_failed_deployment_is_fatal_and_not_recorded(executor, factory, registry):
    factory.fail_at = 0
    with pytest.raises(TransactionFailed) as error:
        executor.deploy(ContractArtifactReference(role=Role.MERCHANT))
    assert error.value.role == Role.MERCHANT
    assert Role.MERCHANT not in registry
    assert factory.transactions == []


def test_deploy_bound_role_submits_nothing(executor, factory, registry):
    registry.attach(Role.MERCHANT, MERCHANT_TEMPLATE)
    with pytest.raises(DuplicateRoleError):
        executor.deploy(ContractArtifactReference(role=Role.MERCHANT))
    assert factory.submissions == 0


def test_deploy_proxy(executor, factory, registry):
    proxy, implementation = executor.deploy_proxy(
        Role.FACTORY, arguments=(COMMON_OWNER, MERCHANT_TEMPLATE, COMMON_OWNER)
    )

    assert proxy.role == Role.FACTORY
    assert implementation.role == Role.FACTORY_IMPLEMENTATION
    assert proxy.implementation == implementation.address
    assert proxy.arguments == (COMMON_OWNER, MERCHANT_TEMPLATE, COMMON_OWNER)
    assert registry.resolve(Role.FACTORY) == proxy.address
    assert registry.resolve(Role.FACTORY_IMPLEMENTATION) == implementation.address
    assert factory.implementation_of(proxy.address) == implementation.address
    assert factory.actions() == ["deploy_proxy"]


def test_deploy_proxy_over_recorded_implementation(executor, factory, registry):
    implementation = registry.record(Role.FACTORY_IMPLEMENTATION, MERCHANT_TEMPLATE)
    contracts = executor.deploy_proxy(
        Role.FACTORY, arguments=(), implementation_role=Role.FACTORY_IMPLEMENTATION
    )
    assert len(contracts) == 1
    assert contracts[0].implementation == implementation


def test_deploy_proxy_requires_recorded_implementation(executor, factory):
    with pytest.raises(UnresolvedDependencyError) as error:
        executor.deploy_proxy(
            Role.FACTORY, arguments=(), implementation_role=Role.FACTORY_IMPLEMENTATION
        )
    assert error.value.role == Role.FACTORY_IMPLEMENTATION
    assert factory.submissions == 0


def test_deploy_proxy_for_unproxied_role(executor, factory):
    with pytest.raises(ValueError):
        executor.deploy_proxy(Role.MERCHANT, arguments=())
    assert factory.submissions == 0


def test_upgrade(executor, factory, registry):
    registry.attach(Role.FACTORY, MERCHANT_TEMPLATE)
    implementation = executor.upgrade(Role.FACTORY)

    assert implementation.role == Role.FACTORY_IMPLEMENTATION
    assert registry.resolve(Role.FACTORY_IMPLEMENTATION) == implementation.address
    assert factory.implementation_of(MERCHANT_TEMPLATE) == implementation.address


def test_upgrade_requires_proxy(executor, factory):
    with pytest.raises(UnresolvedDependencyError):
        executor.upgrade(Role.FACTORY)
    assert factory.submissions == 0


def test_transact(executor, factory, registry):
    registry.attach(Role.FACTORY, MERCHANT_TEMPLATE)
    receipt = executor.transact(Role.FACTORY, "deployMerchant", COMMON_OWNER, [])
    assert receipt.address == MERCHANT_TEMPLATE
    assert factory.transactions == [
        ("transact", Role.FACTORY, MERCHANT_TEMPLATE, "deployMerchant", (COMMON_OWNER, []))
    ]


def test_failed_proxy_keeps_mined_implementation(executor, factory, registry):
    factory.fail_at = 0
    factory.strand_implementation = True
    with pytest.raises(TransactionFailed) as error:
        executor.deploy_proxy(Role.FACTORY, arguments=(COMMON_OWNER, MERCHANT_TEMPLATE))

    implementation = error.value.implementation.address
    assert implementation in str(error.value)
    assert registry.resolve(Role.FACTORY_IMPLEMENTATION) == implementation
    assert Role.FACTORY not in registry
    [kept] = error.value.deployed
    assert kept.role == Role.FACTORY_IMPLEMENTATION
    assert kept.address == implementation
    assert kept.state == ConfirmationState.MINED


def test_failed_proxy_over_recorded_implementation_keeps_nothing(executor, factory, registry):
    registry.record(Role.FACTORY_IMPLEMENTATION, MERCHANT_TEMPLATE)
    factory.fail_at = 0
    factory.strand_implementation = True
    with pytest.raises(TransactionFailed) as error:
        executor.deploy_proxy(
            Role.FACTORY, arguments=(), implementation_role=Role.FACTORY_IMPLEMENTATION
        )
    assert error.value.implementation is None
    assert error.value.deployed == []
    assert registry.resolve(Role.FACTORY_IMPLEMENTATION) == MERCHANT_TEMPLATE


def test_failed_upgrade_keeps_mined_implementation(executor, factory, registry):
    registry.attach(Role.FACTORY, MERCHANT_TEMPLATE)
    factory.fail_at = 0
    factory.strand_implementation = True
    with pytest.raises(TransactionFailed) as error:
        executor.upgrade(Role.FACTORY)

    implementation = error.value.implementation.address
    assert registry.resolve(Role.FACTORY_IMPLEMENTATION) == implementation
    assert error.value.deployed[0].role == Role.FACTORY_IMPLEMENTATION
    assert factory.implementation_of(MERCHANT_TEMPLATE) is None
