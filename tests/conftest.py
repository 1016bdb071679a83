from collections import OrderedDict

import pytest
from eth_utils import to_checksum_address

from rollout.exceptions import TransactionFailed
from rollout.executor import ContractFactory, ProxyDeployment, Receipt, StageExecutor
from rollout.initialize import InitializationSequencer
from rollout.registry import AddressRegistry
from rollout.runner import Rollout
from rollout.stages import StageContext
from rollout.verify import ContractExplorer, Verifier
from rollout.waiter import ConfirmationWaiter, Indexer

CHAIN_ID = 137
DEPLOYER = to_checksum_address("0x" + "de" * 20)
MERCHANT_TEMPLATE = to_checksum_address("0x8c878d705de10B7a31C82922aFD870BC4f7d2b66")
COMMON_OWNER = to_checksum_address("0x172A25d57dA59AB86792FB8cED103ad871CBEf34")
DEFAULT_CONTROLLER = to_checksum_address("0x8c4ac09b2Fd85d8Dff274a26D9b8ece2D84210d8")
FACTORY_PROXY = to_checksum_address("0x052314b94D8609F1F60674e239E783d0B2bFD0dC")

SUBSCRIPTIONS = [
    {"name": "Basic", "period": 2592000, "price": "1"},
    {"name": "Standard", "period": 7776000, "price": "3"},
    {"name": "Premium", "period": 15552000, "price": "5"},
]
APRS = [80, 120, 180]


class FakeContractFactory(ContractFactory):
    """
    In-memory chain. Every mined transaction is appended to `transactions`;
    `fail_at` makes the n-th submission (0-based) revert; with
    `strand_implementation` a failing proxy or upgrade leaves its freshly
    mined implementation behind.
    """

    def __init__(self, chain_id=CHAIN_ID, local=False):
        self._chain_id = chain_id
        self._local = local
        self.transactions = list()
        self.submissions = 0
        self.fail_at = None
        self.strand_implementation = False
        self.proxies = dict()
        self._next_address = 0x1000

    @property
    def chain_id(self):
        return self._chain_id

    @property
    def is_local(self):
        return self._local

    @property
    def deployer_address(self):
        return DEPLOYER

    def new_address(self):
        self._next_address += 1
        return to_checksum_address(f"0x{self._next_address:040x}")

    def _submit(self, role, action, *details, mines_implementation=False):
        position = self.submissions
        self.submissions += 1
        if self.fail_at is not None and position == self.fail_at:
            implementation = None
            if mines_implementation and self.strand_implementation:
                implementation = Receipt(
                    address=self.new_address(),
                    tx_hash=f"0x{position + 1:064x}",
                    block_number=position + 1,
                )
            raise TransactionFailed(
                role, action, "execution reverted", implementation=implementation
            )
        tx_hash = f"0x{position + 1:064x}"
        self.transactions.append((action, role) + details)
        return tx_hash, position + 1

    def deploy(self, role, *args):
        tx_hash, block = self._submit(role, "deploy", args)
        return Receipt(address=self.new_address(), tx_hash=tx_hash, block_number=block)

    def deploy_proxy(self, role, initializer, arguments, implementation=None):
        tx_hash, block = self._submit(
            role,
            "deploy_proxy",
            initializer,
            tuple(arguments),
            mines_implementation=implementation is None,
        )
        implementation = implementation or self.new_address()
        proxy = self.new_address()
        self.proxies[proxy] = implementation
        return ProxyDeployment(
            proxy_address=proxy,
            implementation_address=implementation,
            initializer_arguments=tuple(arguments),
            tx_hash=tx_hash,
            block_number=block,
        )

    def upgrade_proxy(self, role, proxy_address):
        tx_hash, block = self._submit(role, "upgrade", proxy_address, mines_implementation=True)
        implementation = self.new_address()
        self.proxies[proxy_address] = implementation
        return Receipt(address=implementation, tx_hash=tx_hash, block_number=block)

    def implementation_of(self, proxy_address):
        return self.proxies.get(proxy_address)

    def transact(self, role, address, method, *args):
        tx_hash, block = self._submit(role, "transact", address, method, args)
        return Receipt(address=address, tx_hash=tx_hash, block_number=block)

    def actions(self):
        return [tx[0] for tx in self.transactions]


class FakeExplorer(ContractExplorer):
    def __init__(self):
        self.published = list()
        self.failing = set()

    def publish(self, contract, address):
        if address in self.failing:
            raise RuntimeError(f"Contract source code already verified: {address}")
        self.published.append(address)


class FakeIndexer(Indexer):
    def __init__(self, indexed_after=1):
        self.indexed_after = indexed_after
        self.queries = list()

    def is_indexed(self, address):
        self.queries.append(address)
        return len(self.queries) >= self.indexed_after


class RecordingWaiter(ConfirmationWaiter):
    """Waiter on a fake clock; records every sleep instead of sleeping."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.clock = 0.0
        self.sleeps = list()
        self.settled = list()

    def _now(self):
        return self.clock

    def _sleep(self, seconds):
        self.sleeps.append(seconds)
        self.clock += seconds

    def settle(self, address, timeout):
        self.settled.append((address, timeout))
        return super().settle(address, timeout)


@pytest.fixture
def factory():
    return FakeContractFactory()


@pytest.fixture
def explorer():
    return FakeExplorer()


@pytest.fixture
def waiter():
    return RecordingWaiter()


@pytest.fixture
def registry():
    return AddressRegistry()


@pytest.fixture
def executor(factory, registry):
    return StageExecutor(factory=factory, registry=registry)


@pytest.fixture
def verifier(explorer, factory):
    return Verifier(explorer=explorer, factory=factory)


@pytest.fixture
def context(registry, executor, waiter, factory, verifier):
    return StageContext(
        registry=registry,
        executor=executor,
        waiter=waiter,
        sequencer=InitializationSequencer(factory=factory),
        verifier=verifier,
        deployer_address=DEPLOYER,
    )


def marketplace_config(tmp_path, **flags):
    """The marketplace rollout with every stage off unless overridden."""
    default_flags = OrderedDict(
        deploy_merchant_template=False,
        deploy_factory=False,
        upgrade_factory=False,
        clone_merchant=False,
        verify_merchant=False,
        verify_factory=False,
    )
    default_flags.update(flags)
    return {
        "deployment": {"name": "test-marketplace", "chain_id": CHAIN_ID},
        "artifacts": {"dir": str(tmp_path), "filename": "marketplace.json"},
        "constants": {
            "COMMON_OWNER": COMMON_OWNER,
            "DEFAULT_CONTROLLER": DEFAULT_CONTROLLER,
        },
        "flags": dict(default_flags),
        "stages": [
            {
                "deploy_merchant_template": {
                    "deploy": "merchant",
                    "address": MERCHANT_TEMPLATE,
                    "wait": 30,
                }
            },
            {
                "deploy_factory": {
                    "proxy": "factory",
                    "arguments": {
                        "owner": "$COMMON_OWNER",
                        "merchantTemplate": "$merchant",
                        "defaultController": "$DEFAULT_CONTROLLER",
                    },
                }
            },
            {"upgrade_factory": {"upgrade": "factory"}},
            {
                "clone_merchant": {
                    "transact": "factory",
                    "method": "deployMerchant",
                    "arguments": {
                        "merchantWallet": "$deployer",
                        "receiveToken": "0x" + "0" * 40,
                        "reserved": [],
                    },
                }
            },
            {"verify_merchant": {"verify": "merchant"}},
            {"verify_factory": {"verify": "factory"}},
        ],
    }


def staking_config(tmp_path):
    return {
        "deployment": {"name": "test-staking", "chain_id": CHAIN_ID},
        "artifacts": {"dir": str(tmp_path), "filename": "staking.json"},
        "constants": {"FEE_ADDRESS": COMMON_OWNER},
        "flags": {
            "deploy_single_nft_staking": True,
            "deploy_single_nft_staking_factory": True,
            "initialize_single_nft_staking_factory": True,
        },
        "stages": [
            {"deploy_single_nft_staking": {"deploy": "single_nft_staking", "publish": True}},
            {
                "deploy_single_nft_staking_factory": {
                    "proxy": "single_nft_staking_factory",
                    "publish": True,
                    "arguments": {
                        "feeAddress": "$FEE_ADDRESS",
                        "stakingTemplate": "$single_nft_staking",
                    },
                }
            },
            {
                "initialize_single_nft_staking_factory": {
                    "initialize": "single_nft_staking_factory",
                    "subscriptions": SUBSCRIPTIONS,
                    "aprs": APRS,
                }
            },
        ],
    }


@pytest.fixture
def make_rollout(factory, explorer, waiter):
    def _make_rollout(config, **kwargs):
        kwargs.setdefault("explorer", explorer)
        kwargs.setdefault("waiter", waiter)
        kwargs.setdefault("autosign", True)
        return Rollout(config, None, factory, **kwargs)

    return _make_rollout
