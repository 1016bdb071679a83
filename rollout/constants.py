from enum import Enum
from pathlib import Path

import rollout

#
# Filesystem
#

ROLLOUT_DIR = Path(rollout.__file__).parent
CONSTRUCTOR_PARAMS_DIR = ROLLOUT_DIR / "constructor_params"
ARTIFACTS_DIR = ROLLOUT_DIR / "artifacts"

#
# Networks
#

LOCAL_NETWORKS = ["local"]

ETHERSCAN_API_KEY_ENVVAR = "ETHERSCAN_API_KEY"
ETHERSCAN_V2_API_URL = "https://api.etherscan.io/v2/api"

#
# Contracts
#

OZ_DEPENDENCY_NAME = "openzeppelin"
OZ_DEPENDENCY_VERSION = "5.0.0"

# https://eips.ethereum.org/EIPS/eip-1967
EIP1967_ADMIN_SLOT = 0xB53127684A568B3173AE13B9F8A6016E243E63B6E8EE1178D6A717850B5D6103
EIP1967_IMPLEMENTATION_SLOT = 0x360894A13BA1A3210667C828492DB98DCA3E2076CC3735A920A3CA505D382BBC

DEFAULT_PROXY_INITIALIZER = "initialize"

# token prices are 18-decimal fixed point
TOKEN_DECIMALS = 18

ADD_SUBSCRIPTION_METHOD = "addSubscription"
ADD_APR_METHOD = "addApr"

#
# Confirmation delays (seconds)
#

DEPLOY_SETTLE_SECONDS = 30
# implementation and proxy both need indexing
PROXY_SETTLE_SECONDS = 60

POLL_INITIAL_INTERVAL = 2
POLL_MAX_INTERVAL = 15
POLL_BACKOFF = 2


class Role(Enum):
    """Logical contract roles bound to addresses during a rollout."""

    MERCHANT = "merchant"
    FACTORY = "factory"
    FACTORY_IMPLEMENTATION = "factory_implementation"

    SINGLE_NFT_STAKING = "single_nft_staking"
    SINGLE_NFT_STAKING_FACTORY = "single_nft_staking_factory"
    SINGLE_NFT_STAKING_FACTORY_IMPLEMENTATION = "single_nft_staking_factory_implementation"

    MULTI_NFT_STAKING = "multi_nft_staking"
    MULTI_NFT_STAKING_FACTORY = "multi_nft_staking_factory"
    MULTI_NFT_STAKING_FACTORY_IMPLEMENTATION = "multi_nft_staking_factory_implementation"

    @property
    def contract_name(self) -> str:
        return ROLE_CONTRACTS[self]

    @property
    def implementation(self) -> "Role":
        """The role under which the implementation behind this proxy role is recorded."""
        try:
            return Role(f"{self.value}_implementation")
        except ValueError:
            raise ValueError(f"Role '{self.value}' is not a proxied role")


ROLE_CONTRACTS = {
    Role.MERCHANT: "Merchant",
    Role.FACTORY: "SlashFactory",
    Role.FACTORY_IMPLEMENTATION: "SlashFactory",
    Role.SINGLE_NFT_STAKING: "SingleNFTStaking",
    Role.SINGLE_NFT_STAKING_FACTORY: "SingleNFTStakingFactory",
    Role.SINGLE_NFT_STAKING_FACTORY_IMPLEMENTATION: "SingleNFTStakingFactory",
    Role.MULTI_NFT_STAKING: "MultiNFTStaking",
    Role.MULTI_NFT_STAKING_FACTORY: "MultiNFTStakingFactory",
    Role.MULTI_NFT_STAKING_FACTORY_IMPLEMENTATION: "MultiNFTStakingFactory",
}
