#!/usr/bin/python3

import sys

from rollout.backend import ApeRollout
from rollout.constants import CONSTRUCTOR_PARAMS_DIR

VERIFY = True
AUTOSIGN = False
CONSTRUCTOR_PARAMS_FILEPATH = CONSTRUCTOR_PARAMS_DIR / "staking.yml"


def main():
    """
    Deploys the SingleNFTStaking and MultiNFTStaking templates, then a proxied
    factory for each of them, verifying templates and factory implementations.

    Requires FEE_ADDRESS (fee recipient of both factories) and, for
    verification, the explorer API key of the target network.

    ape run deploy_staking --network polygon:mainnet:node
    """
    rollout = ApeRollout.from_yaml(
        filepath=CONSTRUCTOR_PARAMS_FILEPATH, verify=VERIFY, autosign=AUTOSIGN
    )
    sys.exit(rollout.run())
