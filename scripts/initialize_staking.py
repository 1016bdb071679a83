#!/usr/bin/python3

import sys

from rollout.backend import ApeRollout
from rollout.constants import CONSTRUCTOR_PARAMS_DIR

AUTOSIGN = False
CONSTRUCTOR_PARAMS_FILEPATH = CONSTRUCTOR_PARAMS_DIR / "initialize-staking.yml"


def main():
    """
    Adds the Basic/Standard/Premium subscriptions and the 8%/12%/18% APR
    tiers to both staking factories.

    Entries are appended: running this twice against the same factories
    registers every subscription and APR a second time.

    ape run initialize_staking --network polygon:mainnet:node
    """
    rollout = ApeRollout.from_yaml(
        filepath=CONSTRUCTOR_PARAMS_FILEPATH, verify=False, autosign=AUTOSIGN
    )
    sys.exit(rollout.run())
