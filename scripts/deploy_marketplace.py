#!/usr/bin/python3

import sys

from rollout.backend import ApeRollout
from rollout.constants import CONSTRUCTOR_PARAMS_DIR

VERIFY = True
AUTOSIGN = False
CONSTRUCTOR_PARAMS_FILEPATH = CONSTRUCTOR_PARAMS_DIR / "marketplace.yml"


def main():
    """
    Deploys the Merchant template and the proxied SlashFactory, upgrades the
    factory or clones a merchant from it, depending on the flags in
    marketplace.yml.

    ape run deploy_marketplace --network polygon:mainnet:node

    Stages whose flag is off attach the address given in the params file
    instead, so a partially completed rollout is resumed by switching the
    finished stages off.
    """
    rollout = ApeRollout.from_yaml(
        filepath=CONSTRUCTOR_PARAMS_FILEPATH, verify=VERIFY, autosign=AUTOSIGN
    )
    sys.exit(rollout.run())
