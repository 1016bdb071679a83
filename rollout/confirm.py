from collections import OrderedDict

from ape.utils import ZERO_ADDRESS

from rollout.exceptions import RolloutAborted


def _abort() -> None:
    print("Aborting rollout!")
    raise RolloutAborted("Rollout aborted by operator")


def _confirm_stage(stage_name: str) -> None:
    """Asks the user to confirm a single stage."""
    answer = input(f"Run {stage_name} Y/N? ")
    if answer.lower().strip() == "n":
        _abort()


def _continue() -> None:
    """Asks the user to continue."""
    answer = input("Continue Y/N? ")
    if answer.lower().strip() == "n":
        _abort()


def _confirm_zero_address() -> None:
    answer = input("Zero Address detected for stage parameter; Continue? Y/N? ")
    if answer.lower().strip() == "n":
        _abort()


def _confirm_resolution(resolved_params: OrderedDict, stage_name: str) -> None:
    """Asks the user to confirm the resolved parameters for a single stage."""
    if len(resolved_params) == 0:
        print(f"\n(i) No parameters for {stage_name}")
        _confirm_stage(stage_name)
        return

    print(f"\nParameters for {stage_name}")
    contains_zero_address = False
    for name, resolved_value in resolved_params.items():
        print(f"\t{name}={resolved_value}")
        if not contains_zero_address:
            contains_zero_address = resolved_value == ZERO_ADDRESS
    _confirm_stage(stage_name)
    if contains_zero_address:
        _confirm_zero_address()
