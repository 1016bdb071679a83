import click
import pytest

from rollout.constants import Role
from rollout.types import ChecksumAddress, RoleAddress
from tests.conftest import MERCHANT_TEMPLATE


def test_checksum_address():
    assert ChecksumAddress().convert(MERCHANT_TEMPLATE.lower(), None, None) == MERCHANT_TEMPLATE
    with pytest.raises(click.BadParameter):
        ChecksumAddress().convert("0x1234", None, None)


def test_role_address():
    value = f"merchant={MERCHANT_TEMPLATE.lower()}"
    assert RoleAddress().convert(value, None, None) == (Role.MERCHANT, MERCHANT_TEMPLATE)

    already_converted = (Role.FACTORY, MERCHANT_TEMPLATE)
    assert RoleAddress().convert(already_converted, None, None) == already_converted


@pytest.mark.parametrize(
    "value",
    [
        MERCHANT_TEMPLATE,
        f"treasury={MERCHANT_TEMPLATE}",
        "merchant=0x1234",
    ],
)
def test_invalid_role_address(value):
    with pytest.raises(click.BadParameter):
        RoleAddress().convert(value, None, None)
