import click
from eth_utils import to_checksum_address

from rollout.constants import Role


class ChecksumAddress(click.ParamType):
    name = "checksum_address"

    def convert(self, value, param, ctx):
        try:
            value = to_checksum_address(value=value)
        except ValueError:
            self.fail(f"{value} is not a valid ethereum address", param, ctx)
        else:
            return value


class RoleAddress(click.ParamType):
    """A `role=address` pair, e.g. `merchant=0x8c87...`."""

    name = "role_address"

    def convert(self, value, param, ctx):
        if isinstance(value, tuple):
            return value
        role_name, separator, address = value.partition("=")
        if not separator:
            self.fail(f"{value} is not of the form role=address", param, ctx)
        try:
            role = Role(role_name.strip())
        except ValueError:
            roles = ", ".join(r.value for r in Role)
            self.fail(f"{role_name} is not a known role ({roles})", param, ctx)
        address = ChecksumAddress().convert(address.strip(), param, ctx)
        return role, address
