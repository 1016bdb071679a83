class RolloutError(Exception):
    """Base class for failures that abort a rollout."""


class RolloutConfigError(RolloutError, ValueError):
    """Raised when a params file is malformed or inconsistent."""


class RolloutAborted(RolloutError):
    """Raised when the operator declines to continue."""


class DuplicateRoleError(RolloutError):
    """Raised when a role is bound to an address more than once in a run."""

    def __init__(self, role, address=None):
        self.role = role
        message = f"Role '{role.value}' is already bound in this rollout"
        if address:
            message = f"{message} (to {address})"
        super().__init__(message)


class UnresolvedDependencyError(RolloutError):
    """Raised when a role is needed before it has been deployed or attached."""

    def __init__(self, role, stage=None):
        self.role = role
        self.stage = stage
        message = f"Role '{role.value}' has not been deployed or attached"
        if stage:
            message = f"{message}; required by stage '{stage}'"
        super().__init__(message)


class TransactionFailed(RolloutError):
    """Raised when a transaction could not be submitted or did not mine successfully."""

    def __init__(self, role, action: str, reason: str, tx_hash=None, implementation=None):
        self.role = role
        self.action = action
        self.reason = reason
        self.tx_hash = tx_hash
        # receipt of an implementation contract mined before the failing transaction
        self.implementation = implementation
        # contracts recorded on the way out, so they still reach the artifact
        self.deployed = list()
        message = f"{action} for {role.contract_name} failed: {reason}"
        if tx_hash:
            message = f"{message} (tx {tx_hash})"
        if implementation is not None:
            message = f"{message}; implementation already deployed at {implementation.address}"
        super().__init__(message)


class InitializationFailed(RolloutError):
    """Raised when an initialization transaction fails; later entries are not attempted."""

    def __init__(self, target, entries, position: int):
        self.target = target
        self.entries = entries
        self.position = position
        failed = entries[position]
        mined = sum(1 for entry in entries if entry.tx_hash)
        super().__init__(
            f"{target.role.contract_name} initialization failed at entry {position + 1} of "
            f"{len(entries)} ({failed.description}); {mined} entries mined"
        )
