"""Error taxonomy for localnet operations.

Every error is terminal for the command that raised it; re-invoking the
command is the only retry.
"""
from typing import Optional, Sequence


class LocalnetError(Exception):
    """Base class for all localnet errors."""
    exit_code = 1


class InvalidTopology(LocalnetError):
    """A topology precondition is not met. No state is changed."""

    def __init__(self, precondition: str):
        self.precondition = precondition
        super().__init__(f"Invalid topology: {precondition}")


class InvalidNetworkName(LocalnetError):
    """The network name can't be used as a directory and compose project name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Invalid network name '{name}': use lowercase letters, digits, '-' and '_'"
        )


class PortConflict(LocalnetError):
    """Two port blocks overlap."""

    def __init__(self, first: str, second: str, first_range, second_range):
        self.first = first
        self.second = second
        self.first_range = tuple(first_range)
        self.second_range = tuple(second_range)
        super().__init__(
            f"Port conflict between '{first}' {self.first_range[0]}-{self.first_range[1]} "
            f"and '{second}' {self.second_range[0]}-{self.second_range[1]}"
        )


class AlreadyExists(LocalnetError):
    """A network with the same name already exists."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Network '{name}' already exists")


class NotFound(LocalnetError):
    """A network or node doesn't exist."""

    def __init__(self, name: str, node_id: Optional[str] = None):
        self.name = name
        self.node_id = node_id
        if node_id is None:
            message = f"Network '{name}' not found"
        else:
            message = f"Node '{node_id}' not found in network '{name}'"
        super().__init__(message)


class ConfigNotFound(LocalnetError):
    """A daemon config targeted for a timestamp update is missing."""

    def __init__(self, path):
        self.path = str(path)
        super().__init__(f"Config file not found: {self.path}")


class NetworkBusy(LocalnetError):
    """The operation requires the network to be stopped first."""

    def __init__(self, name: str, state: str, operation: str = "delete"):
        self.name = name
        self.state = state
        self.operation = operation
        super().__init__(
            f"Cannot {operation} network '{name}' while it is {state}; stop it first"
        )


class InvalidTransition(LocalnetError):
    """The lifecycle state machine doesn't allow the requested transition."""

    def __init__(self, subject: str, current: str, target: str):
        self.subject = subject
        self.current = current
        self.target = target
        super().__init__(f"'{subject}' cannot go from {current} to {target}")


class RuntimeFailure(LocalnetError):
    """An external collaborator (container runtime, key generator) failed."""

    def __init__(self, message: str, command: Optional[Sequence[str]] = None,
                 returncode: Optional[int] = None, stderr: str = ""):
        self.command = list(command) if command else []
        self.returncode = returncode
        self.stderr = stderr
        detail = f": {stderr.strip()}" if stderr and stderr.strip() else ""
        super().__init__(f"{message}{detail}")


class InvalidGenesis(LocalnetError):
    """A genesis ledger or daemon config file can't be parsed."""

    def __init__(self, path, reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Invalid genesis ledger {self.path}: {reason}")


class NodeNotRunning(LocalnetError):
    """The operation needs a node's container to be running."""

    def __init__(self, name: str, node_id: str, state: str):
        self.name = name
        self.node_id = node_id
        self.state = state
        super().__init__(f"Node '{node_id}' of network '{name}' is {state}; start it first")


class InvalidSettings(LocalnetError):
    """A LOCALNET_* environment variable has an unusable value."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid settings: {reason}")
