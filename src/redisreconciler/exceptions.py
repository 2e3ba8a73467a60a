"""Exceptions for the cluster reconciler."""


class ReconcilerError(Exception):
    """Base exception for reconciler errors."""

    pass


class ConfigurationError(ReconcilerError):
    """Desired topology or credentials are missing or invalid."""

    pass


class NodeUnreachableError(ReconcilerError):
    """Error establishing or maintaining a connection to a node."""

    pass


class ProtocolError(ReconcilerError):
    """Node answered with something we could not interpret."""

    pass


class CommandError(ReconcilerError):
    """Administrative command rejected by the node."""

    message: str

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ClusterError(ReconcilerError):
    """Cluster-related error (no reference node, node id not resolvable, etc)."""

    pass


class BootstrapError(ClusterError):
    """Creating the cluster from scratch is blocked or failed."""

    pass
