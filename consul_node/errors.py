class NodeBootstrapError(Exception):
    """Base class for every fatal condition of a run-node invocation."""


class UsageError(NodeBootstrapError):
    pass


class PrerequisiteMissing(NodeBootstrapError):
    pass


class MetadataLookupError(NodeBootstrapError):
    pass


class SupervisorControlError(NodeBootstrapError):
    pass


class OwnershipError(NodeBootstrapError):
    pass
