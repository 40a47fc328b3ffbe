"""Domain exceptions raised by the service layer and translated by the routers."""


class YachtOpsError(Exception):
    """Base class for domain errors."""


class NotFoundError(YachtOpsError):
    """A referenced job or suggestion does not exist in the caller's scope."""


class InvalidInputError(YachtOpsError):
    """Input was rejected before any write was attempted."""
