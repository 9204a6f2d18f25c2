"""
Error taxonomy.

ValidationError and NotFoundError are surfaced to callers. UpstreamUnavailable
is fatal for the request. GenerationFailure and CacheWriteFailure are always
recovered locally by the insight builder.
"""


class SalesMonitorError(Exception):
    """Base class for all errors raised by this package."""


class ValidationError(SalesMonitorError):
    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class NotFoundError(SalesMonitorError):
    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class UpstreamUnavailable(SalesMonitorError):
    """The event store could not answer a query."""


class GenerationFailure(SalesMonitorError):
    """The narrative service did not produce a usable answer."""


class GenerationTimeout(GenerationFailure):
    pass


class Unauthorized(GenerationFailure):
    pass


class MalformedResponse(GenerationFailure):
    pass


class CacheWriteFailure(SalesMonitorError):
    pass
