"""
Liquidation Scout - error taxonomy

FatalError subclasses abort the run. IndexerError subclasses are
cycle-recoverable; the retry policy decides which of them are retried.
"""


class ScoutError(Exception):
    """Base class for all scout errors."""


class FatalError(ScoutError):
    """The process cannot continue."""


class NoValidRegistryError(FatalError):
    pass


class NoMarketsError(FatalError):
    pass


class OracleMismatchError(FatalError):
    pass


class ReadPathError(FatalError):
    """Candidates were validated without a single chain read."""


class IndexerError(ScoutError):
    pass


class IndexerNotFoundError(IndexerError):
    """The indexer endpoint answered 404; the URL or route is wrong."""


class IndexerUnavailableError(IndexerError):
    """Retries exhausted on the first page."""


class SchemaMismatchError(IndexerError):
    """The indexer does not serve the requested response shape."""
