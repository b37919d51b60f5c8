"""Exception taxonomy shared by the analysis engine and the trade monitor."""


class SolScalpError(Exception):
    """Base class for all SolScalp errors."""


class InsufficientDataError(SolScalpError):
    """Fewer candles than the analyzer needs (fatal to that analysis call)."""


class MarketDataError(SolScalpError):
    """The candle source failed or returned an unusable payload."""


class QuoteError(SolScalpError):
    """A price or swap quote could not be obtained."""


class NoTransactionReturnedError(QuoteError):
    """The quote succeeded but carried no executable transaction."""


class ExecutionError(SolScalpError):
    """A swap could not be signed, submitted, or did not succeed."""


class WalletError(SolScalpError):
    """The wallet is missing or its secret cannot be decrypted."""


class PersistenceError(SolScalpError):
    """The store rejected or failed a read / write."""


class StalePlanError(PersistenceError):
    """A conditional plan update matched no row (status moved on)."""


class NotificationError(SolScalpError):
    """A notification could not be delivered."""


class InvalidTransitionError(SolScalpError):
    """A plan status change that the lifecycle does not allow."""


class PlanNotFoundError(SolScalpError):
    """No plan exists with the requested id."""
