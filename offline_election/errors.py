"""Errors raised by the offline election pipeline."""


class OfflineElectionError(Exception):
    """Base class for every fatal error of a run."""


class DataFetchError(OfflineElectionError):
    """Remote source unreachable, malformed response, timeout or bad input file."""


class InsufficientCandidates(OfflineElectionError):
    def __init__(self, requested, eligible):
        super().__init__(
            f"requested {requested} winners but only {eligible} eligible candidates"
        )
        self.requested = requested
        self.eligible = eligible


class InternalInvariantViolation(OfflineElectionError):
    """A transformation broke a conservation rule. Always a bug."""


class WriteError(OfflineElectionError):
    pass


class NetworkConfigError(OfflineElectionError):
    pass


class PrecisionLossWarning(UserWarning):
    """A balance was clamped while converting it to a vote weight."""
