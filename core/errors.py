class MetricsError(Exception):
    """Base class for errors raised by the metrics service."""


class UnknownMetricKindError(MetricsError, ValueError):
    def __init__(self, kind, name):
        self.kind = kind
        self.name = name
        super().__init__(f"Unknown metric kind {kind!r} for metric {name!r}")


class SupervisorUnavailableError(MetricsError):
    """The process manager could not list the workers of the process group."""


class CollectionTimeoutError(MetricsError):
    def __init__(self, round_id, expected, received):
        self.round_id = round_id
        self.expected = expected
        self.received = received
        super().__init__(
            f"Metrics collection round {round_id} timed out with "
            f"{received}/{expected} worker responses"
        )
