# services/errors.py


class DataUnavailable(Exception):
    """The collaborator store (Postgres pool or hosted table API) did not answer."""


class SearchUnavailable(DataUnavailable):
    pass


class RankingUnavailable(DataUnavailable):
    pass


class AutomationError(Exception):
    """The automation webhook failed, timed out, or answered with something unusable."""
