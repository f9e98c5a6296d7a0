"""Error types raised while composing predicates and pipelines."""


class CallerContractError(ValueError):
    """Raised when a caller hands the composer or a repository malformed input.

    Examples: a bare scalar where a list of filter values is expected, a
    non-positive limit for a "latest N" query, or a missing project id list.
    These are never retried.
    """
    pass
