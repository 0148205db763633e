class StoreUnavailableError(Exception):
    """Raised by a storage tier that could not answer (connection, timeout).

    Distinct from a miss: a reachable store that has no such key returns
    ``None`` instead of raising.
    """
