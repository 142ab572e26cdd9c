class RepositoryError(Exception):
    """Persistence layer unavailable or a query failed; aborts the current pass"""


class ReferentialIntegrityError(RepositoryError):
    """A write referenced a row that does not exist"""
