"""
Loader errors raised before a statement reaches the database.

Constraint violations themselves are left to the engine and surface as
sqlalchemy.exc.IntegrityError.
"""


class DimensionLookupError(LookupError):
    """No dimension row matches a business key or calendar date"""

    def __init__(self, dimension: str, key, as_of=None):
        self.dimension = dimension
        self.key = key
        self.as_of = as_of
        detail = f" valid on {as_of}" if as_of is not None else ""
        super().__init__(f"No {dimension} row for {key!r}{detail}")


class ScdConflictError(ValueError):
    """A new version does not start after the current version"""
