"""
Error taxonomy for the dashboard engine.

The engine raises InvalidTenant itself; StoreUnavailable comes from the record
store adapters and passes through the engine untouched. The HTTP layer maps
them to 400 and 500 respectively.
"""


class DashboardError(Exception):
    """Base class for every error the dashboard engine surfaces."""


class InvalidTenant(DashboardError):
    def __init__(self, tenant_id=None):
        self.tenant_id = tenant_id
        super().__init__("tenant_id is required")


class StoreUnavailable(DashboardError):
    """A record store query failed (connectivity, timeout, query error)."""

    def __init__(self, entity: str, message: str):
        self.entity = entity
        super().__init__(f"{entity} query failed: {message}")
