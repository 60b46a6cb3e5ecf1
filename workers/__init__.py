"""Background jobs for the entitlement engine."""
