"""Trade ledger and price-alert evaluation engine."""
