"""Repository package: SQL data access, no business rules."""
