"""Request middleware for the import hub."""
