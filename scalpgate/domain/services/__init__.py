"""Domain services - Pure business logic with no external dependencies."""
