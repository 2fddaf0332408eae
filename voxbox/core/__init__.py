"""Request-scoped tenancy primitives and identifier generation."""
