"""Option resolution, command construction and the error taxonomy."""
