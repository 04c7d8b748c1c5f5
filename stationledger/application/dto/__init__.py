"""Request/response DTOs."""
