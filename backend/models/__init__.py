"""Request, response and row models."""
