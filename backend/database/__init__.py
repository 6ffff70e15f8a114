"""ArangoDB store."""
