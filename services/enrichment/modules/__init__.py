"""Built-in enrichment modules (imported by registry discovery)."""
