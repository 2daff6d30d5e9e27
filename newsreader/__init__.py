"""News headline and topic feed client with a local article cache."""
