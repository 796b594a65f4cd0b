"""Product URL candidate generation and verification."""
