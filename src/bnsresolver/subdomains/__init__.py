"""External subdomain file retrieval with bounded reads."""
