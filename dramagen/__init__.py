"""dramagen: edit rendering core."""
