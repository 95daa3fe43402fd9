"""GIP Admin module: local administration CLI working directly on the database."""
