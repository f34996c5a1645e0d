"""External process and version control integrations."""
