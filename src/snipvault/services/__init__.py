"""Services built on top of the snippet store."""
