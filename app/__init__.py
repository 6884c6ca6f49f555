"""HTTP API for statement upload, progress polling and export."""
