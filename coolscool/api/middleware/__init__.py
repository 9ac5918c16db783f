"""HTTP middleware: request correlation and rate limiting."""
