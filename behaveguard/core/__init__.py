"""Runtime plumbing: logging, metrics and tracing."""
