"""Model service abstraction, providers and retry wrappers."""
