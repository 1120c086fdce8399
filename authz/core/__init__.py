"""Core: configuration, logging, errors, interfaces and the decision engine."""
