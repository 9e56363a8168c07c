"""Core infrastructure for visitbot: config, logging, clock, outbound HTTP."""
