"""Anonymous group scheduling: events, per-event identities and consensus views."""
