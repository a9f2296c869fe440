"""Core engine: definitions, guards, audit log and transition execution."""
