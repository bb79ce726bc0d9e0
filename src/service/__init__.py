"""Operational surface: settings, wiring, invocation handlers, local scheduler, CLI."""
