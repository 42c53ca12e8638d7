"""CLI for crm-insights."""
