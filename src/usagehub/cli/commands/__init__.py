"""CLI commands for usagehub."""
