"""Release changelog generation from merged pull requests."""
