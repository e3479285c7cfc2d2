"""Backend gateway and session management."""
