class JoinError(Exception):
    """Launching the game client for a server failed."""
