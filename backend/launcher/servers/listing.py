"""View helpers for presenting the server list."""

from launcher.servers.types import ServerRecord


def is_server_online(server: ServerRecord) -> bool:
    return server.active


def get_sorted_servers(servers: list[ServerRecord], *, show_invisible: bool = False) -> list[ServerRecord]:
    """Online servers ordered by id, hiding invisible ones unless ``show_invisible``."""
    visible = [s for s in servers if show_invisible or not s.invisible]
    return sorted((s for s in visible if is_server_online(s)), key=lambda s: s.id)


def get_online_server_count(servers: list[ServerRecord]) -> int:
    return sum(1 for s in servers if is_server_online(s))


def find_server(servers: list[ServerRecord], server_id: str) -> ServerRecord | None:
    """Look up a server by its directory ``server_id``."""
    return next((s for s in servers if s.server_id == server_id), None)
