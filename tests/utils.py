from typing import Any, Mapping


def provider_server_payload(pterodactyl_id: int = 42, **overrides: Any) -> dict[str, Any]:
    """A Pterodactyl application API server document."""
    attributes: dict[str, Any] = {
        "id": pterodactyl_id,
        "external_id": None,
        "uuid": "4ad7ee5c-9b6f-4d0a-8f2e-0fd6d3c1e5aa",
        "identifier": f"srv{pterodactyl_id:05d}",
        "name": "Survival SMP",
        "description": "Paper 1.20",
        "status": "installing",
        "suspended": False,
        "limits": {
            "memory": 2048,
            "swap": 0,
            "disk": 10240,
            "io": 500,
            "cpu": 200,
            "threads": None,
            "oom_disabled": True,
        },
        "feature_limits": {"databases": 2, "allocations": 1, "backups": 3},
        "user": 7,
        "node": 3,
        "allocation": 11,
        "nest": 1,
        "egg": 5,
    }
    attributes.update(overrides)
    return {"object": "server", "attributes": attributes}


class RecordingGateway:
    """NotificationGateway double that records every request."""

    def __init__(self, fail_with: Exception | None = None):
        self.calls: list[tuple[Any, str, Mapping[str, Any]]] = []
        self.fail_with = fail_with

    async def notify(self, user: Any, template_name: str, context: Mapping[str, Any]) -> bool:
        self.calls.append((user.id, template_name, context))
        if self.fail_with is not None:
            raise self.fail_with
        return True

    def count(self, template_name: str) -> int:
        return sum(1 for _, name, _ in self.calls if name == template_name)
