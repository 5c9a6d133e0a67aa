from typing import Any, Callable, Dict, List, Optional, Protocol


class ServiceError(Exception):
    """A call to the device/directory service failed. ``str(err)`` is the service's own message."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ServiceAccessError(ServiceError):
    """The caller is not allowed to read or change the object (401/403)."""


class SetupError(Exception):
    """Authentication or connectivity failed before any entity was touched."""


class EmptyInventoryError(Exception):
    """The service returned nothing to work on."""


PageCallback = Callable[[int], None]


class DirectoryService(Protocol):
    """Operations the cleanup pipeline needs from the management/directory backend."""

    def list_managed_devices(self, properties: List[str], on_page: Optional[PageCallback] = None) -> List[Dict[str, Any]]:
        ...

    def list_groups(self, properties: List[str], on_page: Optional[PageCallback] = None) -> List[Dict[str, Any]]:
        ...

    def list_group_members(self, group_id: str) -> List[Dict[str, Any]]:
        ...

    def delete_managed_device(self, device_id: str) -> None:
        ...

    def retire_managed_device(self, device_id: str) -> None:
        ...

    def wipe_managed_device(self, device_id: str, options: Dict[str, Any]) -> None:
        ...

    def delete_group(self, group_id: str) -> None:
        ...

    def rename_group(self, group_id: str, new_name: str) -> None:
        ...

    def find_directory_device(self, device_id: str) -> Optional[Dict[str, Any]]:
        ...

    def delete_directory_device(self, object_id: str) -> None:
        ...
