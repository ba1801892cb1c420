from .orchestrator import (
    Orchestrator,
    ServiceSpec,
    ServiceState,
    ServiceStatus,
    load_service_specs,
)
from .ports import is_port_in_use, kill_process_on_port
from .process_handle import ProcessHandle, SubprocessHandle

__all__ = [
    "Orchestrator",
    "ServiceSpec",
    "ServiceState",
    "ServiceStatus",
    "load_service_specs",
    "is_port_in_use",
    "kill_process_on_port",
    "ProcessHandle",
    "SubprocessHandle",
]
