"""Self-restart for long-running programs.

Watches the program's own binary (or script) on disk. When a deploy replaces
it, registered listeners get a synchronous restart notice and the process
then relaunches itself with its original arguments and environment.

Example usage:
    import autorestart

    notice = autorestart.register_for_restart_notice("main")
    autorestart.start_watching()

    notice.wait()
    flush_everything()
"""

from autorestart.notify import ListenerRegistry, RestartNotice
from autorestart.poller import Poller
from autorestart.restart import (
    ExecRestart,
    LaunchDescriptor,
    RestartError,
    RestartResult,
    RestartStrategy,
    SignalRestart,
    SpawnRestart,
    capture_launch_descriptor,
    default_strategy,
)
from autorestart.snapshot import Snapshot, SnapshotComparator
from autorestart.supervisor import (
    Supervisor,
    get_supervisor,
    register_for_restart_notice,
    start_watching,
)

__version__ = "0.1.0"

__all__ = [
    # Main API
    "Supervisor",
    "get_supervisor",
    "start_watching",
    "register_for_restart_notice",
    # Building blocks
    "Snapshot",
    "SnapshotComparator",
    "ListenerRegistry",
    "RestartNotice",
    "Poller",
    # Strategies
    "RestartStrategy",
    "RestartResult",
    "RestartError",
    "LaunchDescriptor",
    "ExecRestart",
    "SpawnRestart",
    "SignalRestart",
    "capture_launch_descriptor",
    "default_strategy",
]
