"""
Networking core: line-oriented connections, the worker pool and the
listener with admission control.
"""

from .connection import LineConnection
from .socket_server import AdmissionCounter, SocketServer
from .thread_pool import ThreadPool, Task, Worker, WorkerState

__all__ = [
    "LineConnection",
    "AdmissionCounter",
    "SocketServer",
    "ThreadPool",
    "Task",
    "Worker",
    "WorkerState",
]
