"""User-facing notifications emitted around lifecycle transitions.

Every risky step is announced before it is attempted ("Stopping ...",
"Deleting ..."), so an operator can attribute a failure to the step that
was in flight. The sink is purely observational; nothing it returns is
consumed.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Protocol, runtime_checkable

import click


class Event(str, Enum):
    """Kinds of user-facing notification."""

    TIP = "tip"
    RUNNING = "running"
    RESTARTING = "restarting"
    WAITING = "waiting"
    STARTING_NONE = "starting_none"
    STARTING_VM = "starting_vm"
    PROVISIONER = "provisioner"
    STOPPING = "stopping"
    SHUTDOWN = "shutdown"
    DELETING_HOST = "deleting_host"
    POWERED_OFF = "powered_off"
    WARNING = "warning"


@runtime_checkable
class Notifier(Protocol):
    def notify(self, event: Event, **payload: Any) -> None: ...


class NullNotifier:
    """Discards notifications (library use without a terminal)."""

    def notify(self, event: Event, **payload: Any) -> None:
        pass


_MESSAGES: dict[Event, str] = {
    Event.TIP: "{message}",
    Event.RUNNING: 'Using the running {driver_name} "{profile_name}" VM ...',
    Event.RESTARTING: 'Starting existing {driver_name} VM for "{profile_name}" ...',
    Event.WAITING: "Waiting for the host to be provisioned ...",
    Event.STARTING_NONE: "Running on localhost (CPUs={number_of_cpus}, Memory={memory_size}MB, Disk={disk_size}MB) ...",
    Event.STARTING_VM: "{message}",
    Event.PROVISIONER: "OS release is {pretty_name}",
    Event.STOPPING: 'Stopping "{profile_name}" in {driver_name} ...',
    Event.SHUTDOWN: 'Powering off "{profile_name}" via SSH ...',
    Event.DELETING_HOST: 'Deleting "{profile_name}" in {driver_name} ...',
    Event.POWERED_OFF: "Successfully powered off {driver_name}",
    Event.WARNING: "{message}",
}


class _Payload(dict[str, Any]):
    def __missing__(self, key: str) -> str:
        return f"<{key}>"


def render(event: Event, payload: dict[str, Any]) -> str:
    """Plain-text line for an event; missing payload keys render as ``<key>``."""
    return _MESSAGES[event].format_map(_Payload(payload))


class ConsoleNotifier:
    """Writes one styled line per notification to stderr via click."""

    def __init__(self, *, err: bool = True) -> None:
        self._err = err

    def notify(self, event: Event, **payload: Any) -> None:
        line = render(event, payload)
        if event is Event.WARNING:
            line = click.style(f"! {line}", fg="yellow")
        elif event is Event.TIP:
            line = click.style(line, fg="cyan")
        else:
            line = f"* {line}"
        click.echo(line, err=self._err)
