"""
Job Dispatcher

Turns a raw queue message into an executed command:
1. Decode the Laravel envelope
2. Rebuild the command from data.command under the scope
3. EXECUTABLE commands run handle(context) in-process;
   EVENT_ONLY commands are handed to the on_job listener

Errors never escape dispatch_message; they are logged and reported
through on_error so the listen loop keeps running.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from pydantic import BaseModel

from .queues import JobEnvelope
from .serializer import CommandKind, Scope

logger = logging.getLogger(__name__)


class ExecutableCommand(BaseModel):
    """Base class for commands the worker runs itself."""

    def handle(self, context: Any) -> None:
        raise NotImplementedError


@dataclass
class JobSignal:
    """An EVENT_ONLY command received from the queue."""

    name: str
    data: BaseModel


@dataclass
class ErrorSignal:
    """A message that could not be decoded or whose command failed."""

    error: Exception
    raw: Any = None


class Dispatcher:
    """
    Route decoded jobs to their handlers.

    Args:
        scope: Command registry for reconstruction
        context: Passed to every ExecutableCommand.handle()
        on_job: Receives JobSignal for EVENT_ONLY commands
        on_error: Receives ErrorSignal for any failure
    """

    def __init__(
        self,
        scope: Scope,
        context: Any = None,
        on_job: Optional[Callable[[JobSignal], None]] = None,
        on_error: Optional[Callable[[ErrorSignal], None]] = None,
    ):
        self.scope = scope
        self.context = context
        self.on_job = on_job
        self.on_error = on_error

    def dispatch(self, envelope: JobEnvelope) -> None:
        """
        Rebuild and run one envelope's command.

        Raises:
            UnknownCommand: If the command class is not registered
            DeserializeError: If the payload cannot be rebuilt
            Exception: Anything the command's handle() raises
        """
        command = self.scope.unserialize(envelope.command_payload)
        entry = self.scope.entry_for(command)

        if entry.kind is CommandKind.EXECUTABLE:
            logger.info(f"Running {entry.tag} ({envelope.uuid})")
            command.handle(self.context)
        elif self.on_job:
            self.on_job(JobSignal(name=envelope.command_name, data=command))
        else:
            logger.warning(f"No listener for {envelope.command_name}, dropping {envelope.uuid}")

    def dispatch_message(self, raw: Any) -> bool:
        """
        Decode and dispatch one raw queue message.

        Returns:
            bool: True if the command ran or was handed off, False on error
        """
        try:
            envelope = JobEnvelope.from_json(raw)
            self.dispatch(envelope)
        except Exception as e:
            logger.error(f"Job dispatch failed: {e}", exc_info=True)
            if self.on_error:
                self.on_error(ErrorSignal(error=e, raw=raw))
            return False
        return True
