"""
Laravel Queue Protocol

Reads and writes jobs on Laravel's Redis queue lists so this worker can sit
behind a Laravel application's job dispatcher:
- queues:{name} holds JSON job envelopes (RPUSH / BLPOP)
- queues:{name}:notify holds one wake-up marker per pushed job
- data.command inside each envelope is a PHP serialize() string

Delivery is at-most-once: a popped envelope is never acknowledged or requeued.
"""

import json
import logging
import threading
import time
import uuid
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from redis import Redis
from redis.backoff import ExponentialBackoff
from redis.exceptions import RedisError

from .errors import DeserializeError, QueueUnavailable
from .serializer import Scope

logger = logging.getLogger(__name__)

# Laravel's generic handler for queued commands
CALL_QUEUED_HANDLER = "Illuminate\\Queue\\CallQueuedHandler@call"

# Redis connection singleton
_redis_connection: Optional[Redis] = None


def get_redis_connection(redis_url: str) -> Redis:
    """
    Get or create the shared Redis connection.

    Responses are decoded to str since envelopes are UTF-8 JSON.

    Args:
        redis_url: Redis connection URL

    Returns:
        Redis: A Redis connection instance
    """
    global _redis_connection

    if _redis_connection is None:
        _redis_connection = Redis.from_url(redis_url, decode_responses=True)

    return _redis_connection


def close_redis_connection() -> None:
    """Close and reset the shared connection."""
    global _redis_connection

    if _redis_connection is not None:
        _redis_connection.close()
        _redis_connection = None


def queue_key(name: str, prefix: str = "") -> str:
    """
    Redis key of a Laravel queue.

    Example:
        >>> queue_key("transcode", "laravel_database_")
        'laravel_database_queues:transcode'
    """
    return f"{prefix}queues:{name}"


# ============================================================================
# Envelope
# ============================================================================


class JobPayload(BaseModel):
    """The data member of a Laravel job envelope."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    command_name: str = Field(..., alias="commandName")
    command: str


class JobEnvelope(BaseModel):
    """
    Laravel queue job envelope.

    Unknown keys written by newer Laravel versions are kept but ignored.
    id and pushedAt are never read, so any scalar shape producers write
    for them is accepted (Date.now() ids, microtime strings).
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    uuid: str
    display_name: Optional[str] = Field(None, alias="displayName")
    job: str = CALL_QUEUED_HANDLER
    max_tries: Optional[int] = Field(None, alias="maxTries")
    timeout: Optional[int] = None
    data: JobPayload
    id: Optional[Union[str, int]] = None
    attempts: int = 0
    pushed_at: Optional[Union[int, float, str]] = Field(None, alias="pushedAt")

    @classmethod
    def create(cls, command_name: str, command: str) -> "JobEnvelope":
        """Build a fresh envelope with a new uuid and attempts = 0."""
        job_uuid = str(uuid.uuid4())
        return cls(
            uuid=job_uuid,
            display_name=command_name,
            data=JobPayload(command_name=command_name, command=command),
            id=job_uuid,
            attempts=0,
            pushed_at=int(time.time() * 1000),
        )

    @classmethod
    def from_json(cls, raw: Any) -> "JobEnvelope":
        """
        Decode an envelope popped from the queue.

        Raises:
            DeserializeError: If raw is not valid JSON or not a job envelope
        """
        try:
            return cls.model_validate_json(raw)
        except ValidationError as e:
            raise DeserializeError(f"Invalid job envelope: {e}") from e

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @property
    def job_kind(self) -> str:
        return self.job

    @property
    def command_name(self) -> str:
        return self.data.command_name

    @property
    def command_payload(self) -> str:
        return self.data.command

    @property
    def enqueued_at(self) -> Optional[Union[int, float, str]]:
        return self.pushed_at


# ============================================================================
# Client
# ============================================================================


class QueueClient:
    """
    Push and pop Laravel jobs on one queue.

    Args:
        connection: Redis connection (decode_responses=True)
        queue: Full Redis key of the queue list (see queue_key)
        scope: Command registry used to serialize payloads
        block_timeout: BLPOP timeout in seconds, 0 blocks forever
        backoff: Delay policy after connection failures in listen()
        on_error: Called with the exception on connection failures in listen()
    """

    def __init__(
        self,
        connection: Redis,
        queue: str,
        scope: Scope,
        block_timeout: int = 0,
        backoff: Optional[ExponentialBackoff] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        self.connection = connection
        self.queue = queue
        self.scope = scope
        self.block_timeout = block_timeout
        self.backoff = backoff or ExponentialBackoff(cap=30.0, base=0.5)
        self.on_error = on_error

    @property
    def notify_key(self) -> str:
        return f"{self.queue}:notify"

    def _push_raw(self, payload: str) -> int:
        # Same two writes as Laravel's push script
        try:
            pipe = self.connection.pipeline()
            pipe.rpush(self.queue, payload)
            pipe.rpush(self.notify_key, 1)
            length, _ = pipe.execute()
        except RedisError as e:
            raise QueueUnavailable(f"Cannot push to {self.queue}: {e}") from e
        return length

    def push(self, command_name: str, command: BaseModel) -> JobEnvelope:
        """
        Serialize a command and append it to the queue as a job envelope.

        Args:
            command_name: Class name the remote dispatcher resolves
            command: Registered command model

        Returns:
            JobEnvelope: The envelope that was pushed

        Raises:
            SerializeError: If the command cannot be serialized
            QueueUnavailable: If Redis rejects the write
        """
        envelope = JobEnvelope.create(command_name, self.scope.serialize(command))
        length = self._push_raw(envelope.to_json())
        logger.debug(f"Pushed {command_name} ({envelope.uuid}) to {self.queue}, length={length}")
        return envelope

    def push_event(self, name: str, event: BaseModel) -> int:
        """
        Append a broadcast-style event record ({"event", "data"}) to the queue.

        Returns:
            int: Queue length after the push
        """
        payload = json.dumps({"event": name, "data": self.scope.serialize(event)})
        return self._push_raw(payload)

    def pop(self, timeout: Optional[int] = None) -> Optional[str]:
        """
        Block until a job is available and return its raw JSON.

        Args:
            timeout: Seconds to wait, 0 waits forever (defaults to block_timeout)

        Returns:
            Raw envelope text, or None if the timeout elapsed

        Raises:
            QueueUnavailable: If the connection fails
        """
        if timeout is None:
            timeout = self.block_timeout

        try:
            reply = self.connection.blpop([self.queue], timeout=timeout)
        except RedisError as e:
            raise QueueUnavailable(f"Cannot pop from {self.queue}: {e}") from e

        if not reply:
            return None
        _, raw = reply

        # Best effort: the job is already off the list
        try:
            self.connection.lpop(self.notify_key)
        except RedisError as e:
            logger.warning(f"Could not consume marker on {self.notify_key}: {e}")

        return raw

    def listen(self, dispatcher: Any, stop_event: Optional[threading.Event] = None) -> None:
        """
        Pop and dispatch jobs until stop_event is set.

        Bad messages are the dispatcher's concern and never stop the loop.
        Connection failures are reported through on_error, then retried
        after a bounded exponential backoff that resets on the next pop.

        Args:
            dispatcher: Object with dispatch_message(raw)
            stop_event: Set to end the loop after the current job
        """
        if stop_event is None:
            stop_event = threading.Event()

        logger.info(f"Listening on {self.queue}")
        failures = 0

        while not stop_event.is_set():
            try:
                raw = self.pop()
            except QueueUnavailable as e:
                failures += 1
                delay = self.backoff.compute(failures)
                logger.error(f"{e} (retry {failures} in {delay:.1f}s)")
                if self.on_error:
                    self.on_error(e)
                stop_event.wait(delay)
                continue

            failures = 0
            if raw is None:
                continue

            dispatcher.dispatch_message(raw)

        logger.info(f"Stopped listening on {self.queue}")
