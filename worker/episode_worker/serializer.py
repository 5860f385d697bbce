"""
Command Payload Serialization

Laravel queues carry commands as PHP serialize() strings. This module maps
those strings to pydantic command models through an explicit Scope: a table
from PHP class name to local model, filled at startup.

- Serialization emits declared fields in declaration order
- Nested registered models become nested O: objects
- Lists become sequential PHP arrays, dicts become associative arrays
- Deserialization fails closed on class names missing from the scope
"""

import logging
import types
import typing
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Tuple, Type

import phpserialize
from phpserialize import phpobject
from pydantic import BaseModel, ValidationError

from .errors import DeserializeError, PayloadError, SerializeError, UnknownCommand

logger = logging.getLogger(__name__)


class CommandKind(str, Enum):
    """How the dispatcher treats a reconstructed command."""

    EXECUTABLE = "executable"  # has handle(context), run in-process
    EVENT_ONLY = "event_only"  # plain data, handed to the job listener


@dataclass(frozen=True)
class ScopeEntry:
    """One registered command class."""

    tag: str
    model: Type[BaseModel]
    kind: CommandKind


def _php_array(items: List[Tuple[Any, Any]]) -> Any:
    """Array hook: sequential PHP arrays become lists, the rest dicts."""
    keys = [key for key, _ in items]
    if keys == list(range(len(keys))):
        return [value for _, value in items]
    return dict(items)


def _property_name(key: Any) -> Any:
    """Strip PHP visibility markers ("\\0*\\0name", "\\0Class\\0name")."""
    if isinstance(key, str) and key.startswith("\x00"):
        return key.rsplit("\x00", 1)[-1]
    return key


def _expects_mapping(annotation: Any) -> bool:
    """True if a field annotation is a dict type (possibly Optional)."""
    origin = typing.get_origin(annotation)
    if annotation is dict or origin is dict:
        return True
    if origin in (typing.Union, types.UnionType):
        return any(_expects_mapping(arg) for arg in typing.get_args(annotation))
    return False


class Scope:
    """
    Registry mapping PHP class names to command models.

    Example:
        >>> scope = Scope()
        >>> scope.register("App\\Jobs\\EpisodeUpdated", EpisodeUpdated, CommandKind.EVENT_ONLY)
        >>> blob = scope.serialize(EpisodeUpdated(episode="ep-1", data={"status": "processing"}))
        >>> scope.unserialize(blob)
        EpisodeUpdated(episode='ep-1', data={'status': 'processing'})
    """

    def __init__(self):
        self._by_tag: Dict[str, ScopeEntry] = {}
        self._by_model: Dict[type, ScopeEntry] = {}

    def register(
        self,
        tag: str,
        model: Type[BaseModel],
        kind: CommandKind = CommandKind.EXECUTABLE,
    ) -> ScopeEntry:
        """
        Register a command model under a PHP class name.

        Args:
            tag: Fully qualified PHP class name
            model: pydantic model reconstructed for that class
            kind: Whether the dispatcher runs it or hands it to a listener

        Returns:
            ScopeEntry: The new registry entry

        Raises:
            ValueError: If tag or model is already registered
            TypeError: If an executable model has no handle() method
        """
        if tag in self._by_tag:
            raise ValueError(f"Class {tag} is already registered")
        if model in self._by_model:
            raise ValueError(f"{model.__name__} is already registered as {self._by_model[model].tag}")
        if kind is CommandKind.EXECUTABLE and not callable(getattr(model, "handle", None)):
            raise TypeError(f"Executable command {model.__name__} must define handle()")

        entry = ScopeEntry(tag=tag, model=model, kind=kind)
        self._by_tag[tag] = entry
        self._by_model[model] = entry
        return entry

    def __contains__(self, tag: str) -> bool:
        return tag in self._by_tag

    def __iter__(self) -> Iterator[ScopeEntry]:
        return iter(self._by_tag.values())

    def entry_for_tag(self, tag: str) -> ScopeEntry:
        """Look up a class name; raises UnknownCommand if absent."""
        try:
            return self._by_tag[tag]
        except KeyError:
            raise UnknownCommand(tag) from None

    def entry_for(self, obj: Any) -> ScopeEntry:
        """Look up the entry for a command instance; raises SerializeError if absent."""
        entry = self._by_model.get(type(obj))
        if entry is None:
            raise SerializeError(f"{type(obj).__name__} is not registered in the scope")
        return entry

    def tag_for(self, obj: Any) -> str:
        return self.entry_for(obj).tag

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def _to_php(self, obj: Any) -> phpobject:
        if not isinstance(obj, BaseModel):
            raise SerializeError(f"Cannot serialize value of type {type(obj).__name__}")
        entry = self.entry_for(obj)
        properties = {name: getattr(obj, name) for name in type(obj).model_fields}
        return phpobject(entry.tag, properties)

    def serialize(self, command: BaseModel) -> str:
        """
        Serialize a registered command to a PHP serialize() string.

        Raises:
            SerializeError: If the command, or anything nested in it, cannot be
                expressed in PHP serialization
        """
        self.entry_for(command)
        try:
            data = phpserialize.dumps(command, object_hook=self._to_php)
        except TypeError as e:
            raise SerializeError(str(e)) from e
        return data.decode("utf-8")

    # ------------------------------------------------------------------
    # Decoding
    # ------------------------------------------------------------------

    def _from_php(self, name: str, properties: Dict[Any, Any]) -> BaseModel:
        entry = self.entry_for_tag(name)
        fields = {_property_name(key): value for key, value in properties.items()}

        # PHP cannot tell an empty list from an empty map
        for field_name, info in entry.model.model_fields.items():
            if fields.get(field_name) == [] and _expects_mapping(info.annotation):
                fields[field_name] = {}

        try:
            return entry.model.model_validate(fields)
        except ValidationError as e:
            raise DeserializeError(f"Invalid {name} payload: {e}") from e

    def unserialize(self, blob: str) -> BaseModel:
        """
        Rebuild a command from a PHP serialize() string.

        Args:
            blob: Serialized command as found in the job envelope

        Returns:
            The reconstructed command model

        Raises:
            UnknownCommand: If any object class is not registered
            DeserializeError: If the blob is malformed, not an object, or fails
                model validation
        """
        try:
            value = phpserialize.loads(
                blob.encode("utf-8"),
                decode_strings=True,
                object_hook=self._from_php,
                array_hook=_php_array,
            )
        except PayloadError:
            raise
        except (ValueError, TypeError) as e:
            raise DeserializeError(f"Malformed serialized payload: {e}") from e

        if not isinstance(value, BaseModel):
            raise DeserializeError(f"Serialized payload is not an object: {type(value).__name__}")
        return value
