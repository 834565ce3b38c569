"""
Error types for the MAVLink inspector.

None of these are fatal to the process: each one is absorbed close to
where it is raised and turned into degraded output or a rejected message.
"""


class InspectorError(Exception):
    """Base class for all inspector errors."""


class MissingSchema(InspectorError, KeyError):
    """No field descriptors are known for a message type id."""

    def __init__(self, type_id: int):
        self.type_id = type_id
        super().__init__(f"No schema for message id {type_id}")

    def __str__(self):
        return self.args[0]


class MalformedBuffer(InspectorError, ValueError):
    """A message arrived at the ingestion boundary without a usable buffer."""


class FieldOutOfBounds(InspectorError, IndexError):
    """A field read would run past the end of the message payload."""

    def __init__(self, field_name: str, end: int, length: int):
        self.field_name = field_name
        self.end = end
        self.length = length
        super().__init__(
            f"Field '{field_name}' ends at byte {end}, payload is {length} bytes"
        )
