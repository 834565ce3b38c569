"""
Raw MAVLink message container.

A RawMessage is the unit handed from the transport to the inspector: the
undecoded payload bytes plus the header identifiers needed to look up the
schema and label the sender.
"""

from dataclasses import dataclass
from typing import Optional

from .errors import MalformedBuffer


@dataclass(frozen=True)
class RawMessage:
    """
    An undecoded message as received from the link.

    Attributes:
        type_id: MAVLink message id
        sender_id: Source system id (sysid)
        component_id: Source component id (compid)
        payload: Payload bytes, without header or checksum
        length: Payload length in bytes (defaults to len(payload))
    """
    type_id: int
    sender_id: int
    component_id: int
    payload: bytes
    length: Optional[int] = None

    def __post_init__(self):
        if self.length is None and self.payload is not None:
            object.__setattr__(self, 'length', len(self.payload))

    def validate(self) -> 'RawMessage':
        """
        Check that the message carries a buffer that can be decoded.

        Returns:
            The message itself, for chaining

        Raises:
            MalformedBuffer: If the payload is missing or the length is invalid
        """
        if self.payload is None:
            raise MalformedBuffer(f"Message id {self.type_id} has no payload buffer")
        if not isinstance(self.payload, (bytes, bytearray, memoryview)):
            raise MalformedBuffer(
                f"Message id {self.type_id} payload is {type(self.payload).__name__}, not bytes"
            )
        if self.length is None or self.length < 0:
            raise MalformedBuffer(f"Message id {self.type_id} has invalid length {self.length}")
        return self
