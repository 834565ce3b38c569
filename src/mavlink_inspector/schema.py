"""
Message Schema Module

This module describes the field layout of every MAVLink message type as
runtime metadata: an ordered list of field descriptors (name, primitive
type, byte offset, array length) per message id. The decoder reads raw
payloads through these descriptors instead of per-message parsers.

Schemas come either from a hand-built SchemaTable or from the message
classes pymavlink generates for a dialect (see load_dialect_schema).
"""

import importlib
import re
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import MissingSchema

logger = logging.getLogger(__name__)


DEFAULT_DIALECT = 'common'
DEFAULT_WIRE_VERSION = 'v20'

# One token per wire field in a pymavlink unpacker format, e.g. '50s' or 'H'
_STRUCT_TOKEN = re.compile(r'(\d*)([a-zA-Z?])')


class PrimitiveType(Enum):
    """
    Closed set of MAVLink primitive field types.

    Each member's value is (type name, byte width, struct format code).
    """
    CHAR = ('char', 1, 'c')
    INT8 = ('int8', 1, 'b')
    UINT8 = ('uint8', 1, 'B')
    INT16 = ('int16', 2, 'h')
    UINT16 = ('uint16', 2, 'H')
    INT32 = ('int32', 4, 'i')
    UINT32 = ('uint32', 4, 'I')
    INT64 = ('int64', 8, 'q')
    UINT64 = ('uint64', 8, 'Q')
    FLOAT32 = ('float32', 4, 'f')
    FLOAT64 = ('float64', 8, 'd')

    @property
    def type_name(self) -> str:
        return self.value[0]

    @property
    def width(self) -> int:
        return self.value[1]

    @property
    def struct_code(self) -> str:
        return self.value[2]

    @property
    def is_float(self) -> bool:
        return self in (PrimitiveType.FLOAT32, PrimitiveType.FLOAT64)

    @classmethod
    def parse(cls, name: str) -> 'PrimitiveType':
        """
        Resolve a type name to a PrimitiveType.

        Accepts the plain names ('uint8', 'float32') as well as the C names
        pymavlink and the MAVLink XML use ('uint8_t', 'float', 'double',
        'uint8_t_mavlink_version').

        Raises:
            ValueError: If the name is not a known primitive type
        """
        key = name.strip().lower()
        if key.endswith('_mavlink_version'):
            key = key[:-len('_mavlink_version')]
        key = _C_TYPE_ALIASES.get(key, key)
        for member in cls:
            if member.type_name == key:
                return member
        raise ValueError(f"Unknown primitive type: {name!r}")

    @classmethod
    def from_struct_code(cls, code: str) -> Optional['PrimitiveType']:
        """Map a struct format code to a PrimitiveType, None if ambiguous."""
        return _STRUCT_CODES.get(code)


_C_TYPE_ALIASES = {
    'int8_t': 'int8',
    'uint8_t': 'uint8',
    'int16_t': 'int16',
    'uint16_t': 'uint16',
    'int32_t': 'int32',
    'uint32_t': 'uint32',
    'int64_t': 'int64',
    'uint64_t': 'uint64',
    'float': 'float32',
    'double': 'float64',
}

_STRUCT_CODES = {member.struct_code: member for member in PrimitiveType}
_STRUCT_CODES.update({'l': PrimitiveType.INT32, 'L': PrimitiveType.UINT32})


@dataclass(frozen=True)
class FieldDescriptor:
    """
    Layout of one field inside a message payload.

    Attributes:
        name: Field name
        primitive_type: Element type
        byte_offset: Offset of the first element from the start of the payload
        array_length: 0 for a scalar, element count for a fixed-size array
            (a char array is a fixed-capacity string)
    """
    name: str
    primitive_type: PrimitiveType
    byte_offset: int
    array_length: int = 0

    @property
    def element_count(self) -> int:
        return self.array_length if self.array_length > 0 else 1

    @property
    def element_size(self) -> int:
        return self.primitive_type.width

    @property
    def size(self) -> int:
        """Number of payload bytes this field spans."""
        return self.element_size * self.element_count

    @property
    def is_string(self) -> bool:
        return self.primitive_type is PrimitiveType.CHAR and self.array_length > 0


@dataclass(frozen=True)
class MessageSchema:
    """
    Field layout of one message type.

    Attributes:
        type_id: MAVLink message id
        name: Human-readable message name (e.g. 'HEARTBEAT'), may be None
        fields: Field descriptors in schema order
        payload_size: Full payload size in bytes, extensions included
    """
    type_id: int
    name: Optional[str]
    fields: Tuple[FieldDescriptor, ...]
    payload_size: int = 0

    @classmethod
    def packed(cls, type_id: int, name: Optional[str],
               layout: Iterable[Tuple[str, str, int]]) -> 'MessageSchema':
        """
        Build a schema whose fields are laid out back to back, in order.

        Args:
            type_id: Message id
            name: Message name
            layout: (field name, type name, array length) triples in wire order

        Returns:
            MessageSchema with computed offsets and payload size
        """
        fields = []
        offset = 0
        for field_name, type_name, array_length in layout:
            descriptor = FieldDescriptor(
                name=field_name,
                primitive_type=PrimitiveType.parse(type_name),
                byte_offset=offset,
                array_length=array_length,
            )
            fields.append(descriptor)
            offset += descriptor.size
        return cls(type_id=type_id, name=name, fields=tuple(fields), payload_size=offset)


class SchemaTable:
    """
    Read-only lookup from message id to field layout.

    The table is filled once at construction; afterwards it is only queried,
    so it can be shared between the ingestion and reporting threads without
    locking.
    """

    def __init__(self, schemas: Iterable[MessageSchema] = ()):
        self._schemas: Dict[int, MessageSchema] = {}
        for schema in schemas:
            self._schemas[schema.type_id] = schema

    def __len__(self) -> int:
        return len(self._schemas)

    def __contains__(self, type_id: int) -> bool:
        return type_id in self._schemas

    def get(self, type_id: int) -> MessageSchema:
        """
        Get the schema for a message id.

        Raises:
            MissingSchema: If the id is not in the table
        """
        try:
            return self._schemas[type_id]
        except KeyError:
            raise MissingSchema(type_id) from None

    def lookup_descriptors(self, type_id: int) -> Optional[List[FieldDescriptor]]:
        """Field descriptors for a message id, or None if unknown."""
        schema = self._schemas.get(type_id)
        if schema is None:
            return None
        return list(schema.fields)

    def lookup_name(self, type_id: int) -> Optional[str]:
        """Message name for a message id, or None if unknown."""
        schema = self._schemas.get(type_id)
        return schema.name if schema else None

    def payload_size(self, type_id: int) -> Optional[int]:
        """Full payload size for a message id, or None if unknown."""
        schema = self._schemas.get(type_id)
        return schema.payload_size if schema else None


def schema_from_message_class(type_id: int, msg_class) -> MessageSchema:
    """
    Build a MessageSchema from a pymavlink generated message class.

    pymavlink keeps the wire layout in `ordered_fieldnames` and the packing
    struct in `unpacker`; every token of the struct format is one wire field,
    with an optional element count for arrays. The struct code gives the
    element type except for 's' (byte strings), which pymavlink uses for both
    char and uint8 arrays, so the declared C type decides there.

    Offsets are computed in wire order, but the descriptors are returned in
    declaration order (`fieldnames`), the order the message definition lists
    them in.

    Args:
        type_id: Message id
        msg_class: Generated MAVLink_<name>_message class

    Returns:
        MessageSchema with fields in declaration order

    Raises:
        ValueError: If the struct format does not line up with the field names
    """
    name = getattr(msg_class, 'msgname', None) or getattr(msg_class, 'name', None)
    wire_names = list(msg_class.ordered_fieldnames)
    declared_types = dict(zip(msg_class.fieldnames, msg_class.fieldtypes))

    fmt = msg_class.unpacker.format
    if isinstance(fmt, bytes):
        fmt = fmt.decode('ascii')
    tokens = _STRUCT_TOKEN.findall(fmt.lstrip('<>=!@'))
    if len(tokens) != len(wire_names):
        raise ValueError(
            f"{name}: {len(tokens)} struct fields for {len(wire_names)} wire fields"
        )

    by_name = {}
    offset = 0
    for field_name, (count, code) in zip(wire_names, tokens):
        primitive = PrimitiveType.from_struct_code(code)
        if primitive is None:
            primitive = PrimitiveType.parse(declared_types.get(field_name, 'char'))
        array_length = int(count) if count else 0
        if code == 'c' and array_length == 1:
            array_length = 0
        descriptor = FieldDescriptor(field_name, primitive, offset, array_length)
        by_name[field_name] = descriptor
        offset += descriptor.size

    fields = [by_name.pop(field_name) for field_name in msg_class.fieldnames
              if field_name in by_name]
    fields.extend(by_name.values())

    return MessageSchema(
        type_id=type_id,
        name=name,
        fields=tuple(fields),
        payload_size=msg_class.unpacker.size,
    )


def load_dialect_module(dialect: str = DEFAULT_DIALECT,
                        wire_version: str = DEFAULT_WIRE_VERSION):
    """Import a pymavlink generated dialect, e.g. pymavlink.dialects.v20.common."""
    return importlib.import_module(f"pymavlink.dialects.{wire_version}.{dialect}")


def load_dialect_schema(dialect: str = DEFAULT_DIALECT,
                        wire_version: str = DEFAULT_WIRE_VERSION) -> SchemaTable:
    """
    Build a SchemaTable covering every message of a pymavlink dialect.

    Messages whose metadata cannot be turned into descriptors are left out
    and will render with the unknown-message fallback.

    Args:
        dialect: Dialect module name ('common', 'ardupilotmega', ...)
        wire_version: 'v20' or 'v10'

    Returns:
        SchemaTable keyed by message id
    """
    module = load_dialect_module(dialect, wire_version)
    schemas = []
    for type_id, msg_class in sorted(module.mavlink_map.items()):
        try:
            schemas.append(schema_from_message_class(type_id, msg_class))
        except (AttributeError, ValueError) as e:
            logger.warning(f"Skipping message id {type_id}: {e}")

    logger.info(f"Loaded {len(schemas)} message schemas from {wire_version}/{dialect}")
    return SchemaTable(schemas)
