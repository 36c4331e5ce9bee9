"""Binary serialization for protocol messages.

Network byte order (big-endian) throughout. Application messages are a
bare u32 with no length prefix; the handshake additionally exchanges one
16-byte identity token, serialized by PlayerId itself.

Wire format for a message:
    [message:u32]
"""

from __future__ import annotations

import struct

from tictactoe.networking.protocol import Message

MESSAGE_FMT = struct.Struct("!I")


def encode_message(message: Message) -> bytes:
    """Pack a message into its 4-byte frame."""
    return MESSAGE_FMT.pack(message.value)


def decode_message(data: bytes) -> Message:
    """Unpack a 4-byte frame into a Message.

    Raises ValueError if the frame is not exactly one message long.
    """
    if len(data) != MESSAGE_FMT.size:
        raise ValueError(f"Expected {MESSAGE_FMT.size} bytes, got {len(data)}")
    (value,) = MESSAGE_FMT.unpack(data)
    return Message(value)
