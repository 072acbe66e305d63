# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Byte-level serializer and deserializer for Koii task program layouts.

The task program reads its instruction data with a fixed, little-endian
layout: single-byte opcodes, signed 64-bit numbers, fixed-width byte blobs,
32-byte public keys and Rust-style strings (a ``u32`` length, four bytes of
padding, then the UTF-8 payload). This module provides the primitive readers
and writers; :mod:`koii_sdk.instructions` composes them into named layouts.

Examples:
    Basic serialization::

        from koii_sdk.buffer_layout import Serializer, Deserializer

        ser = Serializer()
        ser.u8(8)
        ser.i64(1_000_000_000)
        data = ser.output()

        der = Deserializer(data)
        opcode = der.u8()       # 8
        amount = der.i64()      # 1000000000

    Rust strings::

        ser = Serializer()
        ser.rust_string("hello")
        len(ser.output())       # 4 + 4 + 5
"""

from __future__ import annotations

import io
import typing
import unittest

import base58

MAX_U8 = 2**8 - 1
MAX_U32 = 2**32 - 1
MIN_I64 = -(2**63)
MAX_I64 = 2**63 - 1

PUBLIC_KEY_LENGTH = 32
RUST_STRING_HEADER_LENGTH = 8


class Deserializer:
    """Reads layout-encoded values from a byte buffer.

    The deserializer keeps an internal cursor; every read advances it and
    fails with :class:`ValueError` when the buffer is exhausted.

    Attributes:
        _input: Internal BytesIO stream for reading data.
        _length: Total length of the input data.
    """

    _input: io.BytesIO
    _length: int

    def __init__(self, data: bytes):
        self._length = len(data)
        self._input = io.BytesIO(data)

    def remaining(self) -> int:
        """Number of bytes not yet consumed."""
        return self._length - self._input.tell()

    def fixed_bytes(self, length: int) -> bytes:
        return self._read(length)

    def public_key(self) -> str:
        """Read a 32-byte public key and return its base58 form."""
        return base58.b58encode(self._read(PUBLIC_KEY_LENGTH)).decode("ascii")

    def rust_string(self) -> str:
        """Read a ``u32`` length, skip the ``u32`` padding, decode the payload."""
        length = self.u32()
        self.u32()
        return self._read(length).decode("utf-8")

    def u8(self) -> int:
        return self._read_int(1)

    def u32(self) -> int:
        return self._read_int(4)

    def i64(self) -> int:
        return self._read_int(8, signed=True)

    def _read(self, length: int) -> bytes:
        value = self._input.read(length)
        if value is None or len(value) < length:
            actual_length = 0 if value is None else len(value)
            error = (
                f"Unexpected end of input. Requested: {length}, found: {actual_length}"
            )
            raise ValueError(error)
        return value

    def _read_int(self, length: int, signed: bool = False) -> int:
        return int.from_bytes(self._read(length), byteorder="little", signed=signed)


class Serializer:
    """Writes layout-encoded values to an in-memory buffer.

    Attributes:
        _output: Internal BytesIO buffer for accumulating serialized data.

    Examples:
        Writing an instruction by hand::

            ser = Serializer()
            ser.u8(6)       # SetActive
            ser.i64(1)      # isActive
            data = ser.output()
    """

    _output: io.BytesIO

    def __init__(self):
        self._output = io.BytesIO()

    def output(self) -> bytes:
        """Return everything written so far."""
        return self._output.getvalue()

    def fixed_bytes(self, value: bytes):
        self._output.write(value)

    def public_key(self, value: typing.Union[str, bytes]):
        """Write a 32-byte public key given as base58 text or raw bytes."""
        raw = base58.b58decode(value) if isinstance(value, str) else bytes(value)
        if len(raw) != PUBLIC_KEY_LENGTH:
            raise ValueError(
                f"Expected public key of length {PUBLIC_KEY_LENGTH}, got {len(raw)}"
            )
        self._output.write(raw)

    def rust_string(self, value: str):
        """Write ``value`` as u32 length + u32 padding + UTF-8 payload."""
        payload = value.encode("utf-8")
        self.u32(len(payload))
        self.u32(0)
        self._output.write(payload)

    def u8(self, value: int):
        if value < 0 or value > MAX_U8:
            raise ValueError(f"Cannot encode {value} into u8")

        self._write_int(value, 1)

    def u32(self, value: int):
        if value < 0 or value > MAX_U32:
            raise ValueError(f"Cannot encode {value} into u32")

        self._write_int(value, 4)

    def i64(self, value: int):
        if value < MIN_I64 or value > MAX_I64:
            raise ValueError(f"Cannot encode {value} into ns64")

        self._write_int(value, 8, signed=True)

    def _write_int(self, value: int, length: int, signed: bool = False):
        self._output.write(value.to_bytes(length, "little", signed=signed))


def rust_string_alloc(value: str) -> int:
    """Bytes taken by ``value`` once written with :meth:`Serializer.rust_string`."""
    return RUST_STRING_HEADER_LENGTH + len(value.encode("utf-8"))


def encoder(
    value: typing.Any, encoder: typing.Callable[[Serializer, typing.Any], typing.Any]
) -> bytes:
    """Encode a single value with one of the :class:`Serializer` methods.

    Examples:
        ::

            data = encoder(42, Serializer.i64)
    """
    ser = Serializer()
    encoder(ser, value)
    return ser.output()


class Test(unittest.TestCase):
    def test_u8(self):
        in_value = 15

        ser = Serializer()
        ser.u8(in_value)
        der = Deserializer(ser.output())

        self.assertEqual(der.u8(), in_value)
        self.assertEqual(der.remaining(), 0)

    def test_u8_out_of_range(self):
        ser = Serializer()
        with self.assertRaises(ValueError):
            ser.u8(256)
        with self.assertRaises(ValueError):
            ser.u8(-1)

    def test_i64_is_little_endian_and_signed(self):
        self.assertEqual(encoder(1, Serializer.i64), b"\x01" + b"\x00" * 7)
        self.assertEqual(encoder(-1, Serializer.i64), b"\xff" * 8)

        der = Deserializer(encoder(-42, Serializer.i64))
        self.assertEqual(der.i64(), -42)

    def test_i64_bounds(self):
        ser = Serializer()
        ser.i64(MAX_I64)
        ser.i64(MIN_I64)
        der = Deserializer(ser.output())
        self.assertEqual(der.i64(), MAX_I64)
        self.assertEqual(der.i64(), MIN_I64)

        with self.assertRaises(ValueError):
            Serializer().i64(MAX_I64 + 1)

    def test_rust_string(self):
        in_value = "héllo"

        ser = Serializer()
        ser.rust_string(in_value)
        data = ser.output()

        self.assertEqual(len(data), rust_string_alloc(in_value))
        self.assertEqual(data[:4], (6).to_bytes(4, "little"))
        self.assertEqual(data[4:8], b"\x00\x00\x00\x00")
        self.assertEqual(Deserializer(data).rust_string(), in_value)

    def test_public_key(self):
        address = "9cGCJvVacp5V6xjeshprS3KDN3e5VwEUszHmxxaZuHmJ"

        ser = Serializer()
        ser.public_key(address)
        data = ser.output()

        self.assertEqual(len(data), PUBLIC_KEY_LENGTH)
        self.assertEqual(Deserializer(data).public_key(), address)

    def test_public_key_wrong_length(self):
        with self.assertRaises(ValueError):
            Serializer().public_key(b"\x01" * 31)

    def test_read_past_end(self):
        der = Deserializer(b"\x01\x02")
        with self.assertRaises(ValueError):
            der.u32()


if __name__ == "__main__":
    unittest.main()
