# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Instruction layouts for the Koii task program.

Every instruction understood by the deployed task program is a byte buffer
made of a one-byte opcode followed by the instruction's fields in declared
order. The opcodes and field widths below are a contract with the on-chain
program and must only change together with it.

String fields are fixed-width: the UTF-8 bytes are right-padded with ASCII
spaces (0x20) up to the field width, which keeps task accounts a predictable
size. Decoding strips that padding again.

Examples:
    Encoding from a plain mapping::

        from koii_sdk.instructions import TASK_INSTRUCTION_LAYOUTS, encode_instruction

        data = encode_instruction(
            TASK_INSTRUCTION_LAYOUTS["FundTask"], {"amount": 5_000_000_000}
        )

    Encoding a typed instruction::

        from koii_sdk.instructions import SetActive, decode

        data = SetActive(is_active=1).encode()
        decode(data)  # SetActive(is_active=1)
"""

from __future__ import annotations

import dataclasses
import types
import typing
import unittest
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple, Union

from .buffer_layout import (
    PUBLIC_KEY_LENGTH,
    Deserializer,
    Serializer,
    rust_string_alloc,
)
from .errors import FieldTooLongError, InvalidTaskParametersError, MissingFieldError

PADDING_BYTE = b" "
OPCODE_SPAN = 1


class Field:
    """One typed member of an instruction layout.

    ``span`` is the encoded size in bytes, or ``-1`` when the size depends on
    the value (see :meth:`alloc`).
    """

    name: str
    span: int = -1

    def __init__(self, name: str):
        self.name = name

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"

    def alloc(self, value: Any) -> int:
        return self.span

    def encode(self, serializer: Serializer, value: Any):
        raise NotImplementedError

    def decode(self, deserializer: Deserializer) -> Any:
        raise NotImplementedError


class U8(Field):
    span = 1

    def encode(self, serializer: Serializer, value: Any):
        serializer.u8(int(value))

    def decode(self, deserializer: Deserializer) -> int:
        return deserializer.u8()


class NS64(Field):
    """Signed little-endian 64-bit integer; booleans are written as 0/1."""

    span = 8

    def encode(self, serializer: Serializer, value: Any):
        if isinstance(value, bool):
            value = int(value)
        if not isinstance(value, int):
            raise TypeError(f"{self.name} must be an integer, got {type(value)}")
        serializer.i64(value)

    def decode(self, deserializer: Deserializer) -> int:
        return deserializer.i64()


class Blob(Field):
    """Raw bytes of exactly ``width`` length."""

    def __init__(self, name: str, width: int):
        super().__init__(name)
        self.width = width
        self.span = width

    def _raw(self, value: Any) -> bytes:
        return bytes(value)

    def _check_length(self, raw: bytes):
        if len(raw) > self.width:
            raise FieldTooLongError(self.name, len(raw), self.width)

    def encode(self, serializer: Serializer, value: Any):
        raw = self._raw(value)
        self._check_length(raw)
        if len(raw) < self.width:
            raise ValueError(
                f"{self.name} must be exactly {self.width} bytes (got {len(raw)})"
            )
        serializer.fixed_bytes(raw)

    def decode(self, deserializer: Deserializer) -> Any:
        return deserializer.fixed_bytes(self.width)


class PaddedString(Blob):
    """Fixed-width UTF-8 string right-padded with ASCII spaces."""

    def _raw(self, value: Any) -> bytes:
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        return str(value).encode("utf-8")

    def encode(self, serializer: Serializer, value: Any):
        raw = self._raw(value)
        self._check_length(raw)
        serializer.fixed_bytes(raw + PADDING_BYTE * (self.width - len(raw)))

    def decode(self, deserializer: Deserializer) -> str:
        return (
            deserializer.fixed_bytes(self.width).rstrip(PADDING_BYTE).decode("utf-8")
        )


class RustString(Field):
    """Length-prefixed string: u32 length, u32 padding, payload."""

    def alloc(self, value: Any) -> int:
        return rust_string_alloc(value)

    def encode(self, serializer: Serializer, value: Any):
        serializer.rust_string(value)

    def decode(self, deserializer: Deserializer) -> str:
        return deserializer.rust_string()


class PublicKeyField(Field):
    span = PUBLIC_KEY_LENGTH

    def encode(self, serializer: Serializer, value: Any):
        serializer.public_key(value if isinstance(value, (str, bytes)) else bytes(value))

    def decode(self, deserializer: Deserializer) -> str:
        return deserializer.public_key()


class InstructionLayout:
    """A named instruction: opcode index plus ordered field schema."""

    name: str
    index: int
    fields: Tuple[Field, ...]

    def __init__(self, name: str, index: int, fields: List[Field]):
        self.name = name
        self.index = index
        self.fields = tuple(fields)

    def __repr__(self) -> str:
        return f"InstructionLayout({self.name!r}, {self.index})"

    @property
    def span(self) -> int:
        """Total static size including the opcode, or -1 if any field is variable."""
        if any(field.span < 0 for field in self.fields):
            return -1
        return OPCODE_SPAN + sum(field.span for field in self.fields)

    def alloc(self, values: Mapping[str, Any]) -> int:
        """Buffer size needed for ``values``."""
        if self.span >= 0:
            return self.span
        return OPCODE_SPAN + sum(
            field.span if field.span >= 0 else field.alloc(values[field.name])
            for field in self.fields
        )

    def field_names(self) -> List[str]:
        return [field.name for field in self.fields]


def encode_instruction(layout: InstructionLayout, values: Mapping[str, Any]) -> bytes:
    """Serialize ``values`` with ``layout``.

    Args:
        layout: The instruction layout to encode with.
        values: Field name to value mapping. Keys not in the layout are ignored.

    Returns:
        Opcode byte followed by every field in declared order.

    Raises:
        MissingFieldError: A declared field is absent from ``values``.
        FieldTooLongError: A fixed-width value exceeds its width in bytes.
        ValueError: A raw byte field is shorter than its width.
    """
    for name in layout.field_names():
        if name not in values:
            raise MissingFieldError(name, layout.name)

    ser = Serializer()
    ser.u8(layout.index)
    for field in layout.fields:
        field.encode(ser, values[field.name])
    data = ser.output()

    expected = layout.alloc(values)
    if len(data) != expected:
        raise ValueError(
            f"{layout.name} encoded to {len(data)} bytes, expected {expected}"
        )
    return data


def decode_instruction(
    data: bytes, layout: Optional[InstructionLayout] = None
) -> Tuple[InstructionLayout, Dict[str, Any]]:
    """Inverse of :func:`encode_instruction`.

    When ``layout`` is omitted it is looked up from the opcode byte.
    """
    der = Deserializer(data)
    index = der.u8()
    if layout is None:
        if index not in LAYOUTS_BY_INDEX:
            raise ValueError(f"Unknown task instruction opcode: {index}")
        layout = LAYOUTS_BY_INDEX[index]
    elif layout.index != index:
        raise ValueError(
            f"Opcode {index} does not match {layout.name} ({layout.index})"
        )

    values = {field.name: field.decode(der) for field in layout.fields}
    if der.remaining() != 0:
        raise ValueError(f"{der.remaining()} trailing bytes after {layout.name}")
    return layout, values


def _task_fields(with_total_bounty: bool) -> List[Field]:
    fields: List[Field] = [
        PaddedString("task_name", 24),
        PaddedString("task_description", 64),
        PaddedString("task_audit_program", 64),
        PaddedString("task_executable_network", 64),
    ]
    if with_total_bounty:
        fields.append(NS64("total_bounty_amount"))
    fields.extend(
        [
            NS64("bounty_amount_per_round"),
            NS64("round_time"),
            NS64("audit_window"),
            NS64("submission_window"),
            NS64("minimum_stake_amount"),
            PaddedString("task_metadata", 64),
            PaddedString("local_vars", 64),
            NS64("allowed_failed_distributions"),
        ]
    )
    return fields


_LAYOUTS = [
    InstructionLayout("CreateTask", 0, _task_fields(with_total_bounty=True)),
    InstructionLayout(
        "SubmitTask", 1, [PaddedString("submission", 512), NS64("round")]
    ),
    InstructionLayout("AuditSubmissions", 2, [NS64("is_valid"), NS64("round")]),
    InstructionLayout("AuditDistribution", 3, [NS64("is_valid"), NS64("round")]),
    InstructionLayout("Payout", 4, [NS64("round")]),
    InstructionLayout("Whitelist", 5, [NS64("is_whitelisted")]),
    InstructionLayout("SetActive", 6, [NS64("is_active")]),
    InstructionLayout("ClaimReward", 7, []),
    InstructionLayout("FundTask", 8, [NS64("amount")]),
    InstructionLayout("Stake", 9, [NS64("stake_amount")]),
    InstructionLayout("Withdraw", 10, []),
    InstructionLayout("UploadDistributionList", 11, [Blob("instruction_data", 512)]),
    InstructionLayout("SubmitDistributionList", 12, [NS64("round")]),
    InstructionLayout("UpdateTask", 14, _task_fields(with_total_bounty=False)),
]

TASK_INSTRUCTION_LAYOUTS: Mapping[str, InstructionLayout] = types.MappingProxyType(
    {layout.name: layout for layout in _LAYOUTS}
)
LAYOUTS_BY_INDEX: Mapping[int, InstructionLayout] = types.MappingProxyType(
    {layout.index: layout for layout in _LAYOUTS}
)


class _Instruction:
    layout: ClassVar[InstructionLayout]

    def to_fields(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    def encode(self) -> bytes:
        return encode_instruction(self.layout, self.to_fields())


class _TaskParameters(_Instruction):
    round_time: int
    audit_window: int
    submission_window: int

    def __post_init__(self):
        if self.round_time < self.audit_window + self.submission_window:
            raise InvalidTaskParametersError(
                "Round time cannot be less than audit_window + submission_window"
            )


@dataclasses.dataclass(frozen=True)
class CreateTask(_TaskParameters):
    task_name: str
    task_description: str
    task_audit_program: str
    task_executable_network: str
    total_bounty_amount: int
    bounty_amount_per_round: int
    round_time: int
    audit_window: int
    submission_window: int
    minimum_stake_amount: int
    task_metadata: str
    local_vars: str
    allowed_failed_distributions: int

    layout: ClassVar[InstructionLayout] = TASK_INSTRUCTION_LAYOUTS["CreateTask"]


@dataclasses.dataclass(frozen=True)
class UpdateTask(_TaskParameters):
    task_name: str
    task_description: str
    task_audit_program: str
    task_executable_network: str
    bounty_amount_per_round: int
    round_time: int
    audit_window: int
    submission_window: int
    minimum_stake_amount: int
    task_metadata: str
    local_vars: str
    allowed_failed_distributions: int

    layout: ClassVar[InstructionLayout] = TASK_INSTRUCTION_LAYOUTS["UpdateTask"]


@dataclasses.dataclass(frozen=True)
class SubmitTask(_Instruction):
    submission: str
    round: int

    layout: ClassVar[InstructionLayout] = TASK_INSTRUCTION_LAYOUTS["SubmitTask"]


@dataclasses.dataclass(frozen=True)
class AuditSubmissions(_Instruction):
    is_valid: int
    round: int

    layout: ClassVar[InstructionLayout] = TASK_INSTRUCTION_LAYOUTS["AuditSubmissions"]


@dataclasses.dataclass(frozen=True)
class AuditDistribution(_Instruction):
    is_valid: int
    round: int

    layout: ClassVar[InstructionLayout] = TASK_INSTRUCTION_LAYOUTS["AuditDistribution"]


@dataclasses.dataclass(frozen=True)
class Payout(_Instruction):
    round: int

    layout: ClassVar[InstructionLayout] = TASK_INSTRUCTION_LAYOUTS["Payout"]


@dataclasses.dataclass(frozen=True)
class Whitelist(_Instruction):
    is_whitelisted: int

    layout: ClassVar[InstructionLayout] = TASK_INSTRUCTION_LAYOUTS["Whitelist"]


@dataclasses.dataclass(frozen=True)
class SetActive(_Instruction):
    is_active: int

    layout: ClassVar[InstructionLayout] = TASK_INSTRUCTION_LAYOUTS["SetActive"]


@dataclasses.dataclass(frozen=True)
class ClaimReward(_Instruction):
    layout: ClassVar[InstructionLayout] = TASK_INSTRUCTION_LAYOUTS["ClaimReward"]


@dataclasses.dataclass(frozen=True)
class FundTask(_Instruction):
    amount: int

    layout: ClassVar[InstructionLayout] = TASK_INSTRUCTION_LAYOUTS["FundTask"]


@dataclasses.dataclass(frozen=True)
class Stake(_Instruction):
    stake_amount: int

    layout: ClassVar[InstructionLayout] = TASK_INSTRUCTION_LAYOUTS["Stake"]


@dataclasses.dataclass(frozen=True)
class Withdraw(_Instruction):
    layout: ClassVar[InstructionLayout] = TASK_INSTRUCTION_LAYOUTS["Withdraw"]


@dataclasses.dataclass(frozen=True)
class UploadDistributionList(_Instruction):
    instruction_data: bytes

    layout: ClassVar[InstructionLayout] = TASK_INSTRUCTION_LAYOUTS[
        "UploadDistributionList"
    ]


@dataclasses.dataclass(frozen=True)
class SubmitDistributionList(_Instruction):
    round: int

    layout: ClassVar[InstructionLayout] = TASK_INSTRUCTION_LAYOUTS[
        "SubmitDistributionList"
    ]


TaskInstruction = Union[
    CreateTask,
    UpdateTask,
    SubmitTask,
    AuditSubmissions,
    AuditDistribution,
    Payout,
    Whitelist,
    SetActive,
    ClaimReward,
    FundTask,
    Stake,
    Withdraw,
    UploadDistributionList,
    SubmitDistributionList,
]

INSTRUCTION_TYPES: Mapping[str, typing.Type[_Instruction]] = types.MappingProxyType(
    {cls.layout.name: cls for cls in typing.get_args(TaskInstruction)}
)


def encode(instruction: TaskInstruction) -> bytes:
    """Encode a typed task instruction."""
    return instruction.encode()


def decode(data: bytes) -> TaskInstruction:
    """Decode ``data`` into the typed instruction its opcode names."""
    layout, values = decode_instruction(data)
    return INSTRUCTION_TYPES[layout.name](**values)  # type: ignore[return-value]


def _create_task(**overrides: Any) -> CreateTask:
    params: Dict[str, Any] = dict(
        task_name="abc",
        task_description="A task that does things",
        task_audit_program="bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi",
        task_executable_network="IPFS",
        total_bounty_amount=10_000_000_000,
        bounty_amount_per_round=1_000_000_000,
        round_time=600,
        audit_window=200,
        submission_window=200,
        minimum_stake_amount=5_000_000_000,
        task_metadata="",
        local_vars="",
        allowed_failed_distributions=3,
    )
    params.update(overrides)
    return CreateTask(**params)


class Test(unittest.TestCase):
    def test_opcodes(self):
        self.assertEqual(
            {name: layout.index for name, layout in TASK_INSTRUCTION_LAYOUTS.items()},
            {
                "CreateTask": 0,
                "SubmitTask": 1,
                "AuditSubmissions": 2,
                "AuditDistribution": 3,
                "Payout": 4,
                "Whitelist": 5,
                "SetActive": 6,
                "ClaimReward": 7,
                "FundTask": 8,
                "Stake": 9,
                "Withdraw": 10,
                "UploadDistributionList": 11,
                "SubmitDistributionList": 12,
                "UpdateTask": 14,
            },
        )

    def test_static_spans(self):
        self.assertEqual(TASK_INSTRUCTION_LAYOUTS["CreateTask"].span, 401)
        self.assertEqual(TASK_INSTRUCTION_LAYOUTS["UpdateTask"].span, 393)
        self.assertEqual(TASK_INSTRUCTION_LAYOUTS["SubmitTask"].span, 521)
        self.assertEqual(TASK_INSTRUCTION_LAYOUTS["ClaimReward"].span, 1)
        self.assertEqual(TASK_INSTRUCTION_LAYOUTS["FundTask"].span, 9)

    def test_create_task_name_is_space_padded(self):
        data = _create_task(task_name="abc").encode()

        self.assertEqual(data[0], 0)
        self.assertEqual(data[1:25], b"abc" + b" " * 21)
        self.assertEqual(len(data), 401)

    def test_create_task_numeric_offsets(self):
        data = _create_task().encode()
        # opcode + name + three 64-byte strings
        offset = 1 + 24 + 64 * 3
        self.assertEqual(
            int.from_bytes(data[offset : offset + 8], "little", signed=True),
            10_000_000_000,
        )

    def test_round_trip_all_typed_instructions(self):
        instructions = [
            _create_task(),
            UpdateTask(
                task_name="renamed",
                task_description="",
                task_audit_program="prog",
                task_executable_network="ARWEAVE",
                bounty_amount_per_round=7,
                round_time=10,
                audit_window=3,
                submission_window=3,
                minimum_stake_amount=0,
                task_metadata="meta",
                local_vars="vars",
                allowed_failed_distributions=0,
            ),
            SubmitTask(submission="cid-of-submission", round=4),
            AuditSubmissions(is_valid=1, round=2),
            AuditDistribution(is_valid=0, round=2),
            Payout(round=9),
            Whitelist(is_whitelisted=1),
            SetActive(is_active=0),
            ClaimReward(),
            FundTask(amount=-5),
            Stake(stake_amount=2**63 - 1),
            Withdraw(),
            UploadDistributionList(instruction_data=b"\x01\x02" + b"\x00" * 510),
            SubmitDistributionList(round=1),
        ]
        for instruction in instructions:
            with self.subTest(instruction=type(instruction).__name__):
                data = encode(instruction)
                self.assertEqual(len(data), instruction.layout.alloc(instruction.to_fields()))
                self.assertEqual(decode(data), instruction)

    def test_distribution_list_must_fill_width(self):
        with self.assertRaises(ValueError) as cm:
            UploadDistributionList(instruction_data=b"\x01\x02").encode()
        self.assertNotIsInstance(cm.exception, FieldTooLongError)
        with self.assertRaises(FieldTooLongError):
            UploadDistributionList(instruction_data=bytes(513)).encode()

        data = bytes(range(256)) * 2
        encoded = UploadDistributionList(instruction_data=data).encode()
        self.assertEqual(encoded, bytes([11]) + data)
        self.assertEqual(decode(encoded), UploadDistributionList(instruction_data=data))

    def test_description_too_long(self):
        with self.assertRaises(FieldTooLongError) as cm:
            _create_task(task_description="x" * 65).encode()
        self.assertEqual(cm.exception.field, "task_description")
        self.assertEqual(cm.exception.width, 64)

    def test_too_long_counts_utf8_bytes(self):
        # 33 two-byte characters: 33 chars but 66 bytes
        with self.assertRaises(FieldTooLongError):
            _create_task(task_metadata="é" * 33).encode()
        _create_task(task_metadata="é" * 32).encode()

    def test_missing_field(self):
        with self.assertRaises(MissingFieldError) as cm:
            encode_instruction(TASK_INSTRUCTION_LAYOUTS["AuditSubmissions"], {"round": 1})
        self.assertEqual(cm.exception.field, "is_valid")

    def test_extra_fields_are_ignored(self):
        data = encode_instruction(
            TASK_INSTRUCTION_LAYOUTS["FundTask"], {"amount": 1, "space": 100}
        )
        self.assertEqual(data, b"\x08" + (1).to_bytes(8, "little"))

    def test_booleans_encode_as_ns64(self):
        data = encode_instruction(
            TASK_INSTRUCTION_LAYOUTS["Whitelist"], {"is_whitelisted": True}
        )
        self.assertEqual(data, b"\x05\x01" + b"\x00" * 7)

    def test_round_time_validation(self):
        with self.assertRaises(InvalidTaskParametersError):
            _create_task(round_time=100, audit_window=60, submission_window=60)

    def test_variable_length_layout(self):
        layout = InstructionLayout(
            "Memo", 42, [RustString("memo"), NS64("round"), PublicKeyField("owner")]
        )
        values = {
            "memo": "hello",
            "round": 3,
            "owner": "9cGCJvVacp5V6xjeshprS3KDN3e5VwEUszHmxxaZuHmJ",
        }

        self.assertEqual(layout.span, -1)
        data = encode_instruction(layout, values)
        self.assertEqual(len(data), 1 + (4 + 4 + 5) + 8 + 32)
        self.assertEqual(layout.alloc(values), len(data))
        self.assertEqual(decode_instruction(data, layout), (layout, values))

    def test_decode_rejects_mismatched_opcode(self):
        data = SetActive(is_active=1).encode()
        with self.assertRaises(ValueError):
            decode_instruction(data, TASK_INSTRUCTION_LAYOUTS["Whitelist"])

    def test_decode_rejects_unknown_opcode(self):
        with self.assertRaises(ValueError):
            decode_instruction(b"\x0d")

    def test_decode_rejects_trailing_bytes(self):
        with self.assertRaises(ValueError):
            decode_instruction(ClaimReward().encode() + b"\x00")


if __name__ == "__main__":
    unittest.main()
