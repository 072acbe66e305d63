import typing

from behave import given, then, use_step_matcher, when

from koii_sdk.errors import KoiiError
from koii_sdk.instructions import (
    INSTRUCTION_TYPES,
    TASK_INSTRUCTION_LAYOUTS,
    decode,
    encode_instruction,
)

# Use regular expressions
use_step_matcher("re")


@given(r"an? (?P<name>\w+) instruction(?: with (?P<fields>.+))?")
def given_instruction(context: typing.Any, name: str, fields: typing.Optional[str]):
    context.layout = TASK_INSTRUCTION_LAYOUTS[name]
    context.fields = parse_fields(fields) if fields else {}


@given(r"the field (?P<name>\w+) is (?P<length>\d+) bytes long")
def given_long_field(context: typing.Any, name: str, length: str):
    context.fields[name] = "x" * int(length)


@given(r"the field (?P<name>\w+) holds (?P<length>\d+) zero bytes")
def given_zero_bytes(context: typing.Any, name: str, length: str):
    context.fields[name] = bytes(int(length))


@when(r"I encode the instruction")
def when_encode(context: typing.Any):
    try:
        context.output = encode_instruction(context.layout, context.fields)
    except (KoiiError, ValueError, TypeError) as e:
        context.output = e


@when(r"I encode and decode the instruction")
def when_encode_decode(context: typing.Any):
    context.output = decode(encode_instruction(context.layout, context.fields))


@when(r"I decode the bytes")
def when_decode(context: typing.Any):
    try:
        context.output = decode(context.input)
    except (KoiiError, ValueError) as e:
        context.output = e


@when(r"I look up the span of (?P<name>\w+)")
def when_span(context: typing.Any, name: str):
    context.output = TASK_INSTRUCTION_LAYOUTS[name].span


@then(r"the span should be (?P<span>-?\d+)")
def then_span(context: typing.Any, span: str):
    assert context.output == int(span), (
        "Expected span " + span + " but got " + str(context.output)
    )


@then(r"the result should be an? (?P<name>\w+) instruction(?: with (?P<fields>.+))?")
def then_instruction(context: typing.Any, name: str, fields: typing.Optional[str]):
    assert isinstance(context.output, INSTRUCTION_TYPES[name]), (
        "Expected " + name + " but got " + repr(context.output)
    )
    for field, value in (parse_fields(fields) if fields else {}).items():
        actual = getattr(context.output, field)
        assert actual == value, f"Expected {field}={value!r} but got {actual!r}"


def parse_fields(input_value: str) -> typing.Dict[str, typing.Any]:
    fields: typing.Dict[str, typing.Any] = {}
    for pair in input_value.split(","):
        name, _, value = pair.strip().partition("=")
        if value.startswith('"'):
            fields[name] = value.removeprefix('"').removesuffix('"')
        elif value == "true" or value == "false":
            fields[name] = value == "true"
        else:
            fields[name] = int(value)
    return fields
