import builtins
import typing

from behave import given, then, use_step_matcher

from koii_sdk import errors

# Use regular expressions
use_step_matcher("re")


@given(r"(?P<input_type>bytes|string|i64|u8) (?P<input_value>\S+)")
def given_input(context: typing.Any, input_type: str, input_value: str):
    context.input = parse_value(input_type, input_value)


@then(r"the result should be (?P<expected_type>bytes|string|i64|u8) (?P<expected_value>\S+)")
def then_result(context: typing.Any, expected_type: str, expected_value: str):
    expected_val = parse_value(expected_type, expected_value)
    assert context.output == expected_val, (
        "Expected " + str(expected_val) + " but got " + str(context.output)
    )


@then(r"the result should be error (?P<error_name>\w+)")
def then_error(context: typing.Any, error_name: str):
    expected = getattr(errors, error_name, None) or getattr(builtins, error_name, None)
    assert expected is not None, "Unknown error " + error_name
    assert isinstance(context.output, expected), (
        "Expected " + error_name + " but got " + repr(context.output)
    )


def parse_value(input_type: str, input_value: str) -> typing.Any:
    if input_type == "bytes":
        return parse_hex(input_value)
    elif input_type == "string":
        return parse_string(input_value)
    elif input_type == "i64" or input_type == "u8":
        return int(input_value)
    raise Exception("Unrecognized input type")


def parse_hex(input_value: str):
    return bytes.fromhex(input_value.removeprefix("0x"))


def parse_bool(input_value: str):
    return input_value == "true"


def parse_string(input_value: str):
    return input_value.removeprefix('"').removesuffix('"')
