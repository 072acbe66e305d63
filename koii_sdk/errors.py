# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Exception hierarchy shared by every module of the Koii Python SDK.

Validation errors (bad mnemonics, malformed addresses, instruction schema
violations) are raised synchronously and also subclass :class:`ValueError`,
so callers that only care about "bad input" can catch that. Network errors
carry whatever the remote side reported (HTTP status, JSON-RPC error code and
message) so that failed transfers surface the real RPC message.
"""

from typing import Optional


class KoiiError(Exception):
    """Base exception for all SDK errors."""


class InvalidMnemonicError(KoiiError, ValueError):
    """The phrase is not a valid BIP-39 mnemonic (word list or checksum)."""

    def __init__(self, message: str = "Invalid mnemonic phrase"):
        super().__init__(message)


class InvalidDerivationPathError(KoiiError, ValueError):
    """The derivation path cannot be used for Ed25519 (SLIP-0010) derivation."""

    path: str

    def __init__(self, path: str, reason: str = "Invalid derivation path"):
        super().__init__(f"{reason}: {path}")
        self.path = path


class MissingFieldError(KoiiError, ValueError):
    """A field required by an instruction layout was not supplied."""

    field: str
    instruction: str

    def __init__(self, field: str, instruction: str):
        super().__init__(f"Missing field '{field}' for instruction {instruction}")
        self.field = field
        self.instruction = instruction


class FieldTooLongError(KoiiError, ValueError):
    """A fixed-width field value does not fit in its byte budget."""

    field: str
    length: int
    width: int

    def __init__(self, field: str, length: int, width: int):
        super().__init__(
            f"{field} cannot be greater than {width} bytes (got {length})"
        )
        self.field = field
        self.length = length
        self.width = width


class InvalidTaskParametersError(KoiiError, ValueError):
    """Task parameters are inconsistent with each other."""


class InvalidAddressError(KoiiError, ValueError):
    """A public key, wallet address or transaction id is malformed."""

    address: str

    def __init__(self, address: str, message: Optional[str] = None):
        super().__init__(message or f"Invalid address: {address}")
        self.address = address


class UnsupportedImportMethodError(KoiiError, ValueError):
    """The wallet variant cannot import a wallet using this method."""


class UninitializedProviderError(KoiiError):
    """The operation requires a wallet or chain client that was never set up."""


class NetworkError(KoiiError):
    """An HTTP, JSON-RPC or GraphQL call failed."""

    status_code: Optional[int]
    rpc_code: Optional[int]

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        rpc_code: Optional[int] = None,
    ):
        # Call the base class constructor with the parameters it needs
        super().__init__(message)
        self.status_code = status_code
        self.rpc_code = rpc_code


class InsufficientFundsError(KoiiError):
    """The paying account cannot cover the estimated fees."""

    address: str
    balance: int
    required: int

    def __init__(self, address: str, balance: int, required: int):
        super().__init__(
            f"Your balance is not sufficient: {address} has {balance}, needs {required}"
        )
        self.address = address
        self.balance = balance
        self.required = required


class ProgramNotDeployedError(KoiiError):
    """The task program account is missing or not executable."""
