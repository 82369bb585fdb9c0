#!/usr/bin/env python3
"""
IXWALLET - Custom Exception Hierarchy

Structured error types so callers can tell "name already used" from
"wallet already exists", and a wrong password from a broken keystore.
"""


class IXWalletError(Exception):
    """Base exception for all IXWALLET errors."""

    pass


class ConfigError(IXWalletError):
    """Invalid or missing configuration."""

    pass


class InvalidChainType(IXWalletError):
    """Chain type missing or not supported."""

    pass


class MalformedKey(IXWalletError):
    """Private key is not a valid secp256k1 scalar."""

    pass


class KeyDerivationError(IXWalletError):
    """Keystore encryption failed (empty password, bad work factor)."""

    pass


class KeystoreError(IXWalletError):
    """Keystore could not be opened."""

    pass


class WrongPasswordError(KeystoreError):
    """MAC verification failed while decrypting a keystore."""

    pass


class MalformedKeystore(KeystoreError):
    """Keystore JSON is structurally invalid."""

    pass


class DuplicateWalletError(IXWalletError):
    """A wallet with the same identity is already stored."""

    pass


class DuplicateAlias(DuplicateWalletError):
    """Wallet name already used."""

    pass


class DuplicateAddress(DuplicateWalletError):
    """Wallet address already stored."""

    pass


class DuplicateName(IXWalletError):
    """Address book name already used."""

    pass


class WalletNotFound(IXWalletError):
    """No stored wallet matches the given alias or address."""

    pass


class CreationStateError(IXWalletError):
    """Wallet creation step called out of order."""

    pass


class MalformedBundle(IXWalletError):
    """Backup bundle could not be decoded."""

    pass


class StoreError(IXWalletError):
    """Local persistence failure."""

    pass


class SigningError(IXWalletError):
    """Transaction could not be signed."""

    pass


class TransferError(IXWalletError, ValueError):
    """Transfer request is invalid before anything is signed."""

    pass


class InsufficientBalance(TransferError):
    """Known balance is lower than the transfer amount."""

    pass


class NetworkError(IXWalletError):
    """Chain RPC call failed or timed out."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class SubmissionError(IXWalletError):
    """The chain rejected a signed transaction."""

    def __init__(self, reason: str):
        super().__init__(f"Transaction rejected: {reason}")
        self.reason = reason
