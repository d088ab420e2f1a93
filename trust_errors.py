# trust_errors.py - Failure taxonomy shared by ledger, services and clients


class TrustLedgerError(Exception):
    """Base class for every named failure of the trust ledger"""

    default_message = "Trust ledger error"
    http_status = 400

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_payload(self):
        return {"error": type(self).__name__, "message": self.message}


class InvalidAddress(TrustLedgerError):
    default_message = "Invalid user address"


class InvalidProof(TrustLedgerError):
    default_message = "Invalid input proof"


class EmptyProof(InvalidProof):
    default_message = "Input proof is empty"


class CapacityExceeded(TrustLedgerError):
    default_message = "Maximum trust events reached"


class IndexOutOfBounds(TrustLedgerError):
    default_message = "Index out of bounds"


class InvalidRange(TrustLedgerError):
    default_message = "Invalid range"


class RangeOutOfBounds(TrustLedgerError):
    default_message = "End index out of bounds"


class BatchSizeInvalid(TrustLedgerError):
    default_message = "Batch size must be 1-10"


class CapabilityDenied(TrustLedgerError):
    default_message = "Not allowed to decrypt this handle"
    http_status = 403


class RemoteServiceUnavailable(TrustLedgerError):
    default_message = "Re-encryption service unavailable"
    http_status = 503


class RevealCancelled(TrustLedgerError):
    default_message = "Reveal cancelled by the holder"


ERRORS_BY_NAME = {
    cls.__name__: cls
    for cls in (
        TrustLedgerError, InvalidAddress, InvalidProof, EmptyProof,
        CapacityExceeded, IndexOutOfBounds, InvalidRange, RangeOutOfBounds,
        BatchSizeInvalid, CapabilityDenied, RemoteServiceUnavailable, RevealCancelled,
    )
}


def error_from_payload(payload):
    """Rebuild the exception a server reported as {"error", "message"}"""
    cls = ERRORS_BY_NAME.get(payload.get("error"), TrustLedgerError)
    return cls(payload.get("message"))
