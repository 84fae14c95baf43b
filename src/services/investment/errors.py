"""
Investment workflow errors

Every failure the workflow can surface falls into one of four categories.
"""
from decimal import Decimal
from typing import Optional


class InvestmentError(Exception):
    """Base class for workflow failures"""

    status_code = 500


class WalletNotConnectedError(InvestmentError):
    """No signing capability for the user's wallet"""

    status_code = 401

    def __init__(self, message: str = "Wallet not connected"):
        super().__init__(message)


class InsufficientBalanceError(InvestmentError):
    """Wallet does not hold enough of a token"""

    status_code = 400

    def __init__(self, token: str, required: Decimal, available: Decimal):
        self.token = token
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient {token} balance. Required: {required}, Available: {available}"
        )


class VenueError(InvestmentError):
    """Quote, transaction build or submission rejected; detail is verbatim"""

    status_code = 502

    def __init__(self, detail: str, stage: Optional[str] = None):
        self.detail = detail
        self.stage = stage
        super().__init__(detail)


class ConfirmationError(InvestmentError):
    """Submitted transaction failed on chain or did not confirm"""

    status_code = 502

    def __init__(self, signature: str, reason: str):
        self.signature = signature
        self.reason = reason
        super().__init__(f"Transaction {signature} not confirmed: {reason}")
