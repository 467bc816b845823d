"""Bank aggregation services package."""

from moneyquest.services.banking.interface import BankConnectionError, BankConnectorInterface
from moneyquest.services.banking.plaid_service import PlaidBankConnector

__all__ = [
    "BankConnectionError",
    "BankConnectorInterface",
    "PlaidBankConnector",
]
