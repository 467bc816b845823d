"""Bank aggregation collaborator contract and errors."""

from abc import ABC, abstractmethod

from moneyquest.models.integrations import BankConnectionStatus, BankInstitution


class BankConnectorInterface(ABC):
    """Links a user's bank through an aggregator."""

    @abstractmethod
    async def connect(
        self,
        public_token: str,
        institution: BankInstitution,
    ) -> BankConnectionStatus:
        """
        Exchange a link token and report the connected accounts.

        Raises:
            BankConnectionError: If the aggregator rejects the connection
        """
        pass


class BankConnectionError(Exception):
    """Base exception for bank aggregation errors."""

    def __init__(self, message: str, error_code: str = ""):
        self.error_code = error_code
        super().__init__(message)
