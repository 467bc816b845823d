"""
Bank connections using Plaid

Handles the server side of Plaid Link:
1. Exchange the public token from Link for an access token
2. Fetch the item's accounts and balances
3. Report a BankConnectionStatus back to the engine

Access tokens are held in memory for the lifetime of the connector.
Persisting them (encrypted) belongs to the hosting service.
"""

from decimal import Decimal
from typing import Optional

import plaid
from plaid import ApiClient, Configuration
from plaid.api import plaid_api
from plaid.model.accounts_get_request import AccountsGetRequest
from plaid.model.item_public_token_exchange_request import ItemPublicTokenExchangeRequest
from tenacity import retry, stop_after_attempt, wait_exponential

from moneyquest.config import PlaidSettings, get_settings
from moneyquest.models.integrations import BankAccount, BankConnectionStatus, BankInstitution
from moneyquest.models.records import utc_now
from moneyquest.services.banking.interface import BankConnectionError, BankConnectorInterface


class PlaidBankConnector(BankConnectorInterface):
    """Plaid implementation of the bank connector."""

    def __init__(self, settings: Optional[PlaidSettings] = None):
        self._settings = settings or get_settings().plaid
        self._client: Optional[plaid_api.PlaidApi] = None
        self._access_tokens: dict[str, str] = {}

    def _get_client(self) -> plaid_api.PlaidApi:
        """Get or create the Plaid API client."""
        if self._client is None:
            configuration = Configuration(
                host=self._settings.host,
                api_key={
                    "clientId": self._settings.client_id,
                    "secret": self._settings.secret,
                },
            )
            self._client = plaid_api.PlaidApi(ApiClient(configuration))
        return self._client

    def _to_account(self, account: dict) -> BankAccount:
        balances = account.get("balances") or {}
        current = balances.get("current")
        available = balances.get("available")
        return BankAccount(
            account_id=account["account_id"],
            name=account.get("name") or "Account",
            type=str(account.get("type", "other")),
            subtype=str(account["subtype"]) if account.get("subtype") else None,
            current_balance=Decimal(str(current)) if current is not None else None,
            available_balance=Decimal(str(available)) if available is not None else None,
            mask=account.get("mask"),
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _exchange(self, public_token: str) -> dict:
        client = self._get_client()
        return client.item_public_token_exchange(
            ItemPublicTokenExchangeRequest(public_token=public_token)
        ).to_dict()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _accounts(self, access_token: str) -> list[dict]:
        client = self._get_client()
        return client.accounts_get(AccountsGetRequest(access_token=access_token)).to_dict()["accounts"]

    async def connect(
        self,
        public_token: str,
        institution: BankInstitution,
    ) -> BankConnectionStatus:
        """Exchange the Link public token and load the item's accounts."""
        try:
            exchanged = self._exchange(public_token)
            item_id = exchanged["item_id"]
            self._access_tokens[item_id] = exchanged["access_token"]
            accounts = [self._to_account(account) for account in self._accounts(exchanged["access_token"])]
        except plaid.ApiException as e:
            raise BankConnectionError(
                f"Plaid rejected the connection to {institution.name}: {e.reason}",
                error_code=str(e.status),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise BankConnectionError(f"Unexpected Plaid response: {e}")

        return BankConnectionStatus(
            item_id=item_id,
            institution_name=institution.name,
            accounts=accounts,
            last_successful_update=utc_now(),
            status="healthy",
        )

    def is_connected(self, item_id: str) -> bool:
        return item_id in self._access_tokens
