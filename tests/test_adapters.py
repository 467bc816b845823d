"""
Tests for the Mindee OCR and Plaid adapters.

The network-facing calls (_parse, _exchange, _accounts) are replaced on
the instance, so only the mapping and error handling are exercised.
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock

import plaid

from moneyquest.config import EngineSettings, MindeeSettings, PlaidSettings, validate_all_settings
from moneyquest.models.integrations import BankInstitution
from moneyquest.services.banking import BankConnectionError, PlaidBankConnector
from moneyquest.services.ocr import (
    ExtractionFailedError,
    MindeeReceiptOCRService,
    UnsupportedFileError,
)


def field(value, confidence=0.9):
    return SimpleNamespace(value=value, confidence=confidence)


def prediction(total=42.5, supplier="Corner Shop", receipt_date=date(2024, 3, 10),
               category="food", line_items=None):
    return SimpleNamespace(
        supplier_name=field(supplier),
        date=field(receipt_date),
        total_amount=field(total),
        category=field(category),
        line_items=line_items or [],
    )


@pytest.fixture
def ocr_service():
    return MindeeReceiptOCRService(settings=MindeeSettings(api_key="test-key"))


class TestMindeeReceiptOCR:
    """Tests for MindeeReceiptOCRService."""

    @pytest.mark.asyncio
    async def test_receipt_mapped_to_result(self, ocr_service):
        """Mindee fields become an OCRResult proposal."""
        ocr_service._parse = MagicMock(return_value=prediction(line_items=[
            SimpleNamespace(description="Coffee", total_amount=3.5, quantity=1),
            SimpleNamespace(description="Bagel", total_amount=None, quantity=1),
        ]))

        result = await ocr_service.process_receipt(b"img", "r.jpg", "image/jpeg")

        assert result.merchant == "Corner Shop"
        assert result.amount == Decimal("42.50")
        assert result.date == datetime(2024, 3, 10, tzinfo=timezone.utc)
        assert result.category == "Dining"
        assert [item.description for item in result.line_items] == ["Coffee"]
        assert result.confidence == pytest.approx(0.9)

    @pytest.mark.asyncio
    async def test_missing_total_fails(self, ocr_service):
        """A receipt without a total can't be proposed."""
        ocr_service._parse = MagicMock(return_value=prediction(total=None))

        with pytest.raises(ExtractionFailedError, match="total"):
            await ocr_service.process_receipt(b"img", "r.jpg", "image/jpeg")

    @pytest.mark.asyncio
    async def test_provider_errors_wrapped(self, ocr_service):
        """Unexpected provider exceptions become ExtractionFailedError."""
        ocr_service._parse = MagicMock(side_effect=RuntimeError("timeout"))

        with pytest.raises(ExtractionFailedError, match="timeout"):
            await ocr_service.process_receipt(b"img", "r.jpg", "image/jpeg")

    @pytest.mark.asyncio
    async def test_unsupported_type_rejected_before_upload(self, ocr_service):
        """Wrong file types never reach Mindee."""
        ocr_service._parse = MagicMock()

        with pytest.raises(UnsupportedFileError, match="Invalid file type"):
            await ocr_service.process_receipt(b"img", "r.gif", "image/gif")

        ocr_service._parse.assert_not_called()

    def test_empty_and_oversized_files(self, ocr_service):
        """Empty files and files over the limit are rejected."""
        with pytest.raises(UnsupportedFileError, match="empty"):
            ocr_service.validate_file(b"", "image/png")

        too_big = b"x" * (ocr_service._settings.max_upload_size_bytes + 1)
        with pytest.raises(UnsupportedFileError, match="too large"):
            ocr_service.validate_file(too_big, "image/png")

    def test_needs_review(self, ocr_service):
        """Low confidence results are flagged for review."""
        low = SimpleNamespace(confidence=0.5)
        high = SimpleNamespace(confidence=0.95)

        assert ocr_service.needs_review(low)
        assert not ocr_service.needs_review(high)

    def test_unknown_category_is_other(self, ocr_service):
        """Categories Mindee adds later fall back to Other."""
        assert ocr_service._guess_category(prediction(category="spaceflight")) == "Other"


@pytest.fixture
def connector():
    return PlaidBankConnector(settings=PlaidSettings(client_id="client", secret="secret"))


INSTITUTION = BankInstitution(institution_id="ins_1", name="First Bank")


class TestPlaidBankConnector:
    """Tests for PlaidBankConnector."""

    @pytest.mark.asyncio
    async def test_connect_maps_accounts(self, connector):
        """Exchanged items report their accounts and balances."""
        connector._exchange = MagicMock(return_value={"item_id": "item-1", "access_token": "access-1"})
        connector._accounts = MagicMock(return_value=[{
            "account_id": "acc-1",
            "name": "Plaid Checking",
            "type": "depository",
            "subtype": "checking",
            "balances": {"current": 110.5, "available": 100},
            "mask": "0000",
        }])

        status = await connector.connect("public-sandbox", INSTITUTION)

        assert status.item_id == "item-1"
        assert status.institution_name == "First Bank"
        [account] = status.accounts
        assert account.current_balance == Decimal("110.5")
        assert account.mask == "0000"
        assert connector.is_connected("item-1")
        connector._accounts.assert_called_once_with("access-1")

    @pytest.mark.asyncio
    async def test_api_error_mapped(self, connector):
        """Plaid API errors become BankConnectionError with the status code."""
        connector._exchange = MagicMock(side_effect=plaid.ApiException(status=400, reason="Bad Request"))

        with pytest.raises(BankConnectionError) as exc_info:
            await connector.connect("public-bad", INSTITUTION)

        assert exc_info.value.error_code == "400"
        assert not connector.is_connected("item-1")

    @pytest.mark.asyncio
    async def test_malformed_response(self, connector):
        """A response without an item id is an error, not a crash."""
        connector._exchange = MagicMock(return_value={"access_token": "access-1"})

        with pytest.raises(BankConnectionError, match="Unexpected Plaid response"):
            await connector.connect("public-sandbox", INSTITUTION)

    def test_host_follows_environment(self):
        """The environment picks the Plaid host."""
        settings = PlaidSettings(client_id="client", secret="secret", env="production")

        assert settings.host == "https://production.plaid.com"


class TestSettings:
    """Tests for configuration loading."""

    def test_engine_defaults(self):
        """The split tolerance defaults to one cent."""
        assert EngineSettings().split_tolerance == Decimal("0.01")

    def test_validate_all_settings_reports_each_section(self):
        """Every adapter section is reported; the engine needs no env."""
        results = validate_all_settings()

        assert results["engine"] is True
        for name in ("google_sheets", "mindee", "plaid"):
            assert name in results


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
