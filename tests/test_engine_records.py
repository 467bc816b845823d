"""
Tests for engine record CRUD: transactions, accounts, categories,
budgets, portfolios and investments.
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from moneyquest.engine import UpgradeRequiredError
from moneyquest.models.audit import AuditEventType
from moneyquest.models.records import AccountType, DeleteOutcome
from moneyquest.services.storage import ACCOUNTS, DATE_FROM, DATE_TO, NotFoundError

from tests.factories import USER_ID, utc


def event_types(engine) -> list[AuditEventType]:
    return [event.event_type for event in engine.audit_logger.recent_events]


async def new_account(engine, name: str = "Checking", balance: str = "1000", **extra):
    return await engine.create_account({
        "user_id": USER_ID, "name": name, "balance": Decimal(balance), **extra,
    })


async def new_transaction(engine, account_id: str, amount: str = "-50", when=None, **extra):
    return await engine.add_transaction({
        "account_id": account_id,
        "original_amount": Decimal(amount),
        "description": "Groceries",
        "date": when or utc(2024, 3, 5),
        **extra,
    })


class TestTransactions:
    """Tests for transaction create/read/update/delete."""

    @pytest.mark.asyncio
    async def test_add_transaction(self, engine):
        """A new transaction is stored, audited and marks the session dirty."""
        account = await new_account(engine)

        tx = await new_transaction(engine, account.id)

        assert tx.is_parent is False
        assert tx.original_amount == Decimal("-50")
        assert engine.has_unsaved_changes()
        assert AuditEventType.RECORD_CREATED in event_types(engine)

    @pytest.mark.asyncio
    async def test_balance_not_touched(self, engine):
        """Account balances are independent of transactions."""
        account = await new_account(engine, balance="1000")

        await new_transaction(engine, account.id, "-50")

        assert (await engine.get_account(account.id)).balance == Decimal("1000")

    @pytest.mark.asyncio
    async def test_zero_amount_rejected_before_write(self, engine, store):
        """Invalid input never reaches the store."""
        with pytest.raises(ValueError, match="cannot be zero"):
            await new_transaction(engine, "a1", "0")

        assert await store.count("transactions") == 0
        assert not engine.has_unsaved_changes()

    @pytest.mark.asyncio
    async def test_get_transaction_includes_splits(self, engine):
        """Unsplit transactions come back with an empty split list."""
        account = await new_account(engine)
        tx = await new_transaction(engine, account.id)

        fetched = await engine.get_transaction(tx.id)

        assert fetched.id == tx.id
        assert fetched.splits == []

    @pytest.mark.asyncio
    async def test_get_transactions_date_range(self, engine):
        """date_from / date_to are inclusive."""
        account = await new_account(engine)
        for day in (1, 15, 31):
            await new_transaction(engine, account.id, when=utc(2024, 3, day))
        await new_transaction(engine, account.id, when=utc(2024, 4, 1))

        march = await engine.get_transactions({
            "account_id": account.id,
            DATE_FROM: date(2024, 3, 1),
            DATE_TO: date(2024, 3, 31),
        })

        assert len(march) == 3

    @pytest.mark.asyncio
    async def test_update_transaction_merges(self, engine):
        """Only provided fields change; updated_at moves forward."""
        account = await new_account(engine)
        tx = await new_transaction(engine, account.id, "-50")

        updated = await engine.update_transaction(tx.id, {
            "description": "Dinner",
            "date": "2024-05-01T10:00:00+00:00",
        })

        assert updated.description == "Dinner"
        assert updated.original_amount == Decimal("-50")
        assert updated.date == datetime(2024, 5, 1, 10, tzinfo=timezone.utc)
        assert updated.created_at == tx.created_at
        assert updated.updated_at >= tx.updated_at

    @pytest.mark.asyncio
    async def test_update_clears_category(self, engine):
        """An explicit None category un-categorizes the transaction."""
        account = await new_account(engine)
        tx = await new_transaction(engine, account.id, category_id="c0")

        updated = await engine.update_transaction(tx.id, {"category_id": None})

        assert updated.category_id is None
        assert (await engine.get_transaction(tx.id)).category_id is None

    @pytest.mark.asyncio
    async def test_update_cannot_clear_required_field(self, engine):
        """Required fields can't be set to None."""
        account = await new_account(engine)
        tx = await new_transaction(engine, account.id)

        with pytest.raises(ValueError, match="description cannot be cleared"):
            await engine.update_transaction(tx.id, {"description": None})

    @pytest.mark.asyncio
    async def test_update_missing_transaction(self, engine):
        """Updating an unknown id raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await engine.update_transaction("missing", {"description": "x"})

    @pytest.mark.asyncio
    async def test_delete_transaction(self, engine):
        """Deleted transactions are gone."""
        account = await new_account(engine)
        tx = await new_transaction(engine, account.id)

        await engine.delete_transaction(tx.id)

        with pytest.raises(NotFoundError):
            await engine.get_transaction(tx.id)


class TestAccounts:
    """Tests for accounts, the account limit and soft delete."""

    @pytest.mark.asyncio
    async def test_create_ignores_caller_id(self, engine):
        """Ids and stamps are always generated by the engine."""
        account = await new_account(engine, id="chosen-by-caller")

        assert account.id != "chosen-by-caller"

    @pytest.mark.asyncio
    async def test_credit_card_type_normalized(self, engine):
        """Legacy credit_card accounts are stored as credit."""
        account = await new_account(engine, type="credit_card", balance="-300")

        assert account.type == AccountType.CREDIT

    @pytest.mark.asyncio
    async def test_free_tier_account_limit(self, engine):
        """The fourth active account on free requires an upgrade."""
        for index in range(3):
            await new_account(engine, name=f"Account {index}")

        with pytest.raises(UpgradeRequiredError) as exc_info:
            await new_account(engine, name="One too many")

        assert exc_info.value.feature == "account_limit"
        assert "Plus" in exc_info.value.message
        assert AuditEventType.FEATURE_GATE_DENIED in event_types(engine)
        assert len(await engine.get_accounts(USER_ID)) == 3

    @pytest.mark.asyncio
    async def test_plus_tier_allows_more_accounts(self, make_engine):
        """Plus raises the account limit to five."""
        engine = make_engine(tier="plus")
        for index in range(5):
            await new_account(engine, name=f"Account {index}")

        with pytest.raises(UpgradeRequiredError):
            await new_account(engine, name="Sixth")

    @pytest.mark.asyncio
    async def test_deactivated_accounts_free_a_slot(self, engine):
        """Only active accounts count towards the limit."""
        accounts = [await new_account(engine, name=f"Account {i}") for i in range(3)]
        await new_transaction(engine, accounts[0].id)
        await engine.delete_account(accounts[0].id)

        await new_account(engine, name="Replacement")

        assert len(await engine.get_accounts(USER_ID)) == 3

    @pytest.mark.asyncio
    async def test_delete_unused_account_is_hard(self, engine):
        """No transactions: the row is removed."""
        account = await new_account(engine)

        outcome = await engine.delete_account(account.id)

        assert outcome == DeleteOutcome.DELETED
        with pytest.raises(NotFoundError):
            await engine.get_account(account.id)

    @pytest.mark.asyncio
    async def test_delete_used_account_is_soft(self, engine):
        """Referenced accounts are deactivated, not removed."""
        account = await new_account(engine)
        await new_transaction(engine, account.id)

        outcome = await engine.delete_account(account.id)

        assert outcome == DeleteOutcome.DEACTIVATED
        assert await engine.get_accounts(USER_ID) == []
        [inactive] = await engine.get_accounts(USER_ID, include_inactive=True)
        assert inactive.is_active is False
        assert AuditEventType.RECORD_DEACTIVATED in event_types(engine)

    @pytest.mark.asyncio
    async def test_delete_missing_account(self, engine):
        """Deleting an unknown account raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await engine.delete_account("missing")

    @pytest.mark.asyncio
    async def test_update_account(self, engine, store):
        """Updates are re-validated and persisted."""
        account = await new_account(engine)

        updated = await engine.update_account(account.id, {"name": "Main"})

        assert updated.name == "Main"
        [stored] = await store.query(ACCOUNTS, {"id": account.id})
        assert stored["name"] == "Main"

    @pytest.mark.asyncio
    async def test_update_account_validates(self, engine):
        """An invalid update is rejected."""
        account = await new_account(engine)

        with pytest.raises(ValueError):
            await engine.update_account(account.id, {"name": ""})


class TestCategoriesAndBudgets:
    """Tests for categories and budgets."""

    @pytest.mark.asyncio
    async def test_category_crud(self, engine):
        """Create, list and update categories."""
        category = await engine.create_category({"user_id": USER_ID, "name": "Groceries"})
        await engine.update_category(category.id, {"color": "#10B981"})

        [stored] = await engine.get_categories(USER_ID)

        assert stored.name == "Groceries"
        assert stored.color == "#10B981"

    @pytest.mark.asyncio
    async def test_budget_crud(self, engine):
        """Create, update and delete budgets."""
        budget = await engine.create_budget({
            "user_id": USER_ID,
            "category_id": "c1",
            "amount": Decimal("200"),
            "period": "weekly",
        })
        await engine.update_budget(budget.id, {"amount": Decimal("250")})

        [stored] = await engine.get_budgets(USER_ID)
        assert stored.amount == Decimal("250")

        await engine.delete_budget(budget.id)
        assert await engine.get_budgets(USER_ID) == []

    @pytest.mark.asyncio
    async def test_budget_requires_positive_amount(self, engine):
        """A zero budget is invalid."""
        with pytest.raises(ValueError):
            await engine.create_budget({"user_id": USER_ID, "category_id": "c1", "amount": Decimal("0")})


class TestPortfolios:
    """Tests for portfolios and investments."""

    @pytest.mark.asyncio
    async def test_portfolio_soft_delete(self, engine):
        """Deleted portfolios disappear from the active list."""
        portfolio = await engine.create_portfolio(USER_ID, {"name": "Retirement"})

        await engine.delete_portfolio(portfolio.id)

        assert await engine.get_portfolios(USER_ID) == []
        still_there = await engine.get_portfolio_with_investments(portfolio.id)
        assert still_there.is_active is False

    @pytest.mark.asyncio
    async def test_delete_missing_portfolio(self, engine):
        """Deactivating an unknown portfolio raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await engine.delete_portfolio("missing")

    @pytest.mark.asyncio
    async def test_investment_inherits_owner(self, engine):
        """Investments take their user id from the portfolio."""
        portfolio = await engine.create_portfolio(USER_ID, {"name": "Brokerage"})

        investment = await engine.create_investment(portfolio.id, {
            "user_id": "someone-else",
            "symbol": "vti",
            "quantity": Decimal("2"),
            "current_price": Decimal("250"),
        })

        assert investment.user_id == USER_ID
        assert investment.symbol == "VTI"
        assert [inv.id for inv in await engine.get_investments(portfolio.id)] == [investment.id]

    @pytest.mark.asyncio
    async def test_investment_needs_portfolio(self, engine):
        """An investment can't be added to a missing portfolio."""
        with pytest.raises(NotFoundError):
            await engine.create_investment("missing", {"symbol": "AAPL", "quantity": Decimal("1")})

    @pytest.mark.asyncio
    async def test_portfolio_with_investments(self, engine):
        """Holdings are attached to their portfolio."""
        portfolio = await engine.create_portfolio(USER_ID, {"name": "Brokerage"})
        await engine.create_investment(portfolio.id, {"symbol": "AAPL", "quantity": Decimal("1")})
        investment = await engine.create_investment(portfolio.id, {"symbol": "BND", "quantity": Decimal("3")})
        await engine.update_investment(investment.id, {"current_price": Decimal("72.50")})

        loaded = await engine.get_portfolio_with_investments(portfolio.id)

        assert {inv.symbol for inv in loaded.investments} == {"AAPL", "BND"}
        assert await engine.get_portfolio_with_investments("missing") is None

    @pytest.mark.asyncio
    async def test_delete_investment(self, engine):
        """Deleted holdings are gone."""
        portfolio = await engine.create_portfolio(USER_ID, {"name": "Brokerage"})
        investment = await engine.create_investment(portfolio.id, {"symbol": "AAPL", "quantity": Decimal("1")})

        await engine.delete_investment(investment.id)

        assert await engine.get_investments() == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
