"""
Unit tests for HierarchicalBudgetService with mocked repositories.
Run: pytest tests/unit/test_budget_service.py -v
"""
from datetime import date
from unittest.mock import Mock, patch

import pytest
from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError

from podflow.repositories.budget_repository import BudgetRepository
from podflow.repositories.entity_repository import EntityRepository
from podflow.repositories.user_repository import UserRepository
from podflow.schemas.budget import BatchBudgetUpdate, BudgetCreate, BudgetUpdate
from podflow.services.budget_service import HierarchicalBudgetService


@pytest.fixture
def admin(make_seller):
    return make_seller("admin-1", role="admin")


@pytest.fixture
def alice(book):
    return book["sellers"][0]


@pytest.fixture
def repos(book):
    budget_repo = Mock(spec=BudgetRepository)
    budget_repo.db = Mock()
    budget_repo.list_for_period.return_value = list(book["rows"])
    budget_repo.last_update.return_value = None
    budget_repo.get_by_key.return_value = None
    budget_repo.create.side_effect = lambda b: b

    advertisers = {a.id: a for a in book["advertisers"]}
    agencies = {a.id: a for a in book["agencies"]}
    entity_repo = Mock(spec=EntityRepository)
    entity_repo.list_advertisers.side_effect = lambda include_inactive=True: [
        a for a in advertisers.values() if include_inactive or a.is_active
    ]
    entity_repo.list_agencies.side_effect = lambda include_inactive=True: list(agencies.values())
    entity_repo.get_advertiser.side_effect = advertisers.get
    entity_repo.get_agency.side_effect = agencies.get
    entity_repo.campaign_counts_by_advertiser.return_value = {"direct": 3}

    sellers = {s.id: s for s in book["sellers"]}
    user_repo = Mock(spec=UserRepository)
    user_repo.list_sellers.side_effect = lambda organization_id, include_inactive=False: list(sellers.values())
    user_repo.get_by_id.side_effect = sellers.get

    return budget_repo, entity_repo, user_repo


@pytest.fixture
def service(repos):
    budget_repo, entity_repo, user_repo = repos
    return HierarchicalBudgetService(budget_repo, entity_repo, user_repo, schema="org_test", organization_id="org-1")


def create_payload(**overrides):
    data = dict(entity_type="advertiser", entity_id="direct", year=2025, month=3, budget_amount=1000)
    data.update(overrides)
    return BudgetCreate(**data)


class TestGetHierarchical:
    def test_returns_rollups_and_rows(self, service, admin):
        response = service.get_hierarchical(admin, year=2025, today=date(2025, 6, 1))

        alice = response.rollups.seller_totals["alice"]
        assert alice.total_budget == 150000
        assert alice.variance == -10000
        assert response.rollups.grand_totals.total_budget == 150000
        assert {b.entity_id for b in response.budgets} == {"direct", "podshop"}
        podshop = next(b for b in response.budgets if b.entity_id == "podshop")
        assert podshop.seller_id == "alice"
        assert podshop.agency_name == "Mediahouse"
        assert response.metadata.months == list(range(1, 13))
        assert response.metadata.total_sellers == 2

    def test_queries_current_and_previous_year(self, service, repos, admin):
        service.get_hierarchical(admin, year=2025, month=-2)

        budget_repo = repos[0]
        budget_repo.list_for_period.assert_called_once_with([2025, 2024], [4, 5, 6])

    def test_sales_user_sees_only_own_book(self, service, make_seller):
        bob = make_seller("bob")

        response = service.get_hierarchical(bob, year=2025, seller_id="alice")

        assert list(response.rollups.seller_totals) == ["bob"]
        assert response.budgets == []

    def test_advertiser_without_rows_gets_placeholder(self, service, repos, admin, book, make_advertiser):
        book["advertisers"].append(make_advertiser("newcomer", seller_id="bob"))
        repos[1].list_advertisers.side_effect = lambda include_inactive=True: list(book["advertisers"])

        response = service.get_hierarchical(admin, year=2025, month=5)

        placeholders = [b for b in response.budgets if b.is_placeholder]
        assert {b.entity_id for b in placeholders} == {"newcomer"}
        assert placeholders[0].id == "missing_newcomer_2025_5"
        assert placeholders[0].budget_amount == 0

    def test_inactive_advertisers_listed_only_on_request(self, service, repos, admin, book,
                                                         make_advertiser, make_budget):
        book["advertisers"].extend([
            make_advertiser("dormant", seller_id="bob", is_active=False),
            make_advertiser("lapsed", seller_id="bob", is_active=False),
        ])
        repos[1].list_advertisers.side_effect = lambda include_inactive=True: list(book["advertisers"])
        repos[0].list_for_period.return_value = book["rows"] + [make_budget("dormant", 30000, 1000)]

        default = service.get_hierarchical(admin, year=2025, month=1)
        listed = service.get_hierarchical(admin, year=2025, month=1, include_inactive=True)

        assert {b.entity_id for b in default.budgets} == {"direct", "podshop"}
        assert {b.entity_id for b in listed.budgets} == {"direct", "podshop", "dormant", "lapsed"}
        lapsed = next(b for b in listed.budgets if b.entity_id == "lapsed")
        assert lapsed.is_placeholder is True
        assert listed.rollups.seller_totals["bob"].total_budget == 0
        assert listed.rollups.grand_totals.total_budget == 150000

    def test_entity_type_narrows_rows_not_rollups(self, service, admin, book, make_budget):
        book["rows"].append(make_budget("alice", 5000, entity_type="seller", notes="developmental"))
        service.budget_repo.list_for_period.return_value = list(book["rows"])

        response = service.get_hierarchical(admin, year=2025, entity_type="seller")

        assert [b.entity_type for b in response.budgets] == ["seller"]
        assert response.rollups.seller_totals["alice"].total_budget == 150000

    def test_invalid_month_is_rejected(self, service, admin):
        with pytest.raises(HTTPException) as exc:
            service.get_hierarchical(admin, year=2025, month=0)
        assert exc.value.status_code == 400


class TestCreate:
    def test_creates_advertiser_budget(self, service, repos, admin):
        created = service.create(admin, create_payload())

        assert created.entity_id == "direct"
        assert created.created_by == "admin-1"
        repos[0].create.assert_called_once()

    def test_rejects_agency_budgets(self, service, admin):
        with pytest.raises(HTTPException) as exc:
            service.create(admin, create_payload(entity_type="agency", entity_id="mediahouse"))
        assert exc.value.status_code == 400

    def test_seller_budget_must_be_developmental(self, service, admin):
        with pytest.raises(HTTPException) as exc:
            service.create(admin, create_payload(entity_type="seller", entity_id="alice"))
        assert exc.value.status_code == 400

        created = service.create(
            admin, create_payload(entity_type="seller", entity_id="alice", notes="Developmental business goal")
        )
        assert created.entity_type == "seller"

    def test_missing_advertiser_is_404(self, service, admin):
        with pytest.raises(HTTPException) as exc:
            service.create(admin, create_payload(entity_id="nope"))
        assert exc.value.status_code == 404

    def test_unknown_seller_is_404(self, service, admin):
        with pytest.raises(HTTPException) as exc:
            service.create(admin, create_payload(entity_type="seller", entity_id="ghost", notes="developmental"))
        assert exc.value.status_code == 404

    def test_duplicate_is_rejected(self, service, repos, admin, make_budget):
        repos[0].get_by_key.return_value = make_budget("direct", 1, month=3)

        with pytest.raises(HTTPException) as exc:
            service.create(admin, create_payload())
        assert exc.value.status_code == 400
        assert "already exists" in exc.value.detail

    def test_duplicate_developmental_goal_returns_existing(self, service, repos, admin, make_budget):
        existing = make_budget("alice", 1, month=3, entity_type="seller", notes="developmental")
        repos[0].get_by_key.return_value = existing

        result = service.create(
            admin, create_payload(entity_type="seller", entity_id="alice", notes="Developmental business goal")
        )

        assert result is existing
        repos[0].create.assert_not_called()

    def test_concurrent_duplicate_maps_to_400(self, service, repos, admin):
        repos[0].create.side_effect = IntegrityError("INSERT", {}, Exception("duplicate key"))

        with pytest.raises(HTTPException) as exc:
            service.create(admin, create_payload())
        assert exc.value.status_code == 400
        repos[0].db.rollback.assert_called_once()

    def test_sales_cannot_budget_other_sellers_accounts(self, service, make_seller):
        bob = make_seller("bob")
        # podshop lists bob, but it is alice's through the agency
        with pytest.raises(HTTPException) as exc:
            service.create(bob, create_payload(entity_id="podshop"))
        assert exc.value.status_code == 403

    def test_sales_can_budget_own_accounts(self, service, alice):
        created = service.create(alice, create_payload(entity_id="podshop"))
        assert created.entity_id == "podshop"


class TestUpdate:
    def test_updates_fields(self, service, repos, admin, make_budget):
        budget = make_budget("direct", 1000)
        repos[0].get_by_id.return_value = budget
        repos[0].save.side_effect = lambda b: b

        result = service.update(admin, budget.id, BudgetUpdate(budget_amount=2000, notes="raised"))

        assert result.budget_amount == 2000
        assert result.actual_amount == 0
        assert result.notes == "raised"
        assert result.updated_by == "admin-1"

    def test_missing_budget_is_404(self, service, repos, admin):
        repos[0].get_by_id.return_value = None
        with pytest.raises(HTTPException) as exc:
            service.update(admin, "nope", BudgetUpdate(budget_amount=1))
        assert exc.value.status_code == 404

    def test_sales_cannot_edit_other_sellers_budget(self, service, repos, make_seller, make_budget):
        repos[0].get_by_id.return_value = make_budget("direct", 1000)
        with pytest.raises(HTTPException) as exc:
            service.update(make_seller("bob"), "b-1", BudgetUpdate(budget_amount=1))
        assert exc.value.status_code == 403


class TestBatchUpdate:
    def test_rejects_oversized_batch(self, service, admin):
        updates = [BatchBudgetUpdate(id=f"fake-{i}", budget_amount=1000) for i in range(101)]
        with pytest.raises(HTTPException) as exc:
            service.batch_update(admin, updates)
        assert exc.value.status_code == 400
        assert "Maximum 100 updates" in exc.value.detail

    def test_reports_each_item(self, service, repos, alice, make_budget):
        mine = make_budget("direct", 1000, budget_id="mine")
        theirs = make_budget("bob", 1000, entity_type="seller", notes="developmental", budget_id="theirs")
        repos[0].get_by_ids.return_value = [mine, theirs]

        result = service.batch_update(alice, [
            BatchBudgetUpdate(id="mine", budget_amount=5000),
            BatchBudgetUpdate(id="theirs", budget_amount=5000),
            BatchBudgetUpdate(id="fake-id-1", budget_amount=5000),
        ])

        assert result.success == ["mine"]
        assert [(e.id, e.error) for e in result.errors] == [
            ("theirs", "Not allowed to edit this budget"),
            ("fake-id-1", "Budget not found"),
        ]
        assert mine.budget_amount == 5000
        assert theirs.budget_amount == 1000
        repos[0].save_all.assert_called_once_with([mine])


class TestDelete:
    def test_sales_cannot_delete(self, service, alice):
        with pytest.raises(HTTPException) as exc:
            service.delete(alice, "b-1")
        assert exc.value.status_code == 403

    def test_admin_deletes(self, service, repos, admin, make_budget):
        budget = make_budget("direct", 1000)
        repos[0].get_by_id.return_value = budget

        service.delete(admin, budget.id)

        repos[0].delete.assert_called_once_with(budget)


class TestListEntities:
    @pytest.fixture(autouse=True)
    def no_cache(self):
        with patch("podflow.services.budget_service.cache_get", return_value=None), \
                patch("podflow.services.budget_service.cache_set") as cache_set:
            yield cache_set

    def test_lists_all_levels_for_admin(self, service, admin, no_cache):
        response = service.list_entities(admin)

        assert {s.id for s in response.sellers} == {"alice", "bob"}
        assert [a.id for a in response.agencies] == ["mediahouse"]
        direct = next(a for a in response.advertisers if a.id == "direct")
        assert direct.campaign_count == 3
        podshop = next(a for a in response.advertisers if a.id == "podshop")
        assert podshop.seller_id == "alice"
        no_cache.assert_called_once()
        assert no_cache.call_args[0][0] == "budget_entities:org_test:all:all"

    def test_type_filter_leaves_other_lists_empty(self, service, admin):
        response = service.list_entities(admin, "seller")

        assert len(response.sellers) == 2
        assert response.agencies == []
        assert response.advertisers == []

    def test_sales_sees_own_entities(self, service, make_seller):
        response = service.list_entities(make_seller("bob"))

        assert [s.id for s in response.sellers] == ["bob"]
        assert response.agencies == []
        assert response.advertisers == []

    def test_cached_payload_is_returned(self, service, repos, admin):
        cached = {"sellers": [], "agencies": [{"id": "x", "name": "Cached", "seller_id": None}], "advertisers": []}
        with patch("podflow.services.budget_service.cache_get", return_value=cached):
            response = service.list_entities(admin)

        assert response.agencies[0].name == "Cached"
        repos[1].list_agencies.assert_not_called()
