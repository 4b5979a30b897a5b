"""Tests for the Splitwise API client."""

import json
from datetime import date
from decimal import Decimal
from urllib.parse import parse_qs

import httpx
import pytest

from receipt_split.clients.splitwise import SplitwiseClient
from receipt_split.exceptions import (
    SplitwiseAPIError,
    SplitwiseAuthError,
    SplitwiseRateLimitError,
)
from receipt_split.models import SplitwiseExpenseRequest, SplitwiseExpenseUser


def make_client(handler) -> SplitwiseClient:
    return SplitwiseClient("sw-token", transport=httpx.MockTransport(handler))


@pytest.fixture
def expense():
    return SplitwiseExpenseRequest(
        cost=Decimal("41.80"),
        description="Taqueria",
        expense_date=date(2026, 10, 1),
        group_id=77,
        users=[
            SplitwiseExpenseUser(
                user_id=101, paid_share=Decimal("41.80"), owed_share=Decimal("22.73")
            ),
            SplitwiseExpenseUser(
                user_id=102, paid_share=Decimal("0.00"), owed_share=Decimal("9.53")
            ),
            SplitwiseExpenseUser(
                user_id=103, paid_share=Decimal("0.00"), owed_share=Decimal("9.54")
            ),
        ],
    )


class TestReads:
    def test_current_user_sends_bearer_token(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["path"] = request.url.path
            return httpx.Response(
                200, json={"user": {"id": 7, "first_name": "Ana", "last_name": None}}
            )

        with make_client(handler) as client:
            user = client.get_current_user()

        assert seen == {"auth": "Bearer sw-token", "path": "/api/v3.0/get_current_user"}
        assert user.id == 7
        assert user.display_name == "Ana"

    def test_friends(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "friends": [
                        {
                            "id": 102,
                            "first_name": "Ben",
                            "last_name": "Okafor",
                            "email": "ben@example.com",
                        },
                        {"id": 103, "first_name": "Cy", "last_name": None},
                    ]
                },
            )

        with make_client(handler) as client:
            friends = client.get_friends()

        assert [f.display_name for f in friends] == ["Ben Okafor", "Cy"]
        assert friends[0].email == "ben@example.com"

    def test_groups(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "groups": [
                        {
                            "id": 77,
                            "name": "Roommates",
                            "members": [{"id": 101, "first_name": "Ana"}],
                        }
                    ]
                },
            )

        with make_client(handler) as client:
            groups = client.get_groups()

        assert groups[0].name == "Roommates"
        assert groups[0].members[0].id == 101


class TestCreateExpense:
    def test_posts_form_encoded_shares(self, expense):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["form"] = {
                key: values[0]
                for key, values in parse_qs(request.content.decode()).items()
            }
            return httpx.Response(200, json={"expenses": [{"id": 555}], "errors": {}})

        with make_client(handler) as client:
            expense_id = client.create_expense(expense)

        assert expense_id == 555
        assert seen["method"] == "POST"
        assert seen["path"] == "/api/v3.0/create_expense"
        form = seen["form"]
        assert form["cost"] == "41.80"
        assert form["description"] == "Taqueria"
        assert form["date"] == "2026-10-01"
        assert form["currency_code"] == "USD"
        assert form["group_id"] == "77"
        assert form["users__0__user_id"] == "101"
        assert form["users__0__paid_share"] == "41.80"
        assert form["users__0__owed_share"] == "22.73"
        assert form["users__2__user_id"] == "103"
        assert form["users__2__owed_share"] == "9.54"

    def test_group_id_omitted_when_unset(self, expense):
        expense.group_id = None
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["form"] = parse_qs(request.content.decode())
            return httpx.Response(200, json={"expenses": [{"id": 1}]})

        with make_client(handler) as client:
            client.create_expense(expense)

        assert "group_id" not in seen["form"]

    def test_validation_errors_in_body(self, expense):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={"expenses": [], "errors": {"base": ["shares do not add up"]}},
            )

        with make_client(handler) as client:
            with pytest.raises(SplitwiseAPIError) as exc_info:
                client.create_expense(expense)

        assert exc_info.value.status_code == 400
        assert json.dumps({"base": ["shares do not add up"]}) in str(exc_info.value)

    def test_empty_response(self, expense):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={})

        with make_client(handler) as client:
            with pytest.raises(SplitwiseAPIError, match="Unexpected") as exc_info:
                client.create_expense(expense)

        assert exc_info.value.status_code == 500


class TestErrorMapping:
    @pytest.mark.parametrize(
        ("status", "error_type"),
        [
            (401, SplitwiseAuthError),
            (429, SplitwiseRateLimitError),
            (500, SplitwiseAPIError),
        ],
    )
    def test_http_status(self, status, error_type):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, json={})

        with make_client(handler) as client:
            with pytest.raises(error_type) as exc_info:
                client.get_friends()

        assert exc_info.value.status_code == status

    def test_auth_error_is_an_api_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401)

        with make_client(handler) as client:
            with pytest.raises(SplitwiseAPIError, match="expired"):
                client.get_current_user()
