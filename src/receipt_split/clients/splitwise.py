"""Splitwise API client."""

import json
import logging
from typing import Any

import httpx

from ..exceptions import SplitwiseAPIError, SplitwiseAuthError, SplitwiseRateLimitError
from ..models import SplitwiseExpenseRequest, SplitwiseGroup, SplitwiseUser

logger = logging.getLogger(__name__)


class SplitwiseClient:
    """Client for the Splitwise API v3."""

    BASE_URL = "https://secure.splitwise.com/api/v3.0"

    def __init__(self, api_key: str, transport: httpx.BaseTransport | None = None):
        """Initialize the Splitwise client."""
        self.api_key = api_key
        self.client = httpx.Client(
            base_url=self.BASE_URL,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=30.0,
            transport=transport,
        )

    def close(self):
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Send a request and translate HTTP failures into Splitwise errors."""
        response = self.client.request(method, path, **kwargs)

        if response.status_code == 401:
            raise SplitwiseAuthError()
        if response.status_code == 429:
            raise SplitwiseRateLimitError()
        if response.is_error:
            raise SplitwiseAPIError(
                f"Splitwise API error: {response.reason_phrase}",
                status_code=response.status_code,
            )

        data: dict[str, Any] = response.json()
        return data

    def get_current_user(self) -> SplitwiseUser:
        """Get the authenticated user."""
        data = self._request("GET", "/get_current_user")
        return _parse_user(data["user"])

    def get_friends(self) -> list[SplitwiseUser]:
        """Get the authenticated user's friends."""
        data = self._request("GET", "/get_friends")
        return [_parse_user(friend) for friend in data.get("friends", [])]

    def get_groups(self) -> list[SplitwiseGroup]:
        """Get the groups the authenticated user belongs to."""
        data = self._request("GET", "/get_groups")
        return [
            SplitwiseGroup(
                id=group["id"],
                name=group["name"],
                members=[_parse_user(m) for m in group.get("members", [])],
            )
            for group in data.get("groups", [])
        ]

    def create_expense(self, expense: SplitwiseExpenseRequest) -> int:
        """
        Create an expense with explicit paid/owed shares per user.

        Args:
            expense: The expense to create

        Returns:
            The new Splitwise expense ID

        Raises:
            SplitwiseAPIError: If Splitwise rejects the expense
        """
        form = {
            "cost": f"{expense.cost:.2f}",
            "description": expense.description,
            "date": expense.expense_date.isoformat(),
            "currency_code": expense.currency_code,
        }
        if expense.group_id:
            form["group_id"] = str(expense.group_id)

        for i, user in enumerate(expense.users):
            form[f"users__{i}__user_id"] = str(user.user_id)
            form[f"users__{i}__paid_share"] = f"{user.paid_share:.2f}"
            form[f"users__{i}__owed_share"] = f"{user.owed_share:.2f}"

        data = self._request("POST", "/create_expense", data=form)

        # Validation failures come back as 200 with an errors object
        expenses = data.get("expenses") or []
        if expenses:
            expense_id: int = expenses[0]["id"]
            logger.info(f"Created Splitwise expense {expense_id}")
            return expense_id

        errors = data.get("errors")
        if errors:
            message = json.dumps(errors) if isinstance(errors, dict) else str(errors)
            raise SplitwiseAPIError(f"Splitwise error: {message}", status_code=400)

        raise SplitwiseAPIError("Unexpected Splitwise response", status_code=500)


def _parse_user(data: dict[str, Any]) -> SplitwiseUser:
    return SplitwiseUser(
        id=data["id"],
        first_name=data.get("first_name") or "",
        last_name=data.get("last_name"),
        email=data.get("email"),
    )
