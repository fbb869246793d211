"""Conversation data model.

Pydantic models for messages, tool calls, accounts and the account
selection sub-flow. All conversation models are frozen: every change is a
``model_copy(update=...)`` producing a new value, so snapshots taken by a
renderer never change underneath it.

Conversation models serialize to the wire in camelCase (``isStreaming``,
``toolCalls``...) to match what ``/api/chat`` expects. Account payloads keep
the server's snake_case.
"""

from datetime import datetime
from typing import Any, Literal
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Role = Literal["user", "assistant", "system"]
SelectionType = Literal["screenshot", "statement_match"]


class _WireModel(BaseModel):
    """Frozen model serialized with camelCase aliases."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> dict[str, Any]:
        """Serialize for the API (camelCase, unset optionals dropped)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# ACCOUNTS
# =============================================================================


class Account(BaseModel):
    """A financial account known to the backend.

    Accepts both the ``/api/accounts`` shape (``display_name``,
    ``account_number_last4``) and the compact shape used in statement
    matches (``displayName``, ``last4``). Unknown fields are preserved.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    id: str | None = None
    display_name: str = Field(
        default="",
        validation_alias=AliasChoices("display_name", "displayName"),
    )
    account_number_last4: str | None = Field(
        default=None,
        validation_alias=AliasChoices("account_number_last4", "last4"),
    )
    account_type: str | None = None
    issuer: str | None = None

    @property
    def label(self) -> str:
        """Display name with masked last four digits when known."""
        if self.account_number_last4:
            return f"{self.display_name} (****{self.account_number_last4})"
        return self.display_name


class NewAccount(BaseModel):
    """Details for an account created during assignment."""

    model_config = ConfigDict(frozen=True)

    display_name: str
    last4: str | None = None


class AssignmentResult(BaseModel):
    """Response of ``POST /api/assign-account``."""

    model_config = ConfigDict(extra="allow")

    transactions_updated: int = 0
    documents_updated: int | None = None
    account: Account | None = None
    account_created: bool = False


# =============================================================================
# SUB-FLOW REQUEST
# =============================================================================


def _format_date(value: str) -> str:
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return value
    return f"{parsed:%b} {parsed.day}, {parsed.year}"


class DateRange(_WireModel):
    """Date span covered by the transactions awaiting assignment."""

    start: str | None = None
    end: str | None = None

    def describe(self) -> str | None:
        """Human-readable span, e.g. ``Jan 5, 2025 - Feb 1, 2025``."""
        if self.start and self.end:
            return f"{_format_date(self.start)} - {_format_date(self.end)}"
        if self.start:
            return f"From {_format_date(self.start)}"
        if self.end:
            return f"Until {_format_date(self.end)}"
        return None


class AccountSelectionRequest(_WireModel):
    """An account disambiguation choice attached to a system message.

    ``screenshot`` requests ask the user to pick an existing account or
    create one. ``statement_match`` requests carry a ``matched_account``
    for yes/no confirmation, with ``accounts`` as the manual fallback.
    """

    type: SelectionType
    document_ids: tuple[str, ...]
    transaction_count: int = 0
    date_range: DateRange | None = None
    accounts: tuple[Account, ...] = ()
    matched_account: Account | None = None
    official_name: str | None = None
    last4: str | None = None

    def find_account(self, account_id: str) -> Account | None:
        """Look up one of the offered accounts by ID."""
        for account in self.accounts:
            if account.id == account_id:
                return account
        if self.matched_account is not None and self.matched_account.id == account_id:
            return self.matched_account
        return None


# =============================================================================
# MESSAGES
# =============================================================================


class ToolCall(_WireModel):
    """A backend tool invocation surfaced for transparency.

    Created open; ``closed`` flips once its result arrives. A result may
    legitimately be ``None``, so openness is tracked separately.
    """

    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    reasoning: str | None = None
    result: Any = None
    duration: str | None = None
    result_count: int | None = None
    closed: bool = Field(default=False, exclude=True)

    @property
    def succeeded(self) -> bool:
        """True when the result reports ``success``."""
        return isinstance(self.result, dict) and bool(self.result.get("success"))


class Message(_WireModel):
    """One conversation entry."""

    id: str = Field(default_factory=lambda: uuid4().hex, exclude=True)
    role: Role
    content: str = ""
    is_streaming: bool | None = None
    chart_config: dict[str, Any] | None = None
    tool_calls: tuple[ToolCall, ...] | None = None
    account_selection: AccountSelectionRequest | None = None
    suggested_actions: tuple[str, ...] | None = None

    @property
    def streaming(self) -> bool:
        return bool(self.is_streaming)
