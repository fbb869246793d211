"""Account disambiguation sub-flows.

After documents are processed the backend may not know which account their
transactions belong to. These flows put the question to the user as a
system message, outside the main chat stream, and resolve the answer into a
single ``POST /api/assign-account``.

Two variants:

- **screenshot**: fetch the known accounts (unless supplied) and offer
  "pick existing" or "create new".
- **statement_match**: the backend already found a likely match; ask for a
  yes/no confirmation, with the account list as a manual fallback.

Both converge on ``SubflowInjector.assign``. A failed assignment leaves the
flow open so the user can submit the same choice again; nothing is retried
automatically.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from adphex.chat.models import (
    Account,
    AccountSelectionRequest,
    DateRange,
    Message,
    NewAccount,
)
from adphex.exceptions import AccountsError, AssignmentError, ValidationError

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from adphex.chat.conversation import Conversation
    from adphex.chat.models import AssignmentResult
    from adphex.client import AdphexClient

logger = logging.getLogger(__name__)

_LAST4_PATTERN = re.compile(r"^\d{1,4}$")

GENERIC_TODO_ACTIONS = (
    "This is food/dining",
    "This is transportation",
    "This is shopping",
    "This is bills/utilities",
    "This is entertainment",
    "This is income",
)


def _transactions(count: int) -> str:
    return f"{count} transaction{'s' if count != 1 else ''}"


@dataclass(frozen=True)
class AccountChoice:
    """The user's answer to a selection flow: an existing account or a new one."""

    account_id: str | None = None
    new_account: NewAccount | None = None

    def describe(self, request: AccountSelectionRequest) -> str:
        """Label of the target account as shown to the user."""
        if self.new_account is not None:
            if self.new_account.last4:
                return f"{self.new_account.display_name} (****{self.new_account.last4})"
            return self.new_account.display_name
        account = request.find_account(self.account_id or "")
        return account.label if account else (self.account_id or "the selected account")


class SubflowInjector:
    """Host account selection flows inside a conversation.

    Flows are addressed by the conversation index of the system message
    carrying their ``AccountSelectionRequest``.

    Args:
        conversation: Conversation to append flow and outcome messages to.
        client: API client used for the accounts list and the assignment.
        on_refresh: Called after a successful assignment so views that show
            transactions can reload.
    """

    def __init__(
        self,
        conversation: Conversation,
        client: AdphexClient,
        on_refresh: Callable[[], None] | None = None,
    ) -> None:
        self.conversation = conversation
        self.client = client
        self.on_refresh = on_refresh
        self._resolved: set[str] = set()
        self._in_flight: set[str] = set()

    # -------------------------------------------------------------------------
    # Plain system messages
    # -------------------------------------------------------------------------

    def send_system_message(
        self,
        content: str,
        suggested_actions: Sequence[str] | None = None,
    ) -> int:
        """Append a system notice, optionally with quick-reply actions."""
        return self.conversation.append(
            Message(
                role="system",
                content=content,
                suggested_actions=tuple(suggested_actions) if suggested_actions else None,
            )
        )

    def resolve_todo(self, transaction: Mapping[str, Any]) -> int:
        """Ask the user to clarify an uncategorized transaction.

        Uses the transaction's ``suggested_actions`` as quick replies,
        falling back to generic categories when there are none.
        """
        content = (
            "📝 **Action Required: Clarification Needed**\n\n"
            "I need your help categorizing this transaction:\n"
            f"* **TRANSACTION_ID:** {transaction.get('id')}\n"
            f"* **Merchant:** {transaction.get('merchant')}\n"
            f"* **Date:** {_short_date(transaction.get('date'))}\n"
            f"* **Amount:** ${abs(float(transaction.get('amount') or 0)):.2f}\n"
            f"* **Question:** {transaction.get('clarification_question')}\n\n"
            "Please reply with the correct category or explain what this transaction is."
        )
        actions = transaction.get("suggested_actions") or GENERIC_TODO_ACTIONS
        return self.send_system_message(content, suggested_actions=actions)

    # -------------------------------------------------------------------------
    # Opening flows
    # -------------------------------------------------------------------------

    async def show_account_selection(
        self,
        document_ids: Sequence[str],
        transaction_count: int,
        date_range: DateRange | None = None,
        accounts: Sequence[Account] | None = None,
    ) -> int | None:
        """Open a screenshot flow.

        Args:
            document_ids: Documents whose transactions need an account.
            transaction_count: Transactions detected in those documents.
            date_range: Span of the transactions, shown to the user.
            accounts: Known accounts; fetched from the API when None.

        Returns:
            Index of the flow's system message, or None if the account list
            could not be fetched (an error notice is appended instead).
        """
        if not document_ids:
            raise ValidationError("document_ids must not be empty")

        if accounts is None:
            try:
                accounts = await self.client.list_accounts()
            except AccountsError as e:
                logger.warning("Account list fetch failed: %s", e)
                self.send_system_message(
                    f"❌ Couldn't load your accounts: {e}. Please try again."
                )
                return None

        request = AccountSelectionRequest(
            type="screenshot",
            document_ids=tuple(document_ids),
            transaction_count=transaction_count,
            date_range=date_range,
            accounts=tuple(accounts),
        )
        lines = [
            "📎 **Account Selection Required**",
            "",
            f"{_transactions(transaction_count)} found.",
        ]
        span = date_range.describe() if date_range else None
        if span:
            lines.append(span)
        lines += ["", "Which account do these transactions belong to?"]
        return self.conversation.append(
            Message(role="system", content="\n".join(lines), account_selection=request)
        )

    def show_account_match_confirmation(
        self,
        document_ids: Sequence[str],
        transaction_count: int,
        matched_account: Account,
        accounts: Sequence[Account] = (),
        official_name: str | None = None,
        last4: str | None = None,
    ) -> int:
        """Open a statement-match flow for an already detected candidate."""
        if not document_ids:
            raise ValidationError("document_ids must not be empty")

        request = AccountSelectionRequest(
            type="statement_match",
            document_ids=tuple(document_ids),
            transaction_count=transaction_count,
            accounts=tuple(accounts),
            matched_account=matched_account,
            official_name=official_name,
            last4=last4,
        )
        statement = official_name or "This statement"
        if last4:
            statement += f" (****{last4})"
        content = (
            "🏦 **Is this the same account?**\n\n"
            f"{statement} looks like your account **{matched_account.label}**.\n\n"
            f"Map {_transactions(transaction_count)} to it?"
        )
        return self.conversation.append(
            Message(
                role="system",
                content=content,
                account_selection=request,
                suggested_actions=("Yes, same account", "No, choose another"),
            )
        )

    # -------------------------------------------------------------------------
    # Answers
    # -------------------------------------------------------------------------

    async def select_existing(self, index: int, account_id: str) -> bool:
        """Assign the flow's documents to one of its offered accounts."""
        request = self._open_request(index)
        if request.find_account(account_id) is None:
            raise ValidationError(f"Account {account_id} is not one of the offered accounts")
        return await self.assign(index, AccountChoice(account_id=account_id))

    async def create_new(self, index: int, display_name: str, last4: str | None = None) -> bool:
        """Create an account and assign the flow's documents to it."""
        self._open_request(index)
        name = display_name.strip()
        if not name:
            raise ValidationError("Account name must not be empty")
        digits = (last4 or "").strip() or None
        if digits is not None and not _LAST4_PATTERN.match(digits):
            raise ValidationError("last4 must be up to four digits")
        return await self.assign(
            index, AccountChoice(new_account=NewAccount(display_name=name, last4=digits))
        )

    async def confirm_match(self, index: int) -> bool:
        """Accept a statement flow's matched account."""
        request = self._open_request(index)
        if request.matched_account is None or request.matched_account.id is None:
            raise ValidationError("This flow has no matched account to confirm")
        return await self.assign(index, AccountChoice(account_id=request.matched_account.id))

    def decline_match(self, index: int) -> int:
        """Reject a statement flow's match; the flow stays open for a manual pick."""
        request = self._open_request(index)
        if request.type != "statement_match":
            raise ValidationError(f"Account selection {index} is not a statement match")
        if request.accounts:
            choices = ", ".join(account.label for account in request.accounts)
            hint = f"Choose one of: {choices}, or create a new account."
        else:
            hint = "Create a new account for these transactions."
        return self.send_system_message(f"No problem. {hint}")

    async def assign(self, index: int, choice: AccountChoice) -> bool:
        """Submit the flow's documents to the assignment endpoint.

        On success a summary message is appended, the flow is marked
        resolved and ``on_refresh`` is called. On failure an error message
        is appended and the flow stays open.

        Returns:
            True if the assignment succeeded.
        """
        request = self._open_request(index)
        flow_id = self.conversation[index].id
        if flow_id in self._in_flight:
            raise ValidationError("An assignment for this flow is already in progress")

        self._in_flight.add(flow_id)
        try:
            result = await self.client.assign_account(
                request.document_ids,
                account_id=choice.account_id,
                new_account=choice.new_account,
            )
        except AssignmentError as e:
            logger.warning("Account assignment failed (%s): %s", e.correlation_id, e)
            target = choice.describe(request)
            self.send_system_message(
                f"❌ Couldn't assign transactions to {target}: {e}. Please try again."
            )
            return False
        finally:
            self._in_flight.discard(flow_id)

        self._resolved.add(flow_id)
        self.send_system_message(_success_message(result, choice.describe(request)))
        self._notify_refresh()
        return True

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    def is_resolved(self, index: int) -> bool:
        return self.conversation[index].id in self._resolved

    def pending_flows(self) -> list[int]:
        """Indexes of flow messages still awaiting an answer."""
        return [
            index
            for index, message in enumerate(self.conversation.snapshot)
            if message.account_selection is not None and message.id not in self._resolved
        ]

    def _open_request(self, index: int) -> AccountSelectionRequest:
        if not 0 <= index < len(self.conversation):
            raise ValidationError(f"No message at index {index}")
        message = self.conversation[index]
        if message.account_selection is None:
            raise ValidationError(f"Message {index} is not an account selection")
        if message.id in self._resolved:
            raise ValidationError(f"Account selection {index} is already resolved")
        return message.account_selection

    def _notify_refresh(self) -> None:
        if self.on_refresh is None:
            return
        try:
            self.on_refresh()
        except Exception:
            logger.exception("Refresh callback failed")


def _success_message(result: AssignmentResult, target: str) -> str:
    name = target
    if result.account is not None and result.account.display_name:
        name = result.account.display_name
    moved = _transactions(result.transactions_updated)
    if result.account_created:
        return f"✅ Created account **{name}** and assigned {moved} to it."
    return f"✅ Assigned {moved} to **{name}**."


def _short_date(value: Any) -> str:
    if not value:
        return ""
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        return str(value)
    return f"{parsed.month}/{parsed.day}/{parsed.year}"
