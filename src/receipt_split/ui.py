"""Interactive UI components for linking members to Splitwise accounts."""

import logging
from typing import Any

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from .models import SplitwiseUser

logger = logging.getLogger(__name__)


def friend_label(friend: SplitwiseUser) -> str:
    """Label shown in the picker, e.g. 'Ana Lopez <ana@example.com>'."""
    if friend.email:
        return f"{friend.display_name} <{friend.email}>"
    return friend.display_name


def fuzzy_match(query: str, text: str) -> bool:
    """
    Fuzzy match: all characters in query must appear in order in text.

    Example:
        query="alo" matches "Ana Lopez"
    """
    query_idx = 0
    for char in text:
        if query_idx < len(query) and char == query[query_idx]:
            query_idx += 1
    return query_idx == len(query)


class FriendCompleter(Completer):
    """Fuzzy search completer for Splitwise friends."""

    def __init__(self, friends: list[SplitwiseUser]):
        """Initialize the completer with available friends."""
        self.friends = friends
        self.label_to_id = {friend_label(f): f.id for f in friends}

    def get_completions(self, document: Document, complete_event: Any):
        """Get fuzzy-matched completions."""
        query = document.text.lower()

        for label in self.label_to_id:
            if not query or fuzzy_match(query, label.lower()):
                yield Completion(
                    text=label,
                    start_position=-len(document.text),
                    display=label,
                )


def select_friend_interactive(
    friends: list[SplitwiseUser], member_name: str
) -> int | None:
    """
    Pick the Splitwise friend that corresponds to a member.

    Args:
        friends: The user's Splitwise friends
        member_name: Name of the member being linked

    Returns:
        Selected Splitwise user ID, or None to skip
    """
    print(f"\n🔗 Link member: {member_name}")
    print("   Type to search, press Enter to confirm, Ctrl+C to skip\n")

    completer = FriendCompleter(friends)
    session: PromptSession[str] = PromptSession(completer=completer)

    # Pre-fill when exactly one friend matches the member's name
    candidates = [
        label
        for label in completer.label_to_id
        if fuzzy_match(member_name.lower(), label.lower())
    ]
    default_text = candidates[0] if len(candidates) == 1 else ""

    try:
        while True:
            result = session.prompt(
                "Friend: ",
                default=default_text,
                complete_while_typing=True,
            )

            if not result:
                return None

            user_id = completer.label_to_id.get(result)
            if user_id is not None:
                logger.info(f"Linked {member_name} to Splitwise user {user_id}")
                return user_id

            print("❌ Unknown friend. Please select from the list or press Tab.")
            default_text = ""

    except KeyboardInterrupt:
        print("\n⏭️  Skipped")
        return None
    except EOFError:
        return None


def confirm_export(description: str, cost: str) -> bool:
    """Simple yes/no confirmation before creating a Splitwise expense."""
    print(f"\n📤 {description}: ${cost}")
    response = input("   Create this expense on Splitwise? [Y/n] ").strip().lower()
    return response in ("", "y", "yes")
