"""Provider-agnostic prompt rendering for chat requests.

Produces the Turn list sent on the first step: the system turn first, then
the client-supplied history. Client-supplied system turns are dropped so the
persona cannot be replaced from the browser.
"""

from dropdawn.services.llm.types import Turn

SYSTEM_PROMPT = """You are Dropdawn, a powerful and intelligent AI assistant.
You have access to professional tools: calculation, weather, web search, PDF and invoice \
generation, website screenshots, and deploying, updating, renaming, rolling back and \
deleting websites on Netlify.
When using tools, be extremely smart and context-aware.
Correct obvious typos in user input (e.g., if a user says "tak 21" for an invoice number, \
interpret it as "take 21" or "INV-21").
When you deploy a site, always tell the user its siteId and URL. To update, rename, roll back \
or delete an existing site, pass the siteId you were given earlier in the conversation.
If a tool returns an error, explain it plainly and suggest what to do next.
Always strive to provide the most professional and accurate results possible."""

# Maximum total prompt size in characters
MAX_PROMPT_CHARS = 200_000


class PromptTooLargeError(Exception):
    """Raised when rendered prompt exceeds size limit."""

    def __init__(self, actual_size: int, max_size: int):
        self.actual_size = actual_size
        self.max_size = max_size
        super().__init__(f"Prompt size {actual_size} exceeds max {max_size}")


def render_prompt(history: list[Turn], system_prompt: str = SYSTEM_PROMPT) -> list[Turn]:
    """Build the initial turn list: system turn, then user/assistant history."""
    turns = [Turn(role="system", content=system_prompt)]
    turns.extend(turn for turn in history if turn.role in ("user", "assistant"))
    return turns


def validate_prompt_size(turns: list[Turn], max_chars: int = MAX_PROMPT_CHARS) -> None:
    """Raises PromptTooLargeError if the combined turn text is over max_chars."""
    total = sum(len(turn.content) for turn in turns)
    if total > max_chars:
        raise PromptTooLargeError(total, max_chars)
