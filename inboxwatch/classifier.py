"""Classification gateway: message categorisation and reply suggestions.

Every failure degrades to a fixed answer; nothing here raises to the
pipeline.
"""

from __future__ import annotations

import asyncio

import structlog

from .interface import LanguageModel
from .logging import component_logger
from .models import CategorizationResult, Category, Message
from .training import TrainingLibrary

MAX_BATCH_SIZE = 50
BODY_PROMPT_CHARS = 1000

CATEGORIZE_MAX_TOKENS = 50
CATEGORIZE_TEMPERATURE = 0.3
REPLY_MAX_TOKENS = 500
REPLY_TEMPERATURE = 0.7
REPLY_TIMEOUT_SECONDS = 15.0
REPLY_CONTEXT_SNIPPETS = 3

REPLY_UNAVAILABLE = "AI reply generation not available"
REPLY_FAILED = "Error generating reply. Please try again."

CATEGORIZE_SYSTEM_PROMPT = (
    "You are an email categorization assistant. Analyze the email content and "
    "categorize it into exactly one of these categories: "
    + ", ".join(category.value for category in Category)
    + ". Respond with only the category name, nothing else."
)

REPLY_SYSTEM_PROMPT = (
    "You are a professional email assistant. Write a concise, polite reply to "
    "the email below. If relevant context is provided, use it, including any "
    "meeting booking links."
)

_CATEGORY_HINTS = {
    Category.INTERESTED: "The sender shows interest in a product, service or opportunity",
    Category.MEETING_BOOKED: "A meeting or call has been scheduled or confirmed",
    Category.NOT_INTERESTED: "The sender declines or shows no interest",
    Category.SPAM: "Unsolicited, promotional or suspicious email",
    Category.OUT_OF_OFFICE: "Automatic reply saying the recipient is away",
}


def build_categorize_prompt(message: Message) -> str:
    categories = "\n".join(
        f"- {category.value}: {hint}" for category, hint in _CATEGORY_HINTS.items()
    )
    return (
        "Email Details:\n"
        f"From: {message.sender}\n"
        f"To: {message.recipient}\n"
        f"Subject: {message.subject}\n"
        f"Date: {message.date.isoformat()}\n"
        f"Content: {message.text[:BODY_PROMPT_CHARS]}...\n\n"
        "Please categorize this email into one of the following categories:\n"
        f"{categories}\n\n"
        "Category:"
    )


_REPLY_INSTRUCTIONS = (
    "Please generate a professional and helpful reply to this email based on "
    "the training data provided. The reply should be:\n"
    "- Professional and courteous\n"
    "- Relevant to the original email content\n"
    "- Include any relevant information from the training data\n"
    "- Be concise but complete\n"
    "- Include any relevant links or next steps if applicable"
)


def build_reply_prompt(
    message: Message,
    training_context: list[str],
    retrieved: list[str] | None = None,
) -> str:
    """Reply prompt with caller-supplied training data and retrieved snippets
    kept in separate sections."""
    training = "\n".join(training_context)
    if retrieved:
        training += "\n\nRelevant Context:\n" + "\n\n".join(retrieved)
    return (
        "Original Email:\n"
        f"From: {message.sender}\n"
        f"Subject: {message.subject}\n"
        f"Content: {message.text}\n\n"
        "Training Data/Context:\n"
        f"{training.strip()}\n\n"
        f"{_REPLY_INSTRUCTIONS}\n\n"
        "Suggested Reply:"
    )


class ClassificationGateway:
    """Assigns a :class:`Category` to messages and drafts suggested replies.

    Parameters
    ----------
    llm:
        Completion backend. When it reports ``is_configured = False`` every
        message gets :meth:`Category.default`.
    training:
        Optional library of reference snippets appended to reply prompts.
    batch_delay:
        Pause in seconds between consecutive calls in
        :meth:`categorize_batch`.
    reply_timeout:
        Timeout in seconds for reply generation calls.
    """

    def __init__(
        self,
        llm: LanguageModel,
        *,
        training: TrainingLibrary | None = None,
        batch_delay: float = 0.1,
        reply_timeout: float = REPLY_TIMEOUT_SECONDS,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._llm = llm
        self._training = training
        self._batch_delay = batch_delay
        self._reply_timeout = reply_timeout
        self._log = logger or component_logger("classifier")

    @staticmethod
    def categories() -> list[str]:
        return [category.value for category in Category]

    async def categorize(self, message: Message) -> Category:
        if not self._llm.is_configured:
            self._log.warning("classifier_not_configured", id=message.id)
            return Category.default()

        try:
            raw = await self._llm.complete(
                system=CATEGORIZE_SYSTEM_PROMPT,
                prompt=build_categorize_prompt(message),
                max_tokens=CATEGORIZE_MAX_TOKENS,
                temperature=CATEGORIZE_TEMPERATURE,
            )
        except Exception as exc:
            self._log.warning("categorize_failed", id=message.id, error=str(exc))
            return Category.default()

        category = Category.parse(raw)
        if category is None:
            self._log.warning("invalid_category_response", id=message.id, response=raw)
            return Category.default()

        self._log.debug("message_categorized", id=message.id, category=category.value)
        return category

    async def categorize_batch(self, messages: list[Message]) -> list[CategorizationResult]:
        """Categorise *messages* one at a time, in order.

        Raises ``ValueError`` for more than ``MAX_BATCH_SIZE`` messages
        before any call is made.
        """
        if len(messages) > MAX_BATCH_SIZE:
            raise ValueError(f"Maximum {MAX_BATCH_SIZE} emails allowed per batch")

        results: list[CategorizationResult] = []
        for position, message in enumerate(messages):
            if position and self._batch_delay > 0:
                await asyncio.sleep(self._batch_delay)
            category = await self.categorize(message)
            results.append(CategorizationResult(id=message.id, category=category))
        return results

    async def generate_reply(
        self,
        message: Message,
        training_context: list[str] | None = None,
    ) -> str:
        """Draft a reply to *message*.

        Snippets from the training library (top matches for subject plus
        body) go under "Relevant Context:", after any caller-supplied
        *training_context*.
        """
        if not self._llm.is_configured:
            return REPLY_UNAVAILABLE

        try:
            retrieved: list[str] = []
            if self._training is not None:
                matches = await self._training.find_relevant(
                    f"{message.subject} {message.text}",
                    REPLY_CONTEXT_SNIPPETS,
                )
                retrieved = [match.content for match in matches]

            return await self._llm.complete(
                system=REPLY_SYSTEM_PROMPT,
                prompt=build_reply_prompt(message, list(training_context or []), retrieved),
                max_tokens=REPLY_MAX_TOKENS,
                temperature=REPLY_TEMPERATURE,
                timeout=self._reply_timeout,
            )
        except Exception as exc:
            self._log.error("reply_generation_failed", id=message.id, error=str(exc))
            return REPLY_FAILED
