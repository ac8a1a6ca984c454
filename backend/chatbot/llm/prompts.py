"""System prompts for document tools."""

from backend.chatbot.models import DocumentKind


def update_document_prompt(current_content: str | None, kind: DocumentKind) -> str:
    """Build the system prompt for rewriting an existing document."""
    content = current_content or ""

    if kind == DocumentKind.code:
        return (
            "Improve the following code snippet based on the given prompt.\n"
            'Respond with a JSON object of the form {"code": "..."} holding the '
            "complete updated snippet and nothing else.\n\n"
            f"{content}"
        )

    return (
        "Improve the following contents of the document based on the given prompt.\n\n"
        f"{content}"
    )
