"""Retrieval collaborator: query text in, knowledge snippets out."""

from typing import Protocol


class IRetriever(Protocol):
    """Knowledge search. Implementations apply their own relevance threshold."""

    async def search(self, query: str) -> list[str]:
        """Return zero or more snippets relevant to the query."""
        ...


class NullRetriever:
    """Retriever used when no knowledge base is configured."""

    async def search(self, query: str) -> list[str]:
        return []


def format_snippets(snippets: list[str]) -> str:
    """Render snippets as a supplementary-context block."""
    numbered = "\n\n".join(
        f"**[{i}]** {snippet}" for i, snippet in enumerate(snippets, start=1)
    )
    return (
        "---\n\n"
        "### Relevant knowledge (supplementary context)\n\n"
        f"{numbered}\n\n"
        "---"
    )
