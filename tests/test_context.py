from legal_rag_server.chat.context import (
    build_context,
    build_messages,
    build_system_prompt,
    format_sources,
)
from legal_rag_server.prompts import CHAT_SYSTEM_PROMPT, DOCUMENT_CONTEXT_INTRO, WEB_CONTEXT_INTRO
from legal_rag_server.retrieval.models import RetrievedChunk


def _chunk(i: int, similarity: float = 0.8, citation=None, title=None) -> RetrievedChunk:
    return RetrievedChunk(
        chunk_id=f"c{i}",
        document_id=f"d{i}",
        document_title=title or f"Case {i}",
        document_type="case",
        document_citation=citation,
        chunk_content=f"content {i}",
        similarity=similarity,
    )


def test_empty_chunks_give_empty_context():
    assert build_context([]) == ""
    assert build_system_prompt("", used_web_search=False) == CHAT_SYSTEM_PROMPT


def test_context_block_format():
    context = build_context([_chunk(1, 0.8234, citation="(2019) LPELR-1234(SC)")])

    assert context == (
        "\n\n## Relevant Legal Documents\n\n"
        "### Source 1: Case 1\n"
        "**Citation:** (2019) LPELR-1234(SC)\n"
        "**Type:** case\n"
        "**Relevance:** 82.3%\n\n"
        "content 1\n\n"
        "---\n\n"
    )


def test_context_preserves_ranked_order():
    context = build_context([_chunk(1, 0.9), _chunk(2, 0.7)])

    assert context.index("### Source 1: Case 1") < context.index("### Source 2: Case 2")
    assert "**Citation:**" not in context


def test_system_prompt_intro_depends_on_source():
    context = build_context([_chunk(1)])

    assert WEB_CONTEXT_INTRO in build_system_prompt(context, used_web_search=True)
    assert DOCUMENT_CONTEXT_INTRO in build_system_prompt(context, used_web_search=False)
    assert build_system_prompt(context, used_web_search=False).startswith(CHAT_SYSTEM_PROMPT)


def test_messages_order_and_history_window():
    history = [
        {"role": "user" if i % 2 == 0 else "assistant", "content": f"h{i}"}
        for i in range(14)
    ]

    messages = build_messages([_chunk(1)], history, "new question")

    assert messages[0]["role"] == "system"
    assert "content 1" in messages[0]["content"]
    assert [m["content"] for m in messages[1:-1]] == [f"h{i}" for i in range(4, 14)]
    assert messages[-1] == {"role": "user", "content": "new question"}


def test_messages_without_context_or_history():
    messages = build_messages([], [], "hello")

    assert messages == [
        {"role": "system", "content": CHAT_SYSTEM_PROMPT},
        {"role": "user", "content": "hello"},
    ]


def test_format_sources():
    sources = format_sources([_chunk(1, 0.77, citation="CAP C20", title="Companies Act.pdf")])

    assert sources == [
        {
            "id": "d1",
            "title": "Companies Act",
            "type": "case",
            "citation": "CAP C20",
            "relevance": 0.77,
            "relevance_score": 0.77,
            "excerpt": "content 1",
            "metadata": {},
        }
    ]


def test_format_sources_empty():
    assert format_sources([]) == []
