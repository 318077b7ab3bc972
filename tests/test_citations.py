from presales_research.models.schemas import Annotation
from presales_research.research.citations import extract_citations, inline_citations


def test_inline_markdown_link():
    citations = inline_citations("See [Acme Corp](https://acme.example.com) for more.")
    assert len(citations) == 1
    assert citations[0].title == "Acme Corp"
    assert citations[0].url == "https://acme.example.com"


def test_links_keep_document_order():
    text = "[Second](https://b.example.com) then [First](https://a.example.com)"
    assert [c.title for c in inline_citations(text)] == ["Second", "First"]


def test_non_http_links_are_ignored():
    text = "[Email us](mailto:sales@acme.com) and [local](/relative/path)"
    assert inline_citations(text) == []


def test_annotations_follow_inline_links():
    annotations = [
        Annotation(title="Press release", url="https://acme.com/press", start_index=3, end_index=40),
        Annotation(url="https://news.example.com/acme"),
    ]
    citations = extract_citations("See [Acme Corp](https://acme.com).", annotations)

    assert [c.url for c in citations] == [
        "https://acme.com",
        "https://acme.com/press",
        "https://news.example.com/acme",
    ]
    assert citations[1].start_index == 3
    assert citations[1].end_index == 40
    # Untitled annotations fall back to their URL.
    assert citations[2].title == "https://news.example.com/acme"


def test_duplicates_are_kept():
    text = "[Acme](https://acme.com) and again [Acme](https://acme.com)"
    citations = extract_citations(text, [Annotation(title="Acme", url="https://acme.com")])
    assert len(citations) == 3


def test_no_citations():
    assert extract_citations("", []) == []
    assert extract_citations("Plain text without any links.") == []
