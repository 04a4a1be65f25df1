# tests/test_extract_articles.py
"""
Testes do extrator estrutural de artigos.
Cobre regex de inicio/fim, validacao de sequencia (citacoes nao viram artigo),
descarte de ruido, score de confianca e o fluxo completo sobre um texto OCR real.
"""
from __future__ import annotations

import os

import pytest

from sgglaw.extract.articles import (
    RE_ARTICLE_END,
    RE_ARTICLE_START,
    ArticleExtractor,
    compute_confidence,
    sequence_report,
    split_articles,
)
from sgglaw.extract.dictionary import WordDictionary
from sgglaw.extract.metadata import MetadataExtractor, load_signatory_patterns

FIXTURES_DIR = os.path.join(os.path.dirname(__file__), "fixtures")


def _load_fixture(name: str) -> str:
    path = os.path.join(FIXTURES_DIR, name)
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


@pytest.fixture
def extractor():
    return ArticleExtractor(
        WordDictionary.from_file(),
        MetadataExtractor(load_signatory_patterns()),
    )


# ── Regex tests ────────────────────────────────────────────────────────────────

class TestRegexPatterns:
    @pytest.mark.parametrize("line,number", [
        ("Article 1", "1"),
        ("ARTICLE 2 : Le texte", "2"),
        ("Art. 3 - texte", "3"),
        ("Article 14.", "14"),
        ("  Article 7°", "7"),
    ])
    def test_numbered(self, line, number):
        m = RE_ARTICLE_START.match(line)
        assert m is not None
        assert m.group(2) == number

    @pytest.mark.parametrize("line", ["Article premier", "Article 1er :", "ARTICLE PREMIER -"])
    def test_first_article_variants(self, line):
        m = RE_ARTICLE_START.match(line)
        assert m is not None
        assert m.group(1)

    def test_no_match_in_middle_of_line(self):
        assert RE_ARTICLE_START.match("conformément à l'article 12 de la loi") is None

    def test_no_match_for_articles_word(self):
        assert RE_ARTICLE_START.match("Articles 1 et 2") is None

    @pytest.mark.parametrize("line", [
        "Fait à Cotonou, le 12 mars 2024",
        "Par le Président de la République,",
        "AMPLIATIONS : PR 6",
    ])
    def test_end_pattern(self, line):
        assert RE_ARTICLE_END.match(line)


# ── Split ──────────────────────────────────────────────────────────────────────

class TestSplitArticles:
    def test_end_to_end_minimal(self):
        articles, detected = split_articles("Article 1\nFoo.\n\nArticle 2\nBar.\n")
        assert [a.index for a in articles] == [1, 2]
        assert [a.content for a in articles] == ["Foo.", "Bar."]
        assert detected == [1, 2]

    def test_three_in_order(self):
        text = "Article 1 : Un.\nArticle 2 : Deux.\nArticle 3 : Trois."
        articles, _ = split_articles(text)
        assert [a.index for a in articles] == [1, 2, 3]
        assert articles[2].content == "Trois."

    def test_citation_is_not_split(self):
        text = (
            "Article 1\nTexte un.\n"
            "Article 2\nVoir ci-apres.\n"
            "Article 12 de la loi n° 2019-40 reste applicable.\n"
            "Article 3\nTexte trois."
        )
        articles, detected = split_articles(text)
        assert [a.index for a in articles] == [1, 2, 3]
        assert "Article 12 de la loi" in articles[1].content
        assert detected == [1, 2, 3]

    def test_out_of_sequence_heading_is_reported(self):
        text = "Article 1\nTexte un.\nArticle 3 :\nTexte trois."
        articles, detected = split_articles(text)
        assert [a.index for a in articles] == [1]
        assert detected == [1, 3]
        assert sequence_report(detected).gaps == 1

    def test_end_pattern_closes_article(self):
        text = "Article 1\nTexte un.\nFait à Cotonou, le 12 mars 2024\nPatrice TALON"
        articles, _ = split_articles(text)
        assert len(articles) == 1
        assert articles[0].content == "Texte un."

    def test_short_span_discarded(self):
        articles, _ = split_articles("Article 1\nab\nArticle 2\nTexte deux.")
        assert [a.index for a in articles] == [2]

    def test_inline_body(self):
        articles, _ = split_articles("Article premier : La présente loi.")
        assert articles[0].index == 1
        assert articles[0].content == "La présente loi."

    def test_preamble_ignored(self):
        articles, _ = split_articles("LOI N° 2024-15\nVu la Constitution ;\nArticle 1\nTexte.")
        assert len(articles) == 1
        assert "Constitution" not in articles[0].content

    def test_empty(self):
        assert split_articles("") == ([], [])
        assert split_articles(None) == ([], [])


class TestSequenceReport:
    def test_clean(self):
        assert sequence_report([1, 2, 3]).total == 0

    def test_anomalies(self):
        report = sequence_report([1, 2, 2, 4, 3])
        assert report.duplicates == 1
        assert report.gaps == 1
        assert report.out_of_order == 1


# ── Confidence ─────────────────────────────────────────────────────────────────

class TestConfidence:
    def test_bounds(self):
        assert compute_confidence(0, 0, 1.0, 0) == 0.0
        assert compute_confidence(100, 10 ** 6, 0.0, 100) == 1.0

    def test_clamps_bad_rate(self):
        assert 0.0 <= compute_confidence(1, 10, 3.0, 0) <= 1.0

    def test_monotonic_in_articles(self):
        base = compute_confidence(2, 1000, 0.2, 3)
        assert compute_confidence(3, 1000, 0.2, 3) >= base

    def test_monotonic_in_recognition(self):
        assert compute_confidence(2, 1000, 0.1, 3) >= compute_confidence(2, 1000, 0.2, 3)

    def test_monotonic_in_legal_terms(self):
        assert compute_confidence(2, 1000, 0.2, 4) >= compute_confidence(2, 1000, 0.2, 3)

    def test_weights(self):
        # 5 artigos, 2500 chars, 100% reconhecido, 4 termos
        assert compute_confidence(5, 2500, 0.0, 4) == pytest.approx(0.15 + 0.10 + 0.30 + 0.10)


# ── Extractor ──────────────────────────────────────────────────────────────────

class TestArticleExtractor:
    def test_minimal_text(self, extractor):
        result = extractor.extract("Article 1\nFoo.\n\nArticle 2\nBar.\n", "loi-2024-1")
        assert [a.content for a in result.articles] == ["Foo.", "Bar."]
        assert result.confidence > 0
        assert result.method == "REGEX"
        assert result.legal_terms_found >= 1

    def test_no_articles_is_not_an_error(self, extractor):
        result = extractor.extract("Texte sans structure.", "loi-2024-2")
        assert not result.has_articles
        assert result.reason == "aucun article detecte"

    def test_fixture_document(self, extractor):
        result = extractor.extract(_load_fixture("loi_2024_15.txt"), "loi-2024-15")

        assert [a.index for a in result.articles] == [1, 2, 3, 4, 5]
        assert "Article 12 de la loi susvisée" in result.articles[2].content
        assert result.sequence.total == 0
        assert "Patrice TALON" not in result.articles[4].content

        meta = result.metadata
        assert meta.title.startswith("LOI N° 2024-15 DU 12 MARS 2024 portant organisation")
        assert meta.promulgation_city == "Cotonou"
        assert meta.promulgation_date == "2024-03-12"
        assert [s.name for s in meta.signatories] == ["Patrice TALON", "Romuald WADAGNI"]
        assert result.confidence > 0.5

    def test_more_articles_never_lowers_confidence(self, extractor):
        two = extractor.extract("Article 1\nLa loi est votée.\nArticle 2\nLe décret est pris.")
        three = extractor.extract(
            "Article 1\nLa loi est votée.\nArticle 2\nLe décret est pris.\nArticle 3\nLa loi est publiée."
        )
        assert three.confidence >= two.confidence
