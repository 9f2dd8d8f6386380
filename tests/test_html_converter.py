"""Tests for HTML to narration text conversion."""

from epub2m4b.html_converter import clean_for_tts, html_to_text


class TestHtmlToText:
    def test_title_from_heading(self):
        title, text = html_to_text("<html><body><h1>Il Risveglio</h1><p>Era mattina.</p></body></html>")
        assert title == "Il Risveglio"
        assert "Era mattina." in text

    def test_title_from_title_tag(self):
        title, _ = html_to_text(
            "<html><head><title>Prologo</title></head><body><p>Testo.</p></body></html>"
        )
        assert title == "Prologo"

    def test_no_title(self):
        title, text = html_to_text("<html><body><p>Solo testo.</p></body></html>")
        assert title is None
        assert text == "Solo testo."

    def test_removes_scripts_and_styles(self):
        _, text = html_to_text(
            "<html><body><p>Paragrafo uno.</p>"
            "<script>alert('xss')</script>"
            "<style>.foo{color:red}</style>"
            "<p>Paragrafo due.</p></body></html>"
        )
        assert "alert" not in text
        assert "color" not in text
        assert "Paragrafo uno" in text
        assert "Paragrafo due" in text

    def test_inline_image_read_as_alt_text(self):
        _, text = html_to_text(
            '<html><body><p>Guarda <img src="a.png" alt="una mappa"/> qui.</p></body></html>'
        )
        assert "book image: una mappa" in text

    def test_standalone_image_becomes_its_own_line(self):
        _, text = html_to_text(
            '<html><body><p>Prima.</p><div><img src="a.png" alt="il castello"/></div>'
            "<p>Dopo.</p></body></html>"
        )
        assert text.splitlines() == ["Prima.", "book image: il castello", "Dopo."]

    def test_image_without_alt_is_dropped(self):
        _, text = html_to_text('<html><body><p>Testo<img src="a.png"/></p></body></html>')
        assert "book image" not in text

    def test_nested_blocks_not_duplicated(self):
        _, text = html_to_text(
            "<html><body><blockquote><p>Citazione.</p></blockquote></body></html>"
        )
        assert text.count("Citazione.") == 1

    def test_div_paragraphs_after_heading_are_read(self):
        title, text = html_to_text(
            "<html><body><h1>Capitolo 1</h1><div>Era una notte buia.</div></body></html>"
        )
        assert title == "Capitolo 1"
        assert text.splitlines() == ["Capitolo 1", "Era una notte buia."]

    def test_div_body_with_standalone_image(self):
        _, text = html_to_text(
            "<html><body><div>Era una notte buia e tempestosa.</div>"
            "<div><img src='m.png' alt='mappa'/></div></body></html>"
        )
        assert text.splitlines() == ["Era una notte buia e tempestosa.", "book image: mappa"]

    def test_loose_text_beside_paragraphs_is_kept(self):
        _, text = html_to_text(
            "<html><body><section>Introduzione<p>Primo.</p>Chiusura <em>finale</em>.</section>"
            "<!-- nota --></body></html>"
        )
        assert text.splitlines() == ["Introduzione", "Primo.", "Chiusura finale."]


class TestCleanForTts:
    def test_unicode_punctuation(self):
        assert clean_for_tts("“Ciao”…") == '"Ciao"...'

    def test_isolated_periods_removed(self):
        assert clean_for_tts("Fine . Inizio") == "Fine Inizio"

    def test_space_after_sentence_end(self):
        assert clean_for_tts("Fine.Inizio") == "Fine. Inizio"
