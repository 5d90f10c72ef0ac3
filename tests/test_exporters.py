"""
Tests for bksync/exporters.py

Covers:
- Netscape bookmark HTML (bookmarks and extensions)
- JSON envelope
- export_file / export_to_string format selection
"""
import json
import pytest
from pathlib import Path

from bs4 import BeautifulSoup

from bksync.exporters import (
    bookmarks_to_html,
    escape_href,
    escape_title,
    export_file,
    export_to_string,
    extensions_to_html,
    snapshot_to_json,
)
from bksync.snapshot import Snapshot

NOW = 1700000000


def root(*children):
    return [{"id": "0", "title": "", "children": list(children)}]


class TestBookmarksToHtml:
    """Test Netscape bookmark HTML generation."""

    def test_header(self):
        html = bookmarks_to_html([], now=NOW)
        assert html.startswith("<!DOCTYPE NETSCAPE-Bookmark-file-1>")
        assert "<TITLE>Bookmarks</TITLE>" in html
        assert "<H1>Bookmarks</H1>" in html

    def test_folder_with_two_leaves(self):
        """Test one folder holding two leaves renders as one nested block."""
        bookmarks = root({
            "title": "Dev",
            "children": [
                {"title": "GitHub", "url": "https://github.com"},
                {"title": "GitLab", "url": "https://gitlab.com"},
            ],
        })

        html = bookmarks_to_html(bookmarks, now=NOW)
        lines = html.splitlines()

        anchors = [l for l in lines if l.strip().startswith("<DT><A HREF=")]
        folders = [l for l in lines if l.strip().startswith("<DT><H3")]
        assert len(anchors) == 2
        assert len(folders) == 1

        start = lines.index(folders[0])
        assert lines[start + 1].strip() == "<DL><p>"
        assert lines[start + 2] == anchors[0]
        assert lines[start + 3] == anchors[1]
        assert lines[start + 4].strip() == "</DL><p>"

    def test_structure_parses(self):
        """Test the document nests leaves inside their folder."""
        bookmarks = root({
            "title": "Dev",
            "children": [
                {"title": "GitHub", "url": "https://github.com"},
                {"title": "Inner", "children": [{"title": "PyPI", "url": "https://pypi.org"}]},
            ],
        })

        soup = BeautifulSoup(bookmarks_to_html(bookmarks, now=NOW), "html.parser")

        folder_titles = [h3.get_text() for h3 in soup.find_all("h3")]
        assert folder_titles == ["Dev", "Inner"]
        links = {a.get_text(): a["href"] for a in soup.find_all("a")}
        assert links == {"GitHub": "https://github.com", "PyPI": "https://pypi.org"}

    def test_indentation(self):
        bookmarks = root({"title": "Dev", "children": [{"title": "A", "url": "http://a"}]})
        lines = bookmarks_to_html(bookmarks, now=NOW).splitlines()

        assert '    <DT><H3 ADD_DATE="1700000000">Dev</H3>' in lines
        assert '        <DT><A HREF="http://a" ADD_DATE="1700000000">A</A>' in lines

    def test_add_date_from_date_added(self):
        """Test dateAdded (ms) becomes ADD_DATE (s)."""
        bookmarks = root({"title": "A", "url": "http://a", "dateAdded": 1600000000123})
        html = bookmarks_to_html(bookmarks, now=NOW)
        assert 'ADD_DATE="1600000000"' in html

    def test_add_date_falls_back_to_now(self):
        bookmarks = root(
            {"title": "A", "url": "http://a"},
            {"title": "B", "url": "http://b", "dateAdded": "garbage"},
        )
        html = bookmarks_to_html(bookmarks, now=NOW)
        assert html.count(f'ADD_DATE="{NOW}"') == 2

    def test_titles_escaped(self):
        bookmarks = root(
            {"title": "Tom & Jerry <3>", "children": [{"title": "a<b>&c", "url": "http://a"}]}
        )
        html = bookmarks_to_html(bookmarks, now=NOW)

        assert "Tom &amp; Jerry &lt;3&gt;" in html
        assert "a&lt;b&gt;&amp;c" in html
        assert "<b>" not in html

    def test_untitled_leaf(self):
        html = bookmarks_to_html(root({"title": "", "url": "http://a"}), now=NOW)
        assert ">Bookmark</A>" in html

    def test_empty_managed_folder_dropped(self):
        """Test an empty 'Managed bookmarks' folder is left out."""
        bookmarks = root(
            {"title": "Managed bookmarks", "children": []},
            {"title": "Dev", "children": []},
        )
        html = bookmarks_to_html(bookmarks, now=NOW)
        assert "Managed bookmarks" not in html
        assert ">Dev</H3>" in html

    def test_non_empty_managed_folder_kept(self):
        bookmarks = root(
            {"title": "Managed bookmarks", "children": [{"title": "Intranet", "url": "http://intra"}]}
        )
        html = bookmarks_to_html(bookmarks, now=NOW)
        assert "Managed bookmarks" in html

    def test_unknown_nodes_skipped(self):
        bookmarks = root({"title": "separator"}, None, {"title": "A", "url": "http://a"})
        html = bookmarks_to_html(bookmarks, now=NOW)
        assert "separator" not in html
        assert html.count("<DT>") == 1


class TestExtensionsToHtml:
    """Test exporting extensions as bookmarks."""

    def test_only_extensions_with_homepage(self):
        extensions = [
            {"id": "a", "name": "Ad Blocker", "homepageUrl": "https://adblock.example"},
            {"id": "b", "name": "No Homepage"},
            {"id": "c", "name": "Blank", "homepageUrl": "  "},
        ]

        html = extensions_to_html(extensions, now=NOW)

        assert "<TITLE>Extensions as Bookmarks</TITLE>" in html
        assert '<DT><A HREF="https://adblock.example" ADD_DATE="1700000000">Ad Blocker</A>' in html
        assert "No Homepage" not in html
        assert html.count("<DT>") == 1

    def test_untitled_extension(self):
        html = extensions_to_html([{"homepageUrl": "http://x"}], now=NOW)
        assert ">Extension</A>" in html


class TestJson:
    """Test the JSON envelope export."""

    def test_snapshot_to_json(self, sample_tree):
        snapshot = Snapshot.create([{"id": "a", "name": "Ä"}], sample_tree, "Chrome")

        data = json.loads(snapshot_to_json(snapshot))

        assert data["schemaVersion"] == 1
        assert data["exportedFromBrowser"] == "Chrome"
        assert data["extensions"] == [{"id": "a", "name": "Ä"}]
        assert data["bookmarks"] == sample_tree

    def test_compact(self):
        text = snapshot_to_json(Snapshot(), pretty=False)
        assert "\n" not in text


class TestExportFile:
    """Test format selection and file output."""

    @pytest.fixture
    def snapshot(self, sample_tree):
        return Snapshot.create(
            [{"id": "a", "name": "Ad Blocker", "homepageUrl": "https://adblock.example"}],
            sample_tree,
            "Chrome",
        )

    def test_export_json_file(self, snapshot, tmp_path):
        path = tmp_path / "out" / "backup.json"

        export_file(snapshot, path, "json")

        assert path.exists()
        assert json.loads(path.read_text(encoding="utf-8")) == snapshot.to_dict()

    def test_export_html_file(self, snapshot, tmp_path):
        path = tmp_path / "bookmarks.html"
        export_file(snapshot, path, "html")

        html = path.read_text(encoding="utf-8")
        assert '<A HREF="https://python.org"' in html
        assert ">Bookmarks Bar</H3>" in html

    def test_export_extensions_html_file(self, snapshot, tmp_path):
        path = tmp_path / "extensions.html"
        export_file(snapshot, path, "extensions-html")

        assert "https://adblock.example" in path.read_text(encoding="utf-8")

    def test_export_json_compact(self, snapshot, tmp_path):
        path = tmp_path / "backup.json"
        export_file(snapshot, path, "json", pretty=False)

        text = path.read_text(encoding="utf-8")
        assert "\n" not in text
        assert json.loads(text) == snapshot.to_dict()
        assert "\n" not in export_to_string(snapshot, "json", pretty=False)

    def test_unknown_format(self, snapshot, tmp_path):
        with pytest.raises(ValueError, match="Unknown format"):
            export_file(snapshot, tmp_path / "x.csv", "csv")

    def test_export_to_string(self, snapshot):
        assert json.loads(export_to_string(snapshot, "json"))["exportedFromBrowser"] == "Chrome"
        assert export_to_string(snapshot, "html").startswith("<!DOCTYPE NETSCAPE")
        assert "adblock" in export_to_string(snapshot, "extensions-html")
        with pytest.raises(ValueError):
            export_to_string(snapshot, "yaml")


def test_escape_title():
    assert escape_title("a & b < c > d") == "a &amp; b &lt; c &gt; d"
    assert escape_title(None) == ""
    assert escape_title(2024) == "2024"


def test_escape_href():
    assert escape_href('http://x.example/?q="a"&b=1') == "http://x.example/?q=&quot;a&quot;&amp;b=1"


class TestHrefEscaping:
    """Test URLs with quotes keep the HREF attribute intact."""

    URL = 'http://x.example/?q="a"&b=1'

    def test_bookmark_href(self):
        html = bookmarks_to_html(root({"title": "Quoted", "url": self.URL}), now=NOW)

        anchor = BeautifulSoup(html, "html.parser").find("a")
        assert anchor["href"] == self.URL
        assert anchor.text == "Quoted"

    def test_extension_href(self):
        html = extensions_to_html([{"name": "Quoted", "homepageUrl": self.URL}], now=NOW)

        anchor = BeautifulSoup(html, "html.parser").find("a")
        assert anchor["href"] == self.URL
        assert anchor["add_date"] == str(NOW)
