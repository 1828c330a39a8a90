"""Tests for mirror key layout."""

import pytest

from list_sync.core.layout import (
    DEFAULT_CONTENT_TYPE,
    MirrorLayout,
    content_type_for,
    sanitize_file_name,
)


class TestSanitizeFileName:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("report.pdf", "report.pdf"),
            ("Q1 report (final).pdf", "Q1_report__final_.pdf"),
            ("a/b\\c.txt", "a_b_c.txt"),
            ("naïve-résumé_v2.docx", "na_ve-r_sum__v2.docx"),
        ],
    )
    def test_sanitize(self, name: str, expected: str) -> None:
        """Test attachment file name sanitization."""
        assert sanitize_file_name(name) == expected


class TestContentTypeFor:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("a.pdf", "application/pdf"),
            ("A.PDF", "application/pdf"),
            ("sheet.xlsx", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"),
            ("photo.JPG", "image/jpeg"),
            ("notes.txt", "text/plain"),
            ("data.json", "application/json"),
            ("page.html", "text/html"),
        ],
    )
    def test_known_types(self, name: str, expected: str) -> None:
        """Test content types for known extensions."""
        assert content_type_for(name) == expected

    @pytest.mark.parametrize("name", ["README", "blob.qqqz", ""])
    def test_unknown_types(self, name: str) -> None:
        """Test the fallback content type."""
        assert content_type_for(name) == DEFAULT_CONTENT_TYPE


class TestMirrorLayout:
    """Tests for MirrorLayout key building."""


    def test_keys(self) -> None:
        """Test every key the layout builds."""
        layout = MirrorLayout("raw/", "Requests")

        assert layout.state_key == "raw/list=Requests/_state/sync_state.json"
        assert layout.row_key(7) == "raw/list=Requests/item_id=7/row.json"
        assert layout.attachments_meta_key("7") == "raw/list=Requests/item_id=7/attachments_meta.json"
        assert layout.attachment_key(7, "my file.pdf") == (
            "raw/list=Requests/item_id=7/attachments/my_file.pdf"
        )
        assert layout.deletion_marker_key(7) == "raw/list=Requests/item_id=7/deletion_marker.json"

    def test_empty_prefix(self) -> None:
        """Test keys without a prefix."""
        assert MirrorLayout("", "Requests").row_key(1) == "list=Requests/item_id=1/row.json"

    def test_every_key_lives_under_the_collection(self) -> None:
        """Test that all keys share the collection prefix."""
        layout = MirrorLayout("raw/", "Requests")
        keys = [
            layout.state_key,
            layout.row_key(1),
            layout.attachments_meta_key(1),
            layout.attachment_key(1, "x"),
            layout.deletion_marker_key(1),
        ]
        assert all(key.startswith(layout.collection_prefix) for key in keys)
