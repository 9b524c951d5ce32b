"""
Unit tests for response rendering.
"""

from httpgate.response import (
    HTML_CLOSE,
    render_default_page,
    render_head,
    render_status_page,
    wraps_html,
)


class TestStatusPage:
    """Tests for the one-shot error document."""

    def test_layout(self):
        page = render_status_page(404, "Not Found", "HTTP`NEWS", "File not found.")

        head, _, body = page.partition("\r\n\r\n")
        assert head.split("\r\n") == [
            "HTTP/1.1 404 Not Found",
            "Content-Type: text/html; charset:iso-8859-1",
            "Pragma: no-cache",
            "Connection: Close",
            "X-Route: HTTP`NEWS",
        ]
        assert body.startswith("<!DOCTYPE html>\r\n")
        assert "<TITLE>404 Not Found</TITLE>" in body
        assert "<p>File not found.</p>" in body
        assert body.endswith("</BODY></HTML>\r\n")

    def test_message_is_escaped(self):
        page = render_status_page(400, "Bad Request", "", "<script>")

        assert "<script>" not in page
        assert "&lt;script&gt;" in page

    def test_no_content_length(self):
        page = render_status_page(500, "Internal Server Error", "", "boom")

        assert "Content-Length" not in page


class TestDefaultPage:
    """Tests for the page shown to stray browsers."""

    def test_without_url(self):
        page = render_default_page("Ember", "")

        assert page.startswith("HTTP/1.1 200 OK\r\n")
        assert "<TITLE>Welcome to Ember!</TITLE>" in page
        assert "refresh" not in page
        assert "not a browser, to connect to Ember." in page
        assert page.endswith(HTML_CLOSE)

    def test_with_url(self):
        page = render_default_page("Ember", "http://ember.example/")

        assert '<meta http-equiv="refresh" content="5; url=http://ember.example/">' in page
        assert '<a href="http://ember.example/">http://ember.example/</a>' in page

    def test_non_http_url_is_ignored(self):
        page = render_default_page("Ember", "telnet://ember.example")

        assert "refresh" not in page


class TestHead:
    """Tests for the streaming response head."""

    def test_plain(self):
        head = render_head(200, "OK", "", "text/plain")

        assert head == "HTTP/1.1 200 OK\r\nContent-Type: text/plain\r\n\r\n"

    def test_extra_headers_before_content_type(self):
        head = render_head(302, "Found", "Location: /x\r\n", "text/plain")

        assert head == "HTTP/1.1 302 Found\r\nLocation: /x\r\nContent-Type: text/plain\r\n\r\n"

    def test_wrapped(self):
        head = render_head(200, "OK", "", "text/html; charset=utf-8", wrap=True, site_name="Ember")

        assert head.endswith(
            "\r\n\r\n<!DOCTYPE html>\r\n<HTML><HEAD>\r\n<TITLE>Ember</TITLE>\r\n</HEAD><BODY>\r\n"
        )

    def test_wraps_html(self):
        assert wraps_html(True, "text/html") is True
        assert wraps_html(True, "application/json") is False
        assert wraps_html(False, "text/html") is False
