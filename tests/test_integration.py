#!/usr/bin/env python3
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
"""
Integration tests for Readwise EPUB Tool.
Tests the fetch -> canonicalize -> group -> name -> render pipeline end to end
with a mocked Reader API and a renderer that records calls.
"""
import unittest
import json
import tempfile
import shutil
from unittest.mock import patch, MagicMock
from io import StringIO

from data_fetcher import ReaderDataFetcher, ReaderAPIError
from models import Batch
from output_namer import OutputNamer
from renderer import PercollateRenderer, RenderOutcome
from readwise_epub import (
    DumpError,
    ExportSettings,
    build_batches,
    export_epubs,
    render_batches,
)


def make_doc(n, author=None, site=None, words=100, day=1):
    return {
        "title": f"Article {n}",
        "author": author,
        "site_name": site,
        "source_url": f"https://example.com/{n}",
        "word_count": words,
        "created_at": f"2024-01-{day:02d}T00:00:00Z",
        "updated_at": f"2024-01-{day:02d}T{n:02d}:00:00Z",
    }


def make_response(body, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    return response


def two_pages():
    return [
        make_response({
            "count": 6,
            "nextPageCursor": "page-2",
            "results": [
                make_doc(1, "A", "S1", day=2),
                make_doc(2, None, "Other", words=500, day=3),
                make_doc(3, "A", "S1", day=2),
            ],
        }),
        make_response({
            "count": 6,
            "nextPageCursor": None,
            "results": [
                make_doc(4, "B", None, words=2000, day=1),
                make_doc(5, "A", "S1", day=2),
                {**make_doc(6), "source_url": "mailto:newsletter@example.com"},
            ],
        }),
    ]


def echo_head(url, **kwargs):
    response = MagicMock()
    response.url = url
    return response


class RecordingRenderer:
    def __init__(self, fail_on=()):
        self.calls = []
        self.fail_on = set(fail_on)

    def render(self, identity, urls):
        self.calls.append((identity, list(urls)))
        return RenderOutcome(filename=identity.filename, ok=identity.filename not in self.fail_on)


class TestPipeline(unittest.TestCase):
    """Integration tests for the complete pipeline."""

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.dump_path = os.path.join(self.test_dir, "all_uris.json")
        self.api_session = MagicMock()
        self.probe_session = MagicMock()
        self.probe_session.head.side_effect = echo_head
        self.fetcher = ReaderDataFetcher(self.api_session, "test-token")

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    @patch("data_fetcher.time.sleep")
    def test_two_pages_end_to_end(self, mock_sleep):
        self.api_session.get.side_effect = two_pages()

        batches = build_batches(
            self.fetcher, self.probe_session, {"location": "new"}, self.dump_path
        )

        self.assertEqual([b.name for b in batches], ["A - S1", "2024-01-01"])
        self.assertEqual(
            batches[0].urls,
            ["https://example.com/1", "https://example.com/3", "https://example.com/5"],
        )
        self.assertEqual(
            batches[1].urls, ["https://example.com/4", "https://example.com/2"]
        )
        self.assertEqual(mock_sleep.call_count, 1)

        # snapshot holds everything fetched, emails included
        with open(self.dump_path, encoding="utf-8") as f:
            dumped = json.load(f)
        self.assertEqual(len(dumped), 6)

        # email documents are never probed
        probed = [call[0][0] for call in self.probe_session.head.call_args_list]
        self.assertNotIn("mailto:newsletter@example.com", probed)
        self.assertEqual(len(probed), 5)

    @patch("data_fetcher.time.sleep")
    def test_redirects_reach_renderer(self, mock_sleep):
        self.api_session.get.side_effect = two_pages()
        self.probe_session.head.side_effect = lambda url, **kw: echo_head(
            url.replace("https://example.com/4", "https://example.org/four")
        )

        batches = build_batches(
            self.fetcher, self.probe_session, {"location": "new"}, self.dump_path
        )
        renderer = RecordingRenderer()
        render_batches(batches, renderer, OutputNamer(self.test_dir))

        dated_urls = renderer.calls[1][1]
        self.assertEqual(dated_urls[0], "https://example.org/four")

    @patch("data_fetcher.time.sleep")
    def test_fetch_failure_is_fatal(self, mock_sleep):
        self.api_session.get.side_effect = [two_pages()[0], make_response({}, 500)]

        with self.assertRaises(ReaderAPIError):
            build_batches(
                self.fetcher, self.probe_session, {"location": "new"}, self.dump_path
            )
        self.probe_session.head.assert_not_called()
        self.assertFalse(os.path.exists(self.dump_path))

    @patch("readwise_epub.save_raw_json", return_value=False)
    @patch("data_fetcher.time.sleep")
    def test_dump_failure_is_fatal(self, mock_sleep, mock_save):
        self.api_session.get.side_effect = two_pages()

        with self.assertRaises(DumpError):
            build_batches(
                self.fetcher, self.probe_session, {"location": "new"}, self.dump_path
            )
        self.probe_session.head.assert_not_called()

    @patch("data_fetcher.time.sleep")
    def test_render_failure_does_not_stop_later_batches(self, mock_sleep):
        self.api_session.get.side_effect = two_pages()
        batches = build_batches(
            self.fetcher, self.probe_session, {"location": "new"}, self.dump_path
        )
        renderer = RecordingRenderer(fail_on={"readwise-A - S1.epub"})

        outcomes = render_batches(batches, renderer, OutputNamer(self.test_dir))

        self.assertEqual(len(renderer.calls), 2)
        self.assertEqual([o.ok for o in outcomes], [False, True])

    @patch("renderer.subprocess.run")
    def test_unspawnable_batch_does_not_stop_later_batches(self, mock_run):
        mock_run.side_effect = [ValueError("embedded null byte"), MagicMock(returncode=0)]
        batches = [
            Batch(name="A - S1", items=[]),
            Batch(name="2024-01-01", items=[]),
        ]
        renderer = PercollateRenderer(output_dir=self.test_dir, command="true")

        outcomes = render_batches(batches, renderer, OutputNamer(self.test_dir))

        self.assertEqual(mock_run.call_count, 2)
        self.assertEqual([o.ok for o in outcomes], [False, True])
        self.assertEqual(outcomes[1].filename, "readwise-2024-01-01.epub")

    def test_render_batches_names_in_order(self):
        with open(os.path.join(self.test_dir, "readwise-2024-01-01.epub"), "w") as f:
            f.write("")
        batches = [Batch(name="2024-01-01"), Batch(name="2024-01-01")]
        renderer = RecordingRenderer()

        render_batches(batches, renderer, OutputNamer(self.test_dir))

        self.assertEqual(
            [(i.filename, i.title) for i, _ in renderer.calls],
            [
                ("readwise-2024-01-01-2.epub", "2024-01-01 Pt. 2"),
                ("readwise-2024-01-01-3.epub", "2024-01-01 Pt. 3"),
            ],
        )


class TestExportEpubs(unittest.TestCase):
    """Tests for the top-level export entry point."""

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.settings = ExportSettings(
            output_dir=os.path.join(self.test_dir, "epubs"),
            dump_path=os.path.join(self.test_dir, "all_uris.json"),
        )
        self.api_session = MagicMock()
        self.authenticator = MagicMock()
        self.authenticator.access_token = "test-token"
        self.authenticator.get_session.return_value = self.api_session

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    @patch("readwise_epub.setup_authentication", return_value=None)
    def test_missing_token_exits_with_error(self, mock_auth):
        self.assertEqual(export_epubs(self.settings), 1)

    @patch("readwise_epub.PercollateRenderer")
    @patch("readwise_epub.requests.Session")
    @patch("readwise_epub.setup_authentication")
    @patch("data_fetcher.time.sleep")
    def test_full_export(self, mock_sleep, mock_auth, mock_session_cls, mock_renderer_cls):
        mock_auth.return_value = self.authenticator
        self.api_session.get.side_effect = two_pages()
        probe = MagicMock()
        probe.head.side_effect = echo_head
        mock_session_cls.return_value.__enter__.return_value = probe
        renderer = RecordingRenderer()
        mock_renderer_cls.return_value = renderer

        with patch("sys.stdout", StringIO()):
            status = export_epubs(self.settings)

        self.assertEqual(status, 0)
        self.assertTrue(os.path.isdir(self.settings.output_dir))
        self.assertEqual(
            [identity.filename for identity, _ in renderer.calls],
            ["readwise-A - S1.epub", "readwise-2024-01-01.epub"],
        )
        mock_renderer_cls.assert_called_once_with(
            output_dir=self.settings.output_dir,
            command="percollate",
            author="readwise",
        )
        params = self.api_session.get.call_args_list[0][1]["params"]
        self.assertEqual(params, {"location": "new"})

    @patch("readwise_epub.PercollateRenderer")
    @patch("readwise_epub.requests.Session")
    @patch("readwise_epub.setup_authentication")
    @patch("data_fetcher.time.sleep")
    def test_failed_batch_sets_exit_status(self, mock_sleep, mock_auth, mock_session_cls, mock_renderer_cls):
        mock_auth.return_value = self.authenticator
        self.api_session.get.side_effect = two_pages()
        probe = MagicMock()
        probe.head.side_effect = echo_head
        mock_session_cls.return_value.__enter__.return_value = probe
        renderer = RecordingRenderer(fail_on={"readwise-A - S1.epub"})
        mock_renderer_cls.return_value = renderer

        with patch("sys.stdout", StringIO()):
            status = export_epubs(self.settings)

        self.assertEqual(status, 1)
        self.assertEqual(len(renderer.calls), 2)

    @patch("readwise_epub.setup_authentication")
    @patch("data_fetcher.time.sleep")
    def test_api_error_exits_before_rendering(self, mock_sleep, mock_auth):
        mock_auth.return_value = self.authenticator
        self.api_session.get.return_value = make_response({}, status_code=401)

        status = export_epubs(self.settings)

        self.assertEqual(status, 1)
        self.assertFalse(os.path.exists(self.settings.output_dir))

    @patch("readwise_epub.requests.Session")
    @patch("readwise_epub.setup_authentication")
    @patch("data_fetcher.time.sleep")
    def test_dry_run_does_not_create_output(self, mock_sleep, mock_auth, mock_session_cls):
        mock_auth.return_value = self.authenticator
        self.api_session.get.side_effect = two_pages()
        probe = MagicMock()
        probe.head.side_effect = echo_head
        mock_session_cls.return_value.__enter__.return_value = probe
        self.settings.dry_run = True

        with patch("readwise_epub.PercollateRenderer") as mock_renderer_cls:
            with patch("sys.stdout", StringIO()):
                status = export_epubs(self.settings)

        self.assertEqual(status, 0)
        mock_renderer_cls.assert_not_called()
        self.assertFalse(os.path.exists(self.settings.output_dir))


if __name__ == "__main__":
    unittest.main()
