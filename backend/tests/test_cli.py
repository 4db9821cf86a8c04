"""
Tests for the command line entry point.
"""

import pytest

from pricewatch.cli import build_parser, read_url_file


class TestParser:
    """Test argument parsing."""

    def test_category_command(self):
        args = build_parser().parse_args(
            ['--start-from', '3', 'category', 'https://www.akakce.com/cep-telefonu.html', '--max', '25']
        )

        assert args.command == 'category'
        assert args.url == 'https://www.akakce.com/cep-telefonu.html'
        assert args.max == 25
        assert args.start_from == 3

    def test_products_command(self):
        args = build_parser().parse_args(['--headless', 'products', 'a,1.html', 'b,2.html'])

        assert args.command == 'products'
        assert args.urls == ['a,1.html', 'b,2.html']
        assert args.headless is True
        assert args.file is None

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestUrlFile:
    """Test reading targets from a file."""

    def test_skips_blanks_and_comments(self, tmp_path):
        path = tmp_path / "urls.txt"
        path.write_text(
            "# phones\nhttps://www.akakce.com/a,1.html\n\n  https://www.akakce.com/b,2.html  \n",
            encoding='utf-8',
        )

        assert read_url_file(path) == [
            "https://www.akakce.com/a,1.html",
            "https://www.akakce.com/b,2.html",
        ]
