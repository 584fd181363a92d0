"""Tests for canned-reply routing."""

import pytest

from autoreply_bot.router import (
    DEFAULT_CATALOG_URL,
    GREETINGS,
    MenuReplies,
    MessageRouter,
    normalize,
)


@pytest.fixture
def router():
    return MessageRouter()


class TestNormalize:
    """Test text normalization."""

    def test_trims_and_lowercases(self):
        assert normalize("  MeNu \n") == "menu"

    def test_empty_and_none(self):
        assert normalize("   ") == ""
        assert normalize(None) == ""

    def test_keeps_accents(self):
        assert normalize("OLÁ") == "olá"


class TestMessageRouter:
    """Test the four reply branches."""

    @pytest.mark.parametrize("text", sorted(GREETINGS))
    def test_greetings_return_menu(self, router, text):
        """Every greeting gets the menu, repeatedly."""
        first = router.route(text)
        assert first == router.replies.menu
        assert router.route(text) == first

    @pytest.mark.parametrize("text", [" Oi ", "MENU", "Olá", "\t0\n"])
    def test_greetings_are_case_and_space_insensitive(self, router, text):
        assert router.route(text) == router.replies.menu

    def test_menu_lists_both_options(self, router):
        reply = router.route("menu")
        assert "1" in reply
        assert "2" in reply

    def test_option_one_returns_catalog_link(self, router):
        assert DEFAULT_CATALOG_URL in router.route("1")

    def test_custom_catalog_url(self):
        router = MessageRouter(catalog_url="https://example.com/catalog")
        assert "https://example.com/catalog" in router.route(" 1 ")

    def test_option_two_returns_salesperson(self, router):
        assert "vendedor" in router.route("2")

    @pytest.mark.parametrize("text", ["xyz", "", "   ", "11", "bom dia", "menu please"])
    def test_anything_else_returns_fallback(self, router, text):
        reply = router.route(text)
        assert reply == router.replies.fallback
        assert "0" in reply

    def test_custom_replies(self):
        replies = MenuReplies(menu="M", catalog="C {catalog_url}", salesperson="S", fallback="F")
        router = MessageRouter(catalog_url="url", replies=replies)

        assert router.route("oi") == "M"
        assert router.route("1") == "C url"
        assert router.route("2") == "S"
        assert router.route("?") == "F"
