"""Canned-reply routing for inbound text."""

from dataclasses import dataclass
from typing import FrozenSet

GREETINGS: FrozenSet[str] = frozenset({"oi", "olá", "ola", "menu", "0"})
CATALOG_OPTION = "1"
SALES_OPTION = "2"

DEFAULT_CATALOG_URL = "https://loja.stoqui.com.br/florenzano-boutique"


def normalize(text: str) -> str:
    """Trim surrounding whitespace and lowercase."""
    return (text or "").strip().lower()


@dataclass(frozen=True)
class MenuReplies:
    """Reply texts. ``catalog`` may use a ``{catalog_url}`` placeholder."""

    menu: str = (
        "👋 Olá! Aqui está o menu:\n\n"
        "1️⃣ - Ver catálogo\n"
        "2️⃣ - Falar com vendedor\n\n"
        "Digite o número da opção."
    )
    catalog: str = "🛍️ Nosso catálogo: {catalog_url}\nDigite *0* para voltar ao menu."
    salesperson: str = (
        "👩‍💼 Um vendedor entrará em contato com você em breve.\n"
        "Digite *0* para voltar ao menu."
    )
    fallback: str = "🤖 Não entendi. Digite *0* para ver o menu novamente."


class MessageRouter:
    """
    Maps inbound text to one of four canned replies.

    Matching is exact against the normalized text; the first rule that
    matches wins: greeting -> menu, "1" -> catalog, "2" -> salesperson,
    anything else (including empty text) -> fallback.
    """

    def __init__(self, catalog_url: str = DEFAULT_CATALOG_URL, replies: MenuReplies = MenuReplies()):
        self.catalog_url = catalog_url
        self.replies = replies

    def route(self, text: str) -> str:
        normalized = normalize(text)

        if normalized in GREETINGS:
            return self.replies.menu
        if normalized == CATALOG_OPTION:
            return self.replies.catalog.format(catalog_url=self.catalog_url)
        if normalized == SALES_OPTION:
            return self.replies.salesperson
        return self.replies.fallback
