"""HTML and JSON utilities for LLM processing."""

import json
import logging
import re

from bs4 import BeautifulSoup, Comment

from src.constants import CHARS_PER_TOKEN_ESTIMATE, MAX_SELECT_OPTIONS, MIN_FORM_MARKUP_SIZE

logger = logging.getLogger(__name__)

# Tags to completely remove from HTML
REMOVE_TAGS = ['script', 'style', 'svg', 'noscript', 'head', 'meta', 'link', 'iframe', 'img', 'picture', 'video']

# Selectors for cookie consent dialogs (can be 5+ MB on some sites)
COOKIE_SELECTORS = [
    '[id*="cookie"]',
    '[id*="consent"]',
    '[class*="cookie"]',
    '[class*="consent"]',
    '[id*="gdpr"]',
    '[class*="gdpr"]',
    '[id*="CookieBot"]',
    '[class*="CookieBot"]',
]

# Attributes the LLM needs to build selectors
KEEP_ATTRS = {
    'id', 'name', 'type', 'placeholder', 'for', 'role', 'value', 'required',
    'aria-label', 'aria-required', 'data-test', 'data-testid', 'action', 'method', 'class',
}

# Keywords for relevant CSS classes
RELEVANT_CLASS_KEYWORDS = ['form', 'field', 'input', 'title', 'job', 'description', 'submit', 'button', 'email', 'location', 'company']


def clean_html(html: str) -> str:
    """
    Очистить HTML от скриптов, стилей и лишних атрибутов.

    Keeps attributes that are useful for building CSS selectors for form
    controls (id, name, type, placeholder, aria-*, data-test...).

    Args:
        html: Raw HTML content

    Returns:
        Cleaned HTML string optimized for LLM processing
    """
    soup = BeautifulSoup(html, 'lxml')

    # Удаляем ненужные теги полностью
    for tag in soup.find_all(REMOVE_TAGS):
        tag.decompose()

    # Remove cookie consent dialogs
    for selector in COOKIE_SELECTORS:
        for element in soup.select(selector):
            if element.decomposed:
                continue  # already removed together with its parent
            # Never drop the form itself because of a "consent" checkbox class
            if element.name not in ('form', 'input', 'textarea', 'select', 'button', 'label') \
                    and not element.find('form'):
                element.decompose()

    # Удаляем комментарии
    for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
        comment.extract()

    # Long <select> lists (countries, timezones) are pure noise for the LLM
    for select in soup.find_all('select'):
        for option in select.find_all('option')[MAX_SELECT_OPTIONS:]:
            option.decompose()

    # Фильтруем атрибуты
    for tag in soup.find_all(True):
        new_attrs = {}
        for attr, value in tag.attrs.items():
            if attr not in KEEP_ATTRS:
                continue
            if attr == 'class' and isinstance(value, list):
                relevant = [
                    c for c in value
                    if any(k in c.lower() for k in RELEVANT_CLASS_KEYWORDS)
                ]
                if relevant:
                    new_attrs[attr] = ' '.join(relevant[:3])
            else:
                new_attrs[attr] = value
        tag.attrs = new_attrs

    clean = str(soup)

    # Удаляем множественные пробелы и переносы
    clean = re.sub(r'\s+', ' ', clean)
    clean = re.sub(r'>\s+<', '><', clean)

    return clean.strip()


def prepare_form_markup(html: str, max_chars: int) -> str:
    """
    Reduce a page to the markup that matters for form detection.

    Prefers the page's <form> elements; falls back to the cleaned body when
    the forms are missing or suspiciously small (JS-rendered forms often
    live outside a <form> tag). The result is truncated to ``max_chars``.

    Args:
        html: Raw page HTML
        max_chars: Upper bound on returned size

    Returns:
        Sanitized, bounded markup
    """
    if not html:
        return ""

    cleaned = clean_html(html)
    soup = BeautifulSoup(cleaned, 'lxml')

    forms = soup.find_all('form')
    markup = ''.join(str(form) for form in forms)
    if len(markup) < MIN_FORM_MARKUP_SIZE:
        body = soup.body
        markup = ''.join(str(child) for child in body.children) if body else cleaned

    if len(markup) > max_chars:
        logger.debug(f"Truncating form markup {len(markup)} -> {max_chars} chars")
        markup = markup[:max_chars]

    return markup


def estimate_tokens(text: str) -> int:
    """Rough upper estimate of token count (used for budget reservations)."""
    if not text:
        return 0
    return len(text) // CHARS_PER_TOKEN_ESTIMATE + 1


def extract_json(response: str) -> list | dict:
    """
    Извлечь JSON из ответа LLM.

    Handles various formats:
    - JSON in markdown code blocks
    - Raw JSON response
    - JSON embedded in text

    Args:
        response: LLM response text

    Returns:
        Parsed JSON (list or dict), or empty dict on failure
    """
    if not response or not response.strip():
        return {}

    # Пробуем найти JSON в markdown блоке
    json_match = re.search(r'```(?:json)?\s*([\s\S]*?)\s*```', response)
    if json_match:
        try:
            return json.loads(json_match.group(1))
        except json.JSONDecodeError:
            pass

    # Пробуем распарсить весь ответ как JSON
    try:
        return json.loads(response.strip())
    except json.JSONDecodeError as e:
        logger.debug(f"Direct JSON parse failed: {e}")

    # Ищем первый сбалансированный JSON объект в тексте
    start = response.find('{')
    if start != -1:
        depth = 0
        for i, char in enumerate(response[start:], start):
            if char == '{':
                depth += 1
            elif char == '}':
                depth -= 1
                if depth == 0:
                    try:
                        return json.loads(response[start:i + 1])
                    except json.JSONDecodeError:
                        break

    return {}
