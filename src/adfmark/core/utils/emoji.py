"""Shortname-to-unicode table for emoji placeholders"""

from typing import Any


EMOJI: dict[str, str] = {
    'grinning':              '😀',
    'smiley':                '😃',
    'smile':                 '😄',
    'grin':                  '😁',
    'laughing':              '😆',
    'wink':                  '😉',
    'blush':                 '😊',
    'slightly_smiling_face': '🙂',
    'star':                  '⭐',
    'thumbsup':              '👍',
    '+1':                    '👍',
    'thumbsdown':            '👎',
    '-1':                    '👎',
    'heart':                 '❤️',
    'fire':                  '🔥',
    'rocket':                '🚀',
    'tada':                  '🎉',
    'warning':               '⚠️',
    'x':                     '❌',
    'white_check_mark':      '✅',
    'heavy_check_mark':      '✔️',
    'clapping_hands':        '👏',
    'muscle':                '💪',
    'handshake':             '🤝',
    'trophy':                '🏆',
    'memo':                  '📝',
    'calendar':              '📅',
    'sunny':                 '☀️',
    'cloud':                 '☁️',
    'umbrella':              '☔',
    'snowflake':             '❄️',
    'coffee':                '☕',
    'pizza':                 '🍕',
    'hamburger':             '🍔',
    'soccer':                '⚽',
    'basketball':            '🏀',
    'football':              '🏈',
}


def emoji_attrs(name: str) -> dict[str, Any]:
    """Attrs for an emoji node from a bare shortname ('smile' or ':smile:')."""
    name = name.strip(':')
    attrs: dict[str, Any] = {"shortName": f":{name}:"}
    if name in EMOJI:
        attrs["text"] = EMOJI[name]
    return attrs


def derived_keys(attrs: dict[str, Any]) -> set[str]:
    """Attr keys a renderer can omit because parsing the shortname restores them."""
    name = str(attrs.get("shortName", "")).strip(':')
    keys = {"shortName"}
    if name in EMOJI and attrs.get("text") == EMOJI[name]:
        keys.add("text")
    return keys
